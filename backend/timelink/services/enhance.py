"""
Description polishing through a hosted language model.

Any failure (no key configured, HTTP error, timeout, malformed reply) falls
back to the original text; callers never see an exception from here.
"""

import os
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

ENHANCE_API_KEY = os.getenv("ENHANCE_API_KEY", "").strip()
ENHANCE_BASE_URL = os.getenv("ENHANCE_BASE_URL", "https://api.anthropic.com").strip().rstrip("/")
ENHANCE_MODEL = os.getenv("ENHANCE_MODEL", "claude-haiku-4-5").strip()
ENHANCE_TIMEOUT = float(os.getenv("ENHANCE_TIMEOUT_SECONDS", "30"))

ENHANCE_PROMPT = (
    "Reword the following timesheet work description to be more professional, concise, "
    "and suitable for a client invoice. Do not add any new facts, just polish the language. "
    'Reply with the reworded text only. Text: "{text}"'
)


def _extract_text(data: dict) -> str:
    text = ""
    for block in (data.get("content") or []):
        if isinstance(block, dict) and block.get("type") == "text":
            text += block.get("text", "")
    return text.strip()


def enhance(text: str, client: Optional[httpx.Client] = None) -> str:
    if not text or not text.strip():
        return text
    if not ENHANCE_API_KEY:
        logger.info("Enhancement skipped: ENHANCE_API_KEY not set")
        return text

    headers = {
        "Content-Type": "application/json",
        "x-api-key": ENHANCE_API_KEY,
        "anthropic-version": "2023-06-01",
    }
    payload = {
        "model": ENHANCE_MODEL,
        "max_tokens": 512,
        "messages": [{"role": "user", "content": ENHANCE_PROMPT.format(text=text)}],
    }

    try:
        if client is None:
            with httpx.Client() as own_client:
                r = own_client.post(ENHANCE_BASE_URL + "/v1/messages", headers=headers, json=payload, timeout=ENHANCE_TIMEOUT)
        else:
            r = client.post(ENHANCE_BASE_URL + "/v1/messages", headers=headers, json=payload, timeout=ENHANCE_TIMEOUT)

        if r.status_code >= 400:
            logger.warning("Enhancement call failed: %d %s", r.status_code, r.text[:200])
            return text

        enhanced = _extract_text(r.json())
        return enhanced or text
    except Exception as e:
        logger.warning("Enhancement error, keeping original text: %s", e)
        return text
