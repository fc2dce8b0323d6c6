from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pathlib import Path
import os
import logging
from dotenv import load_dotenv

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

load_dotenv(dotenv_path=Path(__file__).parent / ".env", override=True)

from timelink.services.approval import InvalidTransitionError, ReviewValidationError
from timelink.services.storage import TenantMismatchError, VersionConflictError
from timelink.services.timesheets import CellTakenError, NotFoundError

app = FastAPI(title="TimeLink API")

# --- Register routers ---
from timelink.routers.auth import router as auth_router
from timelink.routers.timesheets import router as timesheets_router
from timelink.routers.manager import router as mgr_router
from timelink.routers.export import router as export_router
from timelink.routers.tenant import router as tenant_router

app.include_router(auth_router)
app.include_router(timesheets_router)
app.include_router(mgr_router)
app.include_router(export_router)
app.include_router(tenant_router)

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in CORS_ORIGINS],
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Domain errors -> HTTP ---

@app.exception_handler(TenantMismatchError)
async def tenant_mismatch_handler(request: Request, exc: TenantMismatchError):
    logger.warning("Blocked cross-tenant %s write: %s -> %s", exc.kind, exc.tenant_id, exc.entity_tenant_id)
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(CellTakenError)
async def cell_taken_handler(request: Request, exc: CellTakenError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(VersionConflictError)
async def version_conflict_handler(request: Request, exc: VersionConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "current_version": exc.actual})


@app.exception_handler(ReviewValidationError)
async def review_validation_handler(request: Request, exc: ReviewValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.get("/health")
def health():
    return {"ok": True}
