import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.sql import func

from timelink.database import Base


# ---------------------------------------------------
# Helpers
# ---------------------------------------------------

def new_id() -> str:
    return str(uuid.uuid4())


def _avatar_default(context) -> str:
    """Placeholder avatar keyed on the user's email."""
    email = context.get_current_parameters().get("email") or ""
    return f"https://i.pravatar.cc/150?u={email}"


# ---------------------------------------------------
# Roles
# ---------------------------------------------------

ROLE_CONTRACTOR = "CONTRACTOR"
ROLE_MANAGER = "MANAGER"
VALID_ROLES = (ROLE_CONTRACTOR, ROLE_MANAGER)

USER_ROLE_TYPE = String(20)  # keep String to avoid enum migration issues


# ---------------------------------------------------
# Tenant
# ---------------------------------------------------

class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(64), primary_key=True, default=new_id, nullable=False)
    name = Column(String(200), nullable=False)

    # Email domain used to route a freshly authenticated identity to its tenant
    domain = Column(String(255), nullable=False, unique=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


# ---------------------------------------------------
# User
# ---------------------------------------------------

class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=new_id, nullable=False)
    tenant_id = Column(
        String(64),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(USER_ROLE_TYPE, nullable=False, default=ROLE_CONTRACTOR)
    avatar_url = Column(String(1000), nullable=True, default=_avatar_default)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
