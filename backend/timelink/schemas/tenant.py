from pydantic import BaseModel, Field
from typing import Literal, Optional


class TenantResponse(BaseModel):
    id: str
    name: str
    domain: str

    model_config = {"from_attributes": True}


class UserRecord(BaseModel):
    id: str
    tenant_id: str
    name: str
    email: str
    role: Literal["CONTRACTOR", "MANAGER"] = "CONTRACTOR"
    avatar_url: Optional[str] = None

    model_config = {"from_attributes": True}


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=255)
    role: Literal["CONTRACTOR", "MANAGER"] = "CONTRACTOR"


class RoleUpdate(BaseModel):
    role: Literal["CONTRACTOR", "MANAGER"]


class ProjectResponse(BaseModel):
    id: str
    tenant_id: str
    name: str
    code: str

    model_config = {"from_attributes": True}


class TaskResponse(BaseModel):
    id: str
    tenant_id: str
    project_id: str
    name: str

    model_config = {"from_attributes": True}
