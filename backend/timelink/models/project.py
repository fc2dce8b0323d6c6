from sqlalchemy import Column, String, ForeignKey

from timelink.database import Base
from timelink.models.user import new_id


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(64), primary_key=True, default=new_id, nullable=False)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=False)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(64), primary_key=True, default=new_id, nullable=False)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
