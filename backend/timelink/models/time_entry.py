from sqlalchemy import Column, String, Text, DateTime, Date, Float, Integer, Index
from sqlalchemy.sql import func

from timelink.database import Base
from timelink.models.user import new_id


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        Index("ix_te_tenant_date", "tenant_id", "date"),
        Index("ix_te_contractor_date", "contractor_id", "date"),
    )

    id = Column(String(64), primary_key=True, default=new_id)
    tenant_id = Column(String(64), nullable=False)

    contractor_id = Column(String(64), nullable=False)
    contractor_name = Column(String(200), nullable=False)

    # Name columns are snapshots taken at write time
    project_id = Column(String(64), nullable=False)
    project_name = Column(String(200), nullable=False)
    task_id = Column(String(64), nullable=True)
    task_name = Column(String(200), nullable=True)

    date = Column(Date, nullable=False)
    hours = Column(Float, nullable=False, default=0.0)
    description = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="Draft")

    rejection_reason = Column(Text, nullable=True)
    manager_comment = Column(Text, nullable=True)
    reviewed_by = Column(String(64), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
