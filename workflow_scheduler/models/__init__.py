"""
SQLAlchemy models for workflows, their cron schedules and execution records.
"""
from __future__ import annotations

import secrets
import string

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

ID_ALPHABET = string.ascii_letters + string.digits + "_-"
ID_LENGTH = 21

# JSONB on Postgres, plain JSON elsewhere (local sqlite runs and tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")

SCHEDULE_STATUSES = ("success", "error")


def generate_id() -> str:
    """Return a URL-safe random identifier."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


class Workflow(Base):
    __tablename__ = "workflows"

    id = Column(Text, primary_key=True, default=generate_id)
    name = Column(Text, nullable=False, default="Untitled workflow")
    user_id = Column(Text, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class WorkflowSchedule(Base):
    __tablename__ = "workflow_schedules"
    __table_args__ = (Index("idx_workflow_schedules_enabled", "enabled"),)

    id = Column(Text, primary_key=True, default=generate_id)
    workflow_id = Column(
        Text,
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    cron_expression = Column(Text, nullable=False)
    timezone = Column(Text, nullable=False, default="UTC")
    enabled = Column(Boolean, nullable=False, default=True)
    last_run_at = Column(DateTime(timezone=True))
    last_status = Column(Text)
    last_error = Column(Text)
    next_run_at = Column(DateTime(timezone=True))
    run_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class WorkflowExecution(Base):
    __tablename__ = "workflow_executions"

    id = Column(Text, primary_key=True, default=generate_id)
    workflow_id = Column(Text, ForeignKey("workflows.id"), nullable=False)
    user_id = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    input = Column(JSONType)
    output = Column(JSONType)
    error = Column(Text)
    started_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at = Column(DateTime(timezone=True))
    duration = Column(Integer)  # milliseconds


__all__ = [
    "Base",
    "SCHEDULE_STATUSES",
    "Workflow",
    "WorkflowExecution",
    "WorkflowSchedule",
    "generate_id",
]
