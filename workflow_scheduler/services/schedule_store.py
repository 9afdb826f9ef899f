"""
Read/write contract over workflows, schedules and executions.

Every method opens its own short session, so one store instance can be shared
by concurrently processed messages. Updates are last-write-wins.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from workflow_scheduler.database import Database
from workflow_scheduler.models import SCHEDULE_STATUSES, Workflow, WorkflowExecution, WorkflowSchedule, generate_id
from workflow_scheduler.services.cron_matcher import next_occurrence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchableSchedule:
    id: str
    workflow_id: str
    cron_expression: str
    timezone: str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleStore:
    def __init__(self, database: Database):
        self.database = database

    def list_dispatchable_schedules(self) -> list[DispatchableSchedule]:
        """Enabled schedules whose workflow is enabled too."""
        with self.database.session() as db:
            rows = (
                db.query(
                    WorkflowSchedule.id,
                    WorkflowSchedule.workflow_id,
                    WorkflowSchedule.cron_expression,
                    WorkflowSchedule.timezone,
                )
                .join(Workflow, WorkflowSchedule.workflow_id == Workflow.id)
                .filter(WorkflowSchedule.enabled.is_(True), Workflow.enabled.is_(True))
                .all()
            )
        return [
            DispatchableSchedule(
                id=row.id,
                workflow_id=row.workflow_id,
                cron_expression=row.cron_expression,
                timezone=row.timezone,
            )
            for row in rows
        ]

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        with self.database.session() as db:
            return db.query(Workflow).filter(Workflow.id == workflow_id).first()

    def get_schedule(self, schedule_id: str) -> WorkflowSchedule | None:
        with self.database.session() as db:
            return db.query(WorkflowSchedule).filter(WorkflowSchedule.id == schedule_id).first()

    def get_schedule_for_workflow(self, workflow_id: str) -> WorkflowSchedule | None:
        with self.database.session() as db:
            return (
                db.query(WorkflowSchedule)
                .filter(WorkflowSchedule.workflow_id == workflow_id)
                .first()
            )

    def list_executions(self, workflow_id: str) -> list[WorkflowExecution]:
        with self.database.session() as db:
            return (
                db.query(WorkflowExecution)
                .filter(WorkflowExecution.workflow_id == workflow_id)
                .order_by(WorkflowExecution.started_at.asc())
                .all()
            )

    def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        with self.database.session() as db:
            return db.query(WorkflowExecution).filter(WorkflowExecution.id == execution_id).first()

    def create_execution(self, workflow_id: str, user_id: str, input_data: dict[str, Any]) -> str:
        """Insert a running execution record and return its id."""
        execution_id = generate_id()
        with self.database.session() as db:
            db.add(
                WorkflowExecution(
                    id=execution_id,
                    workflow_id=workflow_id,
                    user_id=user_id,
                    status="running",
                    input=input_data,
                    started_at=utcnow(),
                )
            )
        return execution_id

    def fail_execution(self, execution_id: str, error: str) -> None:
        with self.database.session() as db:
            execution = db.query(WorkflowExecution).filter(WorkflowExecution.id == execution_id).first()
            if not execution:
                logger.error("Execution not found: %s", execution_id)
                return
            execution.status = "error"
            execution.error = error
            execution.completed_at = utcnow()

    def update_schedule_after_run(
        self,
        schedule_id: str,
        status: str,
        error: str | None = None,
        now: datetime | None = None,
    ) -> WorkflowSchedule | None:
        """
        Record the outcome of a dispatch attempt.

        next_run_at is recomputed from ``now``. run_count only moves on success,
        and last_error is cleared on success.
        """
        if status not in SCHEDULE_STATUSES:
            raise ValueError(f"Invalid schedule status: {status}")
        now = now or utcnow()

        with self.database.session() as db:
            schedule = db.query(WorkflowSchedule).filter(WorkflowSchedule.id == schedule_id).first()
            if not schedule:
                logger.error("Schedule not found: %s", schedule_id)
                return None

            schedule.last_run_at = now
            schedule.last_status = status
            schedule.last_error = error if status == "error" else None
            schedule.next_run_at = next_occurrence(schedule.cron_expression, schedule.timezone, now)
            if status == "success":
                schedule.run_count = (schedule.run_count or 0) + 1
            schedule.updated_at = now

        logger.info("Updated schedule %s after run: %s", schedule_id, status)
        return schedule

    def upsert_schedule(
        self,
        workflow_id: str,
        cron_expression: str,
        tz_name: str,
        next_run_at: datetime | None,
    ) -> tuple[WorkflowSchedule, bool]:
        """Create or update the schedule of a workflow. Returns (schedule, created)."""
        with self.database.session() as db:
            schedule = (
                db.query(WorkflowSchedule)
                .filter(WorkflowSchedule.workflow_id == workflow_id)
                .first()
            )
            if schedule:
                schedule.cron_expression = cron_expression
                schedule.timezone = tz_name
                schedule.next_run_at = next_run_at
                schedule.updated_at = utcnow()
                return schedule, False

            schedule = WorkflowSchedule(
                id=generate_id(),
                workflow_id=workflow_id,
                cron_expression=cron_expression,
                timezone=tz_name,
                enabled=True,
                next_run_at=next_run_at,
                run_count=0,
            )
            db.add(schedule)
            return schedule, True

    def delete_schedule_for_workflow(self, workflow_id: str) -> int:
        with self.database.session() as db:
            return (
                db.query(WorkflowSchedule)
                .filter(WorkflowSchedule.workflow_id == workflow_id)
                .delete(synchronize_session=False)
            )

    def set_schedule_enabled(self, workflow_id: str, enabled: bool) -> int:
        with self.database.session() as db:
            return (
                db.query(WorkflowSchedule)
                .filter(WorkflowSchedule.workflow_id == workflow_id)
                .update(
                    {WorkflowSchedule.enabled: enabled, WorkflowSchedule.updated_at: utcnow()},
                    synchronize_session=False,
                )
            )

    def close(self) -> None:
        self.database.close()
