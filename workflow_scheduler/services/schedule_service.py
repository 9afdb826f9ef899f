"""
Schedule bookkeeping helpers used when a workflow is saved or toggled.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from workflow_scheduler.core.exceptions import ValidationError
from workflow_scheduler.models import WorkflowSchedule
from workflow_scheduler.services.cron_matcher import CRON_INPUT_ERRORS, build_croniter, next_occurrence
from workflow_scheduler.services.schedule_store import ScheduleStore, utcnow

logger = logging.getLogger(__name__)

CRON_FIELD_SPLITTER = re.compile(r"\s+")


@dataclass(frozen=True)
class SyncResult:
    synced: bool
    error: str | None = None


def compute_next_run_time(cron_expression: str, tz_name: str, now: datetime | None = None) -> datetime | None:
    return next_occurrence(cron_expression, tz_name, now or utcnow())


def validate_cron_expression(cron_expression: Any) -> tuple[bool, str | None]:
    if not cron_expression or not isinstance(cron_expression, str):
        return False, "Cron expression is required"

    parts = CRON_FIELD_SPLITTER.split(cron_expression.strip())
    if len(parts) < 5 or len(parts) > 6:
        return False, "Cron expression must have 5 or 6 fields"

    try:
        build_croniter(cron_expression.strip(), utcnow())
    except CRON_INPUT_ERRORS as exc:
        return False, str(exc) or "Invalid cron expression"
    return True, None


def validate_timezone(tz_name: Any) -> bool:
    if not tz_name or not isinstance(tz_name, str):
        return False
    try:
        ZoneInfo(tz_name)
    except (KeyError, ValueError):
        return False
    return True


def ensure_valid_schedule(cron_expression: Any, tz_name: Any) -> None:
    """Raise ValidationError when the cron expression or timezone is unusable."""
    valid, error = validate_cron_expression(cron_expression)
    if not valid:
        raise ValidationError(error)
    if not validate_timezone(tz_name):
        raise ValidationError(f"Invalid timezone: {tz_name}")


def extract_schedule_config(nodes: list[dict[str, Any]]) -> dict[str, str] | None:
    """Read cron and timezone from the workflow's Schedule trigger node, if any."""
    trigger = next(
        (node for node in nodes if (node.get("data") or {}).get("type") == "trigger"),
        None,
    )
    if trigger is None:
        return None

    config = trigger["data"].get("config") or {}
    if config.get("triggerType") != "Schedule":
        return None

    cron_expression = config.get("scheduleCron")
    if not cron_expression:
        return None

    return {
        "cron_expression": cron_expression,
        "timezone": config.get("scheduleTimezone") or "UTC",
    }


def sync_workflow_schedule(store: ScheduleStore, workflow_id: str, nodes: list[dict[str, Any]]) -> SyncResult:
    """
    Bring the workflow's schedule row in line with its trigger configuration.

    Without a Schedule trigger the row is deleted. Invalid cron or timezone
    values leave the existing row untouched.
    """
    schedule_config = extract_schedule_config(nodes)
    if schedule_config is None:
        store.delete_schedule_for_workflow(workflow_id)
        logger.info("Removed schedule for workflow %s", workflow_id)
        return SyncResult(synced=True)

    cron_expression = schedule_config["cron_expression"]
    tz_name = schedule_config["timezone"]

    try:
        ensure_valid_schedule(cron_expression, tz_name)
    except ValidationError as exc:
        logger.warning("Invalid schedule for workflow %s: %s", workflow_id, exc)
        return SyncResult(synced=False, error=str(exc))

    next_run_at = compute_next_run_time(cron_expression, tz_name)
    _, created = store.upsert_schedule(workflow_id, cron_expression, tz_name, next_run_at)
    logger.info(
        "%s schedule for workflow %s: %s (%s)",
        "Created" if created else "Updated",
        workflow_id,
        cron_expression,
        tz_name,
    )
    return SyncResult(synced=True)


def get_workflow_schedule(store: ScheduleStore, workflow_id: str) -> WorkflowSchedule | None:
    return store.get_schedule_for_workflow(workflow_id)


def set_schedule_enabled(store: ScheduleStore, workflow_id: str, enabled: bool) -> None:
    store.set_schedule_enabled(workflow_id, enabled)
    logger.info("%s schedule for workflow %s", "Enabled" if enabled else "Disabled", workflow_id)
