"""
Schedule dispatcher.

Runs once per invocation: evaluates every enabled schedule of an enabled
workflow against a single ``now`` and sends one queue message per fired
schedule. It never writes to the schedule store, so running it twice for the
same minute only produces duplicate messages, which the executor tolerates.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from workflow_scheduler.schemas.message import ScheduleMessage, format_trigger_time
from workflow_scheduler.services.cron_matcher import DEFAULT_WINDOW, evaluate_trigger

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    run_id: str
    evaluated: int = 0
    triggered: int = 0
    errors: int = 0

    @property
    def exit_code(self) -> int:
        return 1 if self.errors > 0 else 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Dispatcher:
    def __init__(
        self,
        store,
        queue,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.queue = queue
        self.window = window
        self.clock = clock

    def dispatch(self) -> DispatchResult:
        """
        Evaluate all dispatchable schedules and enqueue the ones that fired.

        Store failures propagate; per-schedule failures are counted in ``errors``.
        """
        result = DispatchResult(run_id=uuid.uuid4().hex[:8])
        run_id = result.run_id
        logger.info("[%s] Starting dispatch run at %s", run_id, format_trigger_time(self.clock()))

        schedules = self.store.list_dispatchable_schedules()
        result.evaluated = len(schedules)
        logger.info("[%s] Found %d enabled schedules", run_id, len(schedules))

        # Every row is evaluated against the same instant.
        now = self.clock()
        trigger_time = format_trigger_time(now)

        for schedule in schedules:
            try:
                match = evaluate_trigger(schedule.cron_expression, schedule.timezone, now, self.window)
                if match.error:
                    logger.warning("[%s] Schedule %s: %s", run_id, schedule.id, match.error)
                if not match.triggered:
                    continue

                logger.info(
                    "[%s] Triggering workflow %s (cron: %s, tz: %s)",
                    run_id,
                    schedule.workflow_id,
                    schedule.cron_expression,
                    schedule.timezone,
                )
                self.queue.send(
                    ScheduleMessage(
                        workflow_id=schedule.workflow_id,
                        schedule_id=schedule.id,
                        trigger_time=trigger_time,
                    )
                )
                result.triggered += 1
            except Exception:
                logger.exception("[%s] Error processing schedule %s", run_id, schedule.id)
                result.errors += 1

        logger.info(
            "[%s] Dispatch complete: evaluated=%d, triggered=%d, errors=%d",
            run_id,
            result.evaluated,
            result.triggered,
            result.errors,
        )
        return result
