"""
Schedule executor.

Long-polls the queue, re-validates each message against the current workflow
and schedule state, creates an execution record and hands it to the execution
API. A message is deleted only once its outcome is handled; failed executions
are left on the queue so they become visible again after the visibility
timeout. Delivery is at-least-once: a redelivered message creates another
execution record.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from workflow_scheduler.core.exceptions import MessageFormatError, QueueError
from workflow_scheduler.schemas.message import ScheduleMessage
from workflow_scheduler.services.queue import QueueMessage

logger = logging.getLogger(__name__)

BACKOFF_SECONDS = 5.0


class MessageOutcome(str, Enum):
    MALFORMED = "malformed"
    WORKFLOW_MISSING = "workflow_missing"
    WORKFLOW_DISABLED = "workflow_disabled"
    SCHEDULE_MISSING = "schedule_missing"
    SCHEDULE_DISABLED = "schedule_disabled"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def acknowledged(self) -> bool:
        return self is not MessageOutcome.FAILED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleExecutor:
    """Consumes schedule messages. Store and queue calls run in worker threads."""

    def __init__(
        self,
        store,
        queue,
        execution_api,
        backoff_seconds: float = BACKOFF_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.queue = queue
        self.execution_api = execution_api
        self.backoff_seconds = backoff_seconds
        self.clock = clock

    async def receive_batch(self) -> list[QueueMessage]:
        return await asyncio.to_thread(self.queue.receive)

    async def ack(self, message: QueueMessage) -> None:
        try:
            await asyncio.to_thread(self.queue.delete, message.receipt_handle)
        except QueueError as exc:
            # The message will be redelivered after the visibility timeout.
            logger.error("[Executor] Failed to delete message %s: %s", message.message_id, exc)

    async def process_message(self, message: QueueMessage) -> MessageOutcome:
        if not (message.body and message.receipt_handle):
            logger.error("[Executor] Invalid message: %s", message)
            if message.receipt_handle:
                await self.ack(message)
            return MessageOutcome.MALFORMED

        try:
            schedule_message = ScheduleMessage.from_body(message.body)
        except MessageFormatError as exc:
            logger.error("[Executor] Dropping malformed message %s: %s", message.message_id, exc)
            await self.ack(message)
            return MessageOutcome.MALFORMED

        try:
            outcome = await self.process_scheduled_workflow(schedule_message)
        except Exception:
            logger.exception("[Executor] Failed to process workflow %s", schedule_message.workflow_id)
            return MessageOutcome.FAILED

        await self.ack(message)
        logger.info(
            "[Executor] Message deleted for workflow %s (%s)",
            schedule_message.workflow_id,
            outcome.value,
        )
        return outcome

    async def process_scheduled_workflow(self, message: ScheduleMessage) -> MessageOutcome:
        """
        Run one scheduled trigger. Soft skips return an outcome; execution
        failures are recorded and re-raised so the message is not deleted.
        """
        workflow_id = message.workflow_id
        schedule_id = message.schedule_id
        logger.info("[Executor] Processing workflow %s", workflow_id)

        workflow = await asyncio.to_thread(self.store.get_workflow, workflow_id)
        if not workflow:
            logger.error("[Executor] Workflow not found: %s", workflow_id)
            await asyncio.to_thread(
                self.store.update_schedule_after_run,
                schedule_id,
                "error",
                "Workflow not found",
                self.clock(),
            )
            return MessageOutcome.WORKFLOW_MISSING

        # Disabled after dispatch; an expected race with user edits.
        if not workflow.enabled:
            logger.info("[Executor] Workflow disabled, skipping: %s", workflow_id)
            return MessageOutcome.WORKFLOW_DISABLED

        schedule = await asyncio.to_thread(self.store.get_schedule, schedule_id)
        if not schedule:
            logger.error("[Executor] Schedule not found: %s", schedule_id)
            return MessageOutcome.SCHEDULE_MISSING

        if not schedule.enabled:
            logger.info("[Executor] Schedule disabled, skipping: %s", schedule_id)
            return MessageOutcome.SCHEDULE_DISABLED

        input_data = message.to_input()
        execution_id: str | None = None
        try:
            execution_id = await asyncio.to_thread(
                self.store.create_execution,
                workflow_id,
                workflow.user_id,
                input_data,
            )
            logger.info("[Executor] Created execution %s", execution_id)

            result = await self.execution_api.execute(workflow_id, execution_id, input_data)
            logger.info("[Executor] Execution started: %s", result.get("executionId", execution_id))
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            logger.error("[Executor] Execution failed for %s: %s", workflow_id, error)
            await self._record_failure(execution_id, schedule_id, error)
            raise

        await asyncio.to_thread(
            self.store.update_schedule_after_run,
            schedule_id,
            "success",
            None,
            self.clock(),
        )
        return MessageOutcome.SUCCEEDED

    async def _record_failure(self, execution_id: str | None, schedule_id: str, error: str) -> None:
        if execution_id:
            try:
                await asyncio.to_thread(self.store.fail_execution, execution_id, error)
            except Exception:
                logger.exception("[Executor] Could not mark execution %s as failed", execution_id)
        try:
            await asyncio.to_thread(
                self.store.update_schedule_after_run,
                schedule_id,
                "error",
                error,
                self.clock(),
            )
        except Exception:
            logger.exception("[Executor] Could not record failure on schedule %s", schedule_id)

    async def process_batch(self, messages: list[QueueMessage]) -> list[MessageOutcome]:
        """Process a batch concurrently; one failure never affects the others."""
        results = await asyncio.gather(
            *(self.process_message(message) for message in messages),
            return_exceptions=True,
        )
        outcomes: list[MessageOutcome] = []
        for idx, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.error("[Executor] Message %d failed: %r", idx, result)
                outcomes.append(MessageOutcome.FAILED)
            else:
                outcomes.append(result)
        return outcomes

    async def run_once(self) -> list[MessageOutcome]:
        """Receive one batch and process it. Receive failures propagate."""
        messages = await self.receive_batch()
        if not messages:
            return []
        logger.info("[Executor] Received %d messages", len(messages))
        return await self.process_batch(messages)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set, backing off after receive failures."""
        logger.info("[Executor] Starting SQS listener...")
        while not stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("[Executor] Error receiving messages")
                await self._backoff(stop_event)
        logger.info("[Executor] Listener stopped")

    async def _backoff(self, stop_event: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.backoff_seconds)
        except asyncio.TimeoutError:
            pass
