"""
Process entry points.

``schedule-dispatcher`` runs one dispatch pass and exits 0 when no schedule
failed, 1 otherwise. Run it every minute from cron or ``watch -n 60``.

``schedule-executor`` runs the queue listener until SIGINT/SIGTERM.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import timedelta

from workflow_scheduler.config import Settings, get_settings
from workflow_scheduler.core.logging import configure_logging
from workflow_scheduler.database import Database
from workflow_scheduler.services.dispatcher import Dispatcher
from workflow_scheduler.services.execution_api import ExecutionApiClient
from workflow_scheduler.services.executor import ScheduleExecutor
from workflow_scheduler.services.queue import SQSQueue
from workflow_scheduler.services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


def run_dispatcher(settings: Settings) -> int:
    store = queue = None
    try:
        store = ScheduleStore(Database.from_settings(settings))
        queue = SQSQueue.from_settings(settings)
        dispatcher = Dispatcher(store, queue, window=timedelta(seconds=settings.dispatch_window_seconds))
        return dispatcher.dispatch().exit_code
    except Exception:
        logger.exception("Fatal error")
        return 1
    finally:
        if queue is not None:
            queue.close()
        if store is not None:
            store.close()


def dispatcher_main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    sys.exit(run_dispatcher(settings))


async def serve_executor(settings: Settings, stop_event: asyncio.Event | None = None) -> None:
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass  # not supported on this platform / outside the main thread

    execution_api = store = queue = None
    try:
        execution_api = ExecutionApiClient.from_settings(settings)
        store = ScheduleStore(Database.from_settings(settings))
        queue = SQSQueue.from_settings(settings)
        executor = ScheduleExecutor(
            store,
            queue,
            execution_api,
            backoff_seconds=settings.executor_backoff_seconds,
        )

        logger.info("[Executor] Queue URL: %s", settings.sqs_queue_url)
        logger.info("[Executor] KeeperHub URL: %s", settings.keeperhub_url)
        await executor.run(stop_event)
    finally:
        logger.info("[Executor] Shutting down...")
        if execution_api is not None:
            await execution_api.close()
        if queue is not None:
            queue.close()
        if store is not None:
            store.close()


def executor_main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    asyncio.run(serve_executor(settings))

