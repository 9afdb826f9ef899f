import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault('DATABASE_URL', 'sqlite:///./scheduler-test.db')
os.environ.setdefault('SQS_QUEUE_URL', 'https://sqs.us-east-1.amazonaws.com/000000000000/test-queue')
os.environ.setdefault('KEEPERHUB_URL', 'http://keeperhub.test')
os.environ.setdefault('SCHEDULER_SERVICE_API_KEY', 'test-service-key')

from workflow_scheduler.core.exceptions import QueueError  # noqa: E402
from workflow_scheduler.database import Database  # noqa: E402
from workflow_scheduler.models import Workflow, WorkflowSchedule  # noqa: E402
from workflow_scheduler.services.execution_api import ExecutionApiClient  # noqa: E402
from workflow_scheduler.services.queue import QueueMessage  # noqa: E402
from workflow_scheduler.services.schedule_store import ScheduleStore  # noqa: E402


def as_utc(value):
    """SQLite hands timestamps back naive; they were written as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class FakeQueue:
    """In-memory stand-in for SQSQueue with the same send/receive/delete surface."""

    def __init__(self):
        self.sent = []
        self.inbox = []
        self.deleted = []
        self.fail_send_for = set()
        self.receive_errors = 0
        self.receive_calls = 0
        self.closed = False

    def send(self, message):
        if message.schedule_id in self.fail_send_for:
            raise QueueError(f"send failed for {message.schedule_id}")
        self.sent.append(message)
        return f"msg-{len(self.sent)}"

    def receive(self):
        self.receive_calls += 1
        if self.receive_errors:
            self.receive_errors -= 1
            raise QueueError("receive failed")
        batch, self.inbox = self.inbox[:10], self.inbox[10:]
        return batch

    def delete(self, receipt_handle):
        self.deleted.append(receipt_handle)

    def close(self):
        self.closed = True


def queue_message(body, receipt_handle='rh-1', message_id='m-1'):
    return QueueMessage(body=body, receipt_handle=receipt_handle, message_id=message_id)


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'scheduler.db'}", connect_args={'check_same_thread': False})
    db.init_db()
    yield db
    db.close()


@pytest.fixture
def store(database):
    return ScheduleStore(database)


@pytest.fixture
def seed(database):
    def _seed(
        workflow_id='wf-1',
        schedule_id='sch-1',
        cron_expression='* * * * *',
        tz_name='UTC',
        workflow_enabled=True,
        schedule_enabled=True,
        with_workflow=True,
        user_id='user-1',
    ):
        with database.session() as db:
            if with_workflow:
                db.add(Workflow(id=workflow_id, name=f'Workflow {workflow_id}', user_id=user_id, enabled=workflow_enabled))
            if schedule_id:
                db.add(
                    WorkflowSchedule(
                        id=schedule_id,
                        workflow_id=workflow_id,
                        cron_expression=cron_expression,
                        timezone=tz_name,
                        enabled=schedule_enabled,
                        run_count=0,
                    )
                )
    return _seed


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture
def execution_api_factory():
    """Build an ExecutionApiClient whose HTTP calls hit a MockTransport handler."""
    def _factory(status_code=200, json_body=None, handler=None):
        requests = []

        def _default_handler(request):
            requests.append(request)
            if json_body is not None:
                return httpx.Response(status_code, json=json_body)
            return httpx.Response(status_code, text='boom' if status_code >= 400 else '')

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler or _default_handler))
        api = ExecutionApiClient('http://keeperhub.test', 'test-service-key', client=client)
        api.requests = requests
        return api
    return _factory
