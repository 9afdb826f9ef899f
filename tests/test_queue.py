from __future__ import annotations

import boto3
import pytest
from botocore.stub import Stubber

from workflow_scheduler.config import Settings
from workflow_scheduler.core.exceptions import QueueError
from workflow_scheduler.schemas.message import ScheduleMessage
from workflow_scheduler.services.queue import SQSQueue

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/000000000000/test-queue"


@pytest.fixture
def sqs_client():
    client = boto3.client(
        "sqs",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )
    with Stubber(client) as stubber:
        client.stubber = stubber
        yield client
        stubber.assert_no_pending_responses()


def make_message():
    return ScheduleMessage(workflow_id="wf-1", schedule_id="sch-1", trigger_time="2024-01-15T09:00:00.000Z")


def test_send_message(sqs_client):
    message = make_message()
    sqs_client.stubber.add_response(
        "send_message",
        {"MessageId": "msg-1"},
        {
            "QueueUrl": QUEUE_URL,
            "MessageBody": message.to_body(),
            "MessageAttributes": message.message_attributes(),
        },
    )

    assert SQSQueue(sqs_client, QUEUE_URL).send(message) == "msg-1"


def test_receive_uses_long_polling(sqs_client):
    sqs_client.stubber.add_response(
        "receive_message",
        {
            "Messages": [
                {"MessageId": "m-1", "ReceiptHandle": "rh-1", "Body": make_message().to_body()},
                {"MessageId": "m-2", "ReceiptHandle": "rh-2", "Body": "{}"},
            ]
        },
        {
            "QueueUrl": QUEUE_URL,
            "MaxNumberOfMessages": 10,
            "WaitTimeSeconds": 20,
            "VisibilityTimeout": 300,
            "MessageAttributeNames": ["All"],
        },
    )

    messages = SQSQueue(sqs_client, QUEUE_URL).receive()

    assert [m.receipt_handle for m in messages] == ["rh-1", "rh-2"]
    assert ScheduleMessage.from_body(messages[0].body).workflow_id == "wf-1"


def test_receive_with_no_messages(sqs_client):
    sqs_client.stubber.add_response("receive_message", {})
    assert SQSQueue(sqs_client, QUEUE_URL).receive() == []


def test_delete_message(sqs_client):
    sqs_client.stubber.add_response("delete_message", {}, {"QueueUrl": QUEUE_URL, "ReceiptHandle": "rh-1"})
    SQSQueue(sqs_client, QUEUE_URL).delete("rh-1")


@pytest.mark.parametrize(
    "operation,call",
    [
        ("send_message", lambda queue: queue.send(make_message())),
        ("receive_message", lambda queue: queue.receive()),
        ("delete_message", lambda queue: queue.delete("rh-1")),
    ],
)
def test_client_errors_become_queue_errors(sqs_client, operation, call):
    sqs_client.stubber.add_client_error(operation, service_error_code="AWS.SimpleQueueService.NonExistentQueue")

    with pytest.raises(QueueError):
        call(SQSQueue(sqs_client, QUEUE_URL))


def test_from_settings_targets_local_endpoint():
    settings = Settings(
        database_url="sqlite://",
        aws_endpoint_url="http://localhost:4566",
        sqs_queue_url="http://localhost:4566/000000000000/keeperhub-workflow-queue",
        sqs_wait_time_seconds=5,
    )

    queue = SQSQueue.from_settings(settings)

    assert queue.client.meta.endpoint_url == "http://localhost:4566"
    assert queue.queue_url.endswith("keeperhub-workflow-queue")
    assert queue.wait_time_seconds == 5
    queue.close()
