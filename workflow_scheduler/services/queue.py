"""
SQS client for schedule messages.

The real AWS endpoint is used unless AWS_ENDPOINT_URL is set, in which case
the client talks to that endpoint (LocalStack) with the configured test
credentials.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from workflow_scheduler.config import Settings
from workflow_scheduler.core.exceptions import QueueError
from workflow_scheduler.schemas.message import ScheduleMessage

logger = logging.getLogger(__name__)

VISIBILITY_TIMEOUT = 300  # 5 minutes
WAIT_TIME_SECONDS = 20  # long polling
MAX_MESSAGES = 10


@dataclass
class QueueMessage:
    """One received message. ``receipt_handle`` is the acknowledgement token."""

    body: str | None
    receipt_handle: str | None
    message_id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_sqs(cls, raw: dict[str, Any]) -> "QueueMessage":
        return cls(
            body=raw.get("Body"),
            receipt_handle=raw.get("ReceiptHandle"),
            message_id=raw.get("MessageId"),
            attributes=raw.get("MessageAttributes") or {},
        )


class SQSQueue:
    def __init__(
        self,
        client: Any,
        queue_url: str,
        visibility_timeout: int = VISIBILITY_TIMEOUT,
        wait_time_seconds: int = WAIT_TIME_SECONDS,
        max_messages: int = MAX_MESSAGES,
    ):
        self.client = client
        self.queue_url = queue_url
        self.visibility_timeout = visibility_timeout
        self.wait_time_seconds = wait_time_seconds
        self.max_messages = max_messages

    @classmethod
    def from_settings(cls, settings: Settings) -> "SQSQueue":
        client_kwargs: dict[str, Any] = {
            "region_name": settings.aws_region,
            "config": Config(
                retries={
                    "max_attempts": 3,
                    "mode": "adaptive",
                },
                # Must outlast the long poll.
                read_timeout=settings.sqs_wait_time_seconds + 10,
            ),
        }
        if settings.aws_endpoint_url:
            client_kwargs["endpoint_url"] = settings.aws_endpoint_url
            client_kwargs["aws_access_key_id"] = settings.aws_access_key_id
            client_kwargs["aws_secret_access_key"] = settings.aws_secret_access_key.get_secret_value()

        return cls(
            boto3.client("sqs", **client_kwargs),
            settings.sqs_queue_url,
            visibility_timeout=settings.sqs_visibility_timeout,
            wait_time_seconds=settings.sqs_wait_time_seconds,
            max_messages=settings.sqs_max_messages,
        )

    def send(self, message: ScheduleMessage) -> str | None:
        """Send one schedule message and return the SQS message id."""
        try:
            response = self.client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=message.to_body(),
                MessageAttributes=message.message_attributes(),
            )
        except (BotoCoreError, ClientError) as exc:
            raise QueueError(f"Failed to send message for workflow {message.workflow_id}: {exc}") from exc
        return response.get("MessageId")

    def receive(self) -> list[QueueMessage]:
        """Long-poll for up to ``max_messages`` messages."""
        try:
            response = self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=self.max_messages,
                WaitTimeSeconds=self.wait_time_seconds,
                VisibilityTimeout=self.visibility_timeout,
                MessageAttributeNames=["All"],
            )
        except (BotoCoreError, ClientError) as exc:
            raise QueueError(f"Failed to receive messages: {exc}") from exc
        return [QueueMessage.from_sqs(raw) for raw in response.get("Messages", [])]

    def delete(self, receipt_handle: str) -> None:
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)
        except (BotoCoreError, ClientError) as exc:
            raise QueueError(f"Failed to delete message: {exc}") from exc

    def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close:
            close()
