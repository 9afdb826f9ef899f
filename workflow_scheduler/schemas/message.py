from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from workflow_scheduler.core.exceptions import MessageFormatError

TRIGGER_TYPE = "schedule"


def format_trigger_time(moment: datetime) -> str:
    """Render an instant as UTC ISO 8601 with millisecond precision and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


class ScheduleMessage(BaseModel):
    """Queue message emitted by the dispatcher for one fired schedule."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    workflow_id: str = Field(alias="workflowId", min_length=1)
    schedule_id: str = Field(alias="scheduleId", min_length=1)
    trigger_time: str = Field(alias="triggerTime", min_length=1)
    trigger_type: Literal["schedule"] = Field(default=TRIGGER_TYPE, alias="triggerType")

    @field_validator("trigger_time")
    @classmethod
    def validate_trigger_time(cls, value: str) -> str:
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"triggerTime is not ISO 8601: {value}") from exc
        return value

    def to_body(self) -> str:
        return json.dumps(self.model_dump(by_alias=True))

    def to_input(self) -> dict[str, Any]:
        """Input context recorded on the execution and sent to the execution API."""
        return {
            "triggerType": self.trigger_type,
            "scheduleId": self.schedule_id,
            "triggerTime": self.trigger_time,
        }

    def message_attributes(self) -> dict[str, dict[str, str]]:
        """SQS attributes that allow filtering without decoding the body."""
        return {
            "TriggerType": {"DataType": "String", "StringValue": self.trigger_type},
            "WorkflowId": {"DataType": "String", "StringValue": self.workflow_id},
        }

    @classmethod
    def from_body(cls, body: str | None) -> "ScheduleMessage":
        if not body:
            raise MessageFormatError("Message body is empty")
        try:
            payload = json.loads(body)
        except (TypeError, ValueError) as exc:
            raise MessageFormatError(f"Message body is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise MessageFormatError("Message body must be a JSON object")
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise MessageFormatError(f"Message body failed validation: {exc}") from exc
