from .message import ScheduleMessage, format_trigger_time

__all__ = ["ScheduleMessage", "format_trigger_time"]
