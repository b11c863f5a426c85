from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

__all__ = [
    "ScheduleCandidate", "ValidatedSchedule",
    "ReminderStatus", "ReminderRecord", "ReminderEvent", "partition_key",
    "SourceType", "MessageSource", "TextMessage", "OtherMessage", "WebhookMessage", "WebhookEvent",
]


# ----------------- 日程数据模型 ----------------
@dataclass
class ScheduleCandidate:
    date_time_text: str  # 格式: "YYYY-MM-DD HH:MM", 固定时区
    task_text: str
    is_valid: bool


@dataclass
class ValidatedSchedule:
    scheduled_at_utc: datetime  # aware, UTC
    task_text: str
    date_time_text: str  # 原样回显给用户


# ----------------- Reminder 数据模型 ----------------
class ReminderStatus(str, Enum):
    PENDING = "pending"
    FIRED = "fired"          # 预留
    CANCELLED = "cancelled"  # 预留


REMINDER_PARTITION_PREFIX = "E#"


def partition_key(subject_id: str) -> str:
    return f"{REMINDER_PARTITION_PREFIX}{subject_id}"


@dataclass
class ReminderRecord:
    reminder_id: str  # ULID
    subject_id: str
    scheduled_at_utc: datetime
    task_text: str
    created_at: datetime
    dispatch_handle_id: str
    status: ReminderStatus = ReminderStatus.PENDING

    @property
    def partition_key(self) -> str:
        return partition_key(self.subject_id)


@dataclass
class ReminderEvent:
    """延迟投递携带的最小负载，线上格式固定为 {"userId": ..., "task": ...}"""
    subject_id: str
    task_text: str

    def to_payload(self) -> Dict[str, str]:
        return {"userId": self.subject_id, "task": self.task_text}

    @classmethod
    def from_payload(cls, payload: Any) -> "ReminderEvent":
        if not isinstance(payload, dict):
            raise ValueError("reminder event payload must be a JSON object")
        user_id = payload.get("userId")
        task = payload.get("task")
        if not isinstance(user_id, str) or user_id == "":
            raise ValueError("reminder event payload requires a non-empty 'userId'")
        if not isinstance(task, str):
            raise ValueError("reminder event payload requires a string 'task'")
        return cls(subject_id=user_id, task_text=task)


# ----------------- Webhook 数据模型 ----------------
class SourceType(str, Enum):
    USER = "user"
    GROUP = "group"
    ROOM = "room"


@dataclass
class MessageSource:
    source_type: SourceType
    user_id: Optional[str] = None
    group_id: Optional[str] = None
    room_id: Optional[str] = None


@dataclass
class TextMessage:
    message_id: str
    text: str


@dataclass
class OtherMessage:
    message_id: str
    kind: str  # image / sticker / location ...


WebhookMessage = Union[TextMessage, OtherMessage]


@dataclass
class WebhookEvent:
    event_type: str  # message / follow / unfollow / postback ...
    source: MessageSource
    reply_token: Optional[str] = None
    message: Optional[WebhookMessage] = None
    timestamp: Optional[datetime] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)
