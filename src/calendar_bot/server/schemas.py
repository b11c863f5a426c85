from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from calendar_bot.datamodel import ReminderEvent


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float


class ReminderEventIn(BaseModel):
    """提醒入口的请求体，与延迟投递的 Input 完全一致"""
    model_config = ConfigDict(extra="forbid")

    userId: str = Field(min_length=1)
    task: str

    def to_event(self) -> ReminderEvent:
        return ReminderEvent(subject_id=self.userId, task_text=self.task)
