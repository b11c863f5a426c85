from datetime import datetime, timezone
from typing import List, Optional

import pytest
import pytest_asyncio

from calendar_bot.channels.base import MessagingClient
from calendar_bot.datamodel import ReminderEvent, ReminderRecord, ScheduleCandidate, WebhookEvent
from calendar_bot.errors import MessagingError, PersistenceError, SchedulingError
from calendar_bot.llm.base import ScheduleExtractor
from calendar_bot.metrics import runtime_metrics
from calendar_bot.scheduling.base import DeferredDispatcher
from calendar_bot.storage.db_config import open_db
from calendar_bot.storage.reminder import ReminderStore

# 2024-06-01 10:00 Asia/Taipei
FIXED_NOW_UTC = datetime(2024, 6, 1, 2, 0, tzinfo=timezone.utc)


class FakeExtractor(ScheduleExtractor):
    def __init__(self, candidate: Optional[ScheduleCandidate] = None, error: Optional[Exception] = None):
        self.candidate = candidate
        self.error = error
        self.calls: List[str] = []

    async def extract(self, text: str) -> ScheduleCandidate:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.candidate


class FakeDispatcher(DeferredDispatcher):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.registrations: list = []

    async def register(self, unique_name: str, fire_at_utc: datetime, event: ReminderEvent) -> str:
        if self.fail:
            raise SchedulingError("scheduler unavailable")
        self.registrations.append((unique_name, fire_at_utc, event))
        return f"handle-{len(self.registrations)}"


class FakeStore(ReminderStore):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.records: List[ReminderRecord] = []

    async def put(self, record: ReminderRecord) -> None:
        if self.fail:
            raise PersistenceError("table unavailable")
        self.records.append(record)


class FakeMessaging(MessagingClient):
    def __init__(self, events: Optional[List[WebhookEvent]] = None, fail_reply: bool = False,
                 fail_push: bool = False, display_name: Optional[str] = "Alice"):
        self.events = events or []
        self.fail_reply = fail_reply
        self.fail_push = fail_push
        self.display_name = display_name
        self.replies: list = []
        self.pushes: list = []

    def parse_events(self, body: bytes, signature: Optional[str]) -> List[WebhookEvent]:
        return list(self.events)

    async def reply(self, reply_token: str, text: str) -> None:
        if self.fail_reply:
            raise MessagingError("reply token expired", status_code=400)
        self.replies.append((reply_token, text))

    async def push(self, subject_id: str, text: str, sender_name: Optional[str] = None) -> None:
        if self.fail_push:
            raise MessagingError("push rejected", status_code=500)
        self.pushes.append((subject_id, text, sender_name))

    async def get_display_name(self, subject_id: str) -> Optional[str]:
        return self.display_name


@pytest.fixture(autouse=True)
def reset_metrics():
    runtime_metrics.reset()
    yield
    runtime_metrics.reset()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW_UTC


@pytest_asyncio.fixture
async def db_conn(tmp_path):
    conn = await open_db(str(tmp_path / "data" / "test.db"))
    yield conn
    await conn.close()
