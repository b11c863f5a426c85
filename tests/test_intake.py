from datetime import datetime, timezone

import pytest

from calendar_bot.core.intake import (
    REPLY_FAILED,
    REPLY_FUTURE_TIME,
    REPLY_INVALID_FORMAT,
    REPLY_PAST_TIME,
    IntakeState,
    IntakeWorkflow,
    registration_name,
)
from calendar_bot.datamodel import ReminderStatus, ScheduleCandidate
from calendar_bot.errors import ExtractionError, ScheduleError, ScheduleErrorKind
from calendar_bot.metrics import runtime_metrics

from conftest import FIXED_NOW_UTC, FakeDispatcher, FakeExtractor, FakeMessaging, FakeStore


def make_workflow(candidate=None, extract_error=None, dispatcher=None, store=None, messaging=None):
    extractor = FakeExtractor(candidate=candidate, error=extract_error)
    dispatcher = dispatcher or FakeDispatcher()
    store = store or FakeStore()
    messaging = messaging or FakeMessaging()
    workflow = IntakeWorkflow(
        extractor=extractor,
        dispatcher=dispatcher,
        store=store,
        messaging=messaging,
        clock=lambda: FIXED_NOW_UTC,
    )
    return workflow, extractor, dispatcher, store, messaging


class TestIntakeWorkflow:
    @pytest.mark.asyncio
    async def test_valid_request_is_acknowledged(self):
        candidate = ScheduleCandidate("2024-06-02 09:00", "買牛奶", True)
        workflow, extractor, dispatcher, store, messaging = make_workflow(candidate)

        outcome = await workflow.handle("U1", "rt-1", "明天早上九點提醒我買牛奶")

        assert outcome.state is IntakeState.ACKNOWLEDGED
        assert extractor.calls == ["明天早上九點提醒我買牛奶"]

        assert len(dispatcher.registrations) == 1
        name, fire_at, event = dispatcher.registrations[0]
        assert name.startswith("reminder-U1-")
        assert fire_at == datetime(2024, 6, 2, 1, 0, tzinfo=timezone.utc)
        assert event.to_payload() == {"userId": "U1", "task": "買牛奶"}

        assert len(store.records) == 1
        record = store.records[0]
        assert record.subject_id == "U1"
        assert record.partition_key == "E#U1"
        assert record.task_text == "買牛奶"
        assert record.scheduled_at_utc == fire_at
        assert record.dispatch_handle_id == "handle-1"
        assert record.status is ReminderStatus.PENDING
        assert record.created_at == FIXED_NOW_UTC
        assert outcome.record is record

        assert messaging.replies == [("rt-1", "提醒您：2024-06-02 09:00 買牛奶 已設定成功")]
        assert outcome.reply_delivered is True

    @pytest.mark.asyncio
    async def test_invalid_candidate_gets_format_guidance(self):
        candidate = ScheduleCandidate("", "", False)
        workflow, _, dispatcher, store, messaging = make_workflow(candidate)

        outcome = await workflow.handle("U1", "rt-1", "你好")

        assert outcome.state is IntakeState.REJECTED_INVALID_FORMAT
        assert messaging.replies == [("rt-1", REPLY_INVALID_FORMAT)]
        assert dispatcher.registrations == []
        assert store.records == []

    @pytest.mark.asyncio
    async def test_past_time_is_rejected(self):
        candidate = ScheduleCandidate("2024-05-31 10:00", "開會", True)
        workflow, _, dispatcher, store, messaging = make_workflow(candidate)

        outcome = await workflow.handle("U1", "rt-1", "昨天十點開會")

        assert outcome.state is IntakeState.REJECTED_PAST_TIME
        assert messaging.replies == [("rt-1", REPLY_PAST_TIME)]
        assert dispatcher.registrations == []
        assert store.records == []

    @pytest.mark.asyncio
    async def test_far_future_is_rejected(self):
        candidate = ScheduleCandidate("2026-01-01 10:00", "旅行", True)
        workflow, _, dispatcher, store, messaging = make_workflow(candidate)

        outcome = await workflow.handle("U1", "rt-1", "2026年元旦十點旅行")

        assert outcome.state is IntakeState.REJECTED_FUTURE_TIME
        assert messaging.replies == [("rt-1", REPLY_FUTURE_TIME)]
        assert dispatcher.registrations == []

    @pytest.mark.asyncio
    async def test_scheduling_failure_replies_with_failure(self):
        candidate = ScheduleCandidate("2024-06-02 09:00", "買牛奶", True)
        workflow, _, _, store, messaging = make_workflow(candidate, dispatcher=FakeDispatcher(fail=True))

        outcome = await workflow.handle("U1", "rt-1", "明天早上九點提醒我買牛奶")

        assert outcome.state is IntakeState.FAILED
        assert store.records == []
        assert messaging.replies == [("rt-1", REPLY_FAILED)]

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_registration(self):
        candidate = ScheduleCandidate("2024-06-02 09:00", "買牛奶", True)
        workflow, _, dispatcher, _, messaging = make_workflow(candidate, store=FakeStore(fail=True))

        outcome = await workflow.handle("U1", "rt-1", "明天早上九點提醒我買牛奶")

        assert outcome.state is IntakeState.FAILED
        assert len(dispatcher.registrations) == 1
        assert outcome.dispatch_handle_id == "handle-1"
        assert messaging.replies == [("rt-1", REPLY_FAILED)]

    @pytest.mark.asyncio
    async def test_extraction_error_propagates_without_reply(self):
        workflow, _, dispatcher, _, messaging = make_workflow(extract_error=ExtractionError("timeout"))

        with pytest.raises(ExtractionError):
            await workflow.handle("U1", "rt-1", "明天早上九點提醒我買牛奶")

        assert messaging.replies == []
        assert dispatcher.registrations == []

    @pytest.mark.asyncio
    async def test_malformed_time_from_valid_candidate_propagates(self):
        candidate = ScheduleCandidate("tomorrow 9am", "買牛奶", True)
        workflow, _, dispatcher, _, messaging = make_workflow(candidate)

        with pytest.raises(ScheduleError) as exc_info:
            await workflow.handle("U1", "rt-1", "明天早上九點提醒我買牛奶")

        assert exc_info.value.kind is ScheduleErrorKind.MALFORMED_TIME
        assert messaging.replies == []
        assert dispatcher.registrations == []

    @pytest.mark.asyncio
    async def test_reply_failure_is_not_raised(self):
        candidate = ScheduleCandidate("2024-06-02 09:00", "買牛奶", True)
        workflow, _, _, store, _ = make_workflow(candidate, messaging=FakeMessaging(fail_reply=True))

        outcome = await workflow.handle("U1", "rt-1", "明天早上九點提醒我買牛奶")

        assert outcome.state is IntakeState.ACKNOWLEDGED
        assert outcome.reply_delivered is False
        assert len(store.records) == 1
        assert runtime_metrics.reply_failed_count == 1

    @pytest.mark.asyncio
    async def test_missing_reply_token_skips_reply(self):
        candidate = ScheduleCandidate("2024-06-02 09:00", "買牛奶", True)
        workflow, _, _, store, messaging = make_workflow(candidate)

        outcome = await workflow.handle("U1", None, "明天早上九點提醒我買牛奶")

        assert outcome.state is IntakeState.ACKNOWLEDGED
        assert messaging.replies == []
        assert len(store.records) == 1

    @pytest.mark.asyncio
    async def test_outcomes_are_counted(self):
        candidate = ScheduleCandidate("", "", False)
        workflow, *_ = make_workflow(candidate)

        await workflow.handle("U1", "rt-1", "你好")
        await workflow.handle("U1", "rt-2", "再見")

        assert runtime_metrics.snapshot()["intake_states"] == {"rejected_invalid_format": 2}
        assert runtime_metrics.reply_sent_count == 2


def test_registration_name_is_unique_per_timestamp():
    assert registration_name("U1", 123) == "reminder-U1-123"
    assert registration_name("U1", 123) != registration_name("U1", 124)
