import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from calendar_bot.datamodel import ReminderEvent
from calendar_bot.errors import DispatchError, SchedulingError
from calendar_bot.scheduling.eventbridge import EventBridgeDispatcher, schedule_expression
from calendar_bot.scheduling.local import LocalDeferredDispatcher

from conftest import FIXED_NOW_UTC

FIRE_AT = datetime(2024, 6, 2, 1, 0, tzinfo=timezone.utc)


class TestLocalDeferredDispatcher:
    @pytest.mark.asyncio
    async def test_register_returns_handle(self, db_conn):
        dispatcher = LocalDeferredDispatcher(db_conn)
        handle = await dispatcher.register("reminder-U1-1", FIRE_AT, ReminderEvent("U1", "買牛奶"))

        assert handle == "local:reminder-U1-1"
        async with db_conn.execute("SELECT payload, status FROM deferred_dispatches WHERE name = ?", ("reminder-U1-1",)) as cursor:
            payload, status = await cursor.fetchone()
        assert json.loads(payload) == {"userId": "U1", "task": "買牛奶"}
        assert status == "pending"

    @pytest.mark.asyncio
    async def test_duplicate_name_raises(self, db_conn):
        dispatcher = LocalDeferredDispatcher(db_conn)
        await dispatcher.register("reminder-U1-1", FIRE_AT, ReminderEvent("U1", "a"))
        with pytest.raises(SchedulingError):
            await dispatcher.register("reminder-U1-1", FIRE_AT, ReminderEvent("U1", "b"))

    @pytest.mark.asyncio
    async def test_fires_only_when_due_and_only_once(self, db_conn):
        dispatcher = LocalDeferredDispatcher(db_conn)
        await dispatcher.register("reminder-U1-1", FIRE_AT, ReminderEvent("U1", "買牛奶"))
        delivered = []

        async def handler(event):
            delivered.append(event)

        assert await dispatcher.fire_due(handler, now=FIRE_AT - timedelta(minutes=1)) == 0
        assert await dispatcher.fire_due(handler, now=FIRE_AT) == 1
        assert await dispatcher.fire_due(handler, now=FIRE_AT + timedelta(hours=1)) == 0
        assert delivered == [ReminderEvent("U1", "買牛奶")]

    @pytest.mark.asyncio
    async def test_failed_delivery_is_marked(self, db_conn):
        dispatcher = LocalDeferredDispatcher(db_conn)
        await dispatcher.register("reminder-U1-1", FIRE_AT, ReminderEvent("U1", "買牛奶"))

        async def handler(event):
            raise DispatchError("push rejected")

        assert await dispatcher.fire_due(handler, now=FIRE_AT) == 0
        async with db_conn.execute("SELECT status, last_error FROM deferred_dispatches") as cursor:
            status, last_error = await cursor.fetchone()
        assert status == "failed"
        assert "push rejected" in last_error

    @pytest.mark.asyncio
    async def test_run_loop_stops_on_shutdown(self, db_conn):
        dispatcher = LocalDeferredDispatcher(db_conn, poll_seconds=0.01)
        await dispatcher.register("reminder-U1-1", FIXED_NOW_UTC, ReminderEvent("U1", "買牛奶"))
        shutdown_event = asyncio.Event()
        delivered = []

        async def handler(event):
            delivered.append(event)
            shutdown_event.set()

        await asyncio.wait_for(dispatcher.run_loop(shutdown_event, handler), timeout=5)

        assert len(delivered) == 1
        assert dispatcher.get_status()["running"] is False
        assert dispatcher.get_status()["last_check_at_epoch"] is not None


class TestEventBridgeDispatcher:
    def test_schedule_expression(self):
        assert schedule_expression(FIRE_AT) == "at(2024-06-02T01:00:00)"

    @pytest.mark.asyncio
    async def test_register_creates_one_time_schedule(self):
        client = MagicMock()
        client.create_schedule.return_value = {"ScheduleArn": "arn:aws:scheduler:::schedule/default/reminder-U1-1"}
        dispatcher = EventBridgeDispatcher(
            target_arn="arn:aws:lambda:::function:reminder",
            role_arn="arn:aws:iam:::role/scheduler",
            group_name="default",
            client=client,
        )

        handle = await dispatcher.register("reminder-U1-1", FIRE_AT, ReminderEvent("U1", "買牛奶"))

        assert handle == "arn:aws:scheduler:::schedule/default/reminder-U1-1"
        kwargs = client.create_schedule.call_args.kwargs
        assert kwargs["Name"] == "reminder-U1-1"
        assert kwargs["ScheduleExpression"] == "at(2024-06-02T01:00:00)"
        assert kwargs["ScheduleExpressionTimezone"] == "UTC"
        assert kwargs["FlexibleTimeWindow"] == {"Mode": "OFF"}
        assert kwargs["Target"]["Arn"] == "arn:aws:lambda:::function:reminder"
        assert kwargs["Target"]["RoleArn"] == "arn:aws:iam:::role/scheduler"
        assert json.loads(kwargs["Target"]["Input"]) == {"userId": "U1", "task": "買牛奶"}

    @pytest.mark.asyncio
    async def test_client_error_becomes_scheduling_error(self):
        client = MagicMock()
        client.create_schedule.side_effect = ClientError(
            {"Error": {"Code": "ConflictException", "Message": "exists"}}, "CreateSchedule"
        )
        dispatcher = EventBridgeDispatcher(target_arn="t", role_arn="r", client=client)

        with pytest.raises(SchedulingError):
            await dispatcher.register("reminder-U1-1", FIRE_AT, ReminderEvent("U1", "買牛奶"))
