"""EventBridge Scheduler 的投递目标

调度到点时 Scheduler 以 {"userId": ..., "task": ...} 作为事件调用 reminder_handler。
推送失败时抛出 DispatchError，由 Scheduler 的重试策略决定是否重投。
"""

import asyncio
import json
from typing import Any

from calendar_bot.channels.line_client import LineClient
from calendar_bot.config.settings import LOG_LEVEL, check_settings
from calendar_bot.core.dispatch import DispatchWorkflow
from calendar_bot.datamodel import ReminderEvent
from calendar_bot.logger import logger, setup_logging

__all__ = ["reminder_handler"]

_logging_ready = False


def _ensure_logging() -> None:
    global _logging_ready
    if _logging_ready:
        return
    setup_logging(log_level=LOG_LEVEL, log_file=None, console_level=LOG_LEVEL, json_console=True)
    _logging_ready = True


def _decode_event(event: Any) -> ReminderEvent:
    if isinstance(event, str):
        event = json.loads(event)
    return ReminderEvent.from_payload(event)


async def _dispatch(event: ReminderEvent) -> None:
    messaging = LineClient()
    try:
        await DispatchWorkflow(messaging).handle(event)
    finally:
        await messaging.aclose()


def reminder_handler(event: Any, context: Any) -> dict[str, Any]:
    _ensure_logging()
    check_settings(need_intake=False)

    reminder = _decode_event(event)
    request_id = getattr(context, "aws_request_id", "-")
    with logger.contextualize(request_id=request_id):
        asyncio.run(_dispatch(reminder))
    return {"ok": True, "userId": reminder.subject_id}
