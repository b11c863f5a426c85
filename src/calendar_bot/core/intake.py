"""提醒登记流程

一条文字消息的处理顺序固定为:
    RECEIVED -> EXTRACTED -> VALIDATED -> SCHEDULED -> PERSISTED -> ACKNOWLEDGED
提前结束的分支: REJECTED_INVALID_FORMAT / REJECTED_PAST_TIME / REJECTED_FUTURE_TIME / FAILED

- LLM 提取失败、时间无法解析: 抛出异常，由 webhook 层返回 500
- 注册投递失败、写入记录失败: 回复固定的失败提示，请求本身视为已处理
  (已注册的投递不会回滚，可能留下没有记录的投递)
- 每条消息最多回复一次；回复失败只记录日志
- 所有外部调用都不在这里重试
"""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from ulid import ULID

from calendar_bot.channels.base import MessagingClient
from calendar_bot.core.time_validator import validate_schedule_time
from calendar_bot.datamodel import ReminderEvent, ReminderRecord, ReminderStatus, ValidatedSchedule
from calendar_bot.errors import (
    ExtractionError,
    MessagingError,
    PersistenceError,
    ScheduleError,
    ScheduleErrorKind,
    SchedulingError,
)
from calendar_bot.llm.base import ScheduleExtractor
from calendar_bot.logger import logger
from calendar_bot.metrics import runtime_metrics
from calendar_bot.scheduling.base import DeferredDispatcher
from calendar_bot.storage.reminder import ReminderStore
from calendar_bot.utils import now_utc

__all__ = [
    "IntakeState", "IntakeOutcome", "IntakeWorkflow", "registration_name",
    "REPLY_INVALID_FORMAT", "REPLY_PAST_TIME", "REPLY_FUTURE_TIME", "REPLY_FAILED", "REPLY_ACK_TEMPLATE",
]

REPLY_INVALID_FORMAT = "輸入格式錯誤，必須包含日期、時間、要做的事情。請重新輸入"
REPLY_PAST_TIME = "無法設定過去的時間"
REPLY_FUTURE_TIME = "無法設定未來超過一年的時間"
REPLY_FAILED = "提醒設定失敗，請稍後再試"
REPLY_ACK_TEMPLATE = "提醒您：{date_time} {task} 已設定成功"


class IntakeState(str, Enum):
    RECEIVED = "received"
    EXTRACTED = "extracted"
    VALIDATED = "validated"
    SCHEDULED = "scheduled"
    PERSISTED = "persisted"
    ACKNOWLEDGED = "acknowledged"
    REJECTED_INVALID_FORMAT = "rejected_invalid_format"
    REJECTED_PAST_TIME = "rejected_past_time"
    REJECTED_FUTURE_TIME = "rejected_future_time"
    FAILED = "failed"


@dataclass
class IntakeOutcome:
    state: IntakeState
    reply_text: Optional[str] = None
    reply_delivered: bool = False
    schedule: Optional[ValidatedSchedule] = None
    dispatch_handle_id: Optional[str] = None
    record: Optional[ReminderRecord] = None


def registration_name(subject_id: str, created_ns: int | None = None) -> str:
    """同一用户并发注册时靠纳秒时间戳区分"""
    return f"reminder-{subject_id}-{created_ns if created_ns is not None else time.time_ns()}"


class IntakeWorkflow:
    def __init__(
        self,
        extractor: ScheduleExtractor,
        dispatcher: DeferredDispatcher,
        store: ReminderStore,
        messaging: MessagingClient,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.extractor = extractor
        self.dispatcher = dispatcher
        self.store = store
        self.messaging = messaging
        self.clock = clock

    async def _finish(self, outcome: IntakeOutcome, reply_token: Optional[str], subject_id: str) -> IntakeOutcome:
        runtime_metrics.record_intake(outcome.state.value)
        if outcome.reply_text is None:
            return outcome
        if not reply_token:
            logger.warning(f"User {subject_id} 的事件没有 reply token，无法回复: state={outcome.state.value}")
            return outcome
        try:
            await self.messaging.reply(reply_token, outcome.reply_text)
            outcome.reply_delivered = True
        except MessagingError as e:
            logger.error(f"Error replying to message: user={subject_id}, error={e}")
        runtime_metrics.record_reply(outcome.reply_delivered)
        return outcome

    async def handle(self, subject_id: str, reply_token: Optional[str], text: str) -> IntakeOutcome:
        logger.info(f"Received text message from {subject_id}: {text}")

        # RECEIVED -> EXTRACTED
        try:
            candidate = await self.extractor.extract(text)
        except ExtractionError:
            runtime_metrics.record_intake(IntakeState.FAILED.value)
            logger.exception(f"User {subject_id} 日程提取失败")
            raise
        logger.info(f"LLM 提取结果: user={subject_id}, candidate={candidate}")

        if not candidate.is_valid:
            return await self._finish(
                IntakeOutcome(IntakeState.REJECTED_INVALID_FORMAT, REPLY_INVALID_FORMAT), reply_token, subject_id
            )

        # EXTRACTED -> VALIDATED
        try:
            scheduled_at_utc = validate_schedule_time(candidate.date_time_text, self.clock())
        except ScheduleError as e:
            logger.warning(f"User {subject_id} 日程时间不合法: {e}")
            if e.kind is ScheduleErrorKind.PAST_TIME:
                return await self._finish(
                    IntakeOutcome(IntakeState.REJECTED_PAST_TIME, REPLY_PAST_TIME), reply_token, subject_id
                )
            if e.kind is ScheduleErrorKind.FUTURE_TIME_OUT_OF_RANGE:
                return await self._finish(
                    IntakeOutcome(IntakeState.REJECTED_FUTURE_TIME, REPLY_FUTURE_TIME), reply_token, subject_id
                )
            # MALFORMED_TIME: LLM 声称合法却给出了无法解析的时间
            runtime_metrics.record_intake(IntakeState.FAILED.value)
            raise

        schedule = ValidatedSchedule(
            scheduled_at_utc=scheduled_at_utc,
            task_text=candidate.task_text,
            date_time_text=candidate.date_time_text,
        )

        # VALIDATED -> SCHEDULED
        name = registration_name(subject_id)
        try:
            handle_id = await self.dispatcher.register(
                name, schedule.scheduled_at_utc, ReminderEvent(subject_id=subject_id, task_text=schedule.task_text)
            )
        except SchedulingError as e:
            logger.error(f"Failed to create reminder: user={subject_id}, error={e}")
            return await self._finish(
                IntakeOutcome(IntakeState.FAILED, REPLY_FAILED, schedule=schedule), reply_token, subject_id
            )

        # SCHEDULED -> PERSISTED
        record = ReminderRecord(
            reminder_id=str(ULID()),
            subject_id=subject_id,
            scheduled_at_utc=schedule.scheduled_at_utc,
            task_text=schedule.task_text,
            created_at=self.clock(),
            dispatch_handle_id=handle_id,
            status=ReminderStatus.PENDING,
        )
        try:
            await self.store.put(record)
        except PersistenceError as e:
            # 投递已注册，不回滚
            logger.error(f"Failed to save event: user={subject_id}, dispatch_handle_id={handle_id}, error={e}")
            return await self._finish(
                IntakeOutcome(IntakeState.FAILED, REPLY_FAILED, schedule=schedule, dispatch_handle_id=handle_id),
                reply_token,
                subject_id,
            )

        # PERSISTED -> ACKNOWLEDGED
        logger.info(f"提醒已设定: user={subject_id}, reminder_id={record.reminder_id}, scheduled_at_utc={scheduled_at_utc.isoformat()}")
        ack = REPLY_ACK_TEMPLATE.format(date_time=schedule.date_time_text, task=schedule.task_text)
        return await self._finish(
            IntakeOutcome(
                IntakeState.ACKNOWLEDGED,
                ack,
                schedule=schedule,
                dispatch_handle_id=handle_id,
                record=record,
            ),
            reply_token,
            subject_id,
        )
