"""本地延迟投递

注册记录写入 deferred_dispatches 表，run_loop 定期轮询到期记录并调用提醒入口。
每条记录先以 pending -> fired 的条件更新认领，认领成功才投递，保证最多投递一次；
投递失败标记为 failed，不重试。
"""

import asyncio
import json
import time
from datetime import datetime
from typing import Awaitable, Callable

import aiosqlite

from calendar_bot.datamodel import ReminderEvent
from calendar_bot.errors import CalendarBotError, SchedulingError
from calendar_bot.logger import logger
from calendar_bot.scheduling.base import DeferredDispatcher
from calendar_bot.utils import now_utc, to_utc_aware

__all__ = ["LocalDeferredDispatcher", "DispatchHandler"]

DispatchHandler = Callable[[ReminderEvent], Awaitable[None]]

HANDLE_PREFIX = "local:"


class LocalDeferredDispatcher(DeferredDispatcher):
    def __init__(self, conn: aiosqlite.Connection, poll_seconds: float = 5.0) -> None:
        self.conn = conn
        self.poll_seconds = poll_seconds
        self.last_check_at_epoch: float | None = None
        self._running = False

    def get_status(self) -> dict[str, object]:
        return {
            "running": self._running,
            "last_check_at_epoch": self.last_check_at_epoch,
        }

    async def register(self, unique_name: str, fire_at_utc: datetime, event: ReminderEvent) -> str:
        fire_at = to_utc_aware(fire_at_utc)
        try:
            await self.conn.execute(
                "INSERT INTO deferred_dispatches (name, fire_at_utc, fire_at_epoch, payload, status) VALUES (?, ?, ?, ?, 'pending')",
                (unique_name, fire_at.isoformat(), int(fire_at.timestamp()), json.dumps(event.to_payload(), ensure_ascii=False)),
            )
            await self.conn.commit()
        except aiosqlite.IntegrityError as e:
            raise SchedulingError(f"重复的投递名称: {unique_name}") from e
        except aiosqlite.Error as e:
            raise SchedulingError(f"注册本地投递失败: {e}") from e
        logger.info(f"已注册本地延迟投递: name={unique_name}, fire_at_utc={fire_at.isoformat()}")
        return HANDLE_PREFIX + unique_name

    async def _claim(self, name: str) -> bool:
        cursor = await self.conn.execute(
            "UPDATE deferred_dispatches SET status = 'fired', updated_at_utc = CURRENT_TIMESTAMP WHERE name = ? AND status = 'pending'",
            (name,),
        )
        claimed = cursor.rowcount == 1
        await cursor.close()
        await self.conn.commit()
        return claimed

    async def _mark_failed(self, name: str, error: str) -> None:
        await self.conn.execute(
            "UPDATE deferred_dispatches SET status = 'failed', last_error = ?, updated_at_utc = CURRENT_TIMESTAMP WHERE name = ?",
            (error, name),
        )
        await self.conn.commit()

    async def fire_due(self, handler: DispatchHandler, now: datetime | None = None) -> int:
        """投递所有到期的注册，返回成功投递的数量"""
        now_epoch = int(to_utc_aware(now or now_utc()).timestamp())
        async with self.conn.execute(
            "SELECT name, payload FROM deferred_dispatches WHERE status = 'pending' AND fire_at_epoch <= ? ORDER BY fire_at_epoch ASC",
            (now_epoch,),
        ) as cursor:
            due = await cursor.fetchall()

        delivered = 0
        for name, payload in due:
            if not await self._claim(name):
                continue
            try:
                event = ReminderEvent.from_payload(json.loads(payload))
                await handler(event)
            except (CalendarBotError, ValueError) as e:
                logger.error(f"本地延迟投递失败: name={name}, error={e}")
                await self._mark_failed(name, str(e))
                continue
            delivered += 1
        return delivered

    async def run_loop(self, shutdown_event: asyncio.Event, handler: DispatchHandler) -> None:
        self._running = True
        logger.info("本地延迟投递主循环已启动")
        try:
            while not shutdown_event.is_set():
                self.last_check_at_epoch = time.time()
                await self.fire_due(handler)
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self.poll_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("本地延迟投递主循环已关闭")
