"""协作者 (外部服务客户端) 的创建与释放

进程内约定:
1. 启动时调用一次 build_collaborators()，得到的 Collaborators 显式传给各个流程，不使用全局客户端；
2. 退出时调用 close_collaborators() 释放 HTTP 连接与数据库连接；
3. 流程本身不持有状态，可并发处理多个请求。
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import aiosqlite

from calendar_bot.channels.base import MessagingClient
from calendar_bot.channels.line_client import LineClient
from calendar_bot.config.settings import DB_PATH, LLM_PROVIDER, LOCAL_SCHEDULER_POLL_SECONDS, SCHEDULER_BACKEND
from calendar_bot.core.dispatch import DispatchWorkflow
from calendar_bot.core.intake import IntakeWorkflow
from calendar_bot.llm.base import ScheduleExtractor
from calendar_bot.logger import logger
from calendar_bot.scheduling.base import DeferredDispatcher
from calendar_bot.storage.db_config import open_db
from calendar_bot.storage.reminder import SqliteReminderStore
from calendar_bot.utils import now_utc

__all__ = ["Collaborators", "create_extractor", "build_collaborators", "close_collaborators"]


@dataclass
class Collaborators:
    messaging: MessagingClient
    extractor: ScheduleExtractor
    dispatcher: DeferredDispatcher
    store: SqliteReminderStore
    conn: aiosqlite.Connection | None = None

    def intake(self, clock: Callable[[], datetime] = now_utc) -> IntakeWorkflow:
        return IntakeWorkflow(
            extractor=self.extractor,
            dispatcher=self.dispatcher,
            store=self.store,
            messaging=self.messaging,
            clock=clock,
        )

    def dispatch(self) -> DispatchWorkflow:
        return DispatchWorkflow(self.messaging)


def create_extractor(provider: str = LLM_PROVIDER) -> ScheduleExtractor:
    if provider == "openai":
        from calendar_bot.llm.openai_client import OpenAIScheduleExtractor

        return OpenAIScheduleExtractor()

    if provider == "gemini":
        from calendar_bot.llm.gemini_client import GeminiScheduleExtractor

        return GeminiScheduleExtractor()

    raise ValueError(f"不支持的 LLM_PROVIDER: {provider}")


def _create_dispatcher(backend: str, conn: aiosqlite.Connection) -> DeferredDispatcher:
    if backend == "local":
        from calendar_bot.scheduling.local import LocalDeferredDispatcher

        return LocalDeferredDispatcher(conn, poll_seconds=LOCAL_SCHEDULER_POLL_SECONDS)

    if backend == "eventbridge":
        from calendar_bot.scheduling.eventbridge import EventBridgeDispatcher

        return EventBridgeDispatcher()

    raise ValueError(f"不支持的 SCHEDULER_BACKEND: {backend}")


async def build_collaborators(
    db_path: str = DB_PATH,
    provider: str = LLM_PROVIDER,
    backend: str = SCHEDULER_BACKEND,
) -> Collaborators:
    conn = await open_db(db_path)
    try:
        collaborators = Collaborators(
            messaging=LineClient(),
            extractor=create_extractor(provider),
            dispatcher=_create_dispatcher(backend, conn),
            store=SqliteReminderStore(conn),
            conn=conn,
        )
    except Exception:
        await conn.close()
        raise
    logger.info(f"协作者已创建: llm_provider={provider}, scheduler_backend={backend}, db={db_path}")
    return collaborators


async def close_collaborators(collaborators: Collaborators) -> None:
    logger.info("释放协作者...")
    await collaborators.extractor.aclose()
    await collaborators.messaging.aclose()
    await collaborators.dispatcher.aclose()
    if collaborators.conn is not None:
        await collaborators.conn.close()
        collaborators.conn = None
