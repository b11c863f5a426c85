import asyncio
import signal
import time

from calendar_bot.config.settings import (
    DB_PATH,
    LLM_PROVIDER,
    LOG_FILE,
    LOG_JSON,
    LOG_LEVEL,
    SCHEDULER_BACKEND,
    check_settings,
)
from calendar_bot.errors import ConfigError, MessagingError
from calendar_bot.logger import logger, setup_logging
from calendar_bot.runtime import Collaborators, build_collaborators, close_collaborators
from calendar_bot.scheduling.local import LocalDeferredDispatcher
from calendar_bot.server.http_server import main_loop as http_main
from calendar_bot.server.schemas import RuntimeControl


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    def signal_handler(sig, frame):
        """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
        logger.info("收到中断信号,正在依次关闭组件...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def _log_bot_identity(collaborators: Collaborators) -> None:
    get_bot_info = getattr(collaborators.messaging, "get_bot_info", None)
    if get_bot_info is None:
        return
    try:
        info = await get_bot_info()
    except MessagingError as e:
        logger.warning(f"获取 Bot 信息失败: {e}")
        return
    logger.info(f"Bot 已连接: {info.get('displayName')} ({info.get('userId')})")


async def main() -> None:
    shutdown_event = asyncio.Event()
    _install_signal_handlers(shutdown_event)
    control = RuntimeControl(shutdown_event=shutdown_event, started_at=time.time())

    collaborators = await build_collaborators(DB_PATH, LLM_PROVIDER, SCHEDULER_BACKEND)
    try:
        await _log_bot_identity(collaborators)

        tasks = [http_main(control, collaborators)]
        if isinstance(collaborators.dispatcher, LocalDeferredDispatcher):
            tasks.append(collaborators.dispatcher.run_loop(shutdown_event, collaborators.dispatch().handle))
        else:
            logger.info("使用外部调度器投递提醒，本地轮询已禁用")

        await asyncio.gather(*tasks)
    finally:
        await close_collaborators(collaborators)
        logger.info("Calendar Bot 已关闭")


def run() -> None:
    setup_logging(
        log_level=LOG_LEVEL,
        log_file=LOG_FILE,
        console_level="INFO",
        json_console=LOG_JSON,
    )
    try:
        check_settings()
    except ConfigError as e:
        for problem in e.problems:
            logger.critical(f"配置错误: {problem}")
        raise SystemExit(1)

    logger.info("启动 Calendar Bot...")
    asyncio.run(main())


if __name__ == "__main__":
    run()
