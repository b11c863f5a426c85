"""日志模块

级别支持: TRACE/DEBUG/INFO/WARNING/ERROR/CRITICAL (兼容别名 FATAL -> CRITICAL)

使用：进程启动时调用一次 setup_logging，然后 logger.info(...) 等写日志。
json_console=True 时控制台输出为每行一个 JSON 对象 (timestamp/severity/message/component)，
便于日志平台采集。
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Literal, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "FATAL"]

COMPONENT = "calendar-bot"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "{name}:{function}:{line} - {message}"
)

_LEVEL_ALIAS = {"FATAL": "CRITICAL"}


def _normalize_level(level: Union[str, LogLevel]) -> str:
    return _LEVEL_ALIAS.get(str(level).upper(), str(level).upper())


def _json_format(record) -> str:
    # 异常只写入 payload["error"]，不输出 traceback
    return "{extra[serialized]}\n"


def _serialize(record) -> None:
    extra = {k: v for k, v in record["extra"].items() if k != "serialized"}
    payload = {
        "timestamp": record["time"].isoformat(),
        "severity": record["level"].name,
        "message": record["message"],
        "component": extra.pop("component", COMPONENT),
    }
    for key, value in extra.items():
        payload[key] = value if isinstance(value, (str, int, float, bool)) or value is None else str(value)
    if record["exception"] is not None:
        payload["error"] = repr(record["exception"].value)
    record["extra"]["serialized"] = json.dumps(payload, ensure_ascii=False)


def _file_handler(
    path: Path,
    *,
    level: str,
    retention: str,
) -> dict:
    return {
        "sink": path,
        "level": level,
        "format": FILE_FORMAT,
        "rotation": "10 MB",
        "retention": retention,
        "compression": "zip",
        "encoding": "utf-8",
    }


def setup_logging(
    log_level: LogLevel,
    log_file: Union[str, Path, None],
    console_level: LogLevel = "INFO",
    json_console: bool = False,
) -> None:
    file_level = _normalize_level(log_level)
    console_lv = _normalize_level(console_level)

    if json_console:
        console_handler = {
            "sink": sys.stderr,
            "level": console_lv,
            "format": _json_format,
            "colorize": False,
            "backtrace": False,
            "diagnose": False,
        }
    else:
        console_handler = {
            "sink": sys.stderr,
            "level": console_lv,
            "format": CONSOLE_FORMAT,
            "colorize": True,
        }

    handlers = [console_handler]
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        error_log_file = log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")
        handlers.append(_file_handler(log_file, level=file_level, retention="30 days"))
        handlers.append(_file_handler(error_log_file, level="ERROR", retention="90 days"))

    logger.configure(
        handlers=handlers,
        extra={"component": COMPONENT},
        patcher=_serialize if json_console else None,
    )


__all__ = ["setup_logging", "logger"]
