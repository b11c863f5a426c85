"""时间工具

面向用户的日期时间统一使用固定时区 TIME_ZONE 与格式 "YYYY-MM-DD HH:MM" (精确到分钟)。
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

__all__ = ["TIME_ZONE", "LOCAL_TIME_FORMAT", "local_zone",
           "now_utc", "now_local", "utc_to_local_min", "to_utc_aware", "utc_iso_min"]

TIME_ZONE = "Asia/Taipei"
LOCAL_TIME_FORMAT = "%Y-%m-%d %H:%M"

_ZONE = ZoneInfo(TIME_ZONE)


def local_zone() -> ZoneInfo:
    return _ZONE


def now_utc() -> datetime:
    """获取当前 UTC 时间"""
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    return now_utc().astimezone(_ZONE)


def to_utc_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_to_local_min(utc_dt: datetime) -> str:
    return to_utc_aware(utc_dt).astimezone(_ZONE).strftime(LOCAL_TIME_FORMAT)


def utc_iso_min(utc_dt: datetime) -> str:
    """EventBridge Scheduler at() 表达式使用的格式: 'YYYY-MM-DDTHH:MM:00'"""
    return to_utc_aware(utc_dt).strftime("%Y-%m-%dT%H:%M:00")
