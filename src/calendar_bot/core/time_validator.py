"""日程时间校验

输入为固定时区下的 "YYYY-MM-DD HH:MM" 字符串，合法时返回对应的 UTC 时刻。
合法区间: now < t <= now + 1 年 (比较的是时刻而不是字符串，now 每次调用只取一次)。
"""

import re
from datetime import datetime, timezone

from calendar_bot.errors import ScheduleError, ScheduleErrorKind
from calendar_bot.utils import LOCAL_TIME_FORMAT, local_zone, now_utc

__all__ = ["validate_schedule_time", "add_one_year"]

# strptime 允许不补零的字段 ("2024-6-1 9:00")，这里要求严格的补零格式
_LOCAL_TIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}$")


def add_one_year(dt: datetime) -> datetime:
    """同一时区内加一个日历年；2 月 29 日顺延到次年 3 月 1 日。"""
    try:
        return dt.replace(year=dt.year + 1)
    except ValueError:
        return dt.replace(year=dt.year + 1, month=3, day=1)


def validate_schedule_time(date_time_text: str, now: datetime | None = None) -> datetime:
    zone = local_zone()
    text = (date_time_text or "").strip()
    if not _LOCAL_TIME_PATTERN.match(text):
        raise ScheduleError(ScheduleErrorKind.MALFORMED_TIME, f"无法解析的时间: {date_time_text!r}")
    try:
        scheduled = datetime.strptime(text, LOCAL_TIME_FORMAT).replace(tzinfo=zone)
    except ValueError as e:
        raise ScheduleError(ScheduleErrorKind.MALFORMED_TIME, str(e)) from e

    now_local = (now or now_utc()).astimezone(zone)

    if scheduled <= now_local:
        raise ScheduleError(ScheduleErrorKind.PAST_TIME, f"{text} 不晚于当前时间")

    if scheduled > add_one_year(now_local):
        raise ScheduleError(ScheduleErrorKind.FUTURE_TIME_OUT_OF_RANGE, f"{text} 超过一年")

    return scheduled.astimezone(timezone.utc)
