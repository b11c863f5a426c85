"""错误类型

所有业务错误都继承 CalendarBotError。调用方按异常类型 (以及 ScheduleError.kind) 分支处理，
不比较错误信息文本。
"""

from enum import Enum

__all__ = [
    "CalendarBotError", "ConfigError",
    "MalformedRequestError", "InvalidSignatureError",
    "ExtractionError",
    "ScheduleErrorKind", "ScheduleError",
    "SchedulingError", "PersistenceError",
    "MessagingError", "DispatchError",
]


class CalendarBotError(Exception):
    pass


class ConfigError(CalendarBotError):
    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class MalformedRequestError(CalendarBotError):
    """Webhook 请求体无法解析"""


class InvalidSignatureError(MalformedRequestError):
    """Webhook 签名缺失或不匹配"""


class ExtractionError(CalendarBotError):
    """LLM 提取日程失败 (API 错误或返回内容不合法)"""


class ScheduleErrorKind(str, Enum):
    MALFORMED_TIME = "malformed_time"
    PAST_TIME = "past_time"
    FUTURE_TIME_OUT_OF_RANGE = "future_time_out_of_range"


class ScheduleError(CalendarBotError):
    def __init__(self, kind: ScheduleErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)


class SchedulingError(CalendarBotError):
    """注册延迟投递失败"""


class PersistenceError(CalendarBotError):
    """写入提醒记录失败"""


class MessagingError(CalendarBotError):
    """消息平台 API 调用失败"""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class DispatchError(CalendarBotError):
    """提醒推送失败，交由调用方 (调度基础设施) 处理"""
