import os
from dotenv import load_dotenv

from calendar_bot.errors import ConfigError

load_dotenv()

__all__ = [
    "CHANNEL_SECRET", "CHANNEL_TOKEN", "LINE_API_BASE_URL", "HTTP_TIMEOUT_SECONDS",
    "LLM_PROVIDER", "LLM_MODEL", "OPENAI_API_KEY", "OPENAI_BASE_URL", "GEMINI_API_KEY", "GEMINI_BASE_URL",
    "SCHEDULER_BACKEND", "AWS_REGION", "SCHEDULER_GROUP_NAME", "REMINDER_FUNCTION_ARN", "SCHEDULER_ROLE_ARN",
    "DB_PATH", "LOCAL_SCHEDULER_POLL_SECONDS",
    "HTTP_HOST", "HTTP_PORT", "ADMIN_AUTH_TOKEN", "DISPATCH_SHARED_SECRET",
    "REMINDER_SENDER_NAME",
    "LOG_LEVEL", "LOG_FILE", "LOG_JSON",
    "check_settings",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# LINE Messaging API
CHANNEL_SECRET = os.getenv("CHANNEL_SECRET", "")
CHANNEL_TOKEN = os.getenv("CHANNEL_TOKEN", "")
LINE_API_BASE_URL = os.getenv("LINE_API_BASE_URL", "https://api.line.me")
HTTP_TIMEOUT_SECONDS = _parse_float("HTTP_TIMEOUT_SECONDS", 10.0)

# LLM 设置
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").strip().lower()
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL")

# 延迟投递 (deferred dispatch): "local" 使用本地 SQLite 轮询, "eventbridge" 使用 AWS EventBridge Scheduler
SCHEDULER_BACKEND = os.getenv("SCHEDULER_BACKEND", "local").strip().lower()
AWS_REGION = os.getenv("AWS_REGION", "ap-northeast-1")
SCHEDULER_GROUP_NAME = os.getenv("SCHEDULER_GROUP_NAME", "default")
REMINDER_FUNCTION_ARN = os.getenv("REMINDER_FUNCTION_ARN", "")
SCHEDULER_ROLE_ARN = os.getenv("SCHEDULER_ROLE_ARN", "")

# 存储
DB_PATH = os.getenv("DB_PATH", "data/calendar_bot.db")
LOCAL_SCHEDULER_POLL_SECONDS = _parse_float("LOCAL_SCHEDULER_POLL_SECONDS", 5.0)

# HTTP 服务
HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")
DISPATCH_SHARED_SECRET = os.getenv("DISPATCH_SHARED_SECRET", "")

REMINDER_SENDER_NAME = os.getenv("REMINDER_SENDER_NAME", "Reminder Bot")

# 日志
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
LOG_FILE = os.getenv("LOG_FILE", "logs/calendar_bot.log")
LOG_JSON = _parse_bool("LOG_JSON", False)


def check_settings(need_intake: bool = True) -> None:
    """进程启动时检查配置组合是否可用，一次性报告全部问题。

    need_intake=False 用于只负责投递提醒的进程 (例如 Lambda)，此时不要求 LLM 与调度配置。
    """
    errors: list[str] = []

    if CHANNEL_TOKEN == "":
        errors.append("CHANNEL_TOKEN 未设置")

    if need_intake:
        if CHANNEL_SECRET == "":
            errors.append("CHANNEL_SECRET 未设置")

        if LLM_PROVIDER not in ("openai", "gemini"):
            errors.append(f"LLM_PROVIDER 非法: {LLM_PROVIDER}, 仅支持 openai 或 gemini")
        elif LLM_PROVIDER == "openai" and not OPENAI_API_KEY:
            errors.append("当前 LLM_PROVIDER=openai, 但 OPENAI_API_KEY 未设置")
        elif LLM_PROVIDER == "gemini" and not GEMINI_API_KEY:
            errors.append("当前 LLM_PROVIDER=gemini, 但 GEMINI_API_KEY 未设置")

        if SCHEDULER_BACKEND not in ("local", "eventbridge"):
            errors.append(f"SCHEDULER_BACKEND 非法: {SCHEDULER_BACKEND}, 仅支持 local 或 eventbridge")
        elif SCHEDULER_BACKEND == "eventbridge":
            if REMINDER_FUNCTION_ARN == "":
                errors.append("当前 SCHEDULER_BACKEND=eventbridge, 但 REMINDER_FUNCTION_ARN 未设置")
            if SCHEDULER_ROLE_ARN == "":
                errors.append("当前 SCHEDULER_BACKEND=eventbridge, 但 SCHEDULER_ROLE_ARN 未设置")

    if errors:
        raise ConfigError(errors)
