from abc import ABC, abstractmethod
from datetime import datetime

from calendar_bot.datamodel import ReminderEvent


class DeferredDispatcher(ABC):
    """延迟投递服务：在 fire_at_utc 或之后把 ReminderEvent 投递给提醒入口，且只投递一次。"""

    @abstractmethod
    async def register(self, unique_name: str, fire_at_utc: datetime, event: ReminderEvent) -> str:
        """注册一次性投递，返回注册句柄 (用于日后取消)；失败时抛出 SchedulingError"""

    async def aclose(self) -> None:
        pass
