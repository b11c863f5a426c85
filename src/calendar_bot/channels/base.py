from abc import ABC, abstractmethod
from typing import List, Optional

from calendar_bot.datamodel import WebhookEvent


class MessagingClient(ABC):
    """消息平台客户端。API 调用失败统一抛出 MessagingError。"""

    @abstractmethod
    def parse_events(self, body: bytes, signature: Optional[str]) -> List[WebhookEvent]:
        """校验签名并解析 webhook 请求体。

        签名无效抛出 InvalidSignatureError，请求体无法解析抛出 MalformedRequestError。
        """

    @abstractmethod
    async def reply(self, reply_token: str, text: str) -> None:
        pass

    @abstractmethod
    async def push(self, subject_id: str, text: str, sender_name: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def get_display_name(self, subject_id: str) -> Optional[str]:
        pass

    async def aclose(self) -> None:
        pass
