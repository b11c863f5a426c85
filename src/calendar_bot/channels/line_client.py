"""LINE Messaging API 客户端

webhook 签名: X-Line-Signature = base64(HMAC-SHA256(channel secret, 原始请求体))
docs: https://developers.line.biz/en/reference/messaging-api/
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from calendar_bot.channels.base import MessagingClient
from calendar_bot.config.settings import CHANNEL_SECRET, CHANNEL_TOKEN, HTTP_TIMEOUT_SECONDS, LINE_API_BASE_URL
from calendar_bot.datamodel import (
    MessageSource,
    OtherMessage,
    SourceType,
    TextMessage,
    WebhookEvent,
    WebhookMessage,
)
from calendar_bot.errors import InvalidSignatureError, MalformedRequestError, MessagingError
from calendar_bot.logger import logger

__all__ = ["LineClient", "compute_signature"]


def compute_signature(channel_secret: str, body: bytes) -> str:
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def _parse_source(raw: Dict[str, Any]) -> MessageSource:
    try:
        source_type = SourceType(raw.get("type", "user"))
    except ValueError:
        raise MalformedRequestError(f"未知的 source 类型: {raw.get('type')}") from None
    return MessageSource(
        source_type=source_type,
        user_id=raw.get("userId"),
        group_id=raw.get("groupId"),
        room_id=raw.get("roomId"),
    )


def _parse_message(raw: Dict[str, Any]) -> WebhookMessage:
    kind = raw.get("type")
    message_id = str(raw.get("id", ""))
    if kind == "text":
        text = raw.get("text")
        if not isinstance(text, str):
            raise MalformedRequestError("text 消息缺少 text 字段")
        return TextMessage(message_id=message_id, text=text)
    return OtherMessage(message_id=message_id, kind=str(kind))


def _parse_event(raw: Any) -> WebhookEvent:
    if not isinstance(raw, dict) or "type" not in raw:
        raise MalformedRequestError("事件格式错误")

    message = None
    if raw["type"] == "message":
        if not isinstance(raw.get("message"), dict):
            raise MalformedRequestError("message 事件缺少 message 字段")
        message = _parse_message(raw["message"])

    timestamp = None
    if isinstance(raw.get("timestamp"), (int, float)):
        timestamp = datetime.fromtimestamp(raw["timestamp"] / 1000, tz=timezone.utc)

    return WebhookEvent(
        event_type=raw["type"],
        source=_parse_source(raw.get("source") or {}),
        reply_token=raw.get("replyToken"),
        message=message,
        timestamp=timestamp,
        raw=raw,
    )


class LineClient(MessagingClient):
    def __init__(
        self,
        channel_secret: str = CHANNEL_SECRET,
        channel_token: str = CHANNEL_TOKEN,
        base_url: str = LINE_API_BASE_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.channel_secret = channel_secret
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {channel_token}",
            "Content-Type": "application/json",
        }

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not signature or not self.channel_secret:
            return False
        expected = compute_signature(self.channel_secret, body)
        return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))

    def parse_events(self, body: bytes, signature: Optional[str]) -> List[WebhookEvent]:
        if not self.verify_signature(body, signature):
            raise InvalidSignatureError("Invalid signature")
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedRequestError(f"webhook 请求体不是合法 JSON: {e}") from e
        if not isinstance(payload, dict) or not isinstance(payload.get("events", []), list):
            raise MalformedRequestError("webhook 请求体缺少 events 列表")
        return [_parse_event(raw) for raw in payload.get("events", [])]

    async def _request(self, method: str, path: str, payload: Dict[str, Any] | None = None) -> Dict[str, Any]:
        try:
            r = await self.client.request(method, path, json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            raise MessagingError(f"LINE API 请求失败: {e!r}") from e

        try:
            data = r.json() if r.content else {}
        except ValueError:
            data = {"text": r.text}
        if r.status_code >= 300:
            raise MessagingError(f"LINE API error {r.status_code}: {data}", status_code=r.status_code)
        return data

    async def reply(self, reply_token: str, text: str) -> None:
        await self._request("POST", "/v2/bot/message/reply", {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": text}],
        })
        logger.debug(f"已回复消息: reply_token={reply_token}")

    async def push(self, subject_id: str, text: str, sender_name: Optional[str] = None) -> None:
        message: Dict[str, Any] = {"type": "text", "text": text}
        if sender_name:
            message["sender"] = {"name": sender_name}
        await self._request("POST", "/v2/bot/message/push", {
            "to": subject_id,
            "messages": [message],
        })
        logger.debug(f"已推送消息给用户 {subject_id}")

    async def get_display_name(self, subject_id: str) -> Optional[str]:
        profile = await self._request("GET", f"/v2/bot/profile/{subject_id}")
        return profile.get("displayName")

    async def get_bot_info(self) -> Dict[str, Any]:
        return await self._request("GET", "/v2/bot/info")

    async def aclose(self) -> None:
        await self.client.aclose()
