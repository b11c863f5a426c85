from typing import List, Optional

from calendar_bot.channels.base import MessagingClient
from calendar_bot.core.intake import IntakeOutcome, IntakeWorkflow
from calendar_bot.datamodel import OtherMessage, TextMessage, WebhookEvent
from calendar_bot.logger import logger
from calendar_bot.metrics import runtime_metrics

__all__ = ["handle_webhook", "handle_event"]


async def handle_event(intake: IntakeWorkflow, event: WebhookEvent) -> Optional[IntakeOutcome]:
    logger.info(
        f"event handling: event_type={event.event_type}, user_id={event.source.user_id}, "
        f"room_id={event.source.room_id}, group_id={event.source.group_id}"
    )
    if event.event_type != "message" or event.message is None:
        return None

    message = event.message
    if isinstance(message, TextMessage):
        if not event.source.user_id:
            logger.warning("文字消息缺少 userId，已忽略")
            return None
        runtime_metrics.record_msg_in()
        return await intake.handle(event.source.user_id, event.reply_token, message.text)
    if isinstance(message, OtherMessage):
        logger.debug(f"忽略非文字消息: kind={message.kind}")
        return None
    raise TypeError(f"unexpected message type: {type(message).__name__}")


async def handle_webhook(
    messaging: MessagingClient,
    intake: IntakeWorkflow,
    body: bytes,
    signature: Optional[str],
) -> List[IntakeOutcome]:
    """校验并处理一次 webhook 请求中的全部事件，按顺序逐个处理。

    InvalidSignatureError / MalformedRequestError 以及流程中的致命错误原样抛出，由 HTTP 层转换状态码。
    """
    events = messaging.parse_events(body, signature)
    outcomes: List[IntakeOutcome] = []
    for event in events:
        outcome = await handle_event(intake, event)
        if outcome is not None:
            outcomes.append(outcome)
    return outcomes
