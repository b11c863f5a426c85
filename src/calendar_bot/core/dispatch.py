from typing import Optional

from calendar_bot.channels.base import MessagingClient
from calendar_bot.config.settings import REMINDER_SENDER_NAME
from calendar_bot.datamodel import ReminderEvent
from calendar_bot.errors import DispatchError, MessagingError
from calendar_bot.logger import logger
from calendar_bot.metrics import runtime_metrics

__all__ = ["DispatchWorkflow", "compose_reminder_text"]


def compose_reminder_text(task_text: str, display_name: Optional[str] = None) -> str:
    if display_name:
        return f"@{display_name}\n{task_text}"
    return task_text


class DispatchWorkflow:
    """到点后把提醒推送给用户。失败直接抛出 DispatchError，是否重试由调度方决定。"""

    def __init__(
        self,
        messaging: MessagingClient,
        sender_name: str = REMINDER_SENDER_NAME,
        resolve_display_name: bool = True,
    ) -> None:
        self.messaging = messaging
        self.sender_name = sender_name
        self.resolve_display_name = resolve_display_name

    async def handle(self, event: ReminderEvent) -> None:
        logger.info(f"Received reminder event for user {event.subject_id}: {event.task_text}")

        try:
            display_name = None
            if self.resolve_display_name:
                display_name = await self.messaging.get_display_name(event.subject_id)
            await self.messaging.push(
                event.subject_id,
                compose_reminder_text(event.task_text, display_name),
                sender_name=self.sender_name,
            )
        except MessagingError as e:
            runtime_metrics.record_dispatch(success=False)
            logger.error(f"Failed to send reminder message: user={event.subject_id}, error={e}")
            raise DispatchError(f"推送提醒失败: {e}") from e

        runtime_metrics.record_dispatch(success=True)
        logger.info(f"Successfully sent reminder message to {event.subject_id}")
