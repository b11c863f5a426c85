"""AWS EventBridge Scheduler 延迟投递

每个提醒创建一个一次性 schedule: at(YYYY-MM-DDTHH:MM:SS) (UTC)，目标为提醒 Lambda，
Input 为 ReminderEvent 的 JSON。boto3 是同步 SDK，调用放到线程里执行。
"""

import asyncio
import json
from datetime import datetime
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from calendar_bot.config.settings import AWS_REGION, REMINDER_FUNCTION_ARN, SCHEDULER_GROUP_NAME, SCHEDULER_ROLE_ARN
from calendar_bot.datamodel import ReminderEvent
from calendar_bot.errors import SchedulingError
from calendar_bot.logger import logger
from calendar_bot.scheduling.base import DeferredDispatcher
from calendar_bot.utils import utc_iso_min

__all__ = ["EventBridgeDispatcher", "schedule_expression"]


def schedule_expression(fire_at_utc: datetime) -> str:
    return f"at({utc_iso_min(fire_at_utc)})"


class EventBridgeDispatcher(DeferredDispatcher):
    def __init__(
        self,
        target_arn: str = REMINDER_FUNCTION_ARN,
        role_arn: str = SCHEDULER_ROLE_ARN,
        group_name: str = SCHEDULER_GROUP_NAME,
        region_name: str = AWS_REGION,
        client: Any = None,
    ) -> None:
        self.target_arn = target_arn
        self.role_arn = role_arn
        self.group_name = group_name
        self.client = client or boto3.client("scheduler", region_name=region_name)

    async def register(self, unique_name: str, fire_at_utc: datetime, event: ReminderEvent) -> str:
        expression = schedule_expression(fire_at_utc)
        logger.info(f"创建 schedule: name={unique_name}, original_time={fire_at_utc.isoformat()}, schedule_expression={expression}")

        try:
            output = await asyncio.to_thread(
                self.client.create_schedule,
                Name=unique_name,
                GroupName=self.group_name,
                FlexibleTimeWindow={"Mode": "OFF"},
                ScheduleExpression=expression,
                ScheduleExpressionTimezone="UTC",
                Target={
                    "Arn": self.target_arn,
                    "RoleArn": self.role_arn,
                    "Input": json.dumps(event.to_payload(), ensure_ascii=False),
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"User {event.subject_id} 创建 schedule 失败: {e}")
            raise SchedulingError(f"创建 schedule 失败: {e}") from e

        return output["ScheduleArn"]
