import json
import re
from abc import ABC, abstractmethod
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from calendar_bot.config.prompts import CURRENT_TIME_LINE, TIME_PARSER_SYSTEM_PROMPT
from calendar_bot.datamodel import ScheduleCandidate
from calendar_bot.errors import ExtractionError
from calendar_bot.utils import LOCAL_TIME_FORMAT, TIME_ZONE, now_local

__all__ = ["ScheduleExtractor", "TransferScheduleResponse", "build_system_prompt", "parse_schedule_response"]

_CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class TransferScheduleResponse(BaseModel):
    """LLM 返回的 JSON 结构"""
    model_config = ConfigDict(populate_by_name=True)

    date_time: str = Field(default="", alias="dateTime")  # "2024-12-29 14:00"
    task: str = ""
    valid: bool = False

    def to_candidate(self) -> ScheduleCandidate:
        return ScheduleCandidate(date_time_text=self.date_time.strip(), task_text=self.task.strip(), is_valid=self.valid)


def build_system_prompt(now: datetime | None = None) -> str:
    current = (now or now_local()).strftime(LOCAL_TIME_FORMAT)
    return TIME_PARSER_SYSTEM_PROMPT + CURRENT_TIME_LINE.format(zone=TIME_ZONE, now=current)


def parse_schedule_response(raw: str | None) -> ScheduleCandidate:
    text = (raw or "").strip()
    match = _CODE_FENCE_PATTERN.match(text)
    if match:
        text = match.group(1)
    if not text:
        raise ExtractionError("LLM 返回了空内容")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"LLM 返回内容不是合法 JSON: {text[:200]!r}") from e
    try:
        return TransferScheduleResponse.model_validate(data).to_candidate()
    except ValidationError as e:
        raise ExtractionError(f"LLM 返回的 JSON 结构不符合预期: {e}") from e


class ScheduleExtractor(ABC):
    @abstractmethod
    async def extract(self, text: str) -> ScheduleCandidate:
        """把自由文本转换为 ScheduleCandidate；失败时抛出 ExtractionError。

        valid=False 是正常结果，表示输入里找不到完整的日期/时间/事项。
        """

    async def aclose(self) -> None:
        pass
