import time

from openai import AsyncOpenAI, OpenAIError

from calendar_bot.config.settings import LLM_MODEL, OPENAI_API_KEY, OPENAI_BASE_URL
from calendar_bot.datamodel import ScheduleCandidate
from calendar_bot.errors import ExtractionError
from calendar_bot.llm.base import ScheduleExtractor, build_system_prompt, parse_schedule_response
from calendar_bot.logger import logger
from calendar_bot.metrics import runtime_metrics


class OpenAIScheduleExtractor(ScheduleExtractor):
    def __init__(
        self,
        api_key: str | None = OPENAI_API_KEY,
        base_url: str = OPENAI_BASE_URL,
        model: str = LLM_MODEL,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.base_url = base_url
        self.model = model
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
        )

    async def extract(self, text: str) -> ScheduleCandidate:
        instructions = build_system_prompt()
        logger.trace(f"LLM请求发起 BaseUrl:{self.base_url}; Model:{self.model}; Input:{text}")
        started = time.perf_counter()
        try:
            response = await self.client.responses.create(
                model=self.model,
                instructions=instructions,
                input=[{"role": "user", "content": text}],
                temperature=0.0,
            )
        except OpenAIError as e:
            runtime_metrics.record_llm_call((time.perf_counter() - started) * 1000, error=True)
            raise ExtractionError(f"OpenAI API error: {e}") from e

        runtime_metrics.record_llm_call((time.perf_counter() - started) * 1000)
        logger.trace(f"LLM请求收到响应: {response}")
        return parse_schedule_response(response.output_text)

    async def aclose(self) -> None:
        await self.client.close()
