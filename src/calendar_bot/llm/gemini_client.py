import asyncio
import time
from typing import Any

from google import genai
from google.genai import types

from calendar_bot.config.settings import GEMINI_API_KEY, GEMINI_BASE_URL, LLM_MODEL
from calendar_bot.datamodel import ScheduleCandidate
from calendar_bot.errors import ExtractionError
from calendar_bot.llm.base import ScheduleExtractor, build_system_prompt, parse_schedule_response
from calendar_bot.logger import logger
from calendar_bot.metrics import runtime_metrics


class GeminiScheduleExtractor(ScheduleExtractor):
    def __init__(
        self,
        base_url: str | None = GEMINI_BASE_URL,
        api_key: str | None = GEMINI_API_KEY,
        model: str = LLM_MODEL,
        client: Any = None,
    ) -> None:
        self.model = model
        self.client = client or genai.Client(api_key=api_key, http_options={"base_url": base_url} if base_url else None)

    @staticmethod
    def _extract_text(response: Any) -> str:
        text = getattr(response, "text", None)
        if isinstance(text, str) and text.strip():
            return text

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return ""
        content = getattr(candidates[0], "content", None)
        parts = list(getattr(content, "parts", None) or [])
        return "\n".join(p.text for p in parts if isinstance(getattr(p, "text", None), str)).strip()

    async def extract(self, text: str) -> ScheduleCandidate:
        config = types.GenerateContentConfig(
            system_instruction=build_system_prompt(),
            temperature=0.0,
            response_mime_type="application/json",
        )
        logger.trace(f"Gemini请求发起 Model:{self.model}; Input:{text}")
        started = time.perf_counter()
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents=[{"role": "user", "parts": [{"text": text}]}],
                config=config,
            )
        except Exception as e:
            runtime_metrics.record_llm_call((time.perf_counter() - started) * 1000, error=True)
            raise ExtractionError(f"Gemini API error: {e}") from e

        runtime_metrics.record_llm_call((time.perf_counter() - started) * 1000)
        logger.trace(f"Gemini请求收到响应: {response}")
        return parse_schedule_response(self._extract_text(response))
