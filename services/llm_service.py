# services/llm_service.py
import asyncio
import logging
import os
import time
from functools import lru_cache
from typing import Dict, List

import openai
from dotenv import load_dotenv
from openai import AsyncOpenAI

from services.errors import UpstreamError

load_dotenv()

logger = logging.getLogger(__name__)


class LLMService:
    """
    Completion client for the chat assistant (OpenAI or an
    OpenAI-compatible Ollama endpoint), configured from .env.

    Every call is bounded by `timeout` seconds and is never retried; any
    failure surfaces as UpstreamError.
    """

    def __init__(self, client=None):
        self.provider = os.getenv("LLM_PROVIDER", "openai").lower()
        self.model_name = os.getenv("LLM_MODEL", "gpt-3.5-turbo")
        self.api_key = os.getenv("LLM_API_KEY", os.getenv("OPENAI_API_KEY", ""))
        self.base_url = os.getenv("LLM_BASE_URL", None)
        self.temperature = float(os.getenv("LLM_TEMPERATURE", "0.7"))
        self.max_tokens = int(os.getenv("LLM_MAX_TOKENS", "500"))
        self.timeout = float(os.getenv("LLM_TIMEOUT", "30"))

        if client is not None:
            self.client = client
        elif self.provider == "ollama":
            self.base_url = self.base_url or "http://localhost:11434/v1"
            if not self.base_url.endswith("/v1"):
                self.base_url = self.base_url.rstrip("/") + "/v1"
            self.api_key = "ollama"
            self.client = AsyncOpenAI(
                base_url=self.base_url,
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        else:
            if not self.api_key:
                raise ValueError("LLM_API_KEY is required for OpenAI provider")
            self.base_url = self.base_url or "https://api.openai.com/v1"
            self.client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        logger.info(
            f"[LLM] Service initialized: provider={self.provider} "
            f"model={self.model_name} base_url={self.base_url}"
        )

    async def generate(self, messages: List[Dict[str, str]]) -> str:
        """
        Generate the assistant reply for an ordered message list.

        Args:
            messages: [{"role": "system"|"user"|"assistant", "content": "..."}]

        Returns:
            Generated response text

        Raises:
            UpstreamError: network, timeout, rate limit, API status or a
                response without usable text
        """
        total_chars = sum(len(msg.get("content", "")) for msg in messages)
        logger.debug(f"[LLM] Sending {len(messages)} messages (~{total_chars} chars) to {self.model_name}")

        request_start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model_name,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"[LLM] Request timed out after {self.timeout}s")
            raise UpstreamError(f"Completion timed out after {self.timeout}s")
        except openai.APITimeoutError as e:
            logger.error(f"[LLM] Request timed out: {e}")
            raise UpstreamError(f"Completion timed out: {e}")
        except openai.RateLimitError as e:
            logger.error(f"[LLM] Rate limited: {e}")
            raise UpstreamError(f"Completion rate limited: {e}")
        except openai.OpenAIError as e:
            logger.error(f"[LLM] Generation error: {type(e).__name__}: {e}")
            raise UpstreamError(f"Completion failed: {type(e).__name__}: {e}")

        request_time = (time.perf_counter() - request_start) * 1000
        result = self._extract_text(response)

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                f"[LLM] Token usage: prompt={getattr(usage, 'prompt_tokens', 'N/A')} "
                f"completion={getattr(usage, 'completion_tokens', 'N/A')}"
            )
        logger.info(f"[LLM] Generated {len(result)} chars in {request_time:.2f}ms")
        return result

    @staticmethod
    def _extract_text(response) -> str:
        choices = getattr(response, "choices", None)
        if not choices:
            raise UpstreamError("Completion response contained no choices")
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise UpstreamError("Completion response contained no text")
        return content


@lru_cache(maxsize=1)
def get_llm_service() -> LLMService:
    """Singleton factory for LLMService."""
    return LLMService()
