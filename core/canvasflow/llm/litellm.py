"""LiteLLM-backed streaming provider.

LiteLLM gives one interface over OpenAI, Anthropic, Gemini, Ollama and the
rest, so any model string LiteLLM understands can be put on an LLM
invocation node (e.g. "gpt-4o", "anthropic/claude-3-5-haiku-latest").
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import litellm

from canvasflow.llm.provider import LLMParams, LLMProvider
from canvasflow.llm.stream_events import (
    FinishEvent,
    StreamErrorEvent,
    StreamEvent,
    StreamStartEvent,
    TextDeltaEvent,
    TextEndEvent,
)

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    Streaming provider on top of ``litellm.acompletion``.

    Example:
        provider = LiteLLMProvider(api_key=os.environ["OPENAI_API_KEY"])
        async for event in provider.stream("Hello", LLMParams(model="gpt-4o")):
            ...
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str | None = None,
        extra_kwargs: dict[str, Any] | None = None,
    ):
        """
        Args:
            api_key: API key passed through to LiteLLM. When None, LiteLLM
                reads the provider's usual environment variable.
            api_base: Optional custom endpoint (proxies, local servers)
            default_model: Used when a node leaves its model empty
            extra_kwargs: Extra keyword arguments for every acompletion call
        """
        self.api_key = api_key
        self.api_base = api_base
        self.default_model = default_model
        self.extra_kwargs = extra_kwargs or {}

    def _build_request(self, prompt: str, params: LLMParams) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if params.system_prompt:
            messages.append({"role": "system", "content": params.system_prompt})
        messages.append({"role": "user", "content": prompt})

        request: dict[str, Any] = {
            "model": params.model or self.default_model,
            "messages": messages,
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
            **self.extra_kwargs,
        }
        if self.api_key:
            request["api_key"] = self.api_key
        if self.api_base:
            request["api_base"] = self.api_base
        return request

    async def stream(self, prompt: str, params: LLMParams) -> AsyncIterator[StreamEvent]:
        request = self._build_request(prompt, params)
        model = request["model"]
        yield StreamStartEvent(model=model)

        text = ""
        usage = None
        stop_reason = ""
        try:
            response = await litellm.acompletion(**request)
            async for chunk in response:
                if getattr(chunk, "usage", None):
                    usage = chunk.usage
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason:
                    stop_reason = choice.finish_reason
                delta = choice.delta.content if choice.delta else None
                if delta:
                    text += delta
                    yield TextDeltaEvent(content=delta, snapshot=text)
        except Exception as e:
            logger.error(f"Error streaming completion from {model}: {e}")
            yield StreamErrorEvent(error=str(e))
            return

        logger.debug(f"Streamed {len(text)} characters from {model}")
        yield TextEndEvent(full_text=text)
        yield FinishEvent(
            stop_reason=stop_reason,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            model=model,
        )
