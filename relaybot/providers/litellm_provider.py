"""LiteLLM-based LLM provider implementation."""

import json
from typing import Any

import litellm
from loguru import logger

from relaybot.providers.base import LLMProvider, LLMResponse, ToolCallRequest

OPENROUTER_PREFIX = "openrouter/"
OPENAI_COMPATIBLE_PREFIX = "hosted_vllm/"


class LiteLLMProvider(LLMProvider):
    """
    LLM provider routed through LiteLLM.

    The endpoint is picked from the key and base URL: an ``sk-or-`` key or an
    OpenRouter base URL routes through OpenRouter, any other base URL is
    treated as a self-hosted OpenAI-compatible server (vLLM and friends), and
    otherwise LiteLLM resolves the provider from the model name itself.
    Provider errors propagate to the caller.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "anthropic/claude-sonnet-4-20250514",
        timeout: float | None = None,
    ):
        super().__init__(api_key, api_base)
        self._default_model = default_model
        self.timeout = timeout
        self.is_openrouter = bool(
            (api_key and api_key.startswith("sk-or-")) or (api_base and "openrouter" in api_base)
        )
        self.is_openai_compatible = bool(api_base) and not self.is_openrouter

    def resolve_model(self, model: str) -> str:
        """Add the LiteLLM routing prefix the configured endpoint needs."""
        if self.is_openrouter:
            return model if model.startswith(OPENROUTER_PREFIX) else OPENROUTER_PREFIX + model
        if self.is_openai_compatible and not model.startswith(OPENAI_COMPATIBLE_PREFIX):
            return OPENAI_COMPATIBLE_PREFIX + model
        return model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        use_model = self.resolve_model(model or self._default_model)

        kwargs: dict[str, Any] = {
            "model": use_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.timeout:
            kwargs["timeout"] = self.timeout
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        logger.debug(f"LLM request: model={use_model}, messages={len(messages)}, tools={len(tools or [])}")
        response = await litellm.acompletion(**kwargs)
        return self._parse_response(response)

    def _parse_response(self, response: Any) -> LLMResponse:
        if not response.choices:
            return LLMResponse(content=None, usage=_parse_usage(response))

        choice = response.choices[0]
        message = choice.message
        return LLMResponse(
            content=message.content,
            tool_calls=[_parse_tool_call(tc) for tc in getattr(message, "tool_calls", None) or []],
            finish_reason=choice.finish_reason or "stop",
            usage=_parse_usage(response),
        )

    def get_default_model(self) -> str:
        return self._default_model


def _parse_tool_call(tc: Any) -> ToolCallRequest:
    """Decode one tool call; unparseable arguments are kept under ``raw``."""
    arguments = tc.function.arguments
    if isinstance(arguments, str):
        if not arguments.strip():
            arguments = {}
        else:
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                logger.warning(f"Tool call {tc.function.name} sent invalid JSON arguments")
                arguments = {"raw": arguments}
    if not isinstance(arguments, dict):
        arguments = {"raw": arguments}
    return ToolCallRequest(id=tc.id, name=tc.function.name, arguments=arguments)


def _parse_usage(response: Any) -> dict[str, int]:
    usage = getattr(response, "usage", None)
    if not usage:
        return {}
    return {
        key: getattr(usage, key, 0) or 0
        for key in ("prompt_tokens", "completion_tokens", "total_tokens")
    }
