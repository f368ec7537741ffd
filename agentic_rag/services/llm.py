# =============================================================================
# Completion Service — Multi-Provider LLM Abstraction
# =============================================================================
#
# Provides a common interface for LLM completions, with concrete
# implementations for Anthropic (Claude), OpenAI-compatible APIs, and
# Azure OpenAI deployments.
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Matches the RetrievalService pattern in retrieval.py. Any class with the
# right `complete()` / `complete_with_tools()` methods works, which is what
# lets tests hand the workflow an AsyncMock.
#
# DESIGN DECISION: Native SDKs over LangChain wrappers.
# Tool calling is only a few message-shape conversions per provider; the
# SDKs give direct control over request parameters.
#
# DESIGN DECISION: Provider-neutral transcript for tool calling.
# The tool loop keeps one message list in a neutral shape:
#   {"role": "user" | "assistant", "content": str}
#   {"role": "assistant", "content": str, "tool_calls": [ToolCall, ...]}
#   {"role": "tool", "tool_call_id": str, "name": str, "content": str}
# Each provider converts it to its own wire format on every call.
#
# DESIGN DECISION: Fail distinctly.
# SDK errors are re-raised as CompletionServiceError so workflow stages can
# apply their local fallbacks. A missing API key raises ValueError when the
# provider is built (startup misconfiguration, not a per-call failure).
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        : system prompt as top-level kwarg
#   ├── OpenAICompatibleProvider : system prompt as message role
#   │   └── AzureOpenAIProvider  : same wire format, Azure client
#   └── get_llm_provider()       : lazy singleton factory, reads config
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import anthropic
import openai

from agentic_rag.config import settings
from agentic_rag.errors import CompletionServiceError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """Standardised response from any LLM provider."""

    content: str           # The generated text
    model: str             # Model identifier reported by the API
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response


@dataclass
class ToolCall:
    """A capability invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolSpec:
    """A capability offered to the model. `parameters` is a JSON schema."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolTurn:
    """One model turn in a tool-calling conversation."""

    content: str
    tool_calls: list[ToolCall]
    model: str
    input_tokens: int
    output_tokens: int


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    Protocol defining the Completion Service interface.

    Implementations must raise CompletionServiceError (not return an empty
    string) when the provider is unreachable or rejects the request.
    """

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """
        Generate a completion.

        Args:
            messages: Ordered messages as dicts with "role" and "content".
            system: Optional system prompt.
            temperature: Sampling temperature, 0..2 (default from config).
            max_tokens: Max output tokens (default from config).
            model: Optional model/deployment override for this call.
        """
        ...

    async def complete_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolSpec],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ToolTurn:
        """
        Generate one turn that may request tool calls.

        `messages` is the provider-neutral transcript described above.
        An empty `tool_calls` list on the result means the model answered.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native async SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, and tool results travel back as `tool_result` content
    blocks inside a user message.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = anthropic.AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        kwargs = self._request_kwargs(
            messages, system, temperature, max_tokens, model,
        )
        response = await self._create(kwargs)
        text, _ = _split_anthropic_blocks(response.content)

        return LLMResponse(
            content=text,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def complete_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolSpec],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ToolTurn:
        """Generate one tool-calling turn using Claude."""
        kwargs = self._request_kwargs(
            _to_anthropic_messages(messages), system, temperature,
            max_tokens, None,
        )
        kwargs["tools"] = [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in tools
        ]
        response = await self._create(kwargs)
        text, tool_calls = _split_anthropic_blocks(response.content)

        return ToolTurn(
            content=text,
            tool_calls=tool_calls,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    def _request_kwargs(
        self,
        messages: list[dict[str, Any]],
        system: str | None,
        temperature: float | None,
        max_tokens: int | None,
        model: str | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model or self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": (
                temperature if temperature is not None else self._temperature
            ),
        }
        if system:
            kwargs["system"] = system
        return kwargs

    async def _create(self, kwargs: dict[str, Any]):
        try:
            return await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise CompletionServiceError(
                f"Anthropic completion failed: {e}"
            ) from e


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (OpenAI, DeepSeek, Qwen, ...)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Provider for any API that follows the OpenAI chat-completions API.

    Switching vendors is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        LLM_MODEL=deepseek-chat
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict[str, Any] = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        response = await self._create(
            model=model or self._model,
            messages=_to_openai_messages(messages, system),
            max_tokens=max_tokens or self._max_tokens,
            temperature=(
                temperature if temperature is not None else self._temperature
            ),
        )
        message = response.choices[0].message if response.choices else None
        usage = response.usage

        return LLMResponse(
            content=(message.content if message else None) or "",
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    async def complete_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolSpec],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ToolTurn:
        """Generate one tool-calling turn using an OpenAI-compatible API."""
        response = await self._create(
            model=self._model,
            messages=_to_openai_messages(messages, system),
            tools=[
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in tools
            ],
            max_tokens=max_tokens or self._max_tokens,
            temperature=(
                temperature if temperature is not None else self._temperature
            ),
        )
        message = response.choices[0].message if response.choices else None
        usage = response.usage

        return ToolTurn(
            content=(message.content if message else None) or "",
            tool_calls=_parse_openai_tool_calls(
                getattr(message, "tool_calls", None) or []
            ),
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    async def _create(self, **kwargs: Any):
        try:
            return await self._client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise CompletionServiceError(
                f"OpenAI-compatible completion failed: {e}"
            ) from e


# ---------------------------------------------------------------------------
# Implementation 3: Azure OpenAI
# ---------------------------------------------------------------------------


class AzureOpenAIProvider(OpenAICompatibleProvider):
    """
    Azure OpenAI deployment. Same wire format as OpenAI; the "model" sent
    with each request is the deployment name.
    """

    def __init__(
        self,
        api_key: str | None = None,
        endpoint: str | None = None,
        deployment: str | None = None,
        api_version: str | None = None,
    ) -> None:
        resolved_key = (
            api_key or settings.llm_api_key or settings.azure_openai_api_key
        )
        resolved_endpoint = endpoint or settings.azure_openai_endpoint
        if not resolved_key or not resolved_endpoint:
            raise ValueError(
                "Azure OpenAI needs an API key and endpoint. Set "
                "AZURE_OPENAI_API_KEY and AZURE_OPENAI_ENDPOINT in .env"
            )
        if not resolved_endpoint.startswith("https://"):
            raise ValueError("AZURE_OPENAI_ENDPOINT must be an https:// URL")

        self._client = openai.AsyncAzureOpenAI(
            api_key=resolved_key,
            azure_endpoint=resolved_endpoint,
            api_version=api_version or settings.azure_openai_api_version,
        )
        self._model = deployment or settings.azure_openai_deployment
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized AzureOpenAIProvider (deployment=%s, endpoint=%s)",
            self._model, resolved_endpoint,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

# Lazy singleton: the SDK clients pool connections and are safe to share
_provider: LLMProvider | None = None


def build_llm_provider(provider_type: str | None = None) -> LLMProvider:
    """Build a fresh provider for `provider_type` (default: settings)."""
    provider_type = provider_type or settings.llm_provider
    if provider_type == "anthropic":
        return AnthropicProvider()
    if provider_type == "openai_compatible":
        return OpenAICompatibleProvider()
    if provider_type == "azure_openai":
        return AzureOpenAIProvider()
    raise ValueError(
        f"Unknown LLM provider '{provider_type}'. Supported: "
        "anthropic, openai_compatible, azure_openai"
    )


def get_llm_provider() -> LLMProvider:
    """
    Return the process-wide Completion Service.

    Created on first use from `llm_provider` in settings and reused for
    the lifetime of the process. Never reconfigured after creation.
    """
    global _provider
    if _provider is None:
        _provider = build_llm_provider()
    return _provider


# ---------------------------------------------------------------------------
# Internal Helpers: Transcript Conversion
# ---------------------------------------------------------------------------


def _to_openai_messages(
    messages: list[dict[str, Any]],
    system: str | None,
) -> list[dict[str, Any]]:
    """Convert the neutral transcript to OpenAI chat messages."""
    converted: list[dict[str, Any]] = []
    if system:
        converted.append({"role": "system", "content": system})

    for message in messages:
        role = message["role"]
        if role == "assistant" and message.get("tool_calls"):
            converted.append({
                "role": "assistant",
                "content": message.get("content") or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments),
                        },
                    }
                    for call in message["tool_calls"]
                ],
            })
        elif role == "tool":
            converted.append({
                "role": "tool",
                "tool_call_id": message["tool_call_id"],
                "content": message["content"],
            })
        else:
            converted.append({"role": role, "content": message["content"]})
    return converted


def _to_anthropic_messages(
    messages: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """
    Convert the neutral transcript to Anthropic messages.

    Consecutive tool results are grouped into a single user message, as
    the Messages API requires.
    """
    converted: list[dict[str, Any]] = []
    for message in messages:
        role = message["role"]
        if role == "assistant" and message.get("tool_calls"):
            blocks: list[dict[str, Any]] = []
            if message.get("content"):
                blocks.append({"type": "text", "text": message["content"]})
            blocks.extend(
                {
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments,
                }
                for call in message["tool_calls"]
            )
            converted.append({"role": "assistant", "content": blocks})
        elif role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": message["tool_call_id"],
                "content": message["content"],
            }
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
            ):
                previous["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
        else:
            converted.append({"role": role, "content": message["content"]})
    return converted


def _split_anthropic_blocks(blocks) -> tuple[str, list[ToolCall]]:
    """Collect text and tool_use blocks from an Anthropic response."""
    texts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in blocks:
        if block.type == "text":
            texts.append(block.text)
        elif block.type == "tool_use":
            tool_calls.append(ToolCall(
                id=block.id, name=block.name, arguments=dict(block.input or {}),
            ))
    return "".join(texts), tool_calls


def _parse_openai_tool_calls(raw_calls) -> list[ToolCall]:
    """Map OpenAI tool_calls to ToolCall, tolerating malformed arguments."""
    calls: list[ToolCall] = []
    for raw in raw_calls:
        function = getattr(raw, "function", None)
        if function is None:
            continue
        try:
            arguments = json.loads(function.arguments or "{}")
        except json.JSONDecodeError:
            logger.warning(
                "Tool call %s had non-JSON arguments: %r",
                function.name, function.arguments,
            )
            arguments = {"input": function.arguments}
        if not isinstance(arguments, dict):
            arguments = {"input": arguments}
        calls.append(ToolCall(
            id=raw.id or "", name=function.name or "", arguments=arguments,
        ))
    return calls
