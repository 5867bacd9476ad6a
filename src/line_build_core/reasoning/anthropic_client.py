"""
line-build-core — Anthropic reasoning client

File: src/line_build_core/reasoning/anthropic_client.py

Purpose
- ``ReasoningClient`` backed by the Anthropic messages API.

What should be included in this file
- Lazy SDK import so the package installs and runs structured-only without it.
- Injected client support for tests.
- Mapping of SDK failures onto the validation error taxonomy.
- Optional transport-level retry beneath the evaluator's own retry layer.

Functional requirements
- Must never log or echo API keys.
"""

from __future__ import annotations

import asyncio
import importlib
import os
from collections.abc import Mapping
from typing import Any, Protocol, cast

import structlog

from line_build_core.constants import DEFAULT_REASONING_MAX_TOKENS, DEFAULT_REASONING_MODEL
from line_build_core.reasoning.base import (
    ReasoningAuthenticationError,
    ReasoningInvalidRequestError,
    ReasoningProviderError,
    ReasoningUnavailableError,
)
from line_build_core.reliability.errors import (
    LineBuildValidationError,
    ValidationApiError,
    ValidationTimeoutError,
    read_status_code,
)
from line_build_core.reliability.retry import RetryPolicy, SleepFn, run_with_retry

_PROVIDER = "anthropic"


class _AnthropicMessagesAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _AnthropicClient(Protocol):
    messages: _AnthropicMessagesAPI


class AnthropicReasoningClient:
    """Send one user prompt (plus optional system instruction) and return the text."""

    def __init__(
        self,
        *,
        model: str = DEFAULT_REASONING_MODEL,
        max_tokens: int = DEFAULT_REASONING_MAX_TOKENS,
        api_key: str | None = None,
        api_key_env: str | None = None,
        timeout_seconds: float | None = None,
        client: _AnthropicClient | None = None,
        retry: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        logger: Any | None = None,
    ) -> None:
        if not isinstance(model, str) or not model.strip():
            raise ValueError("model cannot be empty")
        if max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self.model = model.strip()
        self._max_tokens = max_tokens
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._retry = retry
        self._sleep = sleep
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def ensure_ready(self) -> None:
        """Build the SDK client now so configuration problems surface up front."""

        self._ensure_client()

    async def generate_content(
        self,
        prompt: str,
        system_instruction: str | None = None,
    ) -> str:
        client = self._ensure_client()
        payload: dict[str, object] = {
            "model": self.model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_instruction:
            payload["system"] = system_instruction

        async def send() -> object:
            try:
                return await client.messages.create(**payload)
            except LineBuildValidationError:
                raise
            except Exception as exc:
                raise self._map_exception(exc) from exc

        if self._retry is None:
            raw_response = await send()
        else:
            raw_response = await run_with_retry(
                send, self._retry, sleep=self._sleep, logger=self._logger
            )
        return _extract_text(raw_response)

    def _ensure_client(self) -> _AnthropicClient:
        if self._client is None:
            self._client = self._build_sdk_client()
        return self._client

    def _build_sdk_client(self) -> _AnthropicClient:
        try:
            sdk = importlib.import_module("anthropic")
        except ImportError as exc:
            raise ReasoningUnavailableError(
                "anthropic SDK is not installed; install the 'anthropic' extra",
                provider=_PROVIDER,
            ) from exc

        factory = getattr(sdk, "AsyncAnthropic", None)
        if factory is None:
            raise ReasoningUnavailableError(
                "anthropic SDK does not expose AsyncAnthropic", provider=_PROVIDER
            )
        options: dict[str, object] = {"api_key": self._api_key_value()}
        if self._timeout_seconds is not None:
            options["timeout"] = self._timeout_seconds
        sdk_client = factory(**options)
        if getattr(sdk_client, "messages", None) is None:
            raise ReasoningUnavailableError(
                "anthropic client missing messages API", provider=_PROVIDER
            )
        return cast("_AnthropicClient", sdk_client)

    def _api_key_value(self) -> str:
        if self._api_key and self._api_key.strip():
            return self._api_key
        env_name = self._api_key_env or "ANTHROPIC_API_KEY"
        value = os.environ.get(env_name, "").strip()
        if value:
            return value
        if self._api_key_env is None:
            message = "missing Anthropic API key; set ANTHROPIC_API_KEY"
        else:
            message = f"missing Anthropic API key in configured env var {env_name}"
        raise ReasoningAuthenticationError(message, provider=_PROVIDER)

    def _map_exception(self, exc: Exception) -> LineBuildValidationError:
        status = read_status_code(exc)
        name = type(exc).__name__.lower()
        detail = " ".join(str(exc).split()) or type(exc).__name__

        if status in (401, 403) or "auth" in name or "permission" in name:
            return ReasoningAuthenticationError(detail, provider=_PROVIDER, status_code=status)
        if status == 429 or "ratelimit" in name:
            return ValidationApiError(f"rate limit: {detail}", status_code=status)
        if isinstance(exc, TimeoutError) or "timeout" in name:
            return ValidationTimeoutError(f"timeout: {detail}")
        if status in (400, 404, 409, 413, 422):
            return ReasoningInvalidRequestError(detail, provider=_PROVIDER, status_code=status)
        if "badrequest" in name or "invalidrequest" in name:
            return ReasoningInvalidRequestError(detail, provider=_PROVIDER)
        if (status is not None and status >= 500) or "connection" in name or "overloaded" in name:
            return ValidationApiError(detail, status_code=status)
        return ReasoningProviderError(detail, provider=_PROVIDER, code="service")


def _extract_text(response: object) -> str:
    """Join the ``text`` blocks of a messages response, skipping tool and empty blocks."""

    blocks = _attr(response, "content")
    if not isinstance(blocks, (list, tuple)):
        return ""
    texts = (
        _attr(block, "text")
        for block in blocks
        if str(_attr(block, "type") or "").lower() == "text"
    )
    return "\n".join(text for text in texts if isinstance(text, str) and text.strip())


def _attr(value: object, key: str) -> object:
    # SDK responses are objects; recorded fixtures are plain dicts.
    if isinstance(value, Mapping):
        return value.get(key)
    return getattr(value, key, None)


__all__ = ["AnthropicReasoningClient"]
