"""
line-build-core — reasoning client contract

File: src/line_build_core/reasoning/base.py

Purpose
- The single-method interface semantic evaluation depends on, plus the
  provider-level errors adapters raise when they cannot be used at all.

What should be included in this file
- ``ReasoningClient`` protocol: ``async generate_content(prompt, system_instruction)``.
- ``ReasoningProviderError`` family for unavailable SDKs, missing credentials and
  rejected requests.

Functional requirements
- Response text is opaque to the client; verdict extraction happens in
  ``line_build_core.validation.response``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from line_build_core.reliability.errors import LineBuildValidationError, ValidationErrorType


@runtime_checkable
class ReasoningClient(Protocol):
    """Anything that turns a prompt into free-form text."""

    async def generate_content(
        self,
        prompt: str,
        system_instruction: str | None = None,
    ) -> str: ...


class ReasoningProviderError(LineBuildValidationError):
    """Provider cannot serve requests; retrying does not help."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "provider",
        code: str = "unavailable",
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.code = code
        super().__init__(
            f"provider={provider} code={code} detail={message}",
            error_type=ValidationErrorType.UNKNOWN,
            status_code=status_code,
        )


class ReasoningUnavailableError(ReasoningProviderError):
    """SDK missing or misconfigured."""

    def __init__(self, message: str, *, provider: str = "provider") -> None:
        super().__init__(message, provider=provider, code="unavailable")


class ReasoningAuthenticationError(ReasoningProviderError):
    def __init__(
        self,
        message: str,
        *,
        provider: str = "provider",
        status_code: int | None = 401,
    ) -> None:
        super().__init__(message, provider=provider, code="auth", status_code=status_code)


class ReasoningInvalidRequestError(ReasoningProviderError):
    def __init__(
        self,
        message: str,
        *,
        provider: str = "provider",
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message, provider=provider, code="invalid_request", status_code=status_code
        )


__all__ = [
    "ReasoningAuthenticationError",
    "ReasoningClient",
    "ReasoningInvalidRequestError",
    "ReasoningProviderError",
    "ReasoningUnavailableError",
]
