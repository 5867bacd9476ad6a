"""Reasoning service clients used by semantic evaluation."""

from line_build_core.reasoning.anthropic_client import AnthropicReasoningClient
from line_build_core.reasoning.base import (
    ReasoningAuthenticationError,
    ReasoningClient,
    ReasoningInvalidRequestError,
    ReasoningProviderError,
    ReasoningUnavailableError,
)

__all__ = [
    "AnthropicReasoningClient",
    "ReasoningAuthenticationError",
    "ReasoningClient",
    "ReasoningInvalidRequestError",
    "ReasoningProviderError",
    "ReasoningUnavailableError",
]
