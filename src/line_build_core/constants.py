"""Stable constants shared across the guard, validators, and reliability layer."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
RULE_LIBRARY_SCHEMA_VERSION: Final[int] = 1

# Retry defaults for network-sensitive callers.
DEFAULT_RETRY_MAX_ATTEMPTS: Final[int] = 3
DEFAULT_RETRY_INITIAL_DELAY_SECONDS: Final[float] = 0.1
DEFAULT_RETRY_MAX_DELAY_SECONDS: Final[float] = 5.0
DEFAULT_RETRY_MULTIPLIER: Final[float] = 2.0

# Layered retry used by the semantic evaluator around each reasoning call.
SEMANTIC_RETRY_MAX_ATTEMPTS: Final[int] = 2
SEMANTIC_RETRY_MAX_DELAY_SECONDS: Final[float] = 3.0

# Health monitor: unhealthy once this many errors accumulate since the last reset.
DEFAULT_HEALTH_ERROR_THRESHOLD: Final[int] = 3

# Bounded fan-out for semantic evaluation.
DEFAULT_SEMANTIC_MAX_CONCURRENCY: Final[int] = 4

# Reasoning adapter defaults.
DEFAULT_REASONING_MODEL: Final[str] = "claude-sonnet-4-5"
DEFAULT_REASONING_MAX_TOKENS: Final[int] = 1024

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_HEALTH_ERROR_THRESHOLD",
    "DEFAULT_REASONING_MAX_TOKENS",
    "DEFAULT_REASONING_MODEL",
    "DEFAULT_RETRY_INITIAL_DELAY_SECONDS",
    "DEFAULT_RETRY_MAX_ATTEMPTS",
    "DEFAULT_RETRY_MAX_DELAY_SECONDS",
    "DEFAULT_RETRY_MULTIPLIER",
    "DEFAULT_SEMANTIC_MAX_CONCURRENCY",
    "RULE_LIBRARY_SCHEMA_VERSION",
    "SEMANTIC_RETRY_MAX_ATTEMPTS",
    "SEMANTIC_RETRY_MAX_DELAY_SECONDS",
]
