"""
Centralized Configuration
=========================
Configuration values and defaults for the analysis orchestrator.

This module provides:
- Result cache TTL and toggle
- Per-agent execution timeout and registration retry settings
- Run history location and retention
- Tracing settings

Every value can be overridden through an ``AO_`` environment variable.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class CacheConfig:
    """Result cache configuration."""

    # 5 minutes, matching the interactive re-run window
    TTL_SECONDS: float = float(os.getenv("AO_CACHE_TTL_SECONDS", "300"))
    ENABLED: bool = _env_bool("AO_CACHE_ENABLED", "true")


@dataclass(frozen=True)
class ExecutionConfig:
    """Agent execution configuration."""

    # Per-agent analyze() timeout in seconds; 0 disables the timeout
    AGENT_TIMEOUT: float = float(os.getenv("AO_AGENT_TIMEOUT", "600"))

    # Attempts for agent initialize() during registration
    INIT_ATTEMPTS: int = int(os.getenv("AO_INIT_ATTEMPTS", "1"))
    INIT_RETRY_MAX_WAIT: float = float(os.getenv("AO_INIT_RETRY_MAX_WAIT", "10"))


@dataclass(frozen=True)
class HistoryConfig:
    """Run history configuration."""

    ENABLED: bool = _env_bool("AO_HISTORY_ENABLED", "false")
    PATH: str = os.getenv("AO_HISTORY_PATH", ".analysis_history/runs.json")
    MAX_RUNS: int = int(os.getenv("AO_HISTORY_MAX_RUNS", "50"))


@dataclass(frozen=True)
class TracingConfig:
    """Tracing configuration."""

    SERVICE_NAME: str = "analysis-orchestrator"
    OTLP_ENDPOINT: str = os.getenv("OTLP_ENDPOINT", "http://localhost:4318/v1/traces")
    ENABLED: bool = _env_bool("AO_ENABLE_TRACING", "false")


# Global singleton instances
CACHE = CacheConfig()
EXECUTION = ExecutionConfig()
HISTORY = HistoryConfig()
TRACING = TracingConfig()


def get_agent_timeout(value: Optional[float] = None) -> Optional[float]:
    """Resolve an agent timeout, mapping non-positive values to None (no timeout).

    Args:
        value: Explicit timeout in seconds, or None to use the configured default

    Returns:
        Timeout in seconds, or None when disabled
    """
    timeout = EXECUTION.AGENT_TIMEOUT if value is None else value
    if timeout is None or timeout <= 0:
        return None
    return float(timeout)
