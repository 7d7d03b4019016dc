"""
Verifier configuration from environment variables.

- RPC_URL: JSON-RPC endpoint (required)
- RPC_TIMEOUT_S: HTTP provider timeout in seconds (default: 30)
- PROJECT_ROOT: working directory for the build tool (default: .)
- BUILD_TOOL: compiler executable (default: forge)
- ARTIFACTS_DIR: Foundry build output (default: artifacts/foundry)
- ALTERNATIVE_ARTIFACTS_DIR: pinned artifacts (default: artifacts/alternative)
- TRACE_TIMEOUT: geth tracer timeout, e.g. "60s" (default: node default)
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _req(name: str) -> str:
    """Get required environment variable or raise."""
    v = os.getenv(name)
    if not v:
        raise RuntimeError(f"Missing required env var: {name}")
    return v


def _opt(name: str, default: str) -> str:
    """Get optional environment variable with default."""
    return os.getenv(name, default)


def _opt_int(name: str, default: int) -> int:
    """Parse positive integer environment variable."""
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    if not v.strip().isdigit() or int(v) <= 0:
        raise RuntimeError(f"Invalid env var {name}: expected positive integer, got {v!r}")
    return int(v)


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the verifier."""

    RPC_URL: str
    RPC_TIMEOUT_S: int = 30

    # Build
    PROJECT_ROOT: str = "."
    BUILD_TOOL: str = "forge"
    ARTIFACTS_DIR: str = "artifacts/foundry"
    ALTERNATIVE_ARTIFACTS_DIR: str = "artifacts/alternative"

    # Tracing (empty: node default)
    TRACE_TIMEOUT: str = ""

    @staticmethod
    def load() -> Settings:
        """Load settings from environment variables."""
        return Settings(
            RPC_URL=_req("RPC_URL"),
            RPC_TIMEOUT_S=_opt_int("RPC_TIMEOUT_S", 30),
            PROJECT_ROOT=_opt("PROJECT_ROOT", "."),
            BUILD_TOOL=_opt("BUILD_TOOL", "forge"),
            ARTIFACTS_DIR=_opt("ARTIFACTS_DIR", "artifacts/foundry"),
            ALTERNATIVE_ARTIFACTS_DIR=_opt("ALTERNATIVE_ARTIFACTS_DIR", "artifacts/alternative"),
            TRACE_TIMEOUT=_opt("TRACE_TIMEOUT", ""),
        )
