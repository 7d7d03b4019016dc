"""
Test configuration and metrics.

Verifies:
- Settings load from environment with defaults
- Missing or invalid values raise RuntimeError
- Metrics count check outcomes and time operations
"""

from __future__ import annotations

import pytest

from bytecode_verify.eth.metrics import Metrics
from bytecode_verify.eth.settings import Settings


def test_settings_defaults(monkeypatch):
    """Only RPC_URL is required."""
    monkeypatch.setenv("RPC_URL", "http://localhost:8545")
    for name in ("RPC_TIMEOUT_S", "PROJECT_ROOT", "BUILD_TOOL", "ARTIFACTS_DIR", "ALTERNATIVE_ARTIFACTS_DIR", "TRACE_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    s = Settings.load()
    assert s.RPC_URL == "http://localhost:8545"
    assert s.RPC_TIMEOUT_S == 30
    assert s.BUILD_TOOL == "forge"
    assert s.ARTIFACTS_DIR == "artifacts/foundry"
    assert s.TRACE_TIMEOUT == ""


def test_settings_overrides(monkeypatch):
    """Every default can be overridden."""
    monkeypatch.setenv("RPC_URL", "http://node:8545")
    monkeypatch.setenv("RPC_TIMEOUT_S", "90")
    monkeypatch.setenv("BUILD_TOOL", "/usr/local/bin/forge")
    monkeypatch.setenv("TRACE_TIMEOUT", "120s")
    s = Settings.load()
    assert s.RPC_TIMEOUT_S == 90
    assert s.BUILD_TOOL == "/usr/local/bin/forge"
    assert s.TRACE_TIMEOUT == "120s"


def test_missing_rpc_url(monkeypatch):
    """Missing required vars raise."""
    monkeypatch.delenv("RPC_URL", raising=False)
    with pytest.raises(RuntimeError, match="Missing required env var: RPC_URL"):
        Settings.load()


@pytest.mark.parametrize("value", ["0", "-5", "soon"])
def test_invalid_timeout(monkeypatch, value):
    """Timeouts must be positive integers."""
    monkeypatch.setenv("RPC_URL", "http://localhost:8545")
    monkeypatch.setenv("RPC_TIMEOUT_S", value)
    with pytest.raises(RuntimeError, match="RPC_TIMEOUT_S"):
        Settings.load()


def test_record_check():
    """Mismatches are counted separately."""
    m = Metrics()
    m.record_check(True)
    m.record_check(False)
    assert m.snapshot()["counters"] == {"checks_total": 2, "checks_mismatch_total": 1}


def test_timed_records_latency_and_errors():
    """Failures count as errors and re-raise."""
    m = Metrics()
    with m.timed("rpc_latency_ms", "rpc_errors_total"):
        pass
    assert m.gauges["rpc_latency_ms"] >= 0
    with pytest.raises(KeyError):
        with m.timed("rpc_latency_ms", "rpc_errors_total"):
            raise KeyError("boom")
    assert m.counters["rpc_errors_total"] == 1
