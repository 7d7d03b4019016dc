"""
Verifier health metrics.

Counts RPC calls, builds and check outcomes. Addresses, hashes and
bytecode never end up in a metric name or value.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator


@dataclass
class Metrics:
    """
    In-process counters and gauges, safe to share between requests.

    Gauges keep the last observed value only.
    """

    counters: Dict[str, int] = field(default_factory=dict)
    gauges: Dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc(self, name: str, by: int = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + by

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self.gauges[name] = float(value)

    @contextmanager
    def timed(self, name: str, errors: str) -> Iterator[None]:
        """
        Record `<name>` latency in ms; count `errors` and re-raise on failure.
        """
        t0 = time.perf_counter()
        try:
            yield
        except Exception:
            self.inc(errors)
            raise
        self.observe(name, (time.perf_counter() - t0) * 1000.0)

    def record_check(self, equal: bool) -> None:
        self.inc("checks_total")
        if not equal:
            self.inc("checks_mismatch_total")

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "counters": dict(self.counters),
                "gauges": dict(self.gauges),
            }
