"""Shared fixtures and fakes for the test suite."""

import asyncio
from collections import defaultdict

import pytest

from latency_tester.models import (
    DnsStrategy,
    FailureKind,
    PhaseTimings,
    PlatformLimits,
    ProbeOutcome,
)


def success(total_ms: float, tls_ms=5.0, status_code: int = 200) -> ProbeOutcome:
    """Successful outcome with plausible phase timings."""
    return ProbeOutcome.success(
        PhaseTimings(
            total_ms=total_ms,
            resolution_ms=total_ms * 0.1,
            connect_ms=total_ms * 0.2,
            tls_handshake_ms=tls_ms,
            first_byte_ms=total_ms * 0.5,
        ),
        status_code,
    )


def failure(kind: FailureKind = FailureKind.TIMEOUT) -> ProbeOutcome:
    return ProbeOutcome.failed(kind, error_message=kind.value)


class FakeProbeClient:
    """
    Scripted probe client.

    ``script`` maps ``(url, strategy label)`` to the outcomes returned for
    successive iterations; unscripted pairs always succeed in 10ms.
    """

    def __init__(self, script=None, delay: float = 0.0, raise_for=None):
        self.script = script or {}
        self.delay = delay
        self.raise_for = raise_for or set()
        self.calls = []
        self.timeouts = []
        self.active = 0
        self.max_active = 0
        self._active_by_key = defaultdict(int)
        self.max_active_per_pair = 0
        self._count_by_key = defaultdict(int)

    async def probe(self, url, strategy, timeout):
        key = (url, strategy.label)
        self.calls.append(key)
        self.timeouts.append(timeout)

        self.active += 1
        self._active_by_key[key] += 1
        self.max_active = max(self.max_active, self.active)
        self.max_active_per_pair = max(self.max_active_per_pair, self._active_by_key[key])
        try:
            await asyncio.sleep(self.delay)
            index = self._count_by_key[key]
            self._count_by_key[key] += 1

            if key in self.raise_for:
                raise RuntimeError("probe client bug")

            outcomes = self.script.get(key)
            if outcomes:
                return outcomes[min(index, len(outcomes) - 1)]
            return success(10.0)
        finally:
            self.active -= 1
            self._active_by_key[key] -= 1


@pytest.fixture
def limits():
    return PlatformLimits(
        cpu_cores=4,
        initial_concurrency=8,
        max_concurrency=16,
        min_timeout=1.0,
        max_timeout=30.0,
    )


@pytest.fixture
def strategies():
    return [
        DnsStrategy.system(),
        DnsStrategy.custom(["8.8.8.8"]),
        DnsStrategy.doh("https://cloudflare-dns.com/dns-query"),
    ]
