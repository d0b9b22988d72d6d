"""
Network Latency Tester - HTTP(S) latency under different DNS strategies.

Measures resolution, connect, TLS handshake, first-byte and total time
for target URLs with the system resolver, custom DNS servers and
DNS-over-HTTPS providers, with adaptive concurrency.
"""

__version__ = "1.0.0"
__author__ = "Network Latency Tester Team"

from .executor import AbandonPolicy, TestExecutor, build_targets
from .models import (
    ConfigurationRun,
    DnsStrategy,
    FailureKind,
    PhaseTimings,
    ProbeOutcome,
    ProbeTarget,
    Statistics,
)
from .probe_client import HttpProbeClient, ProbeClient
from .statistics import StatisticsEngine
from .tuner import ConcurrencyTuner, TunerConfig

__all__ = [
    "__version__",
    "AbandonPolicy",
    "ConcurrencyTuner",
    "ConfigurationRun",
    "DnsStrategy",
    "FailureKind",
    "HttpProbeClient",
    "PhaseTimings",
    "ProbeClient",
    "ProbeOutcome",
    "ProbeTarget",
    "Statistics",
    "StatisticsEngine",
    "TestExecutor",
    "TunerConfig",
    "build_targets",
]
