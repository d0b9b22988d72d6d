"""Tests for the data model."""

import pytest

from latency_tester.models import (
    ConfigurationRun,
    DnsStrategy,
    FailureKind,
    OutcomeSummary,
    PerformanceLevel,
    Phase,
    PhaseTimings,
    PlatformLimits,
    ProbeOutcome,
    ProbeTarget,
    StrategyKind,
)

from conftest import failure, success


def test_strategy_labels():
    assert DnsStrategy.system().label == "System DNS"
    assert DnsStrategy.custom(["8.8.8.8", "1.1.1.1"]).label == "Custom DNS (8.8.8.8, 1.1.1.1)"
    assert DnsStrategy.doh("https://dns.google/dns-query").label == "DoH (https://dns.google/dns-query)"


def test_strategy_variants_are_validated():
    with pytest.raises(ValueError):
        DnsStrategy.custom([])
    with pytest.raises(ValueError):
        DnsStrategy.doh("")
    assert DnsStrategy.custom(["9.9.9.9"]).kind is StrategyKind.CUSTOM


def test_strategies_are_hashable_and_comparable():
    assert DnsStrategy.custom(["1.1.1.1"]) == DnsStrategy.custom(("1.1.1.1",))
    assert len({DnsStrategy.system(), DnsStrategy.system()}) == 1


def test_probe_target_key():
    target = ProbeTarget("https://example.com", DnsStrategy.system())
    assert target.key == ("https://example.com", "System DNS")


def test_negative_phase_duration_rejected():
    with pytest.raises(ValueError):
        PhaseTimings(total_ms=10, connect_ms=-1)


def test_phase_lookup():
    timings = PhaseTimings(total_ms=10, resolution_ms=1, connect_ms=2, first_byte_ms=6)
    assert timings.get(Phase.TOTAL) == 10
    assert timings.get(Phase.CONNECT) == 2
    assert timings.get(Phase.TLS_HANDSHAKE) is None


def test_successful_outcome_requires_positive_total():
    with pytest.raises(ValueError):
        ProbeOutcome.success(PhaseTimings(total_ms=0), 200)


def test_failed_outcome():
    outcome = ProbeOutcome.failed(FailureKind.UNEXPECTED_STATUS, "HTTP 404", status_code=404)
    assert not outcome.is_success
    assert outcome.total_ms is None
    assert outcome.status_code == 404


def test_outcome_summary_uses_elapsed_time_for_failures():
    assert OutcomeSummary.from_outcome(success(42), elapsed_ms=99) == OutcomeSummary(42, True)
    assert OutcomeSummary.from_outcome(failure(), elapsed_ms=99) == OutcomeSummary(99, False)


def test_finalized_run_rejects_outcomes():
    run = ConfigurationRun(ProbeTarget("https://example.com", DnsStrategy.system()), 3)
    run.record(success(10))
    assert run.attempted == 1
    assert run.success_count == 1

    run.completed_at = run.started_at
    with pytest.raises(RuntimeError):
        run.record(success(10))


@pytest.mark.parametrize("kwargs", [
    {"initial_concurrency": 0},
    {"initial_concurrency": 20},
    {"min_timeout": 0},
    {"min_timeout": 40.0},
])
def test_platform_limits_validation(kwargs):
    values = dict(cpu_cores=4, initial_concurrency=8, max_concurrency=16, min_timeout=1.0, max_timeout=30.0)
    values.update(kwargs)
    with pytest.raises(ValueError):
        PlatformLimits(**values)


@pytest.mark.parametrize("latency_ms, level", [
    (0.5, PerformanceLevel.EXCELLENT),
    (49.9, PerformanceLevel.EXCELLENT),
    (50, PerformanceLevel.GOOD),
    (99.9, PerformanceLevel.GOOD),
    (100, PerformanceLevel.FAIR),
    (299.9, PerformanceLevel.FAIR),
    (300, PerformanceLevel.POOR),
    (999.9, PerformanceLevel.POOR),
    (1000, PerformanceLevel.VERY_POOR),
    (25000, PerformanceLevel.VERY_POOR),
])
def test_performance_level_bands(latency_ms, level):
    assert PerformanceLevel.from_latency(latency_ms) is level


def test_performance_level_description():
    assert PerformanceLevel.VERY_POOR.description == "Very Poor"
    assert PerformanceLevel.GOOD.style == "cyan"
