"""Tests for the multi-configuration test executor."""

import pytest

from latency_tester.errors import InvalidRunError
from latency_tester.executor import AbandonPolicy, TestExecutor, build_targets
from latency_tester.models import DnsStrategy, FailureKind, PlatformLimits, ProbeTarget, RunConfig
from latency_tester.tuner import ConcurrencyTuner

from conftest import FakeProbeClient, failure, success

URLS = ["https://example.com", "https://example.org"]


def make_executor(client, limits, initial_timeout=5.0, **kwargs):
    kwargs.setdefault("iteration_delay", 0.0)
    tuner = ConcurrencyTuner(limits, initial_timeout=initial_timeout)
    return TestExecutor(probe_client=client, tuner=tuner, **kwargs)


@pytest.mark.asyncio
async def test_one_run_per_pair(limits, strategies):
    client = FakeProbeClient()
    executor = make_executor(client, limits)
    targets = build_targets(URLS, strategies)

    runs = await executor.run(targets, iterations=3)

    assert len(runs) == 6
    assert [run.target for run in runs] == targets
    for run in runs:
        assert run.attempted == 3
        assert not run.abandoned
        assert run.statistics is not None
        assert run.statistics.success_rate == 1.0
        assert run.completed_at is not None
    assert len(client.calls) == 18


@pytest.mark.asyncio
async def test_statistics_follow_recorded_outcomes(limits):
    strategy = DnsStrategy.system()
    key = ("https://example.com", strategy.label)
    client = FakeProbeClient(script={key: [success(t) for t in [100, 110, 90, 105, 95]]})
    executor = make_executor(client, limits)

    [run] = await executor.run([ProbeTarget(key[0], strategy)], iterations=5)

    assert run.statistics.total.mean_ms == pytest.approx(100.0)
    assert [o.total_ms for o in run.outcomes] == [100, 110, 90, 105, 95]


@pytest.mark.asyncio
async def test_refused_pair_is_abandoned_early(limits):
    strategy = DnsStrategy.custom(["192.0.2.1"])
    key = ("https://example.com", strategy.label)
    client = FakeProbeClient(script={key: [failure(FailureKind.CONNECTION_REFUSED)]})
    executor = make_executor(client, limits)

    [run] = await executor.run([ProbeTarget(key[0], strategy)], iterations=10)

    assert run.attempted == 3
    assert run.abandoned
    assert run.statistics.success_rate == 0.0
    assert run.statistics.failure_counts[FailureKind.CONNECTION_REFUSED] == 3


@pytest.mark.asyncio
async def test_abandonment_disabled(limits):
    strategy = DnsStrategy.system()
    key = ("https://example.com", strategy.label)
    client = FakeProbeClient(script={key: [failure(FailureKind.TIMEOUT)]})
    executor = make_executor(client, limits, abandon_policy=AbandonPolicy(threshold=0))

    [run] = await executor.run([ProbeTarget(key[0], strategy)], iterations=6)

    assert run.attempted == 6
    assert not run.abandoned


@pytest.mark.asyncio
async def test_other_failures_do_not_abandon(limits):
    strategy = DnsStrategy.system()
    key = ("https://example.com", strategy.label)
    client = FakeProbeClient(script={key: [failure(FailureKind.UNEXPECTED_STATUS)]})
    executor = make_executor(client, limits)

    [run] = await executor.run([ProbeTarget(key[0], strategy)], iterations=5)

    assert run.attempted == 5
    assert not run.abandoned


@pytest.mark.asyncio
async def test_last_iteration_failure_is_not_abandonment(limits):
    strategy = DnsStrategy.system()
    key = ("https://example.com", strategy.label)
    client = FakeProbeClient(script={key: [failure(FailureKind.TIMEOUT)]})
    executor = make_executor(client, limits)

    [run] = await executor.run([ProbeTarget(key[0], strategy)], iterations=3)

    assert run.attempted == 3
    assert not run.abandoned


@pytest.mark.asyncio
async def test_failing_probe_client_is_recorded(limits, strategies):
    bad = ("https://example.com", strategies[1].label)
    client = FakeProbeClient(raise_for={bad})
    executor = make_executor(client, limits)

    runs = await executor.run(build_targets(URLS[:1], strategies), iterations=2)

    assert len(runs) == 3
    broken = runs[1]
    assert broken.attempted == 2
    assert all(o.failure is FailureKind.OTHER for o in broken.outcomes)
    assert broken.statistics.success_rate == 0.0
    assert runs[0].statistics.success_rate == 1.0


@pytest.mark.asyncio
async def test_dispatch_respects_concurrency(strategies):
    limits = PlatformLimits(cpu_cores=1, initial_concurrency=2, max_concurrency=2,
                            min_timeout=1.0, max_timeout=30.0)
    client = FakeProbeClient(delay=0.01)
    executor = make_executor(client, limits)

    runs = await executor.run(build_targets(URLS, strategies), iterations=2)

    assert len(runs) == 6
    assert client.max_active <= 2
    assert client.max_active_per_pair == 1


@pytest.mark.asyncio
async def test_iterations_within_a_pair_are_sequential(limits, strategies):
    client = FakeProbeClient(delay=0.005)
    executor = make_executor(client, limits)

    await executor.run(build_targets(URLS, strategies), iterations=4)

    assert client.max_active_per_pair == 1


@pytest.mark.asyncio
async def test_timeout_capped_by_ceiling(limits):
    client = FakeProbeClient()
    executor = make_executor(client, limits, initial_timeout=5.0)

    await executor.run(
        [ProbeTarget("https://example.com", DnsStrategy.system())],
        iterations=3,
        timeout_ceiling=0.5,
    )

    assert client.timeouts == [0.5, 0.5, 0.5]


@pytest.mark.asyncio
async def test_tuner_observes_every_probe(limits, strategies):
    client = FakeProbeClient()
    executor = make_executor(client, limits)

    await executor.run(build_targets(URLS, strategies), iterations=3)

    assert executor.tuner.snapshot().reports == 18


@pytest.mark.asyncio
async def test_progress_reaches_total_with_abandonment(limits):
    dead = DnsStrategy.custom(["192.0.2.1"])
    client = FakeProbeClient(script={
        ("https://example.com", dead.label): [failure(FailureKind.CONNECTION_REFUSED)],
    })
    updates = []
    executor = make_executor(
        client,
        limits,
        progress_callback=lambda message, current, total: updates.append((current, total)),
    )

    await executor.run(build_targets(["https://example.com"], [DnsStrategy.system(), dead]), iterations=10)

    assert updates[-1] == (20, 20)
    assert [current for current, _ in updates] == sorted(current for current, _ in updates)


@pytest.mark.asyncio
async def test_duplicate_pairs_are_merged(limits):
    client = FakeProbeClient()
    executor = make_executor(client, limits)
    target = ProbeTarget("https://example.com", DnsStrategy.system())

    runs = await executor.run([target, target], iterations=2)

    assert len(runs) == 1
    assert len(client.calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("iterations", [0, 101])
async def test_invalid_iteration_count(limits, iterations):
    client = FakeProbeClient()
    executor = make_executor(client, limits)

    with pytest.raises(InvalidRunError):
        await executor.run([ProbeTarget("https://example.com", DnsStrategy.system())], iterations)
    assert client.calls == []


@pytest.mark.asyncio
async def test_empty_run_rejected(limits):
    client = FakeProbeClient()
    executor = make_executor(client, limits)

    with pytest.raises(InvalidRunError):
        await executor.run([], iterations=3)
    assert client.calls == []


def test_build_targets_requires_urls_and_strategies(strategies):
    with pytest.raises(InvalidRunError):
        build_targets([], strategies)
    with pytest.raises(InvalidRunError):
        build_targets(URLS, [])

    targets = build_targets(URLS, strategies[:2])
    assert [(t.url, t.strategy.kind) for t in targets] == [
        (URLS[0], strategies[0].kind),
        (URLS[0], strategies[1].kind),
        (URLS[1], strategies[0].kind),
        (URLS[1], strategies[1].kind),
    ]


@pytest.mark.asyncio
async def test_run_config(limits, strategies):
    config = RunConfig(
        target_urls=URLS[:1],
        strategies=strategies,
        iterations=2,
        timeout=2.0,
        max_timeout=3.0,
        iteration_delay=0.0,
    )
    client = FakeProbeClient()
    executor = TestExecutor.from_config(config, probe_client=client, limits=limits)

    runs = await executor.run_config(config)

    assert len(runs) == 3
    assert all(timeout == 2.0 for timeout in client.timeouts)
