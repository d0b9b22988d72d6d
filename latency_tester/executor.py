"""
Test executor for multi-configuration latency tests.

Orchestrates test execution with support for:
- One task per (URL, DNS strategy) pair, iterations sequential within a pair
- Pair dispatch bounded by the adaptive tuner's concurrency recommendation
- Per-probe timeouts following the tuner, capped by a global ceiling
- Early abandonment of clearly dead configurations
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from .errors import InvalidRunError
from .models import (
    ConfigurationRun,
    DnsStrategy,
    FailureKind,
    OutcomeSummary,
    PlatformLimits,
    ProbeOutcome,
    ProbeTarget,
    RunConfig,
)
from .probe_client import ProbeClient
from .statistics import StatisticsEngine
from .strategies import MAX_ITERATIONS, MIN_ITERATIONS
from .tuner import ConcurrencyTuner, TunerConfig

logger = logging.getLogger(__name__)


# Type for progress callback
ProgressCallback = Callable[[str, int, int], None]

DEFAULT_ITERATION_DELAY = 0.1


@dataclass(frozen=True)
class AbandonPolicy:
    """
    When to stop issuing iterations for a pair.

    A pair is abandoned once its most recent ``threshold`` outcomes are all
    failures of one of ``kinds``. A threshold of 0 disables abandonment.
    """
    threshold: int = 3
    kinds: frozenset = frozenset({FailureKind.CONNECTION_REFUSED, FailureKind.TIMEOUT})

    def should_abandon(self, outcomes: Sequence[ProbeOutcome]) -> bool:
        if self.threshold <= 0 or len(outcomes) < self.threshold:
            return False
        return all(
            not o.is_success and o.failure in self.kinds
            for o in outcomes[-self.threshold:]
        )


class ConcurrencyGate:
    """
    Admission gate whose capacity is read from the tuner on every check.

    Shrinking the capacity never interrupts admitted pairs; it only holds
    back new admissions until enough pairs have finished.
    """

    def __init__(self, tuner: ConcurrencyTuner):
        self._tuner = tuner
        self._active = 0
        self._condition = asyncio.Condition()

    @property
    def active(self) -> int:
        return self._active

    def _has_capacity(self) -> bool:
        return self._active < self._tuner.recommend().concurrency

    async def acquire(self) -> None:
        async with self._condition:
            await self._condition.wait_for(self._has_capacity)
            self._active += 1

    async def release(self) -> None:
        async with self._condition:
            self._active -= 1
            self._condition.notify_all()

    async def refresh(self) -> None:
        """Wake waiters so they re-read the tuner's recommendation."""
        async with self._condition:
            self._condition.notify_all()


def build_targets(urls: Sequence[str], strategies: Sequence[DnsStrategy]) -> list[ProbeTarget]:
    """
    Cross every URL with every strategy (URL-major order).

    Raises:
        InvalidRunError: When there are no URLs or no strategies
    """
    if not urls:
        raise InvalidRunError("No target URLs to test")
    if not strategies:
        raise InvalidRunError("No DNS strategies to test")
    return [ProbeTarget(url=url, strategy=strategy) for url in urls for strategy in strategies]


class TestExecutor:
    """
    Runs timed probes for every (URL, DNS strategy) pair.

    Always returns exactly one ConfigurationRun per distinct input pair,
    including pairs where every iteration failed.
    """

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        probe_client: ProbeClient,
        tuner: ConcurrencyTuner,
        iteration_delay: float = DEFAULT_ITERATION_DELAY,
        abandon_policy: Optional[AbandonPolicy] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the executor.

        Args:
            probe_client: Client executing individual probes
            tuner: Adaptive concurrency tuner (owned by this executor)
            iteration_delay: Pause between iterations of one pair, seconds
            abandon_policy: Early abandonment rule for dead pairs
            progress_callback: Optional callback for progress updates
        """
        self.probe_client = probe_client
        self.tuner = tuner
        self.iteration_delay = iteration_delay
        self.abandon_policy = abandon_policy or AbandonPolicy()
        self.progress_callback = progress_callback

        self._probes_done = 0
        self._probes_planned = 0

    @classmethod
    def from_config(
        cls,
        config: RunConfig,
        probe_client: ProbeClient,
        limits: PlatformLimits,
        tuner_config: Optional[TunerConfig] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> "TestExecutor":
        """Create an executor and its tuner from a finished configuration."""
        tuner = ConcurrencyTuner(limits, initial_timeout=config.timeout, config=tuner_config)
        return cls(
            probe_client=probe_client,
            tuner=tuner,
            iteration_delay=config.iteration_delay,
            abandon_policy=AbandonPolicy(threshold=config.abandon_threshold),
            progress_callback=progress_callback,
        )

    async def run_config(self, config: RunConfig) -> list[ConfigurationRun]:
        """Run every URL x strategy pair of ``config``."""
        targets = build_targets(config.target_urls, config.strategies)
        return await self.run(targets, config.iterations, timeout_ceiling=config.max_timeout)

    async def run(
        self,
        targets: Sequence[ProbeTarget],
        iterations: int,
        timeout_ceiling: Optional[float] = None,
    ) -> list[ConfigurationRun]:
        """
        Execute all pairs.

        Args:
            targets: Pairs to test, in order
            iterations: Iterations per pair (1-100)
            timeout_ceiling: Upper bound for any single probe's timeout

        Returns:
            One finalized ConfigurationRun per distinct pair, in input order

        Raises:
            InvalidRunError: On structurally invalid input, before any probe
        """
        targets = self._validate(targets, iterations)

        runs = [ConfigurationRun(target=t, configured_iterations=iterations) for t in targets]
        self._probes_done = 0
        self._probes_planned = len(runs) * iterations

        gate = ConcurrencyGate(self.tuner)
        tasks: list[asyncio.Task] = []

        logger.info(
            "Starting %d configuration(s) x %d iteration(s), initial concurrency %d",
            len(runs), iterations, self.tuner.recommend().concurrency,
        )

        try:
            for run in runs:
                await gate.acquire()
                logger.debug(
                    "Dispatching %s via %s (%d active)",
                    run.url, run.config_name, gate.active,
                )
                tasks.append(asyncio.create_task(
                    self._execute_pair(run, iterations, timeout_ceiling, gate)
                ))
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        return runs

    def _validate(self, targets: Sequence[ProbeTarget], iterations: int) -> list[ProbeTarget]:
        if not targets:
            raise InvalidRunError("No (URL, DNS strategy) pairs to test")
        if not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
            raise InvalidRunError(
                f"Iteration count must be between {MIN_ITERATIONS} and {MAX_ITERATIONS}, got {iterations}"
            )

        unique: dict[tuple[str, str], ProbeTarget] = {}
        for target in targets:
            if target.key in unique:
                logger.warning("Ignoring duplicate pair %s via %s", target.url, target.strategy.label)
                continue
            unique[target.key] = target
        return list(unique.values())

    async def _execute_pair(
        self,
        run: ConfigurationRun,
        iterations: int,
        timeout_ceiling: Optional[float],
        gate: ConcurrencyGate,
    ) -> None:
        """Run the iterations of one pair sequentially, then finalize it."""
        try:
            for iteration in range(iterations):
                if iteration > 0 and self.iteration_delay > 0:
                    await asyncio.sleep(self.iteration_delay)

                outcome, elapsed_ms = await self._probe_once(run.target, timeout_ceiling)
                run.record(outcome)
                self.tuner.report(OutcomeSummary.from_outcome(outcome, elapsed_ms))
                await gate.refresh()

                if not outcome.is_success:
                    logger.debug(
                        "Iteration %d/%d for %s via %s failed: %s (%s)",
                        iteration + 1, iterations, run.url, run.config_name,
                        outcome.failure.value, outcome.error_message,
                    )
                self._advance(f"{run.config_name} @ {run.url}", 1)

                remaining = iterations - (iteration + 1)
                if remaining and self.abandon_policy.should_abandon(run.outcomes):
                    run.abandoned = True
                    logger.warning(
                        "Abandoning %s via %s after %d consecutive failures (%d/%d attempted)",
                        run.url, run.config_name, self.abandon_policy.threshold,
                        run.attempted, iterations,
                    )
                    self._advance(f"{run.config_name} @ {run.url} (abandoned)", remaining)
                    break
        finally:
            run.statistics = StatisticsEngine.reduce(run.outcomes)
            run.completed_at = datetime.now()
            await gate.release()

    async def _probe_once(
        self,
        target: ProbeTarget,
        timeout_ceiling: Optional[float],
    ) -> tuple[ProbeOutcome, float]:
        recommendation = self.tuner.recommend()
        timeout = recommendation.timeout
        if timeout_ceiling is not None:
            timeout = min(timeout, timeout_ceiling)

        start = time.perf_counter()
        try:
            outcome = await self.probe_client.probe(target.url, target.strategy, timeout)
        except Exception as e:
            logger.exception("Probe client raised for %s via %s", target.url, target.strategy.label)
            outcome = ProbeOutcome.failed(FailureKind.OTHER, error_message=str(e))
        elapsed_ms = (time.perf_counter() - start) * 1000
        return outcome, elapsed_ms

    def _advance(self, message: str, count: int) -> None:
        self._probes_done += count
        if self.progress_callback:
            self.progress_callback(message, self._probes_done, self._probes_planned)
