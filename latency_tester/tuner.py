"""
Adaptive concurrency tuning.

Keeps the aggregate probing load within what the network can sustain
without inflating measured latency through self-induced contention.

The tuner keeps a rolling window of recent outcome summaries and, every
time the window advances by a fixed step, decides whether to back off,
explore one step of extra concurrency, or hold. The per-probe timeout
follows the P95 latency of recent successes.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .models import OutcomeSummary, PlatformLimits, Recommendation

logger = logging.getLogger(__name__)


class Decision(Enum):
    """Outcome of one tuning evaluation."""
    HOLD = "hold"
    BACK_OFF = "back_off"
    EXPLORE = "explore"
    REVERT = "revert"


@dataclass(frozen=True)
class TunerConfig:
    """Knobs of the tuning algorithm."""
    window_size: int = 15
    step: int = 5
    failure_threshold: float = 0.10
    explore_failure_rate: float = 0.05
    rise_ratio: float = 1.10
    flat_ratio: float = 1.05
    timeout_margin: float = 2.0

    def __post_init__(self):
        if self.window_size < 2:
            raise ValueError("window_size must be at least 2")
        if not 1 <= self.step <= self.window_size:
            raise ValueError("step must lie between 1 and window_size")


@dataclass(frozen=True)
class WindowMetrics:
    """Summary of the current window used for one decision."""
    failure_rate: float
    early_mean_ms: Optional[float]
    late_mean_ms: Optional[float]
    p95_ms: Optional[float]

    def latency_rising(self, rise_ratio: float) -> bool:
        if self.early_mean_ms is None:
            return False
        if self.late_mean_ms is None:
            # Successes dried up in the later half
            return True
        return self.late_mean_ms > self.early_mean_ms * rise_ratio

    def latency_flat_or_falling(self, flat_ratio: float) -> bool:
        if self.early_mean_ms is None or self.late_mean_ms is None:
            return False
        return self.late_mean_ms <= self.early_mean_ms * flat_ratio


@dataclass(frozen=True)
class TunerSnapshot:
    """Read-only view of the tuner state."""
    recommendation: Recommendation
    window_size: int
    reports: int
    adjustments: int
    exploring: bool
    last_decision: Optional[Decision]


class ConcurrencyTuner:
    """
    Recommends concurrency and per-probe timeout from observed outcomes.

    ``report`` is the only mutator. All reads and writes go through one
    lock so ``recommend`` always observes a consistent window, whichever
    worker reported last.
    """

    def __init__(
        self,
        limits: PlatformLimits,
        initial_timeout: Optional[float] = None,
        config: Optional[TunerConfig] = None,
    ):
        """
        Initialize the tuner.

        Args:
            limits: Platform-derived concurrency ceiling and timeout bounds
            initial_timeout: Starting per-probe timeout in seconds
                (defaults to the platform maximum)
            config: Algorithm knobs
        """
        self.limits = limits
        self.config = config or TunerConfig()

        if initial_timeout is None:
            initial_timeout = limits.max_timeout

        self._lock = threading.Lock()
        self._window: deque[OutcomeSummary] = deque(maxlen=self.config.window_size)
        self._concurrency = limits.initial_concurrency
        self._timeout = self._clamp_timeout(initial_timeout)
        self._since_evaluation = 0
        self._reports = 0
        self._adjustments = 0
        self._explored_from: Optional[int] = None
        self._last_decision: Optional[Decision] = None

    def recommend(self) -> Recommendation:
        """Current concurrency level and per-probe timeout."""
        with self._lock:
            return Recommendation(concurrency=self._concurrency, timeout=self._timeout)

    def report(self, summary: OutcomeSummary) -> None:
        """Record one completed probe and re-evaluate when the window has advanced."""
        with self._lock:
            self._window.append(summary)
            self._reports += 1
            self._since_evaluation += 1

            if len(self._window) < self.config.window_size:
                return
            if self._since_evaluation < self.config.step:
                return

            self._since_evaluation = 0
            self._evaluate()

    def snapshot(self) -> TunerSnapshot:
        with self._lock:
            return TunerSnapshot(
                recommendation=Recommendation(self._concurrency, self._timeout),
                window_size=len(self._window),
                reports=self._reports,
                adjustments=self._adjustments,
                exploring=self._explored_from is not None,
                last_decision=self._last_decision,
            )

    def _window_metrics(self) -> WindowMetrics:
        samples = list(self._window)
        half = len(samples) // 2
        early = [s.latency_ms for s in samples[:half] if s.success]
        late = [s.latency_ms for s in samples[half:] if s.success]
        successes = early + late
        failures = sum(1 for s in samples if not s.success)

        return WindowMetrics(
            failure_rate=failures / len(samples),
            early_mean_ms=float(np.mean(early)) if early else None,
            late_mean_ms=float(np.mean(late)) if late else None,
            p95_ms=float(np.percentile(successes, 95)) if successes else None,
        )

    def _evaluate(self) -> None:
        metrics = self._window_metrics()
        cfg = self.config
        previous = (self._concurrency, self._timeout)

        rising = metrics.latency_rising(cfg.rise_ratio)
        failing = metrics.failure_rate > cfg.failure_threshold
        good = (
            metrics.failure_rate <= cfg.explore_failure_rate
            and metrics.latency_flat_or_falling(cfg.flat_ratio)
        )

        if self._explored_from is not None and (rising or failing):
            decision = Decision.REVERT
            self._concurrency = self._explored_from
            self._explored_from = None
            self._timeout = self._timeout_from(
                metrics,
                floor=self._timeout * (1.0 + metrics.failure_rate),
            )
        elif rising and failing:
            decision = Decision.BACK_OFF
            self._concurrency = max(1, self._concurrency - 1)
            self._explored_from = None
            self._timeout = self._timeout_from(
                metrics,
                floor=self._timeout * (1.0 + metrics.failure_rate),
            )
        elif good and self._concurrency < self.limits.max_concurrency:
            decision = Decision.EXPLORE
            self._explored_from = self._concurrency
            self._concurrency += 1
            self._timeout = self._timeout_from(metrics)
        else:
            decision = Decision.HOLD
            # A window that is not bad confirms the explored level
            self._explored_from = None
            self._timeout = self._timeout_from(metrics)

        self._last_decision = decision
        if (self._concurrency, self._timeout) != previous:
            self._adjustments += 1
            logger.info(
                "Tuner %s: concurrency %d -> %d, timeout %.2fs -> %.2fs "
                "(failure rate %.0f%%)",
                decision.value,
                previous[0],
                self._concurrency,
                previous[1],
                self._timeout,
                metrics.failure_rate * 100,
            )

    def _timeout_from(self, metrics: WindowMetrics, floor: Optional[float] = None) -> float:
        """P95-derived timeout, never below ``floor`` when one is given."""
        if metrics.p95_ms is None:
            candidate = self._timeout
        else:
            candidate = metrics.p95_ms / 1000 * self.config.timeout_margin
        if floor is not None:
            candidate = max(candidate, floor)
        return self._clamp_timeout(candidate)

    def _clamp_timeout(self, timeout: float) -> float:
        return min(self.limits.max_timeout, max(self.limits.min_timeout, timeout))
