"""
Statistical analysis engine for latency test results.

Reduces the ordered outcomes of a configuration run into:
- Per-phase stats: min, max, mean, median, population stddev
- Percentiles: p95, p99
- Reliability: success rate, failure counts, jitter
- Cross-configuration rankings
"""

from typing import Optional, Sequence

import numpy as np

from .models import (
    ConfigurationRun,
    FailureKind,
    Phase,
    PhaseStats,
    ProbeOutcome,
    Statistics,
)


# Population standard deviation: iteration batches have a fixed size and are
# not treated as a sample of a larger population.
STDDEV_DDOF = 0


class StatisticsEngine:
    """Calculates statistics from probe outcomes."""

    @staticmethod
    def reduce(outcomes: Sequence[ProbeOutcome]) -> Statistics:
        """
        Aggregate the outcomes of one configuration run.

        Timing fields only consider successful outcomes, and each phase is
        reduced independently so a probe without a TLS phase does not skew
        the TLS numbers of its neighbours.

        Args:
            outcomes: Outcomes in iteration order

        Returns:
            Statistics; phases without samples map to None
        """
        successful = [o for o in outcomes if o.is_success]

        failure_counts = {kind: 0 for kind in FailureKind}
        for outcome in outcomes:
            if not outcome.is_success:
                failure_counts[outcome.failure] += 1

        phases: dict[Phase, Optional[PhaseStats]] = {}
        for phase in Phase:
            values = [
                o.timings.get(phase)
                for o in successful
                if o.timings.get(phase) is not None
            ]
            phases[phase] = StatisticsEngine.phase_stats(values)

        attempted = len(outcomes)
        success_rate = len(successful) / attempted if attempted else 0.0

        return Statistics(
            attempted=attempted,
            successful=len(successful),
            success_rate=success_rate,
            phases=phases,
            failure_counts=failure_counts,
            jitter_ms=StatisticsEngine.jitter([o.timings.total_ms for o in successful]),
        )

    @staticmethod
    def phase_stats(values: Sequence[float]) -> Optional[PhaseStats]:
        """Summarize one phase; None when there is nothing to summarize."""
        if not values:
            return None

        data = np.array(values, dtype=float)
        return PhaseStats(
            count=len(values),
            mean_ms=float(np.mean(data)),
            min_ms=float(np.min(data)),
            max_ms=float(np.max(data)),
            stddev_ms=float(np.std(data, ddof=STDDEV_DDOF)),
            median_ms=float(np.median(data)),
            p95_ms=float(np.percentile(data, 95)),
            p99_ms=float(np.percentile(data, 99)),
        )

    @staticmethod
    def jitter(latencies: Sequence[float]) -> Optional[float]:
        """Average absolute difference between consecutive latencies."""
        if len(latencies) < 2:
            return None
        return float(np.mean(np.abs(np.diff(np.array(latencies, dtype=float)))))

    @staticmethod
    def compare_runs(runs: Sequence[ConfigurationRun]) -> dict:
        """
        Compare configuration runs and determine rankings.

        Args:
            runs: Finalized configuration runs

        Returns:
            Dictionary with rankings, the fastest run and improvement
            percentages of the fastest run over every other one
        """
        valid = [
            r for r in runs
            if r.statistics is not None and r.statistics.total is not None
        ]
        if not valid:
            return {"rankings": {}, "winner": None, "improvements": {}}

        def avg(run: ConfigurationRun) -> float:
            return run.statistics.total.mean_ms

        by_latency = sorted(valid, key=avg)
        by_reliability = sorted(valid, key=lambda r: r.statistics.success_rate, reverse=True)

        max_lat = max(avg(r) for r in valid)
        min_lat = min(avg(r) for r in valid)

        # 60% latency, 40% reliability
        def composite_score(run: ConfigurationRun) -> float:
            if max_lat == min_lat:
                lat_score = 1.0
            else:
                lat_score = 1 - ((avg(run) - min_lat) / (max_lat - min_lat))
            return (lat_score * 0.6) + (run.statistics.success_rate * 0.4)

        by_composite = sorted(valid, key=composite_score, reverse=True)
        winner = by_latency[0]

        improvements = {}
        for run in by_latency[1:]:
            if avg(run) > 0:
                name = f"{run.config_name} @ {run.url}"
                improvements[name] = ((avg(run) - avg(winner)) / avg(run)) * 100

        return {
            "rankings": {
                "by_latency": [(r.config_name, r.url, avg(r)) for r in by_latency],
                "by_reliability": [(r.config_name, r.url, r.statistics.success_rate) for r in by_reliability],
                "by_composite": [(r.config_name, r.url, composite_score(r)) for r in by_composite],
            },
            "winner": winner,
            "improvements": improvements,
        }

    @staticmethod
    def recommendations(runs: Sequence[ConfigurationRun]) -> list[str]:
        """
        Derive timing advice from finalized runs.

        Args:
            runs: Finalized configuration runs

        Returns:
            Recommendation lines, empty when nothing stands out
        """
        measured = [
            r for r in runs
            if r.statistics is not None and r.statistics.total is not None
        ]
        advice = []

        if measured:
            overall = float(np.mean([r.statistics.total.mean_ms for r in measured]))
            if overall > 1000:
                advice.append("Overall response times are high (>1s) - consider network optimization")
            elif overall > 500:
                advice.append("Response times are above the optimal range (>500ms) - monitor network conditions")
            elif overall < 100:
                advice.append("Excellent response times (<100ms) - current configuration is optimal")

            resolution = [
                r.statistics.phase(Phase.RESOLUTION).mean_ms
                for r in measured
                if r.statistics.phase(Phase.RESOLUTION) is not None
            ]
            if resolution:
                avg_resolution = float(np.mean(resolution))
                if avg_resolution > 200:
                    advice.append("DNS resolution is slow (>200ms) - consider using faster DNS servers")
                elif avg_resolution > 100:
                    advice.append("DNS resolution could be optimized (>100ms) - test different DNS providers")

            winner = StatisticsEngine.compare_runs(measured)["winner"]
            advice.append(f"Use '{winner.config_name}' for best performance ({winner.url})")

        attempted = sum(r.attempted for r in runs)
        successful = sum(r.success_count for r in runs)
        if attempted and successful / attempted < 0.95:
            advice.append("Low success rate may indicate timeout issues - consider increasing timeout values")

        return advice


def reduce(outcomes: Sequence[ProbeOutcome]) -> Statistics:
    """Module-level shorthand for ``StatisticsEngine.reduce``."""
    return StatisticsEngine.reduce(outcomes)
