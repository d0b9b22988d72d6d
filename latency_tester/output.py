"""
Output formatting for latency test results.

Provides multiple output formats:
- JSON: Machine-readable full results
- CSV: Spreadsheet-compatible summary and per-iteration data
- Human-readable: Rich terminal tables and summaries
"""

import csv
import json
from io import StringIO
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import ConfigurationRun, FailureKind, PerformanceLevel, Phase, PhaseStats, TestReport
from .statistics import StatisticsEngine


def _round(value: Optional[float], digits: int = 3) -> Optional[float]:
    return None if value is None else round(value, digits)


def _phase_dict(stats: Optional[PhaseStats]) -> Optional[dict]:
    if stats is None:
        return None
    return {
        "count": stats.count,
        "mean": _round(stats.mean_ms),
        "min": _round(stats.min_ms),
        "max": _round(stats.max_ms),
        "stddev": _round(stats.stddev_ms),
        "median": _round(stats.median_ms),
        "p95": _round(stats.p95_ms),
        "p99": _round(stats.p99_ms),
    }


class JSONOutput:
    """JSON output formatter."""

    @staticmethod
    def run_dict(run: ConfigurationRun) -> dict:
        stats = run.statistics
        return {
            "config_name": run.config_name,
            "strategy": run.target.strategy.kind.value,
            "url": run.url,
            "iterations": {
                "configured": run.configured_iterations,
                "attempted": run.attempted,
                "successful": stats.successful if stats else 0,
                "abandoned_early": run.abandoned,
            },
            "success_rate_pct": round(stats.success_rate * 100, 2) if stats else 0.0,
            "latency_ms": {
                phase.value: _phase_dict(stats.phase(phase)) if stats else None
                for phase in Phase
            },
            "jitter_ms": _round(stats.jitter_ms) if stats else None,
            "performance_level": (
                stats.performance_level.value if stats and stats.performance_level else None
            ),
            "failures": {
                kind.value: stats.failure_counts.get(kind, 0) if stats else 0
                for kind in FailureKind
            },
        }

    @staticmethod
    def format(report: TestReport, indent: int = 2) -> str:
        """
        Format a test report as JSON.

        Args:
            report: TestReport to format
            indent: JSON indentation level

        Returns:
            JSON string
        """
        data = {
            "metadata": {
                "started_at": report.started_at.isoformat(),
                "completed_at": report.completed_at.isoformat(),
                "duration_seconds": round(report.duration_seconds, 3),
                "iterations": report.iterations,
                "total_probes": report.total_probes,
                "successful_probes": report.successful_probes,
                "final_concurrency": report.final_concurrency,
                "final_timeout_seconds": _round(report.final_timeout),
            },
            "configurations": [JSONOutput.run_dict(run) for run in report.runs],
        }

        comparison = StatisticsEngine.compare_runs(report.runs)
        winner = comparison["winner"]
        if winner:
            data["fastest"] = {
                "config_name": winner.config_name,
                "url": winner.url,
                "avg_total_ms": _round(winner.statistics.total.mean_ms),
                "improvements_pct": {
                    k: round(v, 2) for k, v in comparison["improvements"].items()
                },
            }

        return json.dumps(data, indent=indent)

    @staticmethod
    def save(report: TestReport, path: Path) -> None:
        """Save a test report to a JSON file."""
        with open(path, "w") as f:
            f.write(JSONOutput.format(report))


class CSVOutput:
    """CSV output formatter."""

    @staticmethod
    def format(report: TestReport) -> str:
        """
        Format one summary row per configuration run.

        Undefined statistics are written as empty cells.
        """
        output = StringIO()
        writer = csv.writer(output)

        header = [
            "config_name",
            "url",
            "configured",
            "attempted",
            "successful",
            "abandoned",
            "success_rate_pct",
        ]
        for phase in Phase:
            header.extend([f"{phase.value}_avg_ms", f"{phase.value}_min_ms", f"{phase.value}_max_ms"])
        header.extend(["total_stddev_ms", "total_p95_ms", "jitter_ms"])
        header.extend(kind.value for kind in FailureKind)
        writer.writerow(header)

        for run in report.runs:
            stats = run.statistics
            row = [
                run.config_name,
                run.url,
                run.configured_iterations,
                run.attempted,
                stats.successful,
                run.abandoned,
                round(stats.success_rate * 100, 2),
            ]
            for phase in Phase:
                ps = stats.phase(phase)
                row.extend(
                    ["", "", ""] if ps is None
                    else [round(ps.mean_ms, 3), round(ps.min_ms, 3), round(ps.max_ms, 3)]
                )
            total = stats.total
            row.extend([
                "" if total is None else round(total.stddev_ms, 3),
                "" if total is None else round(total.p95_ms, 3),
                "" if stats.jitter_ms is None else round(stats.jitter_ms, 3),
            ])
            row.extend(stats.failure_counts.get(kind, 0) for kind in FailureKind)
            writer.writerow(row)

        return output.getvalue()

    @staticmethod
    def format_raw(report: TestReport) -> str:
        """
        Format every individual iteration as CSV.

        Args:
            report: TestReport with finalized runs

        Returns:
            CSV string
        """
        output = StringIO()
        writer = csv.writer(output)

        writer.writerow([
            "timestamp",
            "config_name",
            "url",
            "iteration",
            "status",
            "http_status",
            "resolution_ms",
            "connect_ms",
            "tls_handshake_ms",
            "first_byte_ms",
            "total_ms",
            "error",
        ])

        for run in report.runs:
            for index, outcome in enumerate(run.outcomes, 1):
                timings = outcome.timings
                writer.writerow([
                    outcome.timestamp.isoformat(),
                    run.config_name,
                    run.url,
                    index,
                    "success" if outcome.is_success else outcome.failure.value,
                    outcome.status_code or "",
                    "" if timings is None else round(timings.resolution_ms, 3),
                    "" if timings is None else round(timings.connect_ms, 3),
                    "" if timings is None or timings.tls_handshake_ms is None
                    else round(timings.tls_handshake_ms, 3),
                    "" if timings is None else round(timings.first_byte_ms, 3),
                    "" if timings is None else round(timings.total_ms, 3),
                    outcome.error_message or "",
                ])

        return output.getvalue()

    @staticmethod
    def save(report: TestReport, path: Path, include_raw: bool = False) -> None:
        """Save a test report to CSV file(s)."""
        with open(path, "w", newline="") as f:
            f.write(CSVOutput.format(report))

        if include_raw:
            raw_path = path.with_suffix(".raw.csv")
            with open(raw_path, "w", newline="") as f:
                f.write(CSVOutput.format_raw(report))


def _ms(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.1f}"


def _mean(stats: Optional[PhaseStats]) -> str:
    return "-" if stats is None else f"{stats.mean_ms:.1f}"


def _level_cell(level: Optional[PerformanceLevel], value: Optional[float]) -> str:
    """Mean latency coloured by its performance level."""
    if level is None or value is None:
        return _ms(value)
    return f"[{level.style}]{value:.1f}[/{level.style}]"


class RichConsoleOutput:
    """Rich library console output with colors and tables."""

    @staticmethod
    def _rate_style(rate: float) -> str:
        if rate >= 0.95:
            return "green"
        if rate >= 0.5:
            return "yellow"
        return "red"

    @staticmethod
    def build_table(report: TestReport) -> Table:
        table = Table(
            title="Configuration Performance",
            box=box.ROUNDED,
            header_style="bold magenta",
        )

        table.add_column("Configuration", style="cyan")
        table.add_column("URL", style="dim")
        table.add_column("Runs", justify="right")
        table.add_column("Success", justify="right")
        table.add_column("Avg (ms)", justify="right")
        table.add_column("Min", justify="right")
        table.add_column("Max", justify="right")
        table.add_column("StdDev", justify="right")
        table.add_column("p95", justify="right", style="yellow")
        table.add_column("DNS", justify="right")
        table.add_column("Connect", justify="right")
        table.add_column("TLS", justify="right")
        table.add_column("TTFB", justify="right")

        for run in report.runs:
            stats = run.statistics
            total = stats.total
            runs_cell = f"{run.attempted}/{run.configured_iterations}"
            if run.abandoned:
                runs_cell += " [red](abandoned)[/red]"
            rate_style = RichConsoleOutput._rate_style(stats.success_rate)

            table.add_row(
                run.config_name,
                run.url,
                runs_cell,
                f"[{rate_style}]{stats.success_rate * 100:.1f}%[/{rate_style}]",
                _level_cell(stats.performance_level, total.mean_ms if total else None),
                _ms(total.min_ms if total else None),
                _ms(total.max_ms if total else None),
                _ms(total.stddev_ms if total else None),
                _ms(total.p95_ms if total else None),
                _mean(stats.phase(Phase.RESOLUTION)),
                _mean(stats.phase(Phase.CONNECT)),
                _mean(stats.phase(Phase.TLS_HANDSHAKE)),
                _mean(stats.phase(Phase.FIRST_BYTE)),
            )

        return table

    @staticmethod
    def build_iteration_table(run: ConfigurationRun) -> Table:
        """Per-iteration phase timings of one run."""
        table = Table(
            title=f"{run.config_name} @ {run.url}",
            box=box.SIMPLE,
            header_style="bold cyan",
        )

        table.add_column("#", justify="right")
        table.add_column("DNS (ms)", justify="right")
        table.add_column("Connect (ms)", justify="right")
        table.add_column("TLS (ms)", justify="right")
        table.add_column("TTFB (ms)", justify="right")
        table.add_column("Total (ms)", justify="right")
        table.add_column("Status")
        table.add_column("Time", style="dim")

        for index, outcome in enumerate(run.outcomes, 1):
            timings = outcome.timings
            if outcome.is_success:
                level = PerformanceLevel.from_latency(timings.total_ms)
                status = f"[{level.style}]{outcome.status_code} {level.description}[/{level.style}]"
            else:
                status = f"[red]{outcome.failure.value}[/red]"

            table.add_row(
                str(index),
                _ms(timings.resolution_ms if timings else None),
                _ms(timings.connect_ms if timings else None),
                _ms(timings.tls_handshake_ms if timings else None),
                _ms(timings.first_byte_ms if timings else None),
                _ms(timings.total_ms if timings else None),
                status,
                outcome.timestamp.strftime("%H:%M:%S.%f")[:-3],
            )

        return table

    @staticmethod
    def print(report: TestReport, console: Optional[Console] = None, verbose: bool = False) -> None:
        """Print a test report as rich tables and panels."""
        console = console or Console()

        console.print()
        console.print(Panel.fit(
            "[bold blue]NETWORK LATENCY TEST RESULTS[/bold blue]",
            border_style="blue",
        ))
        console.print()

        console.print(f"  [dim]Duration:[/dim] {report.duration_seconds:.1f}s | "
                      f"[dim]Iterations:[/dim] {report.iterations} | "
                      f"[dim]Probes:[/dim] {report.successful_probes}/{report.total_probes} succeeded")
        if report.final_concurrency is not None:
            console.print(f"  [dim]Final concurrency:[/dim] {report.final_concurrency} | "
                          f"[dim]Final timeout:[/dim] {report.final_timeout:.2f}s")
        console.print()

        console.print(RichConsoleOutput.build_table(report))
        console.print()

        if verbose:
            for run in report.runs:
                failures = {
                    kind.value: count
                    for kind, count in run.statistics.failure_counts.items()
                    if count
                }
                if failures:
                    details = ", ".join(f"{k}={v}" for k, v in failures.items())
                    console.print(f"  [yellow]{run.config_name} @ {run.url}:[/yellow] {details}")
            console.print()

            for run in report.runs:
                if run.outcomes:
                    console.print(RichConsoleOutput.build_iteration_table(run))
                    console.print()

            console.print("[bold yellow]Timing Recommendations[/bold yellow]")
            advice = StatisticsEngine.recommendations(report.runs)
            if not advice:
                console.print("  No specific timing optimizations needed - performance is acceptable.")
            for line in advice:
                console.print(f"  • {line}", markup=False)
            console.print()

        comparison = StatisticsEngine.compare_runs(report.runs)
        winner = comparison.get("winner")

        if winner:
            level = winner.statistics.performance_level
            console.print(Panel(
                f"[bold green]FASTEST: {winner.config_name}[/bold green] ({winner.url})\n"
                f"Average Latency: {winner.statistics.total.mean_ms:.1f}ms | "
                f"Performance: [{level.style}]{level.description}[/{level.style}] | "
                f"Success Rate: {winner.statistics.success_rate * 100:.1f}%",
                border_style="green",
            ))
        else:
            console.print(Panel(
                "[bold yellow]No successful probes - cannot determine the fastest configuration[/bold yellow]",
                border_style="yellow",
            ))

        console.print()
