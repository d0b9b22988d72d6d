"""Tests for report formatting."""

import csv
import json
from datetime import datetime, timedelta
from io import StringIO

from rich.console import Console

from latency_tester.models import ConfigurationRun, DnsStrategy, FailureKind, ProbeTarget, TestReport
from latency_tester.output import CSVOutput, JSONOutput, RichConsoleOutput
from latency_tester.statistics import reduce

from conftest import failure, success


def finalized(strategy, outcomes, iterations=None, abandoned=False):
    run = ConfigurationRun(
        target=ProbeTarget("https://example.com", strategy),
        configured_iterations=iterations or len(outcomes),
    )
    for outcome in outcomes:
        run.record(outcome)
    run.abandoned = abandoned
    run.statistics = reduce(run.outcomes)
    run.completed_at = run.started_at + timedelta(seconds=1)
    return run


def make_report():
    started = datetime(2024, 1, 1, 12, 0, 0)
    runs = [
        finalized(DnsStrategy.system(), [success(40), success(60)]),
        finalized(DnsStrategy.custom(["1.1.1.1"]), [success(20), failure(), success(30)]),
        finalized(
            DnsStrategy.custom(["192.0.2.1"]),
            [failure(FailureKind.CONNECTION_REFUSED)] * 3,
            iterations=10,
            abandoned=True,
        ),
    ]
    return TestReport(
        started_at=started,
        completed_at=started + timedelta(seconds=5),
        iterations=10,
        runs=runs,
        final_concurrency=8,
        final_timeout=2.5,
    )


def test_json_output():
    data = json.loads(JSONOutput.format(make_report()))

    assert data["metadata"]["total_probes"] == 8
    assert data["metadata"]["successful_probes"] == 4
    assert data["metadata"]["final_concurrency"] == 8
    assert len(data["configurations"]) == 3

    dead = data["configurations"][2]
    assert dead["iterations"] == {
        "configured": 10,
        "attempted": 3,
        "successful": 0,
        "abandoned_early": True,
    }
    assert dead["success_rate_pct"] == 0.0
    assert all(value is None for value in dead["latency_ms"].values())
    assert dead["failures"]["connection_refused"] == 3

    system = data["configurations"][0]
    assert system["latency_ms"]["total"]["mean"] == 50.0

    assert data["fastest"]["config_name"] == "Custom DNS (1.1.1.1)"
    assert data["fastest"]["avg_total_ms"] == 25.0


def test_json_save(tmp_path):
    path = tmp_path / "results.json"
    JSONOutput.save(make_report(), path)
    assert json.loads(path.read_text())["metadata"]["iterations"] == 10


def test_csv_summary_has_one_row_per_run():
    rows = list(csv.DictReader(StringIO(CSVOutput.format(make_report()))))

    assert [row["config_name"] for row in rows] == [
        "System DNS",
        "Custom DNS (1.1.1.1)",
        "Custom DNS (192.0.2.1)",
    ]
    assert rows[0]["total_avg_ms"] == "50.0"
    assert rows[2]["total_avg_ms"] == ""
    assert rows[2]["abandoned"] == "True"
    assert rows[2]["connection_refused"] == "3"


def test_csv_raw_rows(tmp_path):
    path = tmp_path / "results.csv"
    CSVOutput.save(make_report(), path, include_raw=True)

    raw = list(csv.DictReader(StringIO((tmp_path / "results.raw.csv").read_text())))
    assert len(raw) == 8
    assert raw[3]["status"] == "timeout"
    assert raw[3]["total_ms"] == ""
    assert raw[0]["status"] == "success"


def test_console_output_mentions_abandoned_and_fastest():
    buffer = StringIO()
    console = Console(file=buffer, width=250, no_color=True)

    RichConsoleOutput.print(make_report(), console=console, verbose=True)

    text = buffer.getvalue()
    assert "abandoned" in text
    assert "FASTEST: Custom DNS (1.1.1.1)" in text
    assert "connection_refused=3" in text


def test_console_output_without_successes():
    report = make_report()
    report.runs = report.runs[2:]
    buffer = StringIO()

    RichConsoleOutput.print(report, console=Console(file=buffer, width=250))

    assert "No successful probes" in buffer.getvalue()


def test_json_performance_level():
    data = json.loads(JSONOutput.format(make_report()))

    assert [c["performance_level"] for c in data["configurations"]] == ["good", "excellent", None]


def test_verbose_console_lists_iterations_and_recommendations():
    buffer = StringIO()
    console = Console(file=buffer, width=250, no_color=True)

    RichConsoleOutput.print(make_report(), console=console, verbose=True)

    text = buffer.getvalue()
    assert "Custom DNS (1.1.1.1) @ https://example.com" in text
    assert "200 Excellent" in text
    assert "Timing Recommendations" in text
    assert "Use 'Custom DNS (1.1.1.1)' for best performance" in text
    assert "Low success rate" in text
    assert "Performance: Excellent" in text


def test_iteration_table_rows():
    run = make_report().runs[1]
    table = RichConsoleOutput.build_iteration_table(run)

    assert table.row_count == 3
