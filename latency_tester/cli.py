"""
Command-line interface for the Network Latency Tester.

Every ``run`` option can also be supplied through an environment variable
(TARGET_URLS, DNS_SERVERS, DOH_PROVIDERS, TEST_COUNT, TIMEOUT_SECONDS,
ENABLE_COLOR); comma-separated lists are accepted everywhere.
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .errors import ConfigurationError
from .executor import TestExecutor
from .logging_config import configure_logging
from .models import RunConfig, TestReport
from .output import CSVOutput, JSONOutput, RichConsoleOutput
from .probe_client import HttpProbeClient
from .strategies import (
    DEFAULT_DNS_SERVERS,
    DEFAULT_DOH_PROVIDERS,
    DEFAULT_TARGET_URLS,
    MAX_ITERATIONS,
    MAX_TIMEOUT_SECONDS,
    MIN_ITERATIONS,
    MIN_TIMEOUT_SECONDS,
    PROVIDERS,
    build_config,
)
from .system import detect_platform_limits, get_platform, get_system_dns_servers

EXIT_OK = 0
EXIT_ALL_FAILED = 2


def create_progress_callback(console: Console):
    """Create a progress bar and the executor callback driving it."""
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
        transient=True,
    )

    task_id = None

    def callback(message: str, current: int, total: int):
        nonlocal task_id
        if task_id is None:
            task_id = progress.add_task(message, total=total)
        progress.update(task_id, description=message, completed=current, total=total)

    return progress, callback


async def execute(config: RunConfig, progress_callback=None) -> TestReport:
    """Run the configured tests and collect them into a report."""
    limits = detect_platform_limits(min_timeout=config.min_timeout, max_timeout=config.max_timeout)
    client = HttpProbeClient()
    executor = TestExecutor.from_config(
        config,
        probe_client=client,
        limits=limits,
        progress_callback=progress_callback,
    )

    started_at = datetime.now()
    try:
        runs = await executor.run_config(config)
    finally:
        await client.close()

    final = executor.tuner.recommend()
    return TestReport(
        started_at=started_at,
        completed_at=datetime.now(),
        iterations=config.iterations,
        runs=runs,
        final_concurrency=final.concurrency,
        final_timeout=final.timeout,
    )


def save_report(report: TestReport, output: str, raw_csv: bool) -> Path:
    """Write the report next to ``output``; JSON unless the suffix is .csv."""
    path = Path(output)
    if path.suffix.lower() == ".csv":
        CSVOutput.save(report, path, include_raw=raw_csv)
        return path
    if path.suffix.lower() != ".json":
        path = path.with_suffix(".json")
    JSONOutput.save(report, path)
    return path


@click.group()
@click.version_option(__version__)
def main():
    """
    Network Latency Tester - HTTP(S) latency under different DNS strategies.

    Measures DNS resolution, connect, TLS handshake, first byte and total
    time for every target URL with the system resolver, custom DNS servers
    and DNS-over-HTTPS providers.
    """
    pass


@main.command()
@click.option(
    "--url", "-u", "urls",
    multiple=True,
    envvar="TARGET_URLS",
    help="Target URL to test (repeatable or comma-separated)",
)
@click.option(
    "--dns-server", "-d", "dns_servers",
    multiple=True,
    envvar="DNS_SERVERS",
    help="DNS server IP or provider name (repeatable or comma-separated)",
)
@click.option(
    "--doh", "doh_providers",
    multiple=True,
    envvar="DOH_PROVIDERS",
    help="DNS-over-HTTPS URL or provider name (repeatable or comma-separated). "
         "Providers: " + ", ".join(PROVIDERS),
)
@click.option(
    "--count", "-c",
    type=click.IntRange(MIN_ITERATIONS, MAX_ITERATIONS),
    default=5,
    envvar="TEST_COUNT",
    show_default=True,
    help="Iterations per configuration",
)
@click.option(
    "--timeout", "-t",
    type=click.FloatRange(MIN_TIMEOUT_SECONDS, MAX_TIMEOUT_SECONDS),
    default=10.0,
    envvar="TIMEOUT_SECONDS",
    show_default=True,
    help="Initial per-probe timeout in seconds",
)
@click.option(
    "--min-timeout",
    type=float,
    default=1.0,
    show_default=True,
    help="Lowest timeout the adaptive tuner may choose",
)
@click.option(
    "--max-timeout",
    type=float,
    default=None,
    help="Highest timeout the adaptive tuner may choose (default: 3x --timeout)",
)
@click.option(
    "--delay",
    type=click.FloatRange(0, None),
    default=0.1,
    show_default=True,
    help="Pause between iterations of one configuration, in seconds",
)
@click.option(
    "--abandon-after",
    type=click.IntRange(0, None),
    default=3,
    show_default=True,
    help="Stop a configuration after this many consecutive timeouts/refusals (0 disables)",
)
@click.option(
    "--no-system-dns",
    is_flag=True,
    help="Do not test the operating system resolver",
)
@click.option(
    "--group-servers",
    is_flag=True,
    help="Test all --dns-server values as one ordered configuration",
)
@click.option(
    "--color/--no-color",
    default=True,
    envvar="ENABLE_COLOR",
    help="Enable colored output",
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    help="Output file path (JSON or CSV based on extension)",
)
@click.option(
    "--raw-csv",
    is_flag=True,
    help="Include per-iteration data in CSV output",
)
@click.option("--json", "as_json", is_flag=True, help="Output results as JSON to stdout")
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")
@click.option("--verbose", "-v", is_flag=True, help="Show tuning decisions and failure details")
@click.option("--debug", is_flag=True, help="Show per-probe debug logging")
def run(
    urls: tuple,
    dns_servers: tuple,
    doh_providers: tuple,
    count: int,
    timeout: float,
    min_timeout: float,
    max_timeout: Optional[float],
    delay: float,
    abandon_after: int,
    no_system_dns: bool,
    group_servers: bool,
    color: bool,
    output: Optional[str],
    raw_csv: bool,
    as_json: bool,
    quiet: bool,
    verbose: bool,
    debug: bool,
):
    """
    Run latency tests.

    Examples:

    \b
      # Defaults: example.com with system DNS, 8.8.8.8, 1.1.1.1 and two DoH providers
      latency-tester run

    \b
      # Specific URL and resolvers
      latency-tester run -u https://github.com -d 9.9.9.9 --doh cloudflare

    \b
      # Ten iterations, export to JSON
      latency-tester run -c 10 -o results.json
    """
    configure_logging(verbose=verbose, debug=debug, enable_color=color)

    try:
        config = build_config(
            target_urls=urls or DEFAULT_TARGET_URLS,
            dns_servers=dns_servers if (dns_servers or doh_providers) else DEFAULT_DNS_SERVERS,
            doh_providers=doh_providers if (dns_servers or doh_providers) else DEFAULT_DOH_PROVIDERS,
            iterations=count,
            timeout=timeout,
            min_timeout=min_timeout,
            max_timeout=max_timeout,
            include_system=not no_system_dns,
            group_servers=group_servers,
            iteration_delay=delay,
            abandon_threshold=abandon_after,
            enable_color=color,
            verbose=verbose,
            debug=debug,
        )
    except ConfigurationError as e:
        click.echo(f"Error: {e.user_message()}", err=True)
        sys.exit(e.exit_code)

    console = Console(no_color=not color, stderr=as_json)

    if quiet or as_json:
        report = asyncio.run(execute(config))
    else:
        progress, progress_callback = create_progress_callback(console)
        with progress:
            report = asyncio.run(execute(config, progress_callback))

    if as_json:
        click.echo(JSONOutput.format(report))
    elif not quiet:
        RichConsoleOutput.print(report, console=console, verbose=verbose)

    if output:
        path = save_report(report, output, raw_csv)
        if not quiet and not as_json:
            click.echo(f"Results saved to {path}")

    sys.exit(EXIT_OK if report.successful_probes else EXIT_ALL_FAILED)


@main.command()
def providers():
    """List the built-in DNS and DoH providers."""
    console = Console()
    table = Table(
        title="Built-in DNS Providers",
        box=box.ROUNDED,
        header_style="bold cyan",
    )

    table.add_column("Name", style="green")
    table.add_column("IP", style="cyan")
    table.add_column("DoH", style="magenta")
    table.add_column("Description")

    for name, provider in sorted(PROVIDERS.items()):
        table.add_row(
            name,
            provider.ipv4,
            provider.doh_url or "-",
            provider.description or "",
        )

    console.print(table)
    console.print()
    console.print("[dim]Default DNS servers:[/dim]", ", ".join(DEFAULT_DNS_SERVERS))
    console.print("[dim]Default DoH providers:[/dim]", ", ".join(DEFAULT_DOH_PROVIDERS))


@main.command()
def info():
    """Show platform limits and system DNS configuration."""
    limits = detect_platform_limits()

    click.echo(f"Platform: {get_platform()}")
    click.echo(f"CPU cores: {limits.cpu_cores}")
    click.echo(f"Initial concurrency: {limits.initial_concurrency}")
    click.echo(f"Concurrency ceiling: {limits.max_concurrency}")
    click.echo()

    servers = get_system_dns_servers()
    if servers:
        click.echo("System DNS Servers:")
        for server in servers:
            click.echo(f"  • {server}")
    else:
        click.echo("Could not detect system DNS servers")


if __name__ == "__main__":
    main()
