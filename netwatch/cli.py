"""
CLI Interface Module

Command-line front end for netwatch, built on argparse subcommands with
Rich tables for human-readable output.

Subcommands:
    scan    - TCP port scanning
    ping    - ICMP reachability via the system ping utility
    test    - Single connectivity test (tcp, http, dns, ping)
    suite   - TCP + optional HTTP and DNS checks against one host

Usage:
    netwatch scan 192.168.1.1 --ports 22,80,443
    netwatch scan example.com --profile common --timeout 500
    netwatch ping 192.168.1.1 -n 4
    netwatch test http https://example.com --method HEAD
    netwatch test dns example.com --record-type MX --nameserver 1.1.1.1
    netwatch suite example.com --http-url https://example.com
"""

from __future__ import annotations

import argparse
import logging

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from netwatch import __version__
from netwatch.connectivity import (
    ConnectivitySuiteResult,
    TestResult,
    build_test,
    run_connectivity_suite,
    run_test,
)
from netwatch.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_PING_COUNT,
    DEFAULT_PING_TIMEOUT_MS,
    DEFAULT_SCAN_TIMEOUT_MS,
    DNS_RECORD_TYPES,
    HTTP_METHODS,
    TEST_TYPES,
)
from netwatch.ping import PingResult, ping_host
from netwatch.port_scanner import PortScanner, PortState, ScanResult
from netwatch.report_generator import ReportGenerator
from netwatch.validation import (
    SCAN_PROFILES,
    ValidationError,
    error_response,
    is_valid_url,
    parse_ports,
    resolve_scan_ports,
    shape_scan_response,
    shape_test_response,
    success_response,
    validate_ping_request,
    validate_port,
    validate_scan_timeout,
    validate_target,
)

logger = logging.getLogger("netwatch")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

DISCLAIMER = (
    "[bold red]DISCLAIMER:[/bold red] Only scan hosts you own or have "
    "explicit permission to test."
)

STATE_STYLES: dict[PortState, str] = {
    PortState.OPEN: "bold green",
    PortState.CLOSED: "red",
    PortState.FILTERED: "yellow",
}


def get_console() -> Console:
    """Console for banners, progress and errors."""
    return Console(stderr=True)


def get_output_console() -> Console:
    """Console for results."""
    return Console()


def setup_logging(debug: bool = False, quiet: bool = False) -> None:
    """Route log records through Rich on stderr."""
    if debug:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=get_console(), show_path=debug)],
        force=True,
    )


def print_banner() -> None:
    """Print the application banner and disclaimer."""
    console = get_console()
    console.print(
        Panel(
            f"[bold cyan]netwatch[/bold cyan] [dim]v{__version__} | Network Diagnostics[/dim]",
            border_style="cyan",
            padding=(0, 2),
        )
    )
    console.print(f"{DISCLAIMER}\n")


def build_parser() -> argparse.ArgumentParser:
    """
    Construct the complete CLI argument parser with all subcommands.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="netwatch",
        description="netwatch: ping, port scan and connectivity tests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"netwatch v{__version__}",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress banner and informational log output",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    # Output flags shared by every subcommand
    output_parent = argparse.ArgumentParser(add_help=False)
    output_parent.add_argument(
        "--json",
        action="store_true",
        help="Print the result envelope as JSON instead of a table",
    )
    output_parent.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        help="Also write a JSON report to this file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # === SCAN subcommand ===
    scan_parser = subparsers.add_parser(
        "scan",
        parents=[output_parent],
        help="TCP port scan a target host",
        description="Classify TCP ports as open, closed or filtered.",
    )
    scan_parser.add_argument("target", help="Target hostname or IP address")
    scan_parser.add_argument(
        "-p", "--ports",
        type=str,
        default=None,
        help="Comma-separated ports or ranges (e.g. '22,80,443' or '1-1024')",
    )
    scan_parser.add_argument("--start", type=int, default=None, help="First port of a range")
    scan_parser.add_argument("--end", type=int, default=None, help="Last port of a range")
    scan_parser.add_argument(
        "--profile",
        choices=SCAN_PROFILES,
        default="quick",
        help="Predefined port list when no ports are given (default: quick)",
    )
    scan_parser.add_argument(
        "-t", "--timeout",
        type=int,
        default=DEFAULT_SCAN_TIMEOUT_MS,
        help=f"Connection timeout per port in ms (default: {DEFAULT_SCAN_TIMEOUT_MS})",
    )
    scan_parser.add_argument(
        "-c", "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help=f"Maximum probes in flight (default: {DEFAULT_CONCURRENCY})",
    )
    scan_parser.add_argument(
        "--banners",
        action="store_true",
        help="Read service banners from open ports",
    )
    scan_parser.add_argument(
        "--show-closed",
        action="store_true",
        help="Include closed ports in the table",
    )

    # === PING subcommand ===
    ping_parser = subparsers.add_parser(
        "ping",
        parents=[output_parent],
        help="Ping a host with the system ping utility",
    )
    ping_parser.add_argument("host", help="Target hostname or IP address")
    ping_parser.add_argument(
        "-n", "--count",
        type=int,
        default=DEFAULT_PING_COUNT,
        help=f"Number of echo requests (default: {DEFAULT_PING_COUNT})",
    )
    ping_parser.add_argument(
        "-t", "--timeout",
        type=int,
        default=DEFAULT_PING_TIMEOUT_MS,
        help=f"Wait per reply in ms (default: {DEFAULT_PING_TIMEOUT_MS})",
    )

    # === TEST subcommand ===
    test_parser = subparsers.add_parser(
        "test",
        parents=[output_parent],
        help="Run one connectivity test",
        description="Run a TCP, HTTP, DNS or ping connectivity test.",
    )
    test_parser.add_argument("type", choices=TEST_TYPES, help="Test type")
    test_parser.add_argument("target", help="Host, URL (http) or hostname (dns)")
    test_parser.add_argument("--port", type=int, default=None, help="Port for TCP tests")
    test_parser.add_argument(
        "-t", "--timeout",
        type=int,
        default=None,
        help="Timeout in ms (default depends on the test type)",
    )
    test_parser.add_argument(
        "--method",
        choices=HTTP_METHODS,
        default="GET",
        help="HTTP method (default: GET)",
    )
    test_parser.add_argument(
        "--no-redirects",
        action="store_true",
        help="Do not follow HTTP redirects",
    )
    test_parser.add_argument(
        "--record-type",
        choices=DNS_RECORD_TYPES,
        default="A",
        help="DNS record type (default: A)",
    )
    test_parser.add_argument(
        "--nameserver",
        default=None,
        help="Query this DNS server instead of the system resolver",
    )
    test_parser.add_argument(
        "-n", "--count",
        type=int,
        default=DEFAULT_PING_COUNT,
        help="Echo requests for ping tests",
    )

    # === SUITE subcommand ===
    suite_parser = subparsers.add_parser(
        "suite",
        parents=[output_parent],
        help="TCP check plus optional HTTP and DNS checks",
    )
    suite_parser.add_argument("host", help="Target hostname or IP address")
    suite_parser.add_argument("--tcp-port", type=int, default=80, help="TCP port (default: 80)")
    suite_parser.add_argument("--http-url", default=None, help="URL for the HTTP check")
    suite_parser.add_argument("--dns-hostname", default=None, help="Name for the DNS check")

    return parser


def _emit_json(envelope: dict) -> None:
    get_output_console().print_json(data=envelope, default=str)


def _write_report(path: str, title: str, fill) -> None:
    report = ReportGenerator(title=title)
    fill(report)
    written = report.generate_json(path)
    get_console().print(f"[green]Report saved:[/green] {written}")


def _print_scan_table(result: ScanResult, show_closed: bool) -> None:
    console = get_output_console()
    table = Table(
        title=f"Scan Results: {result.target}",
        box=box.ROUNDED,
        border_style="cyan",
    )
    table.add_column("Port", style="bold", width=8)
    table.add_column("State", width=10)
    table.add_column("Service", width=18)
    table.add_column("Banner", max_width=50)
    table.add_column("Time", width=10, justify="right")

    for port_result in result.ports:
        if port_result.status == PortState.CLOSED and not show_closed:
            continue
        style = STATE_STYLES[port_result.status]
        table.add_row(
            str(port_result.port),
            f"[{style}]{port_result.status.value}[/{style}]",
            port_result.service or "-",
            (port_result.banner or "-")[:50],
            f"{port_result.response_time_ms or 0:.1f}ms",
        )

    summary = result.summary
    console.print(table)
    console.print(
        f"\n[dim]Scanned {summary.total_ports} ports in {summary.duration_ms:.0f}ms | "
        f"{summary.open_ports} open, {summary.closed_ports} closed, "
        f"{summary.filtered_ports} filtered[/dim]"
    )


def cmd_scan(args: argparse.Namespace) -> int:
    """Execute the port scan subcommand."""
    validate_target(args.target)
    validate_scan_timeout(args.timeout)
    if args.concurrency < 1:
        raise ValidationError("Concurrency must be at least 1")

    ports = resolve_scan_ports(
        ports=parse_ports(args.ports) if args.ports else None,
        start_port=args.start,
        end_port=args.end,
        scan_type=args.profile,
    )

    scanner = PortScanner(
        target=args.target,
        timeout_ms=args.timeout,
        concurrency=args.concurrency,
        grab_banners=args.banners,
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[bold cyan]{task.description}"),
        BarColumn(),
        TextColumn("[bold]{task.completed}/{task.total}"),
        console=get_console(),
        transient=True,
    ) as progress:
        task = progress.add_task(f"Scanning {args.target}...", total=len(ports))
        result = scanner.scan(
            ports,
            on_batch=lambda done, total: progress.update(task, completed=done),
        )

    envelope = shape_scan_response(result)
    if args.json:
        _emit_json(envelope)
    else:
        _print_scan_table(result, args.show_closed)

    if args.output:
        _write_report(args.output, f"Port Scan: {args.target}", lambda r: r.add_scan(envelope))
    return EXIT_OK


def _print_ping(result: PingResult) -> None:
    console = get_output_console()
    state = "[bold green]alive[/bold green]" if result.alive else "[bold red]unreachable[/bold red]"
    lines = [
        f"[bold]Host:[/bold] {result.host} ({state})",
        f"[bold]Packet loss:[/bold] {result.packet_loss:g}%",
        f"[bold]RTT min/avg/max:[/bold] "
        f"{result.min_time:.2f} / {result.avg_time:.2f} / {result.max_time:.2f} ms",
        f"[bold]Samples:[/bold] {', '.join(f'{t:g}' for t in result.times) or '-'}",
    ]
    if result.error:
        lines.append(f"[bold red]Error:[/bold red] {result.error}")
    console.print(Panel("\n".join(lines), title="Ping", border_style="cyan"))


def cmd_ping(args: argparse.Namespace) -> int:
    """Execute the ping subcommand."""
    validate_ping_request(args.host, args.count, args.timeout)

    with get_console().status(f"Pinging {args.host}..."):
        result = ping_host(args.host, count=args.count, timeout_ms=args.timeout)

    if args.json:
        _emit_json(success_response(result.to_dict()))
    else:
        _print_ping(result)

    if args.output:
        _write_report(args.output, f"Ping: {args.host}", lambda r: r.add_ping(result))
    return EXIT_OK if result.alive else EXIT_FAILURE


def _print_test_result(title: str, result: TestResult) -> None:
    console = get_output_console()
    state = "[bold green]success[/bold green]" if result.success else "[bold red]failure[/bold red]"
    lines = [
        f"[bold]Status:[/bold] {state}",
        f"[bold]Response time:[/bold] {result.response_time_ms:.1f}ms",
    ]
    if result.error:
        lines.append(f"[bold red]Error:[/bold red] {result.error}")

    details = result.details.to_dict() if result.details else {}
    for key, value in details.items():
        if isinstance(value, list):
            value = "\n    ".join(str(v) for v in value) or "-"
        elif isinstance(value, dict):
            value = f"{len(value)} entries"
        lines.append(f"[bold]{key}:[/bold] {value}")

    console.print(Panel("\n".join(lines), title=title, border_style="cyan"))


def cmd_test(args: argparse.Namespace) -> int:
    """Execute a single connectivity test."""
    options: dict = {
        "method": args.method,
        "followRedirects": not args.no_redirects,
        "recordType": args.record_type,
        "count": args.count,
    }
    if args.timeout is not None:
        options["timeout"] = args.timeout
    if args.nameserver:
        options["nameserver"] = args.nameserver

    test = build_test(args.type, args.target, port=args.port, options=options)

    with get_console().status(f"Running {args.type} test against {args.target}..."):
        result = run_test(test)

    envelope = shape_test_response(args.type, args.target, result, port=args.port)
    if args.json:
        _emit_json(envelope)
    else:
        _print_test_result(f"{args.type.upper()} test: {args.target}", result)

    if args.output:
        _write_report(args.output, f"Connectivity Test: {args.target}", lambda r: r.add_test(envelope))
    return EXIT_OK if result.success else EXIT_FAILURE


def _print_suite(host: str, suite: ConnectivitySuiteResult) -> None:
    console = get_output_console()
    table = Table(title=f"Connectivity Suite: {host}", box=box.ROUNDED, border_style="cyan")
    table.add_column("Test", style="bold")
    table.add_column("Result")
    table.add_column("Time", justify="right")
    table.add_column("Error", max_width=50)

    for name, result in (("tcp", suite.tcp), ("http", suite.http), ("dns", suite.dns)):
        if result is None:
            table.add_row(name, "[dim]skipped[/dim]", "-", "-")
            continue
        state = "[green]success[/green]" if result.success else "[red]failure[/red]"
        table.add_row(name, state, f"{result.response_time_ms:.1f}ms", result.error or "-")

    console.print(table)
    overall = "[bold green]PASS[/bold green]" if suite.overall_success else "[bold red]FAIL[/bold red]"
    console.print(f"\nOverall: {overall} in {suite.total_time_ms:.0f}ms")


def cmd_suite(args: argparse.Namespace) -> int:
    """Execute the connectivity suite subcommand."""
    validate_target(args.host)
    validate_port(args.tcp_port)
    if args.http_url and not is_valid_url(args.http_url):
        raise ValidationError(f"Invalid URL for HTTP test: '{args.http_url}'")
    if args.dns_hostname:
        validate_target(args.dns_hostname)

    with get_console().status(f"Testing {args.host}..."):
        suite = run_connectivity_suite(
            args.host,
            tcp_port=args.tcp_port,
            http_url=args.http_url,
            dns_hostname=args.dns_hostname,
        )

    envelope = success_response(suite.to_dict())
    if args.json:
        _emit_json(envelope)
    else:
        _print_suite(args.host, suite)

    if args.output:
        _write_report(args.output, f"Connectivity Suite: {args.host}", lambda r: r.add_test(envelope))
    return EXIT_OK if suite.overall_success else EXIT_FAILURE


def main(argv: list[str] | None = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv).

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug, quiet=args.quiet)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    if not args.quiet and not getattr(args, "json", False):
        print_banner()

    try:
        match args.command:
            case "scan":
                return cmd_scan(args)
            case "ping":
                return cmd_ping(args)
            case "test":
                return cmd_test(args)
            case "suite":
                return cmd_suite(args)
            case _:
                parser.print_help()
                return EXIT_USAGE
    except ValidationError as exc:
        logger.debug("Rejected input: %s", exc)
        if getattr(args, "json", False):
            _emit_json(error_response(str(exc)))
        else:
            get_console().print(f"[bold red]Error:[/bold red] {exc}")
        return EXIT_USAGE
