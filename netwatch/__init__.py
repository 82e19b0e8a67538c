"""
netwatch: A network diagnostics toolkit.

Checks host reachability with the system ping utility, scans TCP ports
for open/closed/filtered state with bounded concurrency, and runs
single-shot TCP, HTTP and DNS connectivity tests that all report through
one normalized result shape.

DISCLAIMER: Only scan hosts and networks you own or have explicit
permission to test.

License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

from netwatch.port_scanner import (
    PortResult,
    PortScanner,
    PortState,
    ScanSummary,
    calculate_scan_summary,
    probe_port,
    scan_ports,
)
from netwatch.ping import PingResult, ping_host
from netwatch.connectivity import (
    DnsTest,
    HttpTest,
    PingTest,
    TcpTest,
    TestResult,
    run_test,
    run_test_by_name,
)
from netwatch.validation import ValidationError
from netwatch.report_generator import ReportGenerator

__all__ = [
    "DnsTest",
    "HttpTest",
    "PingResult",
    "PingTest",
    "PortResult",
    "PortScanner",
    "PortState",
    "ReportGenerator",
    "ScanSummary",
    "TcpTest",
    "TestResult",
    "ValidationError",
    "calculate_scan_summary",
    "ping_host",
    "probe_port",
    "run_test",
    "run_test_by_name",
    "scan_ports",
]
