"""
TCP Port Scanner Module

Probes TCP ports with full connect attempts and classifies each port as
open, closed or filtered. Ports are scanned in fixed-size batches so that
no more than ``concurrency`` sockets are in flight at any moment.

Classification rules:

- connection established          -> open
- connection actively refused     -> closed
- timeout or any other socket error -> filtered

Usage:
    results = scan_ports("192.168.1.1", [22, 80, 443], timeout_ms=500)
    summary = calculate_scan_summary(results, duration_ms=812.0)
"""

from __future__ import annotations

import logging
import socket
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator, Sequence

from netwatch.constants import DEFAULT_CONCURRENCY, DEFAULT_SCAN_TIMEOUT_MS
from netwatch.errors import ValidationError

logger = logging.getLogger(__name__)


class PortState(Enum):
    """Enumeration of possible port states."""
    OPEN = "open"
    CLOSED = "closed"
    FILTERED = "filtered"


# Well-known port-to-service labels. Informative only, never probed.
COMMON_PORTS: dict[int, str] = {
    20: "FTP Data",
    21: "FTP Control",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    53: "DNS",
    67: "DHCP Server",
    68: "DHCP Client",
    69: "TFTP",
    80: "HTTP",
    110: "POP3",
    111: "RPCbind",
    119: "NNTP",
    123: "NTP",
    135: "MS RPC",
    137: "NetBIOS Name",
    138: "NetBIOS Datagram",
    139: "NetBIOS Session",
    143: "IMAP",
    161: "SNMP",
    162: "SNMP Trap",
    389: "LDAP",
    443: "HTTPS",
    445: "Microsoft-DS",
    465: "SMTPS",
    514: "Syslog",
    587: "SMTP Submission",
    636: "LDAPS",
    993: "IMAPS",
    995: "POP3S",
    1433: "MS SQL",
    1434: "MS SQL Monitor",
    1521: "Oracle DB",
    1723: "PPTP",
    3306: "MySQL",
    3389: "RDP",
    5432: "PostgreSQL",
    5900: "VNC",
    5901: "VNC-1",
    6379: "Redis",
    8080: "HTTP Proxy",
    8443: "HTTPS Alt",
    9200: "Elasticsearch",
    27017: "MongoDB",
}

UNKNOWN_SERVICE = "Unknown"

# Predefined port lists for the scan profiles.
QUICK_SCAN_PORTS: list[int] = [
    21, 22, 23, 25, 53, 80, 110, 111, 135, 139,
    143, 443, 445, 993, 995, 1723, 3306, 3389, 5900, 8080,
]

COMMON_SCAN_PORTS: list[int] = [
    20, 21, 22, 23, 25, 26, 37, 53, 67, 68, 69, 79, 80, 81, 82, 88, 100, 110,
    111, 113, 119, 123, 135, 137, 138, 139, 143, 161, 162, 177, 179, 199, 201,
    264, 389, 427, 443, 444, 445, 464, 465, 497, 500, 502, 512, 513, 514, 515,
    520, 523, 530, 543, 544, 548, 554, 587, 593, 623, 631, 636, 639, 666, 771,
    789, 873, 902, 993, 995, 1000, 1010, 1024, 1025, 1026, 1027, 1028, 1029,
    1030, 1080, 1099, 1194, 1433, 1434, 1521, 1701, 1720, 1723, 1755, 1883,
    1900, 2000, 2049, 2082, 2083, 2086, 2087, 2095, 2096, 2222, 2323,
]

# The "full" profile stops at the end of the well-known range.
FULL_SCAN_RANGE: range = range(1, 1025)

# Services that expect the client to speak first before sending a banner.
HTTP_LIKE_PORTS: frozenset[int] = frozenset({80, 8000, 8008, 8080, 8081, 8888})

BANNER_READ_TIMEOUT_S = 1.0
MAX_BANNER_LENGTH = 500


def get_service_name(port: int) -> str:
    """Return the well-known service label for a port."""
    return COMMON_PORTS.get(port, UNKNOWN_SERVICE)


def generate_port_range(start: int, end: int) -> list[int]:
    """Return every port from ``start`` to ``end`` inclusive."""
    return list(range(start, end + 1))


@dataclass(frozen=True)
class PortResult:
    """Result of probing a single port."""
    port: int
    status: PortState
    service: str | None = None
    response_time_ms: float | None = None
    banner: str | None = None

    def to_dict(self) -> dict:
        """Serialize to the wire shape, omitting unset optional fields."""
        result: dict = {
            "port": self.port,
            "status": self.status.value,
        }
        if self.service is not None:
            result["service"] = self.service
        if self.response_time_ms is not None:
            result["responseTime"] = round(self.response_time_ms, 2)
        if self.banner:
            result["banner"] = self.banner
        return result


@dataclass(frozen=True)
class ScanSummary:
    """Counts derived from a completed list of port results."""
    total_ports: int
    open_ports: int
    closed_ports: int
    filtered_ports: int
    duration_ms: float

    def to_dict(self) -> dict:
        return {
            "totalPorts": self.total_ports,
            "openPorts": self.open_ports,
            "closedPorts": self.closed_ports,
            "filteredPorts": self.filtered_ports,
            "duration": round(self.duration_ms, 2),
        }


def calculate_scan_summary(
    results: Sequence[PortResult], duration_ms: float
) -> ScanSummary:
    """Reduce port results to a summary. Every result counts exactly once."""
    counts = {state: 0 for state in PortState}
    for result in results:
        counts[result.status] += 1

    return ScanSummary(
        total_ports=len(results),
        open_ports=counts[PortState.OPEN],
        closed_ports=counts[PortState.CLOSED],
        filtered_ports=counts[PortState.FILTERED],
        duration_ms=duration_ms,
    )


def _grab_banner(sock: socket.socket, host: str, port: int) -> str:
    """
    Read whatever the service sends right after the handshake.

    HTTP-like services only answer after a request, so a HEAD probe is
    sent first on those ports.
    """
    try:
        if port in HTTP_LIKE_PORTS:
            probe = (
                f"HEAD / HTTP/1.1\r\n"
                f"Host: {host}\r\n"
                f"Connection: close\r\n\r\n"
            )
            sock.sendall(probe.encode())

        sock.settimeout(BANNER_READ_TIMEOUT_S)
        banner = sock.recv(1024).decode("utf-8", errors="replace").strip()

        if len(banner) > MAX_BANNER_LENGTH:
            banner = banner[:MAX_BANNER_LENGTH] + "..."
        return banner

    except OSError:
        return ""


@dataclass(frozen=True)
class ConnectOutcome:
    """Raw outcome of one TCP connect attempt."""
    status: PortState
    elapsed_ms: float
    banner: str | None = None
    error: str | None = None


def connect_tcp(
    host: str,
    port: int,
    timeout_ms: float,
    grab_banner: bool = False,
) -> ConnectOutcome:
    """
    Open one TCP connection to ``host:port`` and close it again.

    Only an active refusal counts as closed. Timeouts, unreachable routes
    and name resolution failures are all reported as filtered.
    """
    if timeout_ms <= 0:
        raise ValidationError(f"Timeout must be positive, got {timeout_ms}ms")

    start = time.monotonic()

    try:
        with socket.create_connection((host, port), timeout=timeout_ms / 1000) as sock:
            elapsed = (time.monotonic() - start) * 1000
            banner = _grab_banner(sock, host, port) if grab_banner else ""

    except ConnectionRefusedError as exc:
        return ConnectOutcome(
            status=PortState.CLOSED,
            elapsed_ms=(time.monotonic() - start) * 1000,
            error=str(exc) or "Connection refused",
        )

    except socket.timeout:
        return ConnectOutcome(
            status=PortState.FILTERED,
            elapsed_ms=float(timeout_ms),
            error="Connection timed out",
        )

    except OSError as exc:
        logger.debug("Connect to %s:%d failed: %s", host, port, exc)
        return ConnectOutcome(
            status=PortState.FILTERED,
            elapsed_ms=(time.monotonic() - start) * 1000,
            error=str(exc) or type(exc).__name__,
        )

    return ConnectOutcome(
        status=PortState.OPEN,
        elapsed_ms=elapsed,
        banner=banner or None,
    )


def probe_port(
    host: str,
    port: int,
    timeout_ms: float = DEFAULT_SCAN_TIMEOUT_MS,
    grab_banner: bool = False,
) -> PortResult:
    """
    Attempt one TCP connection to ``host:port`` and classify the outcome.

    Network failures never raise: every failure mode is expressed as a
    PortResult. The socket is owned by this call and closed on every path.

    Args:
        host: Hostname or IP address.
        port: Port number to probe (1-65535).
        timeout_ms: Upper bound on the connect attempt in milliseconds.
        grab_banner: Read a service banner after a successful connect.

    Returns:
        PortResult with state, service label and response time.

    Raises:
        ValidationError: If ``timeout_ms`` is not positive.
    """
    outcome = connect_tcp(host, port, timeout_ms, grab_banner=grab_banner)
    return PortResult(
        port=port,
        status=outcome.status,
        service=get_service_name(port),
        response_time_ms=outcome.elapsed_ms,
        banner=outcome.banner,
    )


def _batched(items: Sequence[int], size: int) -> Iterator[Sequence[int]]:
    for index in range(0, len(items), size):
        yield items[index:index + size]


Prober = Callable[[str, int, float], PortResult]
ProgressCallback = Callable[[int, int], None]


def scan_ports(
    host: str,
    ports: Iterable[int],
    timeout_ms: float = DEFAULT_SCAN_TIMEOUT_MS,
    concurrency: int = DEFAULT_CONCURRENCY,
    prober: Prober | None = None,
    on_batch: ProgressCallback | None = None,
) -> list[PortResult]:
    """
    Probe every port in ``ports`` and return results sorted by port.

    Duplicate ports are probed once. The remaining ports are split into
    consecutive batches of ``concurrency``; each batch runs concurrently
    and must fully resolve before the next one starts.

    Args:
        host: Hostname or IP address to scan.
        ports: Port numbers to probe.
        timeout_ms: Per-connection timeout in milliseconds.
        concurrency: Batch size and maximum number of in-flight probes.
        prober: Replacement for probe_port, called as
            ``prober(host, port, timeout_ms)``.
        on_batch: Called after each batch with (completed, total).

    Returns:
        List of PortResult sorted ascending by port number.
    """
    if concurrency < 1:
        raise ValidationError(f"Concurrency must be at least 1, got {concurrency}")
    if timeout_ms <= 0:
        raise ValidationError(f"Timeout must be positive, got {timeout_ms}ms")

    probe = prober or probe_port
    port_list = list(dict.fromkeys(ports))
    results: list[PortResult] = []

    if not port_list:
        return results

    with ThreadPoolExecutor(max_workers=min(concurrency, len(port_list))) as executor:
        for batch in _batched(port_list, concurrency):
            future_to_port = {
                executor.submit(probe, host, port, timeout_ms): port
                for port in batch
            }

            for future in as_completed(future_to_port):
                port = future_to_port[future]
                try:
                    results.append(future.result())
                except Exception:
                    logger.exception("Probe of %s:%d raised", host, port)
                    results.append(
                        PortResult(
                            port=port,
                            status=PortState.FILTERED,
                            service=get_service_name(port),
                        )
                    )

            if on_batch is not None:
                on_batch(len(results), len(port_list))

    results.sort(key=lambda r: r.port)
    return results


@dataclass
class ScanResult:
    """Aggregated results from a full port scan."""
    target: str
    scan_start: float
    scan_end: float = 0.0
    ports: list[PortResult] = field(default_factory=list)

    @property
    def open_ports(self) -> list[PortResult]:
        """Return only ports that are open."""
        return [p for p in self.ports if p.status == PortState.OPEN]

    @property
    def duration_ms(self) -> float:
        """Wall-clock scan duration in milliseconds."""
        return round((self.scan_end - self.scan_start) * 1000, 2)

    @property
    def summary(self) -> ScanSummary:
        return calculate_scan_summary(self.ports, self.duration_ms)

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON output."""
        return {
            "ip": self.target,
            "ports": [p.to_dict() for p in self.ports],
            **self.summary.to_dict(),
        }


class PortScanner:
    """
    Reusable TCP connect scanner bound to one target.

    Args:
        target: Hostname or IP address to scan.
        timeout_ms: Connection timeout per port in milliseconds.
        concurrency: Maximum number of probes in flight.
        grab_banners: Whether to read a banner from open ports.
    """

    def __init__(
        self,
        target: str,
        timeout_ms: float = DEFAULT_SCAN_TIMEOUT_MS,
        concurrency: int = DEFAULT_CONCURRENCY,
        grab_banners: bool = False,
    ) -> None:
        self.target = target
        self.timeout_ms = timeout_ms
        self.concurrency = concurrency
        self.grab_banners = grab_banners

    def scan_port(self, host: str, port: int, timeout_ms: float) -> PortResult:
        """Probe a single port with this scanner's banner setting."""
        return probe_port(host, port, timeout_ms, grab_banner=self.grab_banners)

    def scan(
        self,
        ports: Sequence[int],
        on_batch: ProgressCallback | None = None,
    ) -> ScanResult:
        """
        Execute a port scan against the target.

        Args:
            ports: Port numbers to probe.
            on_batch: Optional progress callback, see scan_ports.

        Returns:
            ScanResult containing all port results and timing.
        """
        logger.info(
            "Scanning %d ports on %s (timeout=%sms, concurrency=%d)",
            len(ports), self.target, self.timeout_ms, self.concurrency,
        )
        scan_result = ScanResult(target=self.target, scan_start=time.monotonic())

        scan_result.ports = scan_ports(
            self.target,
            ports,
            timeout_ms=self.timeout_ms,
            concurrency=self.concurrency,
            prober=self.scan_port,
            on_batch=on_batch,
        )
        scan_result.scan_end = time.monotonic()

        summary = scan_result.summary
        logger.info(
            "Scan of %s finished in %.0fms: %d open, %d closed, %d filtered",
            self.target, summary.duration_ms, summary.open_ports,
            summary.closed_ports, summary.filtered_ports,
        )
        return scan_result
