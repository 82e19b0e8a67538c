"""
Connectivity Test Module

Single-shot reachability tests behind one result shape. Each test kind is
a small frozen dataclass carrying its own parameters; run_test() dispatches
on the variant and always returns a TestResult, whatever the protocol.

Supported tests:

- TcpTest   can a TCP connection be established?
- HttpTest  does the URL answer with a 2xx status?
- DnsTest   does the name resolve to at least one record?
- PingTest  does the host answer ICMP echo (via the ping utility)?

DNS tests build their own resolver per call, so a custom nameserver on one
test never leaks into another test running concurrently.

Usage:
    result = run_test(HttpTest("https://example.com", method="HEAD"))
    result = run_test_by_name("dns", "example.com", options={"recordType": "MX"})
"""

from __future__ import annotations

import http.client
import logging
import socket
import ssl
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Sequence
from urllib.parse import urljoin, urlsplit

import dns.exception
import dns.resolver

from netwatch.constants import (
    DEFAULT_DNS_TIMEOUT_MS,
    DEFAULT_HTTP_TIMEOUT_MS,
    DEFAULT_PING_COUNT,
    DEFAULT_PING_TIMEOUT_MS,
    DEFAULT_TCP_TIMEOUT_MS,
    DNS_RECORD_TYPES,
    HTTP_METHODS,
    HTTP_USER_AGENT,
    MAX_HTTP_REDIRECTS,
    TEST_TYPES,
)
from netwatch.ping import ping_host
from netwatch.port_scanner import PortState, connect_tcp
from netwatch.validation import (
    ValidationError,
    is_valid_ip,
    is_valid_url,
    validate_ping_request,
    validate_port,
    validate_target,
    validate_test_timeout,
)

logger = logging.getLogger(__name__)

REDIRECT_STATUSES: frozenset[int] = frozenset({301, 302, 303, 307, 308})


@dataclass(frozen=True)
class TestDetails:
    """Protocol-specific fields. Only the ones a test sets are serialized."""
    # HTTP
    status_code: int | None = None
    headers: dict[str, str] | None = None
    content_length: int | None = None
    # DNS
    resolved_addresses: list[str] | None = None
    nameserver: str | None = None
    # TCP
    connected: bool | None = None
    banner: str | None = None
    # Ping
    packets_sent: int | None = None
    packets_received: int | None = None
    packet_loss: float | None = None
    min_latency: float | None = None
    max_latency: float | None = None
    avg_latency: float | None = None

    def to_dict(self) -> dict:
        """Serialize to camelCase keys, skipping unset fields."""
        keys = {
            "status_code": "statusCode",
            "headers": "headers",
            "content_length": "contentLength",
            "resolved_addresses": "resolvedAddresses",
            "nameserver": "nameserver",
            "connected": "connected",
            "banner": "banner",
            "packets_sent": "packetsSent",
            "packets_received": "packetsReceived",
            "packet_loss": "packetLoss",
            "min_latency": "minLatency",
            "max_latency": "maxLatency",
            "avg_latency": "avgLatency",
        }
        return {
            wire: getattr(self, attr)
            for attr, wire in keys.items()
            if getattr(self, attr) is not None
        }


@dataclass(frozen=True)
class TestResult:
    """Normalized outcome shared by every test kind."""
    success: bool
    response_time_ms: float
    error: str | None = None
    details: TestDetails | None = None

    def to_dict(self) -> dict:
        result: dict = {
            "success": self.success,
            "responseTime": round(self.response_time_ms, 2),
        }
        if self.error:
            result["error"] = self.error
        if self.details is not None:
            result["details"] = self.details.to_dict()
        return result


@dataclass(frozen=True)
class TcpTest:
    host: str
    port: int
    timeout_ms: float = DEFAULT_TCP_TIMEOUT_MS
    grab_banner: bool = False


@dataclass(frozen=True)
class HttpTest:
    url: str
    method: str = "GET"
    timeout_ms: float = DEFAULT_HTTP_TIMEOUT_MS
    follow_redirects: bool = True


@dataclass(frozen=True)
class DnsTest:
    hostname: str
    record_type: str = "A"
    nameserver: str | None = None
    timeout_ms: float = DEFAULT_DNS_TIMEOUT_MS


@dataclass(frozen=True)
class PingTest:
    host: str
    count: int = DEFAULT_PING_COUNT
    timeout_ms: int = DEFAULT_PING_TIMEOUT_MS


ConnectivityTest = TcpTest | HttpTest | DnsTest | PingTest


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


# --- TCP ---------------------------------------------------------------

def tcp_test(
    host: str,
    port: int,
    timeout_ms: float = DEFAULT_TCP_TIMEOUT_MS,
    grab_banner: bool = False,
) -> TestResult:
    """
    Test whether a TCP connection to ``host:port`` can be established.

    Refused and filtered ports both count as failures; the error text says
    which one it was.
    """
    outcome = connect_tcp(host, port, timeout_ms, grab_banner=grab_banner)
    connected = outcome.status == PortState.OPEN

    return TestResult(
        success=connected,
        response_time_ms=outcome.elapsed_ms,
        error=outcome.error,
        details=TestDetails(connected=connected, banner=outcome.banner),
    )


# --- HTTP --------------------------------------------------------------

def _open_http_connection(
    url: str, timeout_s: float
) -> tuple[http.client.HTTPConnection, str]:
    """Return a connection for ``url`` and the request target to send."""
    parts = urlsplit(url)
    if parts.scheme == "https":
        conn: http.client.HTTPConnection = http.client.HTTPSConnection(
            parts.hostname,
            port=parts.port,
            timeout=timeout_s,
            context=ssl.create_default_context(),
        )
    elif parts.scheme == "http":
        conn = http.client.HTTPConnection(
            parts.hostname, port=parts.port, timeout=timeout_s
        )
    else:
        raise ValueError(f"Unsupported URL scheme '{parts.scheme}'")

    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"
    return conn, path


def _collect_headers(response: http.client.HTTPResponse) -> dict[str, str]:
    headers: dict[str, str] = {}
    for name, value in response.getheaders():
        key = name.lower()
        headers[key] = f"{headers[key]}, {value}" if key in headers else value
    return headers


def _abort_connection(
    conn: http.client.HTTPConnection, expired: threading.Event
) -> None:
    """Deadline callback: unblock any read in progress on ``conn``."""
    expired.set()
    sock = conn.sock
    if sock is not None:
        # The socket may already be closed by the request thread
        with suppress(OSError):
            sock.shutdown(socket.SHUT_RDWR)


def _fetch(
    url: str, method: str, timeout_ms: float, follow_redirects: bool
) -> tuple[int, dict[str, str]]:
    """
    Issue the request, following redirects if asked, within ``timeout_ms``.

    The socket timeout only bounds each individual read, so a watchdog
    shuts the connection down once the overall deadline passes.

    Returns:
        (status code, lower-cased header map) of the final response.

    Raises:
        socket.timeout: When the deadline passes before a final response.
    """
    deadline = time.monotonic() + timeout_ms / 1000
    current_url = url
    current_method = method

    for _ in range(MAX_HTTP_REDIRECTS + 1):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise socket.timeout("Request timed out")

        conn, path = _open_http_connection(current_url, remaining)
        expired = threading.Event()
        watchdog = None
        try:
            conn.connect()
            watchdog = threading.Timer(
                max(deadline - time.monotonic(), 0.0),
                _abort_connection,
                (conn, expired),
            )
            watchdog.daemon = True
            watchdog.start()
            conn.request(
                current_method,
                path,
                headers={"User-Agent": HTTP_USER_AGENT, "Accept": "*/*"},
            )
            response = conn.getresponse()
            headers = _collect_headers(response)
        except (http.client.HTTPException, OSError):
            if expired.is_set():
                raise socket.timeout("Request timed out") from None
            raise
        finally:
            if watchdog is not None:
                watchdog.cancel()
            conn.close()

        if expired.is_set():
            raise socket.timeout("Request timed out")

        location = headers.get("location")
        if not (follow_redirects and response.status in REDIRECT_STATUSES and location):
            return response.status, headers

        current_url = urljoin(current_url, location)
        if response.status == 303 or (
            response.status in (301, 302) and current_method == "POST"
        ):
            current_method = "GET"
        logger.debug("Following %d redirect to %s", response.status, current_url)

    raise http.client.HTTPException(f"Exceeded {MAX_HTTP_REDIRECTS} redirects")


def http_test(
    url: str,
    method: str = "GET",
    timeout_ms: float = DEFAULT_HTTP_TIMEOUT_MS,
    follow_redirects: bool = True,
) -> TestResult:
    """
    Fetch ``url`` once and report whether it answered with a 2xx status.

    Network-level failures (timeouts, resolution errors, resets, TLS errors)
    produce a failed result carrying the error text.
    """
    start = time.monotonic()

    try:
        status, headers = _fetch(url, method.upper(), timeout_ms, follow_redirects)
    except socket.timeout:
        return TestResult(
            success=False,
            response_time_ms=_elapsed_ms(start),
            error="Request timed out",
        )
    except (http.client.HTTPException, OSError, ValueError) as exc:
        logger.debug("HTTP test of %s failed: %s", url, exc)
        return TestResult(
            success=False,
            response_time_ms=_elapsed_ms(start),
            error=str(exc) or type(exc).__name__,
        )

    content_length = headers.get("content-length", "")
    return TestResult(
        success=200 <= status < 300,
        response_time_ms=_elapsed_ms(start),
        details=TestDetails(
            status_code=status,
            headers=headers,
            content_length=int(content_length) if content_length.isdigit() else None,
        ),
    )


# --- DNS ---------------------------------------------------------------

def build_resolver(
    nameserver: str | None = None,
    timeout_ms: float = DEFAULT_DNS_TIMEOUT_MS,
) -> dns.resolver.Resolver:
    """
    Create a resolver owned by a single test.

    Without a nameserver the system configuration is loaded; with one,
    only that server is queried.
    """
    resolver = dns.resolver.Resolver(configure=nameserver is None)
    if nameserver is not None:
        resolver.nameservers = [nameserver]
    resolver.timeout = timeout_ms / 1000
    resolver.lifetime = timeout_ms / 1000
    return resolver


def _nameserver_label(resolver: dns.resolver.Resolver) -> str | None:
    """First configured server as text; newer dnspython stores Nameserver objects."""
    if not resolver.nameservers:
        return None
    first = resolver.nameservers[0]
    return str(getattr(first, "address", first))


def _render_records(record_type: str, answer: dns.resolver.Answer) -> list[str]:
    match record_type:
        case "A" | "AAAA":
            return [rdata.address for rdata in answer]
        case "CNAME":
            return [rdata.target.to_text(omit_final_dot=True) for rdata in answer]
        case "MX":
            return [
                f"{rdata.exchange.to_text(omit_final_dot=True)} (priority: {rdata.preference})"
                for rdata in answer
            ]
        case "TXT":
            return [
                b"".join(rdata.strings).decode("utf-8", errors="replace")
                for rdata in answer
            ]
        case _:
            raise ValidationError(f"Unsupported DNS record type '{record_type}'")


def dns_test(
    hostname: str,
    record_type: str = "A",
    nameserver: str | None = None,
    timeout_ms: float = DEFAULT_DNS_TIMEOUT_MS,
    resolver: dns.resolver.Resolver | None = None,
) -> TestResult:
    """
    Resolve one record type for ``hostname``.

    Args:
        hostname: Name to resolve.
        record_type: One of A, AAAA, CNAME, MX, TXT.
        nameserver: Query this server instead of the system resolver.
        timeout_ms: Overall resolution budget.
        resolver: Pre-built resolver, mainly for tests.

    Returns:
        TestResult; ``details.resolved_addresses`` is only set on success.
    """
    record_type = record_type.upper()
    if record_type not in DNS_RECORD_TYPES:
        raise ValidationError(
            f"Unsupported DNS record type '{record_type}'. "
            f"Use one of: {', '.join(DNS_RECORD_TYPES)}"
        )

    start = time.monotonic()
    used_nameserver = nameserver
    try:
        if resolver is None:
            resolver = build_resolver(nameserver, timeout_ms)
        used_nameserver = nameserver or _nameserver_label(resolver)
        answer = resolver.resolve(hostname, record_type, lifetime=timeout_ms / 1000)
        records = _render_records(record_type, answer)

    except dns.exception.DNSException as exc:
        logger.debug("DNS %s lookup of %s failed: %s", record_type, hostname, exc)
        return TestResult(
            success=False,
            response_time_ms=_elapsed_ms(start),
            error=str(exc) or type(exc).__name__,
            details=TestDetails(nameserver=used_nameserver),
        )

    return TestResult(
        success=len(records) > 0,
        response_time_ms=_elapsed_ms(start),
        details=TestDetails(resolved_addresses=records, nameserver=used_nameserver),
    )


# --- Ping --------------------------------------------------------------

def ping_test(
    host: str,
    count: int = DEFAULT_PING_COUNT,
    timeout_ms: int = DEFAULT_PING_TIMEOUT_MS,
) -> TestResult:
    """Express a ping run as a TestResult."""
    result = ping_host(host, count=count, timeout_ms=timeout_ms)
    return TestResult(
        success=result.alive,
        response_time_ms=result.time or 0.0,
        error=result.error,
        details=TestDetails(
            packets_sent=count,
            packets_received=len(result.times),
            packet_loss=result.packet_loss,
            min_latency=result.min_time,
            max_latency=result.max_time,
            avg_latency=result.avg_time,
        ),
    )


# --- Dispatch ----------------------------------------------------------

def run_test(test: ConnectivityTest) -> TestResult:
    """Run one connectivity test of any kind."""
    match test:
        case TcpTest(host=host, port=port, timeout_ms=timeout_ms, grab_banner=grab):
            result = tcp_test(host, port, timeout_ms, grab_banner=grab)
        case HttpTest(url=url, method=method, timeout_ms=timeout_ms,
                      follow_redirects=follow):
            result = http_test(url, method, timeout_ms, follow)
        case DnsTest(hostname=hostname, record_type=record_type,
                     nameserver=nameserver, timeout_ms=timeout_ms):
            result = dns_test(hostname, record_type, nameserver, timeout_ms)
        case PingTest(host=host, count=count, timeout_ms=timeout_ms):
            result = ping_test(host, count, timeout_ms)
        case _:
            raise ValidationError(f"Unknown connectivity test {test!r}")

    logger.debug("%s -> success=%s in %.1fms", test, result.success, result.response_time_ms)
    return result


def build_test(
    test_type: str,
    target: str,
    port: int | None = None,
    options: dict[str, Any] | None = None,
) -> ConnectivityTest:
    """
    Validate string-typed request fields and build the matching test.

    ``options`` uses the wire names: timeout, count, method,
    followRedirects, recordType, nameserver.

    Raises:
        ValidationError: On an unknown type or malformed parameters.
    """
    options = options or {}
    timeout = options.get("timeout")
    if timeout is not None and test_type != "ping":
        validate_test_timeout(timeout)

    match test_type:
        case "tcp":
            validate_target(target)
            if port is None:
                raise ValidationError("Valid port (1-65535) is required for TCP test")
            validate_port(port)
            return TcpTest(
                target, port, DEFAULT_TCP_TIMEOUT_MS if timeout is None else timeout
            )

        case "http":
            if not is_valid_url(target):
                raise ValidationError(f"Invalid URL for HTTP test: '{target}'")
            method = str(options.get("method", "GET")).upper()
            if method not in HTTP_METHODS:
                raise ValidationError(
                    f"Unsupported HTTP method '{method}'. Use one of: {', '.join(HTTP_METHODS)}"
                )
            return HttpTest(
                target,
                method=method,
                timeout_ms=DEFAULT_HTTP_TIMEOUT_MS if timeout is None else timeout,
                follow_redirects=bool(options.get("followRedirects", True)),
            )

        case "dns":
            validate_target(target)
            record_type = str(options.get("recordType", "A")).upper()
            if record_type not in DNS_RECORD_TYPES:
                raise ValidationError(
                    f"Unsupported DNS record type '{record_type}'. "
                    f"Use one of: {', '.join(DNS_RECORD_TYPES)}"
                )
            nameserver = options.get("nameserver")
            if nameserver is not None and not is_valid_ip(nameserver):
                raise ValidationError(f"Nameserver must be an IP address: '{nameserver}'")
            return DnsTest(
                target,
                record_type=record_type,
                nameserver=nameserver,
                timeout_ms=DEFAULT_DNS_TIMEOUT_MS if timeout is None else timeout,
            )

        case "ping":
            count = options.get("count", DEFAULT_PING_COUNT)
            timeout_ms = DEFAULT_PING_TIMEOUT_MS if timeout is None else timeout
            validate_ping_request(target, count, timeout_ms)
            return PingTest(target, count=count, timeout_ms=timeout_ms)

        case _:
            raise ValidationError(
                f"Invalid test type '{test_type}'. Must be one of: {', '.join(TEST_TYPES)}"
            )


def run_test_by_name(
    test_type: str,
    target: str,
    port: int | None = None,
    options: dict[str, Any] | None = None,
) -> TestResult:
    """String-typed entry point: validate, build and run a test."""
    return run_test(build_test(test_type, target, port, options))


# --- Helpers built on the tests ------------------------------------------

def is_host_reachable(
    host: str, port: int = 80, timeout_ms: float = DEFAULT_TCP_TIMEOUT_MS
) -> bool:
    """Return True if a TCP connection to ``host:port`` succeeds."""
    return tcp_test(host, port, timeout_ms).success


def check_endpoints(
    endpoints: Sequence[tuple[str, int]],
    timeout_ms: float = DEFAULT_TCP_TIMEOUT_MS,
    max_workers: int = 20,
) -> dict[str, TestResult]:
    """Run TCP tests against several endpoints concurrently, keyed "host:port"."""
    if not endpoints:
        return {}

    with ThreadPoolExecutor(max_workers=min(max_workers, len(endpoints))) as executor:
        futures = {
            f"{host}:{port}": executor.submit(tcp_test, host, port, timeout_ms)
            for host, port in endpoints
        }
        return {key: future.result() for key, future in futures.items()}


@dataclass
class ConnectivitySuiteResult:
    """Combined outcome of the TCP, HTTP and DNS checks for one host."""
    tcp: TestResult
    http: TestResult | None = None
    dns: TestResult | None = None
    total_time_ms: float = 0.0

    @property
    def overall_success(self) -> bool:
        return all(
            result.success
            for result in (self.tcp, self.http, self.dns)
            if result is not None
        )

    def to_dict(self) -> dict:
        return {
            "tcp": self.tcp.to_dict(),
            "http": self.http.to_dict() if self.http else None,
            "dns": self.dns.to_dict() if self.dns else None,
            "overallSuccess": self.overall_success,
            "totalTime": round(self.total_time_ms, 2),
        }


def run_connectivity_suite(
    host: str,
    tcp_port: int = 80,
    http_url: str | None = None,
    dns_hostname: str | None = None,
) -> ConnectivitySuiteResult:
    """
    Run a TCP test against ``host`` plus optional HTTP and DNS tests, all
    concurrently. Overall success requires every test that ran to pass.
    """
    start = time.monotonic()

    with ThreadPoolExecutor(max_workers=3) as executor:
        tcp_future = executor.submit(tcp_test, host, tcp_port)
        http_future = executor.submit(http_test, http_url) if http_url else None
        dns_future = executor.submit(dns_test, dns_hostname) if dns_hostname else None

        suite = ConnectivitySuiteResult(
            tcp=tcp_future.result(),
            http=http_future.result() if http_future else None,
            dns=dns_future.result() if dns_future else None,
        )

    suite.total_time_ms = _elapsed_ms(start)
    return suite
