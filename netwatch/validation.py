"""
Input validation and response shaping.

Everything that crosses into the probing core is checked here first:
targets must be IP literals or hostnames, ports must lie in 1-65535 and
timeouts must respect the caller policy bounds. Malformed input raises
ValidationError before any network I/O happens.

Results leaving the core are wrapped in a stable envelope:

    {"success": true, "data": {...}}
    {"success": false, "error": "..."}
"""

from __future__ import annotations

import ipaddress
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable
from urllib.parse import urlsplit

from netwatch.constants import (
    MAX_PING_COUNT,
    MAX_PING_TIMEOUT_MS,
    MAX_PORT,
    MAX_PORTS_PER_SCAN,
    MAX_SCAN_TIMEOUT_MS,
    MAX_TEST_TIMEOUT_MS,
    MIN_PING_COUNT,
    MIN_PING_TIMEOUT_MS,
    MIN_PORT,
    MIN_SCAN_TIMEOUT_MS,
    MIN_TEST_TIMEOUT_MS,
)
from netwatch.errors import ValidationError
from netwatch.port_scanner import (
    COMMON_SCAN_PORTS,
    FULL_SCAN_RANGE,
    QUICK_SCAN_PORTS,
    ScanResult,
    generate_port_range,
)


# RFC 1123 label: alphanumerics and inner hyphens, 1-63 characters
_HOSTNAME_LABEL_RE = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")

SCAN_PROFILES: tuple[str, ...] = ("quick", "common", "full")


def is_valid_ip(value: str) -> bool:
    """Return True for an IPv4 or IPv6 literal."""
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def is_valid_hostname(value: str) -> bool:
    """Return True for a syntactically valid DNS hostname."""
    if not value or len(value) > 253:
        return False
    name = value[:-1] if value.endswith(".") else value
    labels = name.split(".")
    if all(label.isdigit() for label in labels):
        # Dotted numbers that failed IP parsing are not hostnames either
        return False
    return all(_HOSTNAME_LABEL_RE.match(label) for label in labels)


def is_valid_target(value: str) -> bool:
    """Return True for an IP literal or hostname."""
    if not isinstance(value, str):
        return False
    return is_valid_ip(value) or is_valid_hostname(value)


def is_valid_port(port: Any) -> bool:
    """Return True for an integer port in 1-65535."""
    return (
        isinstance(port, int)
        and not isinstance(port, bool)
        and MIN_PORT <= port <= MAX_PORT
    )


def is_valid_url(url: str) -> bool:
    """Return True for an absolute http(s) URL with a valid host."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(host) and is_valid_target(host)


def validate_target(target: str) -> str:
    """Return ``target`` unchanged or raise ValidationError."""
    if not target or not is_valid_target(target):
        raise ValidationError(f"Invalid IP address or hostname: '{target}'")
    return target


def validate_port(port: Any) -> int:
    """Return ``port`` unchanged or raise ValidationError."""
    if not is_valid_port(port):
        raise ValidationError(
            f"Invalid port {port!r}: must be an integer between {MIN_PORT} and {MAX_PORT}"
        )
    return port


def validate_timeout(timeout_ms: float, minimum: float, maximum: float) -> float:
    """Check a timeout against caller policy bounds."""
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)):
        raise ValidationError(f"Timeout must be a number, got {timeout_ms!r}")
    if not minimum <= timeout_ms <= maximum:
        raise ValidationError(
            f"Timeout must be between {minimum}ms and {maximum}ms"
        )
    return timeout_ms


def validate_scan_timeout(timeout_ms: float) -> float:
    return validate_timeout(timeout_ms, MIN_SCAN_TIMEOUT_MS, MAX_SCAN_TIMEOUT_MS)


def validate_test_timeout(timeout_ms: float) -> float:
    return validate_timeout(timeout_ms, MIN_TEST_TIMEOUT_MS, MAX_TEST_TIMEOUT_MS)


def validate_ping_request(host: str, count: int, timeout_ms: float) -> None:
    """Reject ping parameters outside the caller policy bounds."""
    validate_target(host)
    if isinstance(count, bool) or not isinstance(count, int) or not (
        MIN_PING_COUNT <= count <= MAX_PING_COUNT
    ):
        raise ValidationError(
            f"Count must be between {MIN_PING_COUNT} and {MAX_PING_COUNT}"
        )
    validate_timeout(timeout_ms, MIN_PING_TIMEOUT_MS, MAX_PING_TIMEOUT_MS)


def resolve_scan_ports(
    ports: Iterable[int] | None = None,
    start_port: int | None = None,
    end_port: int | None = None,
    scan_type: str = "quick",
) -> list[int]:
    """
    Decide which ports a scan request covers.

    Explicit ports take precedence over a range, which takes precedence
    over a named profile. Explicit lists and ranges are limited to
    MAX_PORTS_PER_SCAN ports.

    Returns:
        Sorted list of unique port numbers.
    """
    if ports is not None:
        port_list = list(ports)
        if not all(is_valid_port(p) for p in port_list):
            raise ValidationError("Invalid port number(s) provided")
        unique = sorted(set(port_list))
        if len(unique) > MAX_PORTS_PER_SCAN:
            raise ValidationError(
                f"Cannot scan more than {MAX_PORTS_PER_SCAN} ports per scan"
            )
        return unique

    if start_port is not None or end_port is not None:
        if not (is_valid_port(start_port) and is_valid_port(end_port)):
            raise ValidationError("Invalid port range")
        if start_port > end_port:
            raise ValidationError(
                f"Invalid port range: start {start_port} is after end {end_port}"
            )
        if end_port - start_port + 1 > MAX_PORTS_PER_SCAN:
            raise ValidationError(
                f"Port range cannot exceed {MAX_PORTS_PER_SCAN} ports per scan"
            )
        return generate_port_range(start_port, end_port)

    match scan_type:
        case "quick":
            return sorted(QUICK_SCAN_PORTS)
        case "common":
            return sorted(set(COMMON_SCAN_PORTS))
        case "full":
            return list(FULL_SCAN_RANGE)
        case _:
            raise ValidationError(
                f"Unknown scan type '{scan_type}'. Use one of: {', '.join(SCAN_PROFILES)}"
            )


def parse_ports(port_string: str) -> list[int]:
    """
    Parse a port specification string into a list of port numbers.

    Supports comma-separated values, ranges, and combinations:
        "22,80,443"     -> [22, 80, 443]
        "1-100"         -> [1, 2, ..., 100]
        "22,80,100-110" -> [22, 80, 100, 101, ..., 110]

    Raises:
        ValidationError: On any malformed part or out-of-range port.

    Returns:
        Sorted list of unique port numbers.
    """
    ports: set[int] = set()

    for raw_part in port_string.split(","):
        part = raw_part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                start, end = (int(p) for p in part.split("-", 1))
            else:
                start = end = int(part)
        except ValueError as exc:
            raise ValidationError(f"Invalid port specification '{part}'") from exc

        if not (is_valid_port(start) and is_valid_port(end)) or start > end:
            raise ValidationError(f"Invalid port specification '{part}'")
        ports.update(range(start, end + 1))

    if not ports:
        raise ValidationError("No ports specified")
    return sorted(ports)


def _new_identity() -> dict[str, str]:
    return {
        "id": uuid.uuid4().hex,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def success_response(data: Any) -> dict:
    return {"success": True, "data": data}


def error_response(message: str) -> dict:
    return {"success": False, "error": message}


def shape_scan_response(scan_result: ScanResult) -> dict:
    """Envelope a finished scan, stamping it with an id and timestamp."""
    data = {**_new_identity(), **scan_result.to_dict()}
    return success_response(data)


def shape_test_response(
    test_type: str,
    target: str,
    result: Any,
    port: int | None = None,
) -> dict:
    """
    Envelope a connectivity test result.

    ``result`` is any object exposing ``success`` and ``to_dict()``, in
    practice a connectivity.TestResult.
    """
    data: dict = {
        **_new_identity(),
        "type": test_type,
        "target": target,
        "status": "success" if result.success else "failure",
    }
    if port is not None:
        data["port"] = port
    data.update(result.to_dict())
    return success_response(data)
