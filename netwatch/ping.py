"""
Ping Runner Module

Measures host reachability by running the operating system's ping
utility and parsing its text output into round-trip statistics.

The parsers match the English output of iputils/BSD ping and of the
Windows ping.exe (plus the Spanish loss phrase on Windows). Other locales
fall back to the sample-derived statistics, or to a failed result.

Usage:
    result = ping_host("192.168.1.1", count=4, timeout_ms=2000)
    if result.alive:
        print(result.avg_time)
"""

from __future__ import annotations

import logging
import math
import platform
import re
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Sequence

from netwatch.constants import (
    DEFAULT_PING_COUNT,
    DEFAULT_PING_TIMEOUT_MS,
    PING_PROCESS_MARGIN_MS,
)
from netwatch.validation import ValidationError, is_valid_target

logger = logging.getLogger(__name__)

# Per-reply samples, e.g. "time=10.5 ms" (Unix) or "time=10ms" / "time<1ms" (Windows)
UNIX_TIME_RE = re.compile(r"time=(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)
WINDOWS_TIME_RE = re.compile(r"time[<=](\d+)\s*ms", re.IGNORECASE)

# Summary loss, e.g. "0% packet loss" / "25.0% packet loss" / "(0% loss)" / "(0% perdidos)"
UNIX_LOSS_RE = re.compile(r"(\d+(?:\.\d+)?)%\s*packet\s*loss", re.IGNORECASE)
WINDOWS_LOSS_RE = re.compile(r"\((\d+)%\s*(?:loss|perdidos?)\)", re.IGNORECASE)

# "rtt min/avg/max/mdev = 10.5/12.3/15.1/2.0 ms"; busybox omits the fourth value
UNIX_STATS_RE = re.compile(
    r"=\s*(\d+(?:\.\d+)?)/(\d+(?:\.\d+)?)/(\d+(?:\.\d+)?)(?:/\d+(?:\.\d+)?)?\s*ms"
)
WINDOWS_STATS_RE = re.compile(
    r"Minimum\s*=\s*(\d+)\s*ms.*?Maximum\s*=\s*(\d+)\s*ms.*?Average\s*=\s*(\d+)\s*ms",
    re.IGNORECASE | re.DOTALL,
)


@dataclass
class PingStatistics:
    """Values extracted from one run of the ping utility."""
    times: list[float] = field(default_factory=list)
    packet_loss: float = 100.0
    min_time: float = 0.0
    avg_time: float = 0.0
    max_time: float = 0.0
    has_loss_line: bool = False


@dataclass(frozen=True)
class PingResult:
    """Outcome of pinging one host. ``alive`` holds iff packet loss < 100."""
    host: str
    alive: bool
    time: float | None
    packet_loss: float
    avg_time: float
    min_time: float
    max_time: float
    times: tuple[float, ...] = ()
    error: str | None = None

    @classmethod
    def failed(cls, host: str, error: str) -> PingResult:
        """Build the result for a ping that could not be carried out."""
        return cls(
            host=host,
            alive=False,
            time=None,
            packet_loss=100.0,
            avg_time=0.0,
            min_time=0.0,
            max_time=0.0,
            times=(),
            error=error,
        )

    def to_dict(self) -> dict:
        result: dict = {
            "host": self.host,
            "alive": self.alive,
            "time": self.time,
            "packetLoss": self.packet_loss,
            "avgTime": round(self.avg_time, 3),
            "minTime": self.min_time,
            "maxTime": self.max_time,
            "times": list(self.times),
        }
        if self.error:
            result["error"] = self.error
        return result


def _fill_from_samples(stats: PingStatistics) -> None:
    if stats.times:
        stats.min_time = min(stats.times)
        stats.max_time = max(stats.times)
        stats.avg_time = sum(stats.times) / len(stats.times)


def parse_unix_ping_output(output: str) -> PingStatistics:
    """
    Parse iputils / BSD / busybox ping output.

    The utility's own min/avg/max line is preferred; when it is missing the
    statistics are computed from the individual samples.
    """
    stats = PingStatistics()
    stats.times = [float(m) for m in UNIX_TIME_RE.findall(output)]

    loss_match = UNIX_LOSS_RE.search(output)
    if loss_match:
        stats.packet_loss = float(loss_match.group(1))
        stats.has_loss_line = True

    stats_match = UNIX_STATS_RE.search(output)
    if stats_match:
        stats.min_time = float(stats_match.group(1))
        stats.avg_time = float(stats_match.group(2))
        stats.max_time = float(stats_match.group(3))
    else:
        _fill_from_samples(stats)

    return stats


def parse_windows_ping_output(output: str) -> PingStatistics:
    """
    Parse Windows ping.exe output.

    Sub-millisecond replies are reported as ``time<1ms`` and recorded as 1.
    """
    stats = PingStatistics()
    stats.times = [float(m) for m in WINDOWS_TIME_RE.findall(output)]

    loss_match = WINDOWS_LOSS_RE.search(output)
    if loss_match:
        stats.packet_loss = float(loss_match.group(1))
        stats.has_loss_line = True

    stats_match = WINDOWS_STATS_RE.search(output)
    if stats_match:
        stats.min_time = float(stats_match.group(1))
        stats.max_time = float(stats_match.group(2))
        stats.avg_time = float(stats_match.group(3))
    else:
        _fill_from_samples(stats)

    return stats


def build_ping_command(
    host: str,
    count: int,
    timeout_ms: int,
    system: str | None = None,
) -> list[str]:
    """
    Build the platform-appropriate ping argv.

    Windows and macOS take the per-reply wait in milliseconds; iputils
    takes whole seconds.
    """
    system = (system or platform.system()).lower()

    if system == "windows":
        return ["ping", "-n", str(count), "-w", str(int(timeout_ms)), host]
    if system == "darwin":
        return ["ping", "-c", str(count), "-W", str(int(timeout_ms)), host]

    timeout_s = max(1, math.ceil(timeout_ms / 1000))
    return ["ping", "-c", str(count), "-W", str(timeout_s), host]


def process_timeout_seconds(count: int, timeout_ms: int) -> float:
    """Whole-command budget, long enough for ``count`` full waits."""
    return (timeout_ms + PING_PROCESS_MARGIN_MS) * count / 1000


def ping_host(
    host: str,
    count: int = DEFAULT_PING_COUNT,
    timeout_ms: int = DEFAULT_PING_TIMEOUT_MS,
) -> PingResult:
    """
    Ping a host with the system's ping command.

    Failures to run the command are reported through ``error`` on the
    returned result rather than raised.

    Args:
        host: Hostname or IP address to ping.
        count: Number of echo requests.
        timeout_ms: Wait for each reply in milliseconds.

    Returns:
        PingResult with loss, samples and min/avg/max statistics.

    Raises:
        ValidationError: If ``host`` is not an IP literal or hostname.
    """
    if not is_valid_target(host):
        raise ValidationError(f"Invalid IP address or hostname: '{host}'")

    system = platform.system().lower()
    cmd = build_ping_command(host, count, timeout_ms, system)
    parser = parse_windows_ping_output if system == "windows" else parse_unix_ping_output

    logger.debug("Running %s", " ".join(cmd))
    try:
        completed = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=process_timeout_seconds(count, timeout_ms),
        )
    except subprocess.TimeoutExpired:
        logger.warning("Ping of %s exceeded its time budget", host)
        return PingResult.failed(host, f"Ping timed out after {count} attempts")
    except OSError as exc:
        logger.warning("Could not run ping for %s: %s", host, exc)
        return PingResult.failed(host, str(exc))

    output = completed.stdout or completed.stderr
    stats = parser(output)

    if completed.returncode != 0 and not stats.has_loss_line:
        # Resolution errors and similar: the utility never reached the summary
        message = (completed.stderr or completed.stdout).strip()
        return PingResult.failed(
            host, message or f"ping exited with status {completed.returncode}"
        )

    return PingResult(
        host=host,
        alive=stats.packet_loss < 100,
        time=stats.times[-1] if stats.times else None,
        packet_loss=stats.packet_loss,
        avg_time=stats.avg_time,
        min_time=stats.min_time,
        max_time=stats.max_time,
        times=tuple(stats.times),
    )


def ping_once(
    host: str, timeout_ms: int = DEFAULT_PING_TIMEOUT_MS
) -> tuple[bool, float | None]:
    """Single echo request for quick status checks. Returns (alive, time)."""
    result = ping_host(host, count=1, timeout_ms=timeout_ms)
    return result.alive, result.time


def ping_hosts(
    hosts: Sequence[str],
    count: int = DEFAULT_PING_COUNT,
    timeout_ms: int = DEFAULT_PING_TIMEOUT_MS,
    max_workers: int = 10,
) -> dict[str, PingResult]:
    """
    Ping several hosts concurrently, keyed by host.

    Raises:
        ValidationError: If any host is malformed. No ping is started.
    """
    if not hosts:
        return {}

    invalid = [host for host in hosts if not is_valid_target(host)]
    if invalid:
        raise ValidationError(
            f"Invalid IP address or hostname: {', '.join(repr(h) for h in invalid)}"
        )

    with ThreadPoolExecutor(max_workers=min(max_workers, len(hosts))) as executor:
        results = executor.map(lambda h: ping_host(h, count, timeout_ms), hosts)
        return {result.host: result for result in results}
