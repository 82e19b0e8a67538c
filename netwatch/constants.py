"""
Default values and caller-policy bounds shared by the core and the CLI.

All durations are expressed in milliseconds.
"""

from __future__ import annotations

# Port scanning
DEFAULT_SCAN_TIMEOUT_MS: int = 1000
DEFAULT_CONCURRENCY: int = 50
MIN_SCAN_TIMEOUT_MS: int = 100
MAX_SCAN_TIMEOUT_MS: int = 5000
MAX_PORTS_PER_SCAN: int = 1000
MIN_PORT: int = 1
MAX_PORT: int = 65535

# Ping
DEFAULT_PING_COUNT: int = 4
DEFAULT_PING_TIMEOUT_MS: int = 2000
MIN_PING_COUNT: int = 1
MAX_PING_COUNT: int = 10
MIN_PING_TIMEOUT_MS: int = 500
MAX_PING_TIMEOUT_MS: int = 10000
# Extra time per echo request allowed before the ping process is killed
PING_PROCESS_MARGIN_MS: int = 1000

# Connectivity tests
DEFAULT_TCP_TIMEOUT_MS: int = 5000
DEFAULT_HTTP_TIMEOUT_MS: int = 10000
DEFAULT_DNS_TIMEOUT_MS: int = 5000
MIN_TEST_TIMEOUT_MS: int = 100
MAX_TEST_TIMEOUT_MS: int = 60000
MAX_HTTP_REDIRECTS: int = 10
HTTP_USER_AGENT: str = "netwatch/1.0"
HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "HEAD")
DNS_RECORD_TYPES: tuple[str, ...] = ("A", "AAAA", "CNAME", "MX", "TXT")
TEST_TYPES: tuple[str, ...] = ("tcp", "http", "dns", "ping")
