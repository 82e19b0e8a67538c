#!/usr/bin/env python3
"""
netwatch - Network Diagnostics Toolkit

Entry point for the netwatch CLI application.

DISCLAIMER: Only scan hosts and networks you own or have explicit
permission to test.

Usage:
    python main.py scan <target> [options]
    python main.py ping <host> [options]
    python main.py test {tcp,http,dns,ping} <target> [options]
    python main.py suite <host> [options]

Examples:
    python main.py scan 192.168.1.1 -p 22,80,443
    python main.py scan example.com --profile common
    python main.py ping 192.168.1.1 -n 4
    python main.py test dns example.com --record-type MX
    python main.py suite example.com --http-url https://example.com
"""

import sys

from netwatch.cli import main


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nInterrupted by user.")
        sys.exit(130)
