#!/usr/bin/env python3
"""
Basic Port Scan Example
=======================

Scans a handful of common ports on localhost and pings it, printing the
results.

DISCLAIMER: Only scan hosts you own or have explicit authorization to test.

Usage:
    python examples/basic_scan.py
"""

from netwatch.ping import ping_host
from netwatch.port_scanner import PortScanner, PortState


def main() -> None:
    scanner = PortScanner(target="127.0.0.1", timeout_ms=500, concurrency=10)

    print("Scanning localhost for common ports...")
    result = scanner.scan([22, 80, 443, 3000, 5432, 8080, 8443])
    summary = result.summary

    print(f"\nTarget:    {result.target}")
    print(f"Duration:  {summary.duration_ms:.0f}ms")
    print(f"Scanned:   {summary.total_ports} ports")
    print(f"Open:      {summary.open_ports} | Closed: {summary.closed_ports} | "
          f"Filtered: {summary.filtered_ports}\n")

    for port_result in result.ports:
        state_label = port_result.status.value.upper()
        print(f"  Port {port_result.port:>5}  [{state_label:>8}]  {port_result.service}")

    open_ports = [p for p in result.ports if p.status == PortState.OPEN]
    if open_ports:
        print("\nOpen port details:")
        for p in open_ports:
            print(f"  {p.to_dict()}")

    ping = ping_host("127.0.0.1", count=2, timeout_ms=1000)
    print(f"\nPing: alive={ping.alive} loss={ping.packet_loss}% avg={ping.avg_time:.2f}ms")


if __name__ == "__main__":
    main()
