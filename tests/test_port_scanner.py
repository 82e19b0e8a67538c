"""Tests for the port scanner module."""

import socket
import threading
import time

import pytest

from netwatch.port_scanner import (
    COMMON_PORTS,
    COMMON_SCAN_PORTS,
    FULL_SCAN_RANGE,
    QUICK_SCAN_PORTS,
    PortResult,
    PortScanner,
    PortState,
    ScanResult,
    calculate_scan_summary,
    connect_tcp,
    generate_port_range,
    get_service_name,
    probe_port,
    scan_ports,
)
from netwatch.validation import ValidationError


def _fake_prober(states: dict[int, PortState]):
    def prober(host, port, timeout_ms):
        return PortResult(port=port, status=states.get(port, PortState.CLOSED))
    return prober


def test_common_ports_has_expected_entries():
    assert COMMON_PORTS[22] == "SSH"
    assert COMMON_PORTS[80] == "HTTP"
    assert COMMON_PORTS[443] == "HTTPS"
    assert COMMON_PORTS[3306] == "MySQL"
    assert COMMON_PORTS[3389] == "RDP"
    assert COMMON_PORTS[5900] == "VNC"


def test_get_service_name_unknown_port():
    assert get_service_name(22) == "SSH"
    assert get_service_name(54321) == "Unknown"


def test_quick_scan_ports_length():
    assert len(QUICK_SCAN_PORTS) == 20


def test_common_scan_ports_contains_web_ports():
    assert 80 in COMMON_SCAN_PORTS
    assert 443 in COMMON_SCAN_PORTS


def test_full_scan_range():
    assert FULL_SCAN_RANGE.start == 1
    assert FULL_SCAN_RANGE.stop == 1025


def test_generate_port_range_inclusive():
    assert generate_port_range(20, 25) == [20, 21, 22, 23, 24, 25]
    assert generate_port_range(80, 80) == [80]


def test_port_state_enum_values():
    assert PortState.OPEN.value == "open"
    assert PortState.CLOSED.value == "closed"
    assert PortState.FILTERED.value == "filtered"
    assert len(list(PortState)) == 3


def test_port_result_is_immutable():
    result = PortResult(port=80, status=PortState.OPEN)
    with pytest.raises(AttributeError):
        result.port = 81


def test_port_result_to_dict():
    result = PortResult(
        port=22,
        status=PortState.OPEN,
        service="SSH",
        response_time_ms=1.234,
        banner="SSH-2.0-OpenSSH_9.6",
    )
    d = result.to_dict()
    assert d == {
        "port": 22,
        "status": "open",
        "service": "SSH",
        "responseTime": 1.23,
        "banner": "SSH-2.0-OpenSSH_9.6",
    }


def test_port_result_to_dict_omits_unset_fields():
    d = PortResult(port=23, status=PortState.CLOSED).to_dict()
    assert d == {"port": 23, "status": "closed"}


def test_calculate_scan_summary_counts():
    results = [
        PortResult(port=22, status=PortState.OPEN),
        PortResult(port=23, status=PortState.CLOSED),
        PortResult(port=80, status=PortState.OPEN),
        PortResult(port=443, status=PortState.FILTERED),
    ]
    summary = calculate_scan_summary(results, duration_ms=120.0)
    assert summary.total_ports == 4
    assert summary.open_ports == 2
    assert summary.closed_ports == 1
    assert summary.filtered_ports == 1
    assert summary.duration_ms == 120.0
    assert summary.open_ports + summary.closed_ports + summary.filtered_ports == summary.total_ports


def test_calculate_scan_summary_empty():
    summary = calculate_scan_summary([], duration_ms=0.0)
    assert summary.to_dict() == {
        "totalPorts": 0,
        "openPorts": 0,
        "closedPorts": 0,
        "filteredPorts": 0,
        "duration": 0.0,
    }


def test_probe_open_port(open_port):
    result = probe_port("127.0.0.1", open_port, timeout_ms=1000)
    assert result.status == PortState.OPEN
    assert result.port == open_port
    assert result.response_time_ms is not None
    assert result.response_time_ms >= 0
    assert result.service == "Unknown"


def test_probe_refused_port_is_closed(closed_port):
    result = probe_port("127.0.0.1", closed_port, timeout_ms=1000)
    assert result.status == PortState.CLOSED


def test_probe_timeout_is_filtered(monkeypatch):
    def fake_create_connection(address, timeout=None):
        raise socket.timeout("timed out")

    monkeypatch.setattr(socket, "create_connection", fake_create_connection)
    result = probe_port("192.0.2.1", 80, timeout_ms=250)
    assert result.status == PortState.FILTERED
    assert result.response_time_ms == 250.0
    assert result.service == "HTTP"


def test_probe_unreachable_is_filtered(monkeypatch):
    def fake_create_connection(address, timeout=None):
        raise OSError(113, "No route to host")

    monkeypatch.setattr(socket, "create_connection", fake_create_connection)
    assert probe_port("192.0.2.1", 22).status == PortState.FILTERED


def test_probe_unresolvable_host_is_filtered(monkeypatch):
    def fake_create_connection(address, timeout=None):
        raise socket.gaierror(-2, "Name or service not known")

    monkeypatch.setattr(socket, "create_connection", fake_create_connection)
    result = probe_port("no-such-host.invalid", 80, timeout_ms=500)
    assert result.status == PortState.FILTERED


def test_connect_tcp_reports_error_text(closed_port):
    outcome = connect_tcp("127.0.0.1", closed_port, timeout_ms=1000)
    assert outcome.status == PortState.CLOSED
    assert outcome.error


def test_connect_tcp_grabs_banner():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]

    def serve():
        conn, _ = server.accept()
        conn.sendall(b"SSH-2.0-TestServer\r\n")
        conn.close()

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    try:
        outcome = connect_tcp("127.0.0.1", port, timeout_ms=1000, grab_banner=True)
    finally:
        thread.join(timeout=2)
        server.close()

    assert outcome.status == PortState.OPEN
    assert outcome.banner == "SSH-2.0-TestServer"


def test_scan_empty_port_list():
    results = scan_ports("127.0.0.1", [])
    assert results == []
    assert calculate_scan_summary(results, 0.0).total_ports == 0


def test_scan_results_sorted_regardless_of_input_order():
    ports = [443, 22, 8080, 80, 21, 3306]
    results = scan_ports("example.test", ports, concurrency=2, prober=_fake_prober({}))
    assert [r.port for r in results] == sorted(ports)


def test_scan_results_sorted_regardless_of_completion_order():
    def slow_low_ports(host, port, timeout_ms):
        # Lower ports finish last within each batch
        time.sleep((100 - port) / 1000)
        return PortResult(port=port, status=PortState.OPEN)

    results = scan_ports("example.test", [90, 10, 50, 30], concurrency=4, prober=slow_low_ports)
    assert [r.port for r in results] == [10, 30, 50, 90]


def test_scan_summary_matches_port_count():
    states = {22: PortState.OPEN, 80: PortState.OPEN, 443: PortState.FILTERED}
    ports = [21, 22, 23, 80, 443, 8080]
    results = scan_ports("example.test", ports, prober=_fake_prober(states))
    summary = calculate_scan_summary(results, 10.0)
    assert summary.total_ports == len(ports)
    assert summary.open_ports == 2
    assert summary.filtered_ports == 1
    assert summary.closed_ports == 3


def test_scan_respects_concurrency_cap():
    lock = threading.Lock()
    in_flight = 0
    peak = 0

    def counting_prober(host, port, timeout_ms):
        nonlocal in_flight, peak
        with lock:
            in_flight += 1
            peak = max(peak, in_flight)
        time.sleep(0.01)
        with lock:
            in_flight -= 1
        return PortResult(port=port, status=PortState.CLOSED)

    results = scan_ports("example.test", range(1, 41), concurrency=5, prober=counting_prober)
    assert len(results) == 40
    assert 1 <= peak <= 5


def test_scan_batches_run_sequentially():
    progress = []
    results = scan_ports(
        "example.test",
        range(1, 11),
        concurrency=4,
        prober=_fake_prober({}),
        on_batch=lambda done, total: progress.append((done, total)),
    )
    assert len(results) == 10
    assert progress == [(4, 10), (8, 10), (10, 10)]


def test_scan_prober_exception_marks_port_filtered():
    def flaky(host, port, timeout_ms):
        if port == 80:
            raise RuntimeError("boom")
        return PortResult(port=port, status=PortState.OPEN)

    results = scan_ports("example.test", [22, 80, 443], prober=flaky)
    by_port = {r.port: r.status for r in results}
    assert by_port == {22: PortState.OPEN, 80: PortState.FILTERED, 443: PortState.OPEN}


def test_scan_probes_duplicate_ports_once():
    calls = []

    def recording_prober(host, port, timeout_ms):
        calls.append(port)
        return PortResult(port=port, status=PortState.CLOSED)

    results = scan_ports("example.test", [80, 22, 80, 22, 443], prober=recording_prober)
    assert [r.port for r in results] == [22, 80, 443]
    assert sorted(calls) == [22, 80, 443]


def test_scan_rejects_nonpositive_timeout():
    with pytest.raises(ValidationError):
        scan_ports("example.test", [80], timeout_ms=0, prober=_fake_prober({}))


def test_probe_rejects_negative_timeout(open_port):
    with pytest.raises(ValidationError):
        probe_port("127.0.0.1", open_port, timeout_ms=-5)


def test_scan_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        scan_ports("example.test", [80], concurrency=0)


def test_scan_real_ports_classification_is_stable(open_port, closed_port):
    first = scan_ports("127.0.0.1", [closed_port, open_port], timeout_ms=1000)
    second = scan_ports("127.0.0.1", [closed_port, open_port], timeout_ms=1000)
    assert [r.status for r in first] == [r.status for r in second]
    by_port = {r.port: r.status for r in first}
    assert by_port[open_port] == PortState.OPEN
    assert by_port[closed_port] == PortState.CLOSED


def test_port_scanner_init_defaults():
    scanner = PortScanner("127.0.0.1")
    assert scanner.target == "127.0.0.1"
    assert scanner.timeout_ms == 1000
    assert scanner.concurrency == 50
    assert scanner.grab_banners is False


def test_port_scanner_scan_returns_scan_result(open_port, closed_port):
    scanner = PortScanner("127.0.0.1", timeout_ms=1000, concurrency=2)
    result = scanner.scan([open_port, closed_port])
    assert isinstance(result, ScanResult)
    assert result.scan_end >= result.scan_start
    assert [p.port for p in result.open_ports] == [open_port]
    summary = result.summary
    assert summary.total_ports == 2
    assert summary.open_ports == 1
    assert summary.closed_ports == 1


def test_scan_result_to_dict():
    scan = ScanResult(target="10.0.0.1", scan_start=100.0, scan_end=100.5)
    scan.ports = [
        PortResult(port=22, status=PortState.OPEN, service="SSH"),
        PortResult(port=23, status=PortState.CLOSED, service="Telnet"),
    ]
    d = scan.to_dict()
    assert d["ip"] == "10.0.0.1"
    assert d["totalPorts"] == 2
    assert d["openPorts"] == 1
    assert d["closedPorts"] == 1
    assert d["filteredPorts"] == 0
    assert d["duration"] == 500.0
    assert len(d["ports"]) == 2
