"""Tests for the report generator module."""

import json
import os
import tempfile

from netwatch import __version__
from netwatch.connectivity import TestResult as ConnectivityResult
from netwatch.ping import PingResult
from netwatch.port_scanner import PortResult, PortState, ScanResult
from netwatch.report_generator import ReportData, ReportGenerator
from netwatch.validation import shape_scan_response, shape_test_response


def _make_scan_result() -> ScanResult:
    scan = ScanResult(target="10.0.0.1", scan_start=1000.0, scan_end=1002.0)
    scan.ports = [
        PortResult(port=22, status=PortState.OPEN, service="SSH", response_time_ms=5.0),
        PortResult(port=80, status=PortState.OPEN, service="HTTP", response_time_ms=3.0),
        PortResult(port=443, status=PortState.CLOSED, service="HTTPS"),
    ]
    return scan


def _make_ping_result() -> PingResult:
    return PingResult(
        host="10.0.0.1",
        alive=True,
        time=1.2,
        packet_loss=0.0,
        avg_time=1.1,
        min_time=1.0,
        max_time=1.2,
        times=(1.0, 1.1, 1.2),
    )


def test_report_generator_init():
    gen = ReportGenerator(title="My Report", author="Tester")
    assert gen.title == "My Report"
    assert gen.author == "Tester"
    assert isinstance(gen.data, ReportData)


def test_add_scan():
    gen = ReportGenerator()
    gen.add_scan(shape_scan_response(_make_scan_result()))
    assert len(gen.data.scans) == 1
    assert gen.data.scans[0]["data"]["ip"] == "10.0.0.1"


def test_add_ping_wraps_in_envelope():
    gen = ReportGenerator()
    gen.add_ping(_make_ping_result())
    assert gen.data.pings == [{"success": True, "data": _make_ping_result().to_dict()}]


def test_add_test():
    gen = ReportGenerator()
    result = ConnectivityResult(success=True, response_time_ms=4.0)
    gen.add_test(shape_test_response("tcp", "10.0.0.1", result, port=22))
    assert gen.data.tests[0]["data"]["status"] == "success"


def test_generate_json_creates_valid_file():
    gen = ReportGenerator(title="Test JSON Report", author="CI")
    gen.add_scan(shape_scan_response(_make_scan_result()))
    gen.add_ping(_make_ping_result())

    with tempfile.TemporaryDirectory() as tmpdir:
        out_path = os.path.join(tmpdir, "nested", "report.json")
        result_path = gen.generate_json(out_path)

        assert os.path.isfile(result_path)

        with open(result_path, "r", encoding="utf-8") as f:
            data = json.load(f)

    meta = data["report_metadata"]
    assert meta["title"] == "Test JSON Report"
    assert meta["author"] == "CI"
    assert meta["generator"] == f"netwatch v{__version__}"
    assert meta["generated_at"]

    scan = data["scans"][0]["data"]
    assert scan["totalPorts"] == 3
    assert scan["openPorts"] == 2
    assert scan["duration"] == 2000.0
    assert data["pings"][0]["data"]["alive"] is True
    assert "tests" not in data


def test_generate_json_empty_report_has_only_metadata():
    gen = ReportGenerator()
    with tempfile.TemporaryDirectory() as tmpdir:
        path = gen.generate_json(os.path.join(tmpdir, "empty.json"))
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

    assert list(data) == ["report_metadata"]
    assert "author" not in data["report_metadata"]
