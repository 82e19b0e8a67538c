"""
Report Generator Module

Collects scan, ping and connectivity test results and writes them to a
single JSON document. Each entry is stored in the same response envelope
the CLI prints with ``--json``.

Usage:
    generator = ReportGenerator(title="Nightly checks")
    generator.add_scan(shape_scan_response(scan_result))
    generator.add_ping(ping_result)
    generator.generate_json("report.json")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from netwatch import __version__
from netwatch.ping import PingResult
from netwatch.validation import success_response

logger = logging.getLogger(__name__)


@dataclass
class ReportData:
    """Container for all results to be included in a report."""
    scans: list[dict] = field(default_factory=list)
    pings: list[dict] = field(default_factory=list)
    tests: list[dict] = field(default_factory=list)


class ReportGenerator:
    """
    JSON report writer for netwatch results.

    Args:
        title: Report title.
        author: Report author name.
    """

    def __init__(self, title: str = "Network Diagnostics", author: str = "") -> None:
        self.title = title
        self.author = author
        self.data = ReportData()
        self.generated_at = ""

    def add_scan(self, envelope: dict) -> None:
        """Add a shaped scan response (see validation.shape_scan_response)."""
        self.data.scans.append(envelope)

    def add_ping(self, result: PingResult) -> None:
        self.data.pings.append(success_response(result.to_dict()))

    def add_test(self, envelope: dict) -> None:
        """Add a shaped test response (see validation.shape_test_response)."""
        self.data.tests.append(envelope)

    def _build_report_dict(self) -> dict[str, Any]:
        """Build the complete report data as a nested dictionary."""
        self.generated_at = datetime.now(timezone.utc).isoformat()

        report: dict[str, Any] = {
            "report_metadata": {
                "title": self.title,
                "generated_at": self.generated_at,
                "generator": f"netwatch v{__version__}",
            },
        }
        if self.author:
            report["report_metadata"]["author"] = self.author

        if self.data.scans:
            report["scans"] = self.data.scans
        if self.data.pings:
            report["pings"] = self.data.pings
        if self.data.tests:
            report["tests"] = self.data.tests

        return report

    def generate_json(self, output_path: str) -> str:
        """
        Write the report as JSON.

        Args:
            output_path: File path for the JSON output.

        Returns:
            Absolute path to the generated report file.
        """
        report = self._build_report_dict()
        path = Path(output_path).resolve()
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2, default=str)

        logger.info("Report written to %s", path)
        return str(path)
