"""
bingrep Report Generator
=========================

Generates structured JSON reports from a :class:`BinaryReport`.

The JSON document is meant for machine consumption: every range, match
and resolved symbol is included, with integers kept as integers (not
hex strings) so downstream tools can do arithmetic on them.  The parsed
format model is not serialised; everything a consumer needs has already
been lifted into the report.

References:
    - ECMA-404. (2017). The JSON Data Interchange Syntax.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from bingrep.core.models import BinaryReport


REPORT_TYPE: str = "bingrep_report"


# ---------------------------------------------------------------------------
# BingrepReportGenerator
# ---------------------------------------------------------------------------

class BingrepReportGenerator:
    """Serialise analysis results to JSON.

    Usage::

        generator = BingrepReportGenerator()
        generator.generate_json(report, "report.json")
    """

    def __init__(self, version: str = "0.4.0") -> None:
        self._version = version

    def build(self, report: BinaryReport) -> dict[str, Any]:
        """Assemble the report document.

        Args:
            report: The analysed file.

        Returns:
            A JSON-compatible dictionary.
        """
        body = report.model_dump(mode="json")
        return {
            "report_type": REPORT_TYPE,
            "version": self._version,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "summary": {
                "ranges": len(report.ranges),
                "matches": len(report.matches),
                "findings": len(report.findings),
            },
            **body,
        }

    def to_json(self, report: BinaryReport, indent: int = 2) -> str:
        """Render the report document as a JSON string."""
        return json.dumps(
            self.build(report), indent=indent, ensure_ascii=False, default=str,
        )

    def generate_json(self, report: BinaryReport, output_path: str | Path) -> str:
        """Write the JSON report to *output_path*.

        Returns:
            The absolute path of the generated report.
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_json(report))
            f.write("\n")
        return str(path.resolve())
