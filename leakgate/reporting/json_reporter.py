"""
LeakGate JSON Reporter

Generates machine-readable JSON output for a scan verdict:
{
    "version": "1.0",
    "tool": {"name": "LeakGate", "version": ...},
    "target": ...,
    "summary": {"total_findings": N, "by_severity": {...}, "by_detector": {...}},
    "verdict": {...}
}

Timings are left out so repeated scans of the same input render
byte-identical reports.
"""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import Optional

from leakgate import __version__
from leakgate.core.engine import ScanVerdict
from leakgate.core.finding import Severity


class JSONReporter:
    """Generates JSON-formatted scan reports."""

    def __init__(self, target: str) -> None:
        self.target = target

    def report(
        self,
        verdict: ScanVerdict,
        output_file: Optional[str] = None,
    ) -> str:
        """
        Generate JSON report.

        Args:
            verdict: The scan verdict.
            output_file: Optional file path to write the report to.

        Returns:
            The JSON string.
        """
        counter = Counter(f.severity.value for f in verdict.findings)

        report_data = {
            "version": "1.0",
            "tool": {
                "name": "LeakGate",
                "version": __version__,
            },
            "target": self.target,
            "summary": {
                "total_findings": len(verdict.findings),
                "by_severity": {sev.value: counter.get(sev.value, 0) for sev in Severity},
                "by_detector": dict(sorted(Counter(f.detector for f in verdict.findings).items())),
            },
            "verdict": verdict.to_dict(),
        }

        json_str = json.dumps(report_data, indent=2)

        if output_file:
            Path(output_file).write_text(json_str + "\n", encoding="utf-8")

        return json_str
