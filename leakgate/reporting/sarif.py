"""
LeakGate SARIF Reporter

Generates SARIF 2.1.0 (Static Analysis Results Interchange Format) output
so scan results can be uploaded to code-scanning dashboards.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from leakgate import __version__
from leakgate.core.engine import ScanVerdict
from leakgate.core.finding import Finding, Severity


# SARIF severity level mapping
SARIF_LEVEL_MAP = {
    Severity.CRITICAL: "error",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "note",
    Severity.INFO: "note",
}

SECURITY_SEVERITY = {
    Severity.CRITICAL: "9.5",
    Severity.HIGH: "8.0",
    Severity.MEDIUM: "5.5",
    Severity.LOW: "3.0",
    Severity.INFO: "0.0",
}


class SARIFReporter:
    """Generates SARIF 2.1.0-formatted scan reports."""

    def __init__(self, target: str) -> None:
        self.target = target

    def report(
        self,
        verdict: ScanVerdict,
        output_file: Optional[str] = None,
    ) -> str:
        """
        Generate SARIF report.

        Args:
            verdict: The scan verdict.
            output_file: Optional file path to write the report to.

        Returns:
            The SARIF JSON string.
        """
        rules_map: dict[str, dict] = {}
        results: list[dict] = []

        for finding in verdict.findings:
            if finding.rule_id not in rules_map:
                rules_map[finding.rule_id] = self._rule(finding)
            results.append(self._result(finding, list(rules_map).index(finding.rule_id)))

        notifications = [
            {
                "level": "error" if verdict.fail_closed else "warning",
                "message": {"text": f"detector {run.detector} {run.status.value}: {run.error}"},
            }
            for run in verdict.detector_errors
        ]

        sarif = {
            "$schema": "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/main/sarif-2.1/schema/sarif-schema-2.1.0.json",
            "version": "2.1.0",
            "runs": [
                {
                    "tool": {
                        "driver": {
                            "name": "LeakGate",
                            "version": __version__,
                            "rules": list(rules_map.values()),
                        }
                    },
                    "invocations": [
                        {
                            "executionSuccessful": not verdict.blocked_by_errors,
                            "toolExecutionNotifications": notifications,
                        }
                    ],
                    "results": results,
                    "columnKind": "utf16CodeUnits",
                }
            ],
        }

        sarif_str = json.dumps(sarif, indent=2)

        if output_file:
            Path(output_file).write_text(sarif_str + "\n", encoding="utf-8")

        return sarif_str

    @staticmethod
    def _rule(finding: Finding) -> dict:
        return {
            "id": finding.rule_id,
            "name": finding.title,
            "shortDescription": {"text": finding.title},
            "defaultConfiguration": {
                "level": SARIF_LEVEL_MAP.get(finding.severity, "warning")
            },
            "properties": {
                "security-severity": SECURITY_SEVERITY[finding.severity],
                "tags": ["secret", finding.detector],
            },
        }

    @staticmethod
    def _result(finding: Finding, rule_index: int) -> dict:
        return {
            "ruleId": finding.rule_id,
            "ruleIndex": rule_index,
            "level": SARIF_LEVEL_MAP.get(finding.severity, "warning"),
            "message": {"text": f"{finding.title}: {finding.redacted}"},
            "partialFingerprints": {"leakgate/v1": finding.fingerprint},
            "locations": [
                {
                    "physicalLocation": {
                        "artifactLocation": {
                            "uri": finding.path,
                            "uriBaseId": "%SRCROOT%",
                        },
                        "region": {"startLine": max(1, finding.line)},
                    }
                }
            ],
        }
