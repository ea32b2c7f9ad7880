"""
LeakGate Baseline Store

The baseline is the reviewed allowlist of findings. Entries are keyed by
(path, rule id, fingerprint), never by line number, so an accepted
finding stays suppressed when the surrounding file changes.

Persisted as JSON with one field per line and entries sorted by key:
{
    "version": 1,
    "entries": [
        {"path": ..., "rule_id": ..., "fingerprint": ...,
         "detector": ..., "line": ..., "accepted_at": ..., "accepted_by": ...}
    ]
}
"""

from __future__ import annotations

import getpass
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from leakgate.core.errors import BaselineCorrupt
from leakgate.core.finding import BaselineKey, Finding
from leakgate.core.fs import atomic_write_text


logger = logging.getLogger(__name__)

BASELINE_VERSION = 1


@dataclass(frozen=True)
class BaselineEntry:
    accepted_at: str
    accepted_by: str
    detector: str = ""
    line: Optional[int] = None


class Baseline:
    """Immutable set of accepted finding keys with review metadata."""

    def __init__(self, entries: Optional[Mapping[BaselineKey, BaselineEntry]] = None) -> None:
        self._entries = MappingProxyType(dict(entries or {}))

    @property
    def entries(self) -> Mapping[BaselineKey, BaselineEntry]:
        return self._entries

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Baseline) and dict(self._entries) == dict(other._entries)

    def to_json(self) -> str:
        entries = []
        for key in sorted(self._entries):
            entry = self._entries[key]
            entries.append({
                "path": key.path,
                "rule_id": key.rule_id,
                "fingerprint": key.fingerprint,
                "detector": entry.detector,
                "line": entry.line,
                "accepted_at": entry.accepted_at,
                "accepted_by": entry.accepted_by,
            })
        return json.dumps({"version": BASELINE_VERSION, "entries": entries}, indent=2) + "\n"

    @classmethod
    def from_json(cls, text: str, source: str = "baseline") -> "Baseline":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise BaselineCorrupt(f"{source}: not valid JSON ({exc})") from exc

        if not isinstance(data, dict):
            raise BaselineCorrupt(f"{source}: top level must be an object")
        if data.get("version") != BASELINE_VERSION:
            raise BaselineCorrupt(f"{source}: unsupported version {data.get('version')!r}")
        raw_entries = data.get("entries")
        if not isinstance(raw_entries, list):
            raise BaselineCorrupt(f"{source}: 'entries' must be a list")

        entries: dict[BaselineKey, BaselineEntry] = {}
        for index, raw in enumerate(raw_entries):
            key, entry = _parse_entry(raw, f"{source}: entries[{index}]")
            entries[key] = entry
        return cls(entries)


def _parse_entry(raw: Any, where: str) -> tuple[BaselineKey, BaselineEntry]:
    if not isinstance(raw, dict):
        raise BaselineCorrupt(f"{where}: must be an object")
    for field_name in ("path", "rule_id", "fingerprint", "accepted_at", "accepted_by"):
        if not isinstance(raw.get(field_name), str) or not raw[field_name]:
            raise BaselineCorrupt(f"{where}: '{field_name}' must be a non-empty string")
    line = raw.get("line")
    if line is not None and (isinstance(line, bool) or not isinstance(line, int)):
        raise BaselineCorrupt(f"{where}: 'line' must be an integer")
    key = BaselineKey(raw["path"], raw["rule_id"], raw["fingerprint"])
    entry = BaselineEntry(
        accepted_at=raw["accepted_at"],
        accepted_by=raw["accepted_by"],
        detector=str(raw.get("detector") or ""),
        line=line,
    )
    return key, entry


class BaselineStore:
    """Loads, filters against, extends and persists the baseline file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Baseline:
        """Read the persisted baseline; an absent file is an empty baseline."""
        if not self.path.exists():
            logger.debug("no baseline at %s", self.path)
            return Baseline()
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise BaselineCorrupt(f"{self.path}: cannot read ({exc})") from exc
        baseline = Baseline.from_json(text, source=str(self.path))
        logger.debug("loaded %d baseline entries from %s", len(baseline), self.path)
        return baseline

    @staticmethod
    def suppress(findings: Iterable[Finding], baseline: Baseline) -> list[Finding]:
        """Findings whose key is not in the baseline."""
        return [f for f in findings if f.key not in baseline]

    @staticmethod
    def accept(
        findings: Iterable[Finding],
        baseline: Baseline,
        accepted_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Baseline:
        """
        Return a new baseline with every finding's key added.

        Keys already present keep their original review metadata.
        """
        timestamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
        who = accepted_by or default_reviewer()
        entries = dict(baseline.entries)
        for finding in findings:
            if finding.key not in entries:
                entries[finding.key] = BaselineEntry(
                    accepted_at=timestamp,
                    accepted_by=who,
                    detector=finding.detector,
                    line=finding.line,
                )
        return Baseline(entries)

    def persist(self, baseline: Baseline) -> None:
        """Write the baseline atomically."""
        atomic_write_text(self.path, baseline.to_json())
        logger.debug("wrote %d baseline entries to %s", len(baseline), self.path)


def default_reviewer() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"
