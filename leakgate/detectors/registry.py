"""
LeakGate Detector Registry

Maps detector ids to constructed detectors. Built once per process from
configuration and read-only afterwards.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from leakgate.core.config import LeakGateConfig
from leakgate.core.detector import BaseDetector
from leakgate.core.errors import ConfigError
from leakgate.detectors.entropy import EntropyDetector
from leakgate.detectors.external import DetectSecretsDetector, GitleaksDetector
from leakgate.detectors.patterns import PatternDetector

DETECTOR_TYPES: dict[str, type[BaseDetector]] = {
    "patterns": PatternDetector,
    "entropy": EntropyDetector,
    "gitleaks": GitleaksDetector,
    "detect-secrets": DetectSecretsDetector,
}


class DetectorRegistry(Mapping[str, BaseDetector]):
    """Immutable id -> detector mapping, in configuration order."""

    def __init__(self, detectors: Optional[list[BaseDetector]] = None) -> None:
        self._detectors = MappingProxyType({d.id: d for d in detectors or []})

    def __getitem__(self, detector_id: str) -> BaseDetector:
        return self._detectors[detector_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._detectors)

    def __len__(self) -> int:
        return len(self._detectors)

    def unavailable(self) -> list[str]:
        """Problems reported by detectors that cannot run here."""
        problems = []
        for detector in self._detectors.values():
            problem = detector.available()
            if problem:
                problems.append(problem)
        return problems


def build_registry(config: LeakGateConfig) -> DetectorRegistry:
    """Construct every enabled detector named in the configuration."""
    detectors: list[BaseDetector] = []
    for det_config in config.detectors:
        detector_cls = DETECTOR_TYPES.get(det_config.type)
        if detector_cls is None:
            known = ", ".join(sorted(DETECTOR_TYPES))
            raise ConfigError(
                f"detector '{det_config.id}': unknown type '{det_config.type}' (known: {known})"
            )
        if not det_config.enabled:
            continue
        detectors.append(
            detector_cls(det_config.id, options=det_config.options, timeout=det_config.timeout)
        )
    return DetectorRegistry(detectors)
