"""
LeakGate Configuration Management

Loads and validates configuration from .leakgate.yaml files.
A missing file yields the defaults; a malformed one is a ConfigError,
raised before any scan or write happens.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from leakgate.core.errors import ConfigError


logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".leakgate.yaml"
DEFAULT_BASELINE_PATH = ".leakgate-baseline.json"
DEFAULT_TIMEOUT = 120.0

DEFAULT_EXCLUDE = [
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "*.min.js",
]

# camelCase spellings accepted for the top-level keys
KEY_ALIASES = {
    "baselinePath": "baseline_path",
    "failClosed": "fail_closed",
}

TOP_LEVEL_KEYS = {"detectors", "baseline_path", "fail_closed", "exclude", "timeout"}
DETECTOR_KEYS = {"id", "type", "enabled", "timeout", "options"}


@dataclass
class DetectorConfig:
    id: str
    type: str = ""
    enabled: bool = True
    timeout: Optional[float] = None
    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.type:
            self.type = self.id


@dataclass
class LeakGateConfig:
    """Root configuration object for LeakGate."""

    detectors: list[DetectorConfig] = field(default_factory=list)
    baseline_path: str = DEFAULT_BASELINE_PATH
    fail_closed: bool = False
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    timeout: float = DEFAULT_TIMEOUT
    source: Optional[Path] = None

    @property
    def enabled_detectors(self) -> list[DetectorConfig]:
        return [d for d in self.detectors if d.enabled]

    def resolve_baseline(self, root: Path) -> Path:
        path = Path(self.baseline_path)
        return path if path.is_absolute() else root / path

    @classmethod
    def load(cls, config_path: Optional[Path] = None, root: Optional[Path] = None) -> "LeakGateConfig":
        """Load configuration from a YAML file, falling back to defaults when absent."""
        if config_path is None:
            env_path = os.environ.get("LEAKGATE_CONFIG")
            if env_path:
                config_path = Path(env_path)
            else:
                config_path = (root or Path.cwd()) / CONFIG_FILENAME

        if not config_path.exists():
            logger.debug("no configuration at %s, using defaults", config_path)
            config = cls.default()
        else:
            try:
                with open(config_path, encoding="utf-8") as f:
                    raw = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"{config_path}: invalid YAML: {exc}") from exc
            except OSError as exc:
                raise ConfigError(f"{config_path}: cannot read: {exc}") from exc
            config = cls.from_dict(raw if raw is not None else {}, source=config_path)

        if os.environ.get("LEAKGATE_FAIL_CLOSED", "").lower() in ("1", "true", "yes"):
            config.fail_closed = True
        return config

    @classmethod
    def default(cls) -> "LeakGateConfig":
        """Return default configuration."""
        return cls(
            detectors=[
                DetectorConfig(id="patterns"),
                DetectorConfig(id="entropy"),
                DetectorConfig(id="gitleaks", enabled=False),
                DetectorConfig(id="detect-secrets", enabled=False),
            ]
        )

    @classmethod
    def from_dict(cls, data: Any, source: Optional[Path] = None) -> "LeakGateConfig":
        """Build config from a parsed YAML document, validating every field."""
        where = str(source) if source else "configuration"
        if not isinstance(data, dict):
            raise ConfigError(f"{where}: top level must be a mapping")

        data = {KEY_ALIASES.get(k, k): v for k, v in data.items()}
        unknown = sorted(set(data) - TOP_LEVEL_KEYS)
        if unknown:
            raise ConfigError(f"{where}: unknown option(s): {', '.join(unknown)}")

        defaults = cls.default()

        if "detectors" in data:
            detectors = _parse_detectors(data["detectors"], where)
        else:
            detectors = defaults.detectors

        baseline_path = data.get("baseline_path", DEFAULT_BASELINE_PATH)
        if not isinstance(baseline_path, str) or not baseline_path:
            raise ConfigError(f"{where}: baseline_path must be a non-empty string")

        fail_closed = data.get("fail_closed", False)
        if not isinstance(fail_closed, bool):
            raise ConfigError(f"{where}: fail_closed must be true or false")

        exclude = data.get("exclude", list(DEFAULT_EXCLUDE))
        if exclude is None:
            exclude = []
        if not isinstance(exclude, list) or not all(isinstance(p, str) for p in exclude):
            raise ConfigError(f"{where}: exclude must be a list of glob strings")

        timeout = _parse_timeout(data.get("timeout", DEFAULT_TIMEOUT), f"{where}: timeout")

        return cls(
            detectors=detectors,
            baseline_path=baseline_path,
            fail_closed=fail_closed,
            exclude=exclude,
            timeout=timeout,
            source=source,
        )


def _parse_timeout(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{what} must be a positive number of seconds")
    return float(value)


def _parse_detectors(raw: Any, where: str) -> list[DetectorConfig]:
    if not isinstance(raw, list):
        raise ConfigError(f"{where}: detectors must be a list")

    detectors: list[DetectorConfig] = []
    seen: set[str] = set()
    for index, item in enumerate(raw):
        if isinstance(item, str):
            item = {"id": item}
        if not isinstance(item, dict):
            raise ConfigError(f"{where}: detectors[{index}] must be a string or a mapping")

        unknown = sorted(set(item) - DETECTOR_KEYS)
        if unknown:
            raise ConfigError(f"{where}: detectors[{index}]: unknown option(s): {', '.join(unknown)}")

        det_id = item.get("id")
        if not isinstance(det_id, str) or not det_id:
            raise ConfigError(f"{where}: detectors[{index}] is missing an id")
        if det_id in seen:
            raise ConfigError(f"{where}: duplicate detector id '{det_id}'")
        seen.add(det_id)

        det_type = item.get("type", det_id)
        if not isinstance(det_type, str) or not det_type:
            raise ConfigError(f"{where}: detector '{det_id}': type must be a string")

        enabled = item.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigError(f"{where}: detector '{det_id}': enabled must be true or false")

        timeout = item.get("timeout")
        if timeout is not None:
            timeout = _parse_timeout(timeout, f"{where}: detector '{det_id}': timeout")

        options = item.get("options") or {}
        if not isinstance(options, dict):
            raise ConfigError(f"{where}: detector '{det_id}': options must be a mapping")

        detectors.append(
            DetectorConfig(id=det_id, type=det_type, enabled=enabled, timeout=timeout, options=options)
        )
    return detectors


def generate_default_config() -> str:
    """Generate a default .leakgate.yaml configuration file content."""
    return f"""\
# LeakGate Configuration
# Controls the secret scan run by the git pre-commit hook.

# Detectors run on every commit. Entries are either an id or a mapping
# with id / type / enabled / timeout / options.
detectors:
  - patterns
  - id: entropy
    options:
      base64_limit: 4.5
      hex_limit: 3.0
  - id: gitleaks
    enabled: false
    timeout: 60
  - id: detect-secrets
    enabled: false
    timeout: 60

# Reviewed findings that no longer block commits (see `leakgate accept`)
baseline_path: {DEFAULT_BASELINE_PATH}

# Block the commit when a detector fails instead of only warning
fail_closed: false

# Files never scanned (glob patterns)
exclude:
  - package-lock.json
  - yarn.lock
  - pnpm-lock.yaml
  - poetry.lock
  - "*.min.js"

# Overall scan timeout in seconds
timeout: {int(DEFAULT_TIMEOUT)}
"""
