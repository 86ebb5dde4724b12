"""Runtime settings loaded from YAML with environment overrides.

Example onboarding.yaml:

```yaml
classes_of_truth:
  - hostname
  - DNS
  - NTP
partition: Common
max_concurrency: 8
state_dir: /var/lib/declarative-onboarding
```
"""
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from ..config_store.store import DEFAULT_STATE_DIR
from ..errors import SettingsError

logger = logging.getLogger(__name__)

DEFAULT_CLASSES_OF_TRUTH = (
    "hostname",
    "DbVariables",
    "DNS",
    "NTP",
    "Provision",
    "VLAN",
    "SelfIp",
    "Route",
    "RouteDomain",
    "ConfigSync",
    "FailoverUnicast",
    "Authentication",
    "RemoteAuthRole",
    "SyslogRemoteServer",
    "HTTPD",
    "Analytics",
)

DEFAULT_SINGLETON_CLASSES = (
    "DbVariables",
    "DNS",
    "NTP",
    "Provision",
    "ConfigSync",
    "FailoverUnicast",
    "Authentication",
    "HTTPD",
    "Analytics",
)


@dataclass(frozen=True)
class Settings:
    """Settings for one reconciliation process."""
    classes_of_truth: frozenset[str] = frozenset(DEFAULT_CLASSES_OF_TRUTH)
    singleton_classes: frozenset[str] = frozenset(DEFAULT_SINGLETON_CLASSES)
    variables_class: str = "DbVariables"
    partition: str = "Common"
    # None means unbounded fan-out
    max_concurrency: Optional[int] = None
    descriptors_path: Optional[Path] = None
    state_dir: Path = field(default=DEFAULT_STATE_DIR)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """Build settings from a mapping, ignoring unknown keys with a warning."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}

        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown setting: {key}")
                continue
            kwargs[key] = value

        for key in ("classes_of_truth", "singleton_classes"):
            if key in kwargs:
                if not isinstance(kwargs[key], (list, tuple, set, frozenset)):
                    raise SettingsError(f"{key} must be a list of class names")
                kwargs[key] = frozenset(kwargs[key])

        for key in ("descriptors_path", "state_dir"):
            if kwargs.get(key) is not None:
                kwargs[key] = Path(kwargs[key]).expanduser()

        if kwargs.get("max_concurrency") is not None:
            kwargs["max_concurrency"] = _positive_int(kwargs["max_concurrency"], "max_concurrency")

        return cls(**kwargs)

    @classmethod
    def load(cls, path: Optional[str | Path] = None) -> "Settings":
        """Load settings.

        Lookup order: explicit path, DO_SETTINGS, then the search paths.
        A missing file means defaults. Environment overrides are applied last.
        """
        config_path = Path(path) if path else _find_settings()
        data: dict[str, Any] = {}

        if config_path is not None:
            try:
                data = yaml.safe_load(config_path.read_text()) or {}
            except (OSError, yaml.YAMLError) as e:
                raise SettingsError(f"Could not read settings from {config_path}: {e}")
            if not isinstance(data, dict):
                raise SettingsError(f"Settings file {config_path} must contain a mapping")
            logger.debug(f"Loaded settings from {config_path}")

        return cls.from_dict(data).with_env_overrides()

    def with_env_overrides(self) -> "Settings":
        """Apply DO_* environment variables on top of these settings."""
        overrides: dict[str, Any] = {}

        truth = os.environ.get("DO_CLASSES_OF_TRUTH")
        if truth:
            overrides["classes_of_truth"] = frozenset(
                c.strip() for c in truth.split(",") if c.strip()
            )

        concurrency = os.environ.get("DO_MAX_CONCURRENCY")
        if concurrency:
            overrides["max_concurrency"] = _positive_int(concurrency, "DO_MAX_CONCURRENCY")

        state_dir = os.environ.get("DO_STATE_DIR")
        if state_dir:
            overrides["state_dir"] = Path(state_dir).expanduser()

        return replace(self, **overrides) if overrides else self


def _positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise SettingsError(f"{name} must be an integer, got {value!r}")
    if number < 1:
        raise SettingsError(f"{name} must be at least 1, got {number}")
    return number


def _find_settings() -> Optional[Path]:
    """Find the settings file, if any."""
    env_path = os.environ.get("DO_SETTINGS")
    if env_path:
        return Path(env_path)

    search_paths = [
        Path.cwd() / "configs" / "onboarding.yaml",
        Path.cwd() / "onboarding.yaml",
        Path.home() / ".config" / "declarative-onboarding" / "onboarding.yaml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None
