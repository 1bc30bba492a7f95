"""Runtime settings.

Values come from defaults, then an optional YAML file, then environment
variables (a ``.env`` file in the working directory is honoured).
"""

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


DEFAULT_MODEL_PATH = os.path.join("models", "adware_model.joblib")

ENV_PREFIX = "TRIAGE_"


@dataclass(frozen=True)
class Settings:
    model_path: str = DEFAULT_MODEL_PATH
    self_package: str = ""
    workers: int = 1
    app_timeout: float = 30.0
    adb_timeout: float = 90.0
    log_level: str = "INFO"

    @property
    def app_timeout_or_none(self) -> Optional[float]:
        """Per-application timeout; 0 or less disables it."""
        return self.app_timeout if self.app_timeout > 0 else None

    @classmethod
    def from_env(cls, config_path: Optional[str] = None) -> "Settings":
        load_dotenv()
        settings = cls()
        if config_path and os.path.exists(config_path):
            settings = _merge(settings, _load_yaml(config_path))
        overrides: Dict[str, Any] = {}
        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is not None:
                overrides[f.name] = raw
        return _merge(settings, overrides)


def _load_yaml(config_path: str) -> Dict[str, Any]:
    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def _merge(settings: Settings, values: Dict[str, Any]) -> Settings:
    """Apply known keys; malformed numbers keep the current value."""
    changes: Dict[str, Any] = {}
    for f in fields(settings):
        if f.name not in values or values[f.name] is None:
            continue
        current = getattr(settings, f.name)
        try:
            if isinstance(current, int):
                changes[f.name] = max(1, int(values[f.name]))
            elif isinstance(current, float):
                changes[f.name] = float(values[f.name])
            else:
                changes[f.name] = str(values[f.name])
        except (TypeError, ValueError):
            continue
    return replace(settings, **changes)
