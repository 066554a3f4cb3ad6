"""Engine configuration with JSON persistence and environment overrides."""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".horizon-lead-engine"

# Environment variable -> config field
ENV_OVERRIDES = {
    "HORIZON_REPORT_HOUR": "report_hour",
    "HORIZON_RETENTION_DAYS": "retention_days",
    "HORIZON_MAX_ENTITIES": "max_tracked_entities",
    "HORIZON_LOG_LEVEL": "log_level",
}


@dataclass
class EngineConfig:
    """Tunable settings for the analytics engine and its background monitor."""

    # Sample buffers
    response_time_capacity: int = 1000
    memory_window_hours: int = 24

    # A conversation is active if its last message is this recent
    active_conversation_minutes: int = 5

    # Retention for per-entity event logs
    max_tracked_entities: int = 10000
    retention_days: int = 90

    # Scheduled reports (local wall-clock hour; weekly runs on Mondays)
    report_hour: int = 9

    # Background tick intervals (seconds)
    system_metrics_interval: int = 60
    counter_refresh_interval: int = 300

    log_level: str = "INFO"

    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        config = cls()
        for f in fields(cls):
            if f.name == "updated_at" or f.name not in data:
                continue
            try:
                setattr(config, f.name, _convert(f.name, data[f.name]))
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid {f.name}={data[f.name]!r} in engine config")
        if data.get("updated_at"):
            try:
                config.updated_at = datetime.fromisoformat(data["updated_at"])
            except (TypeError, ValueError):
                pass
        return config


# (min, max) for integer settings; None means unbounded
INT_RANGES = {
    "response_time_capacity": (1, None),
    "memory_window_hours": (1, None),
    "active_conversation_minutes": (0, None),
    "max_tracked_entities": (1, None),
    "retention_days": (1, None),
    "report_hour": (0, 23),
    "system_metrics_interval": (1, None),
    "counter_refresh_interval": (1, None),
}


def _convert(name: str, value: Any) -> Any:
    """Convert a raw value to the type of the named config field.

    Raises ValueError for values that can't be converted or are out of range.
    """
    default = getattr(EngineConfig(), name)
    if isinstance(default, str):
        return str(value).upper() if name == "log_level" else str(value)

    number = int(value)
    low, high = INT_RANGES.get(name, (None, None))
    if (low is not None and number < low) or (high is not None and number > high):
        raise ValueError(f"{name} out of range: {number}")
    return number


class EngineConfigManager:
    """Manage and persist engine configuration."""

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        """Initialize config manager."""
        self.config_path = config_path or DEFAULT_CONFIG_DIR / "engine_config.json"
        self.environ = os.environ if environ is None else environ
        self.config = self._load_config()
        self._apply_env_overrides()

    def _load_config(self) -> EngineConfig:
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    return EngineConfig.from_dict(json.load(f))
            except Exception as e:
                logger.error(f"Error loading engine config: {e}")

        return EngineConfig()

    def _apply_env_overrides(self):
        for env_name, field_name in ENV_OVERRIDES.items():
            raw = self.environ.get(env_name)
            if raw in (None, ""):
                continue
            try:
                setattr(self.config, field_name, _convert(field_name, raw))
            except ValueError:
                logger.warning(f"Ignoring invalid {env_name}={raw!r}")

    def save_config(self):
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            json.dump(self.config.to_dict(), f, indent=2)

    def set_value(self, name: str, value: Any):
        """Update a single setting and persist it."""
        if name == "updated_at" or name not in {f.name for f in fields(EngineConfig)}:
            raise KeyError(name)
        setattr(self.config, name, _convert(name, value))
        self.config.updated_at = datetime.now()
        self.save_config()
