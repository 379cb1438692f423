"""
Configuration system for the monitoring engine.

Features:
- Dataclass-based configuration with type hints
- YAML file loading with environment variable interpolation
- Environment-variable defaults for every interval and threshold
- Per-component sections (store, alerting, insights, health)
"""

from __future__ import annotations

import os
import re
import typing
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Optional,
    TypeVar,
    Type,
    Union,
)
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="BaseConfig")

_SECTIONS = ("store", "alerting", "insights", "health")


def _interpolate_env_vars(value: Any) -> Any:
    """
    Recursively interpolate environment variables in config values.

    Supports formats:
    - ${VAR_NAME} - Required, raises if not set
    - ${VAR_NAME:-default} - Optional with default
    - ${VAR_NAME:?error message} - Required with custom error
    """
    if isinstance(value, str):
        pattern = r"\$\{([A-Z_][A-Z0-9_]*)(?:(:-)([^}]*))?(?:(:\?)([^}]*))?\}"

        def replace_var(match: re.Match) -> str:
            var_name = match.group(1)
            has_default = match.group(2) is not None
            default_value = match.group(3) or ""
            has_error = match.group(4) is not None
            error_msg = match.group(5) or f"Required environment variable {var_name} is not set"

            env_value = os.environ.get(var_name)

            if env_value is not None:
                return env_value
            elif has_default:
                return default_value
            elif has_error:
                raise ValueError(error_msg)
            elif match.group(0) == value:
                raise ValueError(f"Environment variable {var_name} is not set")
            # Part of a larger string: leave untouched
            return match.group(0)

        result = re.sub(pattern, replace_var, value)

        if result.startswith("~"):
            result = str(Path(result).expanduser())

        return result

    elif isinstance(value, dict):
        return {k: _interpolate_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_interpolate_env_vars(item) for item in value]

    return value


def _coerce_type(value: Any, target_type: Any) -> Any:
    """Coerce a value to the target type."""
    if value is None:
        return None

    origin = typing.get_origin(target_type)

    if origin is Union:
        non_none_types = [t for t in typing.get_args(target_type) if t is not type(None)]
        if len(non_none_types) == 1:
            return _coerce_type(value, non_none_types[0])
        return value

    if target_type is Path:
        return Path(value).expanduser() if value else None

    if origin is list:
        args = typing.get_args(target_type)
        item_type = args[0] if args else str
        if isinstance(value, list):
            return [_coerce_type(item, item_type) for item in value]
        if isinstance(value, str):
            return [_coerce_type(item.strip(), item_type) for item in value.split(",") if item.strip()]
        return [_coerce_type(value, item_type)]

    # bool("false") is True
    if target_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    if target_type is int:
        return int(float(value)) if value != "" else 0
    if target_type is float:
        return float(value) if value != "" else 0.0
    if target_type is str:
        return str(value)

    return value


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


@dataclass
class BaseConfig:
    """
    Base configuration class with YAML loading and env var interpolation.
    """

    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        """Create config from dictionary with env var interpolation."""
        interpolated = _interpolate_env_vars(data or {})
        hints = typing.get_type_hints(cls)

        filtered = {}
        for key, value in interpolated.items():
            if key in hints and key in cls.__dataclass_fields__:
                filtered[key] = _coerce_type(value, hints[key])
            else:
                logger.debug(f"[Config] Ignoring unknown key {cls.__name__}.{key}")

        return cls(**filtered)

    @classmethod
    def from_yaml(cls: Type[T], path: Union[str, Path]) -> T:
        """Load config from YAML file with env var interpolation."""
        import yaml

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_env(cls: Type[T], prefix: str = "") -> T:
        """Create config entirely from environment variables."""
        data = {}

        for field_info in fields(cls):
            env_key = f"{prefix}{field_info.name}".upper()
            env_value = os.environ.get(env_key)

            if env_value is not None:
                data[field_info.name] = env_value

        return cls.from_dict(data) if data else cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        result = {}
        for key, value in asdict(self).items():
            if isinstance(value, Path):
                result[key] = str(value)
            elif isinstance(value, datetime):
                result[key] = value.isoformat()
            else:
                result[key] = value
        return result

    def merge(self: T, other: Dict[str, Any]) -> T:
        """Create new config with overrides merged in."""
        current = self.to_dict()
        current.update(_interpolate_env_vars(other))
        return self.__class__.from_dict(current)


@dataclass
class StoreConfig(BaseConfig):
    """Metric buffering, flushing and retention."""

    flush_interval_seconds: float = field(
        default_factory=lambda: _env_float("MONITOR_FLUSH_INTERVAL", "30.0")
    )
    flush_batch_size: int = field(
        default_factory=lambda: _env_int("MONITOR_FLUSH_BATCH_SIZE", "100")
    )
    default_retention_seconds: int = field(
        default_factory=lambda: _env_int("MONITOR_DEFAULT_RETENTION", "86400")
    )
    # Drain every buffer once more when the engine stops
    flush_on_stop: bool = True


@dataclass
class AlertingConfig(BaseConfig):
    """Alert evaluation and notification dispatch."""

    notification_timeout_seconds: float = field(
        default_factory=lambda: _env_float("MONITOR_NOTIFY_TIMEOUT", "10.0")
    )
    default_frequency_seconds: float = 60.0

    # Delivery endpoints for the default channels
    slack_webhook_url: Optional[str] = field(
        default_factory=lambda: os.getenv("MONITOR_SLACK_WEBHOOK")
    )
    slack_channel: Optional[str] = field(
        default_factory=lambda: os.getenv("MONITOR_SLACK_CHANNEL")
    )
    webhook_url: Optional[str] = field(
        default_factory=lambda: os.getenv("MONITOR_WEBHOOK_URL")
    )
    email_recipients: List[str] = field(default_factory=list)


@dataclass
class InsightConfig(BaseConfig):
    """Insight generation cadence and heuristic thresholds."""

    interval_seconds: float = field(
        default_factory=lambda: _env_float("MONITOR_INSIGHT_INTERVAL", "300.0")
    )

    trend_min_points: int = 10
    trend_slope_threshold: float = 0.1
    trend_warning_slope: float = 0.5

    anomaly_min_points: int = 20
    anomaly_history_window: int = 50
    anomaly_recent_window: int = 10
    anomaly_stddev_multiplier: float = 2.0
    anomaly_error_count: int = 3

    correlation_min_points: int = 10
    correlation_threshold: float = 0.7


@dataclass
class HealthConfig(BaseConfig):
    """Health check cadence, status thresholds and SLA targets."""

    check_interval_seconds: float = field(
        default_factory=lambda: _env_float("MONITOR_HEALTH_INTERVAL", "30.0")
    )

    # Overall status thresholds (no hysteresis)
    healthy_score: float = 95.0
    degraded_score: float = 80.0

    # SLA targets
    sla_availability_target: float = field(
        default_factory=lambda: _env_float("MONITOR_SLA_AVAILABILITY", "99.9")
    )
    sla_latency_target_ms: float = field(
        default_factory=lambda: _env_float("MONITOR_SLA_LATENCY_MS", "200.0")
    )
    sla_error_rate_target: float = field(
        default_factory=lambda: _env_float("MONITOR_SLA_ERROR_RATE", "1.0")
    )
    sla_period: str = "monthly"


@dataclass
class MonitorConfig(BaseConfig):
    """
    Master configuration combining all engine components.
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    insights: InsightConfig = field(default_factory=InsightConfig)
    health: HealthConfig = field(default_factory=HealthConfig)

    # Seed the default metric catalog, alert rules, channels and dashboards
    load_defaults: bool = field(
        default_factory=lambda: os.getenv("MONITOR_LOAD_DEFAULTS", "true").lower() == "true"
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorConfig":
        data = data or {}
        global_settings = {k: v for k, v in data.items() if k not in _SECTIONS}
        global_settings = _interpolate_env_vars(global_settings)

        config = cls(
            store=StoreConfig.from_dict(data.get("store") or {}),
            alerting=AlertingConfig.from_dict(data.get("alerting") or {}),
            insights=InsightConfig.from_dict(data.get("insights") or {}),
            health=HealthConfig.from_dict(data.get("health") or {}),
        )
        if "load_defaults" in global_settings:
            config.load_defaults = _coerce_type(global_settings["load_defaults"], bool)
        return config

    @classmethod
    def from_yaml_dir(cls, config_dir: Union[str, Path]) -> "MonitorConfig":
        """Load config from a directory holding one YAML file per section."""
        config_dir = Path(config_dir)
        config = cls()

        if (config_dir / "store.yaml").exists():
            config.store = StoreConfig.from_yaml(config_dir / "store.yaml")
        if (config_dir / "alerting.yaml").exists():
            config.alerting = AlertingConfig.from_yaml(config_dir / "alerting.yaml")
        if (config_dir / "insights.yaml").exists():
            config.insights = InsightConfig.from_yaml(config_dir / "insights.yaml")
        if (config_dir / "health.yaml").exists():
            config.health = HealthConfig.from_yaml(config_dir / "health.yaml")

        return config


def load_config(path: Optional[Union[str, Path]] = None) -> MonitorConfig:
    """
    Build a configuration.

    Args:
        path: YAML file or directory of per-section YAML files. If None,
            defaults with environment overrides are used.

    Returns:
        A new MonitorConfig instance.
    """
    if path is None:
        config = MonitorConfig()
    elif Path(path).is_dir():
        config = MonitorConfig.from_yaml_dir(path)
    else:
        config = MonitorConfig.from_yaml(path)

    logger.info(
        f"[Config] Loaded: flush={config.store.flush_interval_seconds}s, "
        f"insights={config.insights.interval_seconds}s, "
        f"health={config.health.check_interval_seconds}s"
    )
    return config
