"""
Configuration module for the monitoring engine.

Provides dataclass-based configuration with:
- YAML file loading
- Environment variable interpolation
- Type coercion
- Sensible defaults
"""

from monitor_core.config.base_config import (
    BaseConfig,
    StoreConfig,
    AlertingConfig,
    InsightConfig,
    HealthConfig,
    MonitorConfig,
    load_config,
)

__all__ = [
    "BaseConfig",
    "StoreConfig",
    "AlertingConfig",
    "InsightConfig",
    "HealthConfig",
    "MonitorConfig",
    "load_config",
]
