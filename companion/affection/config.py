"""
Configuration for the affection engine.

All tunable parameters live here, not in code.
Defaults mirror config/affection_defaults.yaml.
"""

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml


METRIC_NAMES: Tuple[str, ...] = (
    "aff",
    "closeness",
    "trust",
    "reliability_trust",
    "irritation",
)


@dataclass
class MetricBounds:
    """Clamp range for a single metric."""
    min: float
    max: float


@dataclass
class MetricDefaults:
    """Initial metric values for a fresh workspace."""
    aff: float
    closeness: float
    trust: float
    reliability_trust: float
    irritation: float


@dataclass
class LabelTier:
    """Relationship tier reached once aff >= min_aff."""
    min_aff: float
    label: str


@dataclass
class DecayConfig:
    """Lazy decay applied at mutation time."""
    irritation_half_life_hours: float


@dataclass
class LimitsConfig:
    """Bookkeeping limits."""
    daily_aff_gain_cap: float
    processed_message_capacity: int


@dataclass
class PresenceConfig:
    """Reconnection and reliability tuning for the presence machine."""
    return_grace_minutes: float
    large_overrun_minutes: float
    on_time_reliability_delta: float
    overrun_reliability_delta: float
    reconnection_deltas: Dict[str, float]


@dataclass
class StickerConfig:
    """Metric deltas for sticker trigger kinds."""
    sleep_deltas: Dict[str, float]
    wake_deltas: Dict[str, float]


@dataclass
class AffectionConfig:
    """Complete affection engine configuration."""
    metrics: Dict[str, MetricBounds]
    defaults: MetricDefaults
    labels: List[LabelTier]
    decay: DecayConfig
    limits: LimitsConfig
    presence: PresenceConfig
    stickers: StickerConfig
    day_boundary_timezone: str = "UTC"

    def bounds_for(self, metric: str) -> MetricBounds:
        return self.metrics[metric]


_DEFAULT_CONFIG = AffectionConfig(
    metrics={name: MetricBounds(min=0.0, max=100.0) for name in METRIC_NAMES},
    defaults=MetricDefaults(
        aff=25.0,
        closeness=20.0,
        trust=30.0,
        reliability_trust=50.0,
        irritation=0.0,
    ),
    labels=[
        LabelTier(min_aff=0.0, label="stranger"),
        LabelTier(min_aff=20.0, label="acquaintance"),
        LabelTier(min_aff=40.0, label="friendly"),
        LabelTier(min_aff=60.0, label="close"),
        LabelTier(min_aff=80.0, label="devoted"),
    ],
    decay=DecayConfig(irritation_half_life_hours=12.0),
    limits=LimitsConfig(
        daily_aff_gain_cap=10.0,
        processed_message_capacity=500,
    ),
    presence=PresenceConfig(
        return_grace_minutes=15.0,
        large_overrun_minutes=120.0,
        on_time_reliability_delta=2.0,
        overrun_reliability_delta=-3.0,
        reconnection_deltas={"closeness": 1.0},
    ),
    stickers=StickerConfig(
        sleep_deltas={"closeness": 1.0},
        wake_deltas={"trust": 1.0, "closeness": 1.0},
    ),
    day_boundary_timezone="UTC",
)

# Active configuration (can be replaced at runtime)
_active_config: AffectionConfig = _DEFAULT_CONFIG


def get_config() -> AffectionConfig:
    """Get the active affection configuration."""
    return _active_config


def set_config(config: AffectionConfig) -> None:
    """Set the active affection configuration."""
    global _active_config
    _active_config = config


def reset_config() -> None:
    """Reset to default configuration."""
    global _active_config
    _active_config = _DEFAULT_CONFIG


# =============================================================================
# YAML LOADER
# =============================================================================

def _require(data: Dict[str, Any], key: str, where: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise ValueError(f"Missing required field: {where}{key}")
    return data[key]


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = _require(data, key, "")
    if not isinstance(section, dict):
        raise ValueError(f"Field {key} must be a mapping")
    return section


def _number(data: Dict[str, Any], key: str, where: str) -> float:
    value = _require(data, key, where)
    if isinstance(value, bool):
        raise ValueError(f"Invalid value for {where}{key}: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError(f"Invalid value for {where}{key}: {value!r}") from e
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"Invalid value for {where}{key}: {value!r}")
    return number


def _integer(data: Dict[str, Any], key: str, where: str) -> int:
    number = _number(data, key, where)
    if number != int(number):
        raise ValueError(f"Invalid value for {where}{key}: expected a whole number")
    return int(number)


def _float_map(data: Any, where: str) -> Dict[str, float]:
    """Parse a metric -> delta mapping; every key must be a known metric."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Field {where} must be a mapping of metric -> delta")
    deltas = {}
    for metric in data:
        if metric not in METRIC_NAMES:
            raise ValueError(
                f"{where}: unknown metric '{metric}'. Valid: {', '.join(METRIC_NAMES)}"
            )
        deltas[metric] = _number(data, metric, f"{where}.")
    return deltas


def _timezone_name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid value for day_boundary_timezone: {value!r}")
    name = value.strip()
    if name.upper() == "UTC":
        return name
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown day_boundary_timezone '{name}'") from e
    return name


def _parse_config(data: Dict[str, Any]) -> AffectionConfig:
    metrics_data = _require(data, "metrics", "")
    metrics = {}
    for name in METRIC_NAMES:
        bounds = _require(metrics_data, name, "metrics.")
        metrics[name] = MetricBounds(
            min=_number(bounds, "min", f"metrics.{name}."),
            max=_number(bounds, "max", f"metrics.{name}."),
        )
        if metrics[name].min > metrics[name].max:
            raise ValueError(f"metrics.{name}: min must not exceed max")

    defaults_data = _require(data, "defaults", "")
    defaults = MetricDefaults(
        **{name: _number(defaults_data, name, "defaults.") for name in METRIC_NAMES}
    )

    labels_data = _require(data, "labels", "")
    if not isinstance(labels_data, list) or not labels_data:
        raise ValueError("Field labels must be a non-empty list")
    labels = sorted(
        (
            LabelTier(
                min_aff=_number(tier, "min_aff", "labels[]."),
                label=str(_require(tier, "label", "labels[].")),
            )
            for tier in labels_data
        ),
        key=lambda tier: tier.min_aff,
    )

    decay_data = _section(data, "decay")
    limits_data = _section(data, "limits")
    presence_data = _section(data, "presence")
    stickers_data = _section(data, "stickers")

    return AffectionConfig(
        metrics=metrics,
        defaults=defaults,
        labels=labels,
        decay=DecayConfig(
            irritation_half_life_hours=_number(decay_data, "irritation_half_life_hours", "decay."),
        ),
        limits=LimitsConfig(
            daily_aff_gain_cap=_number(limits_data, "daily_aff_gain_cap", "limits."),
            processed_message_capacity=_integer(limits_data, "processed_message_capacity", "limits."),
        ),
        presence=PresenceConfig(
            return_grace_minutes=_number(presence_data, "return_grace_minutes", "presence."),
            large_overrun_minutes=_number(presence_data, "large_overrun_minutes", "presence."),
            on_time_reliability_delta=_number(presence_data, "on_time_reliability_delta", "presence."),
            overrun_reliability_delta=_number(presence_data, "overrun_reliability_delta", "presence."),
            reconnection_deltas=_float_map(
                presence_data.get("reconnection_deltas"), "presence.reconnection_deltas"
            ),
        ),
        stickers=StickerConfig(
            sleep_deltas=_float_map(stickers_data.get("sleep_deltas"), "stickers.sleep_deltas"),
            wake_deltas=_float_map(stickers_data.get("wake_deltas"), "stickers.wake_deltas"),
        ),
        day_boundary_timezone=_timezone_name(data.get("day_boundary_timezone", "UTC")),
    )


def load_config_from_yaml(path: Union[str, Path]) -> AffectionConfig:
    """
    Load an AffectionConfig from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed configuration (not activated; call set_config() for that)

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the YAML is malformed, a required field is missing or
            invalid, a delta names an unknown metric, or the timezone is unknown
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("YAML root must be a dictionary")

    return _parse_config(data)
