"""
Affection computation functions.

Pure helpers shared by the evaluators and the presence machine:
timestamps, clamping, tier labels and delta application.
"""

import re
from datetime import date, datetime, timezone, tzinfo
from typing import Dict, Optional

from companion.affection.core import AffectionState
from companion.affection.config import AffectionConfig, get_config


# =============================================================================
# TIME
# =============================================================================

_FRACTION = re.compile(r"\.(\d+)(?=[+-]|$)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision and a trailing Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp. Naive values are taken as UTC.

    Raises:
        ValueError: If value is not a valid timestamp
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid ISO-8601 timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _zone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    from zoneinfo import ZoneInfo
    return ZoneInfo(name)


def day_bucket(moment: datetime, config: Optional[AffectionConfig] = None) -> str:
    """Calendar day of `moment` in the configured day-boundary timezone."""
    if config is None:
        config = get_config()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local: date = moment.astimezone(_zone(config.day_boundary_timezone)).date()
    return local.isoformat()


def get_decayed_value(value: float, elapsed_seconds: float, half_life_seconds: float) -> float:
    """
    Exponential decay:
        current = value * (0.5 ^ (elapsed / half_life))
    """
    if elapsed_seconds <= 0 or half_life_seconds <= 0:
        return value
    return value * (0.5 ** (elapsed_seconds / half_life_seconds))


# =============================================================================
# METRICS
# =============================================================================

def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_metric(metric: str, value: float, config: Optional[AffectionConfig] = None) -> float:
    """Clamp and round a metric value to its configured range."""
    if config is None:
        config = get_config()
    bounds = config.bounds_for(metric)
    return round(clamp(value, bounds.min, bounds.max), 2)


def get_relationship_label(aff: float, config: Optional[AffectionConfig] = None) -> str:
    """
    Map aff to a relationship tier label.

    Returns the highest tier whose min_aff <= aff; the lowest tier if aff
    sits below all of them.
    """
    if config is None:
        config = get_config()
    tiers = sorted(config.labels, key=lambda tier: tier.min_aff)
    label = tiers[0].label
    for tier in tiers:
        if aff >= tier.min_aff:
            label = tier.label
    return label


def default_state(now: Optional[datetime] = None, config: Optional[AffectionConfig] = None) -> AffectionState:
    """Build a fresh state for a workspace with no persisted record."""
    if config is None:
        config = get_config()
    if now is None:
        now = utc_now()
    d = config.defaults
    state = AffectionState(
        aff=clamp_metric("aff", d.aff, config),
        closeness=clamp_metric("closeness", d.closeness, config),
        trust=clamp_metric("trust", d.trust, config),
        reliability_trust=clamp_metric("reliability_trust", d.reliability_trust, config),
        irritation=clamp_metric("irritation", d.irritation, config),
        today=day_bucket(now, config),
    )
    state.label = get_relationship_label(state.aff, config)
    return state


def apply_deltas(
    state: AffectionState,
    deltas: Dict[str, float],
    config: Optional[AffectionConfig] = None,
) -> bool:
    """
    Apply metric deltas in place with clamping.

    Positive aff gain is limited by what is left of the daily cap; the
    label is recomputed afterwards.

    Args:
        state: State to mutate
        deltas: metric name -> delta
        config: Configuration (active config if None)

    Returns:
        True if any metric value actually changed

    Raises:
        KeyError: If a delta names an unknown metric
    """
    if config is None:
        config = get_config()

    unknown = [metric for metric in deltas if metric not in config.metrics]
    if unknown:
        raise KeyError(f"Unknown metric: {', '.join(unknown)}")

    changed = False
    for metric, delta in deltas.items():
        if not delta:
            continue

        current = getattr(state, metric)
        if metric == "aff" and delta > 0:
            remaining = max(0.0, config.limits.daily_aff_gain_cap - state.daily_aff_gain)
            delta = min(delta, remaining)

        updated = clamp_metric(metric, current + delta, config)
        if updated == current:
            continue

        if metric == "aff" and updated > current:
            state.daily_aff_gain = round(state.daily_aff_gain + (updated - current), 2)
        setattr(state, metric, updated)
        changed = True

    state.label = get_relationship_label(state.aff, config)
    return changed
