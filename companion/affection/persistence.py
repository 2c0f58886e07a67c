"""
Persistence layer for affection state and preferences.

Layout per workspace:
- affection/state.json: AffectionState, every key always present
- affection/prefs.json: AffectionPrefs

Reads never fail: a missing or corrupt file yields a defaulted record.
Writes go to a temp file that is then renamed over the target, so a failed
save leaves the previous document intact. Write errors propagate.
"""

import asyncio
import json
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from companion.affection.core import (
    AffectionPrefs,
    AffectionState,
    StickerTriggers,
    PRESENCE_ACTIVE,
    PRESENCE_AWAY,
    PRESENCE_STATES,
    STICKER_KINDS,
)
from companion.affection.config import AffectionConfig, get_config
from companion.affection.computation import (
    clamp_metric,
    default_state,
    get_relationship_label,
    parse_iso,
)

logger = logging.getLogger(__name__)

WorkspacePath = Union[str, Path]

STATE_DIR = "affection"
STATE_FILE = "state.json"
PREFS_FILE = "prefs.json"

# Python attribute -> JSON key
_METRIC_KEYS = {
    "aff": "aff",
    "closeness": "closeness",
    "trust": "trust",
    "reliability_trust": "reliabilityTrust",
    "irritation": "irritation",
}


def state_path(workspace: WorkspacePath) -> Path:
    return Path(workspace) / STATE_DIR / STATE_FILE


def prefs_path(workspace: WorkspacePath) -> Path:
    return Path(workspace) / STATE_DIR / PREFS_FILE


# =============================================================================
# FIELD COERCION
# =============================================================================

def _as_number(value: Any, fallback: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    try:
        number = float(value)
    except (OverflowError, ValueError):
        return fallback
    if math.isnan(number) or math.isinf(number):
        return fallback
    return number


def _as_timestamp(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parse_iso(value)
    except ValueError:
        return None
    return value


def _as_id_list(value: Any) -> List[str]:
    """Unique non-empty strings, first occurrence kept, order preserved."""
    if not isinstance(value, list):
        return []
    result: List[str] = []
    for item in value:
        if isinstance(item, str) and item and item not in result:
            result.append(item)
    return result


# =============================================================================
# STATE SERIALIZATION
# =============================================================================

def serialize_state(state: AffectionState) -> Dict[str, Any]:
    """
    Serialize state to a JSON-compatible dict.

    All keys are written, including null and default values.
    """
    data: Dict[str, Any] = {"label": state.label}
    for attr, key in _METRIC_KEYS.items():
        data[key] = getattr(state, attr)
    data.update({
        "presence": state.presence,
        "expectedReturnAt": state.expected_return_at,
        "awaySince": state.away_since,
        "today": state.today,
        "dailyAffGain": state.daily_aff_gain,
        "lastMessageAt": state.last_message_at,
        "updatedAt": state.updated_at,
        "processedMessageIds": list(state.processed_message_ids),
    })
    return data


def deserialize_state(
    data: Dict[str, Any],
    now: Optional[datetime] = None,
    config: Optional[AffectionConfig] = None,
) -> AffectionState:
    """
    Build a state from a persisted dict, filling every field.

    Missing or mistyped fields take their defaults, metrics are clamped,
    and the presence invariant is repaired. The label is always derived
    from aff.

    Args:
        data: Dict from serialize_state() (or an older/hand-edited file)
        now: Used for the default `today` bucket
        config: Configuration (active config if None)
    """
    if config is None:
        config = get_config()
    state = default_state(now, config)

    for attr, key in _METRIC_KEYS.items():
        fallback = getattr(state, attr)
        setattr(state, attr, clamp_metric(attr, _as_number(data.get(key), fallback), config))

    presence = data.get("presence")
    state.presence = presence if presence in PRESENCE_STATES else PRESENCE_ACTIVE

    state.expected_return_at = _as_timestamp(data.get("expectedReturnAt"))
    if state.presence != PRESENCE_AWAY:
        state.expected_return_at = None

    state.away_since = _as_timestamp(data.get("awaySince"))
    if state.presence == PRESENCE_ACTIVE:
        state.away_since = None

    today = data.get("today")
    if isinstance(today, str) and today:
        state.today = today
    state.daily_aff_gain = max(0.0, _as_number(data.get("dailyAffGain"), 0.0))
    state.last_message_at = _as_timestamp(data.get("lastMessageAt"))
    state.updated_at = _as_timestamp(data.get("updatedAt"))

    ids = _as_id_list(data.get("processedMessageIds"))
    capacity = config.limits.processed_message_capacity
    state.processed_message_ids = ids[-capacity:] if capacity > 0 else []

    state.label = get_relationship_label(state.aff, config)
    return state


# =============================================================================
# PREFS SERIALIZATION
# =============================================================================

def serialize_prefs(prefs: AffectionPrefs) -> Dict[str, Any]:
    data: Dict[str, Any] = dict(prefs.extra)
    data["mode"] = prefs.mode
    data["name"] = prefs.name
    data["stickerTriggers"] = {
        kind: list(prefs.sticker_triggers.ids_for(kind)) for kind in STICKER_KINDS
    }
    return data


def deserialize_prefs(data: Dict[str, Any]) -> AffectionPrefs:
    """Build prefs from a persisted dict; unknown or missing keys default to empty."""
    mode = data.get("mode")
    name = data.get("name")
    triggers = data.get("stickerTriggers")
    if not isinstance(triggers, dict):
        triggers = {}

    return AffectionPrefs(
        mode=mode if mode in ("auto", "fixed") else "auto",
        name=name if isinstance(name, str) else "",
        sticker_triggers=StickerTriggers(
            sleep=_as_id_list(triggers.get("sleep")),
            wake=_as_id_list(triggers.get("wake")),
        ),
        extra={
            key: value for key, value in data.items()
            if key not in ("mode", "name", "stickerTriggers")
        },
    )


# =============================================================================
# FILE I/O
# =============================================================================

def _read_json_object(path: Path) -> Optional[Dict[str, Any]]:
    """Return the JSON object at path, or None if missing or unreadable."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, RecursionError, ValueError) as e:
        logger.warning("Could not read %s, using defaults: %s", path, e)
        return None

    if not isinstance(data, dict):
        logger.warning("Ignoring %s: root is %s, not an object", path, type(data).__name__)
        return None
    return data


def _write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    # Write atomically (write to temp, then rename)
    temp_file = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        temp_file.replace(path)
    except OSError:
        temp_file.unlink(missing_ok=True)
        raise


def load_state_sync(
    workspace: WorkspacePath,
    now: Optional[datetime] = None,
    config: Optional[AffectionConfig] = None,
) -> AffectionState:
    """Blocking variant of load_state()."""
    data = _read_json_object(state_path(workspace))
    if data is None:
        return default_state(now, config)
    return deserialize_state(data, now, config)


async def load_state(
    workspace: WorkspacePath,
    now: Optional[datetime] = None,
    config: Optional[AffectionConfig] = None,
) -> AffectionState:
    """
    Load the workspace state, or a fresh default if none is usable.

    Args:
        workspace: Workspace directory
        now: Used for the default `today` bucket
        config: Configuration (active config if None)

    Returns:
        AffectionState (never raises for missing/corrupt files)
    """
    if config is None:
        config = get_config()
    return await asyncio.to_thread(load_state_sync, workspace, now, config)


async def save_state(workspace: WorkspacePath, state: AffectionState) -> None:
    """
    Persist the full state, creating affection/ if needed.

    Raises:
        OSError: If the document cannot be written
    """
    data = serialize_state(state)
    await asyncio.to_thread(_write_json_atomic, state_path(workspace), data)


async def load_prefs(workspace: WorkspacePath) -> AffectionPrefs:
    """Load workspace prefs; missing or corrupt files yield empty prefs."""
    data = await asyncio.to_thread(_read_json_object, prefs_path(workspace))
    if data is None:
        return AffectionPrefs()
    return deserialize_prefs(data)


async def save_prefs(workspace: WorkspacePath, prefs: AffectionPrefs) -> None:
    """
    Persist workspace prefs.

    Raises:
        OSError: If the document cannot be written
    """
    data = serialize_prefs(prefs)
    await asyncio.to_thread(_write_json_atomic, prefs_path(workspace), data)
