"""
Test helpers for deterministic affection testing.

Provides utilities to:
1. Freeze and advance time
2. Build states with exact metric values
3. Read persisted documents back without going through the store
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from companion.affection.core import AffectionState
from companion.affection.computation import default_state, get_relationship_label
from companion.affection.persistence import state_path, prefs_path


CONFIG_PATH = Path(__file__).parent.parent / "config" / "affection_defaults.yaml"

T0 = datetime(2024, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


def at(text: str) -> datetime:
    """Parse a Z-suffixed ISO timestamp into an aware datetime."""
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


class FakeClock:
    """Callable clock for AffectionManager(clock=...)."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_state(now: Optional[datetime] = None, **overrides: Any) -> AffectionState:
    """
    Build a default state with exact field overrides.

    The label is re-derived when aff is overridden.
    """
    state = default_state(now or T0)
    for name, value in overrides.items():
        setattr(state, name, value)
    if "aff" in overrides and "label" not in overrides:
        state.label = get_relationship_label(state.aff)
    return state


def read_state_file(workspace: Path) -> Dict[str, Any]:
    with open(state_path(workspace), "r", encoding="utf-8") as f:
        return json.load(f)


def read_prefs_file(workspace: Path) -> Dict[str, Any]:
    with open(prefs_path(workspace), "r", encoding="utf-8") as f:
        return json.load(f)


def write_prefs_file(workspace: Path, data: Dict[str, Any]) -> None:
    path = prefs_path(workspace)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)
