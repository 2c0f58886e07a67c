"""
Core data structures for the affection engine.

Attributes are snake_case; the JSON layout on disk (camelCase) lives in
persistence.py.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


# Presence values, as persisted
PRESENCE_ACTIVE = "ACTIVE"
PRESENCE_BRIEFLY_AWAY = "BRIEFLY_AWAY"
PRESENCE_AWAY = "AWAY"

PRESENCE_STATES = (PRESENCE_ACTIVE, PRESENCE_BRIEFLY_AWAY, PRESENCE_AWAY)

# Sticker trigger kinds, in lookup order
STICKER_SLEEP = "sleep"
STICKER_WAKE = "wake"

STICKER_KINDS = (STICKER_SLEEP, STICKER_WAKE)


@dataclass
class AffectionState:
    """
    Per-workspace relationship record.

    Exactly one instance is live per workspace; AffectionManager owns it.
    Metrics are clamped to the configured bounds on every mutation.
    """
    label: str = "acquaintance"
    aff: float = 25.0
    closeness: float = 20.0
    trust: float = 30.0
    reliability_trust: float = 50.0
    irritation: float = 0.0

    presence: str = PRESENCE_ACTIVE
    expected_return_at: Optional[str] = None   # ISO-8601, only while AWAY
    away_since: Optional[str] = None           # ISO-8601, only while not ACTIVE

    today: str = ""                            # ISO date of the last mutation
    daily_aff_gain: float = 0.0                # positive aff gained during `today`
    last_message_at: Optional[str] = None
    updated_at: Optional[str] = None

    # Oldest first; bounded by limits.processed_message_capacity
    processed_message_ids: List[str] = field(default_factory=list)

    def metrics(self) -> Dict[str, float]:
        """Current metric values keyed by metric name."""
        return {
            "aff": self.aff,
            "closeness": self.closeness,
            "trust": self.trust,
            "reliability_trust": self.reliability_trust,
            "irritation": self.irritation,
        }


@dataclass
class StickerTriggers:
    """Sticker identifier sets, one per trigger kind."""
    sleep: List[str] = field(default_factory=list)
    wake: List[str] = field(default_factory=list)

    def ids_for(self, kind: str) -> List[str]:
        if kind == STICKER_SLEEP:
            return self.sleep
        if kind == STICKER_WAKE:
            return self.wake
        raise KeyError(kind)


@dataclass
class AffectionPrefs:
    """
    User-facing preferences for a workspace.

    Lives next to the state file with its own lifecycle: created on first
    write, read by the sticker evaluator on every sticker event.
    """
    mode: str = "auto"                         # "auto" | "fixed"
    name: str = ""
    sticker_triggers: StickerTriggers = field(default_factory=StickerTriggers)

    # Unrecognised keys from prefs.json, written back untouched
    extra: Dict[str, object] = field(default_factory=dict)


@dataclass
class TriggerResult:
    """Outcome of a trigger evaluation."""
    changed: bool
    matched: List[str] = field(default_factory=list)   # rule names or sticker kind
    duplicate: bool = False                            # message id already processed


@dataclass
class PresenceTransition:
    """Outcome of a presence change."""
    previous: str
    current: str
    reliability_delta: float = 0.0
    absence_seconds: Optional[float] = None            # set when returning to ACTIVE

    @property
    def is_noop(self) -> bool:
        return self.previous == self.current
