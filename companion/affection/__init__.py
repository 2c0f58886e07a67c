"""
Affection Engine - relationship state for a conversational companion

Tracks affection metrics and counterpart presence per workspace, and
mutates them in response to inbound messages, stickers and presence changes.
"""

from companion.affection.core import (
    AffectionState,
    AffectionPrefs,
    StickerTriggers,
    TriggerResult,
    PresenceTransition,
    PRESENCE_ACTIVE,
    PRESENCE_BRIEFLY_AWAY,
    PRESENCE_AWAY,
)
from companion.affection.config import (
    AffectionConfig,
    get_config,
    set_config,
    reset_config,
    load_config_from_yaml,
)
from companion.affection.persistence import (
    load_state,
    save_state,
    load_prefs,
    save_prefs,
)
from companion.affection.triggers import TriggerRule, TEXT_TRIGGER_RULES, evaluate_text_triggers
from companion.affection.sticker_triggers import (
    add_sticker_trigger,
    remove_sticker_trigger,
    evaluate_sticker_triggers,
)
from companion.affection.presence import handle_presence_change
from companion.affection.manager import AffectionManager, ManagerRegistry
from companion.affection.validation import (
    AffectionError,
    InvalidPresenceError,
    StickerTriggerConflictError,
)

__all__ = [
    # Core data structures
    "AffectionState",
    "AffectionPrefs",
    "StickerTriggers",
    "TriggerResult",
    "PresenceTransition",
    "PRESENCE_ACTIVE",
    "PRESENCE_BRIEFLY_AWAY",
    "PRESENCE_AWAY",
    # Config
    "AffectionConfig",
    "get_config",
    "set_config",
    "reset_config",
    "load_config_from_yaml",
    # Store
    "load_state",
    "save_state",
    "load_prefs",
    "save_prefs",
    # Triggers
    "TriggerRule",
    "TEXT_TRIGGER_RULES",
    "evaluate_text_triggers",
    "add_sticker_trigger",
    "remove_sticker_trigger",
    "evaluate_sticker_triggers",
    # Presence
    "handle_presence_change",
    # Manager
    "AffectionManager",
    "ManagerRegistry",
    # Errors
    "AffectionError",
    "InvalidPresenceError",
    "StickerTriggerConflictError",
]
