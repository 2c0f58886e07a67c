"""
Sticker triggers: opaque sticker id -> "sleep" / "wake".

Sticker ids are the host's stable unique ids (e.g. Telegram's
file_unique_id), registered per workspace in prefs.json.
"""

import logging
from datetime import datetime
from typing import Optional

from companion.affection.core import (
    AffectionPrefs,
    AffectionState,
    StickerTriggers,
    TriggerResult,
    PRESENCE_ACTIVE,
    PRESENCE_AWAY,
    STICKER_KINDS,
    STICKER_SLEEP,
    STICKER_WAKE,
)
from companion.affection.config import AffectionConfig, get_config
from companion.affection.computation import apply_deltas, utc_now
from companion.affection.persistence import WorkspacePath, load_prefs, save_prefs
from companion.affection.presence import handle_presence_change
from companion.affection.triggers import is_processed, record_message_id
from companion.affection.validation import StickerTriggerConflictError

logger = logging.getLogger(__name__)


def sticker_kind_from_prefs(prefs: AffectionPrefs, sticker_id: str) -> Optional[str]:
    """
    Resolve a sticker id to its trigger kind.

    Sleep is checked before wake. An id listed under both is a data problem
    (registration refuses it); it resolves to sleep and logs a warning.
    """
    if not sticker_id:
        return None

    triggers = prefs.sticker_triggers
    in_sleep = sticker_id in triggers.sleep
    if in_sleep and sticker_id in triggers.wake:
        logger.warning(
            "Sticker %s is registered as both sleep and wake; treating it as sleep",
            sticker_id,
        )
    if in_sleep:
        return STICKER_SLEEP
    if sticker_id in triggers.wake:
        return STICKER_WAKE
    return None


def evaluate_sticker_triggers(
    sticker_id: str,
    state: AffectionState,
    prefs: AffectionPrefs,
    message_id: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[AffectionConfig] = None,
) -> TriggerResult:
    """
    Apply the trigger registered for a sticker, if any.

    - sleep: small warmth bump, presence -> AWAY with no return estimate
    - wake: trust/closeness bump, presence -> ACTIVE (reconnection rules apply)

    Args:
        sticker_id: Stable sticker identifier
        state: State to mutate
        prefs: Workspace prefs holding the sticker table
        message_id: Host message identifier, if any
        now: Evaluation time (current time if None)
        config: Configuration (active config if None)

    Returns:
        TriggerResult with changed=True iff a metric or presence changed
    """
    if config is None:
        config = get_config()
    if now is None:
        now = utc_now()

    # Own key space, so a message carrying text and a sticker triggers both
    dedup_key = f"sticker:{message_id}" if message_id else None

    if is_processed(state, dedup_key):
        logger.debug("Skipping already processed sticker message %s", message_id)
        return TriggerResult(changed=False, duplicate=True)

    kind = sticker_kind_from_prefs(prefs, sticker_id)
    if kind is None:
        record_message_id(state, dedup_key, config)
        return TriggerResult(changed=False)

    before_metrics = state.metrics()
    before_presence = state.presence

    if kind == STICKER_SLEEP:
        apply_deltas(state, config.stickers.sleep_deltas, config)
        handle_presence_change(state, PRESENCE_AWAY, None, now, config)
    else:
        apply_deltas(state, config.stickers.wake_deltas, config)
        handle_presence_change(state, PRESENCE_ACTIVE, None, now, config)

    record_message_id(state, dedup_key, config)

    changed = state.metrics() != before_metrics or state.presence != before_presence
    logger.debug("Sticker %s resolved to %s (changed=%s)", sticker_id, kind, changed)
    return TriggerResult(changed=changed, matched=[kind])


# =============================================================================
# REGISTRATION
# =============================================================================

def _other_kind(kind: str) -> str:
    return STICKER_WAKE if kind == STICKER_SLEEP else STICKER_SLEEP


def _check_kind(kind: str) -> None:
    if kind not in STICKER_KINDS:
        raise ValueError(f"Unknown sticker trigger kind '{kind}'. Expected one of: {', '.join(STICKER_KINDS)}")


async def add_sticker_trigger(
    workspace: WorkspacePath,
    kind: str,
    sticker_id: str,
) -> StickerTriggers:
    """
    Register a sticker id under a trigger kind.

    Re-registering an id under the same kind is a no-op.

    Returns:
        The workspace's sticker table after the change

    Raises:
        ValueError: Unknown kind or empty sticker id
        StickerTriggerConflictError: Id already registered under the other kind
        OSError: If prefs.json cannot be written
    """
    _check_kind(kind)
    if not sticker_id:
        raise ValueError("Sticker id must be a non-empty string")

    prefs = await load_prefs(workspace)
    triggers = prefs.sticker_triggers

    other = _other_kind(kind)
    if sticker_id in triggers.ids_for(other):
        raise StickerTriggerConflictError(sticker_id, other, kind)

    ids = triggers.ids_for(kind)
    if sticker_id in ids:
        return triggers

    ids.append(sticker_id)
    await save_prefs(workspace, prefs)
    logger.info("Registered sticker %s as %s", sticker_id, kind)
    return triggers


async def remove_sticker_trigger(
    workspace: WorkspacePath,
    kind: str,
    sticker_id: str,
) -> bool:
    """
    Unregister a sticker id from a trigger kind.

    Returns:
        True if the id was registered and has been removed
    """
    _check_kind(kind)
    prefs = await load_prefs(workspace)
    ids = prefs.sticker_triggers.ids_for(kind)
    if sticker_id not in ids:
        return False

    ids.remove(sticker_id)
    await save_prefs(workspace, prefs)
    logger.info("Removed sticker %s from %s", sticker_id, kind)
    return True
