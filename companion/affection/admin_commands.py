"""
Admin commands for affection debugging.

These are not host commands, but the logic that would be called by a
host's operator command handlers.
"""

from typing import List, Optional

from companion.affection.core import AffectionPrefs, AffectionState, STICKER_KINDS
from companion.affection.config import AffectionConfig, get_config


def _bar(value: float, low: float, high: float, width: int = 20) -> str:
    span = high - low
    filled = 0 if span <= 0 else int(round((value - low) / span * width))
    filled = max(0, min(width, filled))
    return "#" * filled + "." * (width - filled)


def cmd_affection_inspect(state: AffectionState, config: Optional[AffectionConfig] = None) -> str:
    """
    Admin command: affection/inspect

    Show metrics, presence and bookkeeping for a workspace state.

    Args:
        state: State to inspect
        config: Configuration for metric ranges (active config if None)

    Returns:
        Formatted string for admin display
    """
    if config is None:
        config = get_config()

    output: List[str] = []
    output.append(f"Affection Inspection: {state.label}")
    output.append("")
    output.append("Metrics:")
    for metric, value in state.metrics().items():
        bounds = config.bounds_for(metric)
        output.append(
            f"  {metric:<18} {value:7.2f}  [{_bar(value, bounds.min, bounds.max)}]"
        )

    output.append("")
    output.append(f"Presence: {state.presence}")
    if state.away_since:
        output.append(f"  Away since: {state.away_since}")
    if state.expected_return_at:
        output.append(f"  Expected back: {state.expected_return_at}")

    output.append("")
    output.append(f"Today: {state.today or 'unset'} (aff gained: {state.daily_aff_gain:.2f}"
                  f" / {config.limits.daily_aff_gain_cap:.2f})")
    output.append(f"Last message: {state.last_message_at or 'never'}")
    output.append(f"Last update: {state.updated_at or 'never'}")
    output.append(f"Processed message ids: {len(state.processed_message_ids)}"
                  f" / {config.limits.processed_message_capacity}")

    return "\n".join(output)


def cmd_sticker_triggers(prefs: AffectionPrefs) -> str:
    """
    Admin command: affection/stickers

    List registered sticker triggers and flag ids registered under both kinds.

    Args:
        prefs: Workspace prefs

    Returns:
        Formatted listing
    """
    triggers = prefs.sticker_triggers
    output: List[str] = []
    output.append("Sticker Triggers:")

    for kind in STICKER_KINDS:
        ids = triggers.ids_for(kind)
        output.append(f"  {kind} ({len(ids)}):")
        if ids:
            for sticker_id in ids:
                output.append(f"    - {sticker_id}")
        else:
            output.append("    (none)")

    conflicts = [sticker_id for sticker_id in triggers.sleep if sticker_id in triggers.wake]
    if conflicts:
        output.append("")
        output.append("Conflicts (resolved as sleep):")
        for sticker_id in conflicts:
            output.append(f"  ! {sticker_id}")

    return "\n".join(output)
