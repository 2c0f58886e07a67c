"""
Bookkeeping: day rollover and lazy decay.

Nothing here runs on a timer. refresh_bookkeeping() is called right before a
mutation, so an idle workspace simply catches up on its next event.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from companion.affection.core import AffectionState
from companion.affection.config import AffectionConfig, get_config
from companion.affection.computation import (
    clamp_metric,
    day_bucket,
    get_decayed_value,
    parse_iso,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class BookkeepingReport:
    """Report of what bookkeeping caught up on."""
    today: str
    day_rolled_over: bool
    irritation_decayed: float
    time_since_last_update: Optional[float]   # seconds, None on first mutation


# =============================================================================
# DAY ROLLOVER
# =============================================================================

def roll_day(
    state: AffectionState,
    now: datetime,
    config: Optional[AffectionConfig] = None,
) -> bool:
    """
    Reset per-day counters when the calendar day changed.

    Returns:
        True if `today` moved to a new day
    """
    bucket = day_bucket(now, config)
    if state.today == bucket:
        return False

    logger.debug("Day rollover %s -> %s", state.today or "(unset)", bucket)
    state.today = bucket
    state.daily_aff_gain = 0.0
    return True


# =============================================================================
# DECAY
# =============================================================================

def decay_irritation(
    state: AffectionState,
    elapsed_seconds: float,
    config: Optional[AffectionConfig] = None,
) -> float:
    """
    Decay irritation toward zero for the elapsed time.

    Returns:
        Amount of irritation removed
    """
    if config is None:
        config = get_config()
    if state.irritation <= 0 or elapsed_seconds <= 0:
        return 0.0

    half_life = config.decay.irritation_half_life_hours * 3600
    decayed = clamp_metric(
        "irritation",
        get_decayed_value(state.irritation, elapsed_seconds, half_life),
        config,
    )
    removed = round(state.irritation - decayed, 2)
    state.irritation = decayed
    return removed


def refresh_bookkeeping(
    state: AffectionState,
    now: Optional[datetime] = None,
    config: Optional[AffectionConfig] = None,
) -> BookkeepingReport:
    """
    Bring derived fields up to date before a mutation.

    Stamps updated_at, so a span of time is never decayed twice.

    Args:
        state: State to update
        now: Evaluation time (current time if None)
        config: Configuration (active config if None)

    Returns:
        BookkeepingReport
    """
    if config is None:
        config = get_config()
    if now is None:
        now = utc_now()

    elapsed: Optional[float] = None
    if state.updated_at:
        try:
            elapsed = (now - parse_iso(state.updated_at)).total_seconds()
        except ValueError:
            logger.warning("Ignoring unparsable updatedAt %r", state.updated_at)

    rolled = roll_day(state, now, config)
    removed = decay_irritation(state, elapsed or 0.0, config)
    state.updated_at = to_iso(now)

    return BookkeepingReport(
        today=state.today,
        day_rolled_over=rolled,
        irritation_decayed=removed,
        time_since_last_update=elapsed,
    )
