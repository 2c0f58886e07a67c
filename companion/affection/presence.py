"""
Presence state machine: ACTIVE / BRIEFLY_AWAY / AWAY.

Transitions are driven by explicit calls (host inactivity timeouts, "brb"
signals, sleep/wake stickers). Every state is reachable from every other;
there are no illegal transitions.

Invariant: expected_return_at is set only while presence is AWAY.
"""

import logging
from datetime import datetime
from typing import Optional

from companion.affection.core import (
    AffectionState,
    PresenceTransition,
    PRESENCE_ACTIVE,
    PRESENCE_AWAY,
    PRESENCE_BRIEFLY_AWAY,
)
from companion.affection.config import AffectionConfig, get_config
from companion.affection.computation import (
    apply_deltas,
    parse_iso,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)


def reliability_delta_for_return(
    expected_return_at: Optional[str],
    returned_at: datetime,
    config: Optional[AffectionConfig] = None,
) -> float:
    """
    Score how well the counterpart kept their return estimate.

    - No estimate: 0
    - Back before the estimate plus grace: on_time_reliability_delta
    - Back after a large overrun: overrun_reliability_delta
    - Anything in between: 0

    Args:
        expected_return_at: ISO-8601 estimate given when going AWAY
        returned_at: Actual return time
        config: Configuration (active config if None)
    """
    if config is None:
        config = get_config()
    if not expected_return_at:
        return 0.0

    try:
        expected = parse_iso(expected_return_at)
    except ValueError:
        logger.warning("Ignoring unparsable expectedReturnAt %r", expected_return_at)
        return 0.0

    overrun_minutes = (returned_at - expected).total_seconds() / 60
    if overrun_minutes <= config.presence.return_grace_minutes:
        return config.presence.on_time_reliability_delta
    if overrun_minutes > config.presence.large_overrun_minutes:
        return config.presence.overrun_reliability_delta
    return 0.0


def _absence_seconds(state: AffectionState, now: datetime) -> Optional[float]:
    if not state.away_since:
        return None
    try:
        return max(0.0, (now - parse_iso(state.away_since)).total_seconds())
    except ValueError:
        return None


def handle_presence_change(
    state: AffectionState,
    new_presence: str,
    expected_return_at: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[AffectionConfig] = None,
) -> PresenceTransition:
    """
    Move the counterpart to a new presence state.

    Callers validate new_presence first (see validation.normalize_presence);
    this function always succeeds.

    Args:
        state: State to mutate
        new_presence: Target presence (already normalized)
        expected_return_at: ISO-8601 return estimate; only kept for AWAY
        now: Transition time (current time if None)
        config: Configuration (active config if None)

    Returns:
        PresenceTransition describing what happened
    """
    if config is None:
        config = get_config()
    if now is None:
        now = utc_now()

    previous = state.presence
    transition = PresenceTransition(previous=previous, current=new_presence)

    # Self-transition: only a fresh AWAY estimate is worth recording
    if previous == new_presence:
        if new_presence == PRESENCE_AWAY and expected_return_at:
            state.expected_return_at = expected_return_at
        return transition

    if new_presence == PRESENCE_ACTIVE:
        transition.absence_seconds = _absence_seconds(state, now)
        if previous == PRESENCE_AWAY:
            transition.reliability_delta = reliability_delta_for_return(
                state.expected_return_at, now, config
            )
            deltas = dict(config.presence.reconnection_deltas)
            if transition.reliability_delta:
                deltas["reliability_trust"] = (
                    deltas.get("reliability_trust", 0.0) + transition.reliability_delta
                )
            apply_deltas(state, deltas, config)
        state.expected_return_at = None
        state.away_since = None

    elif new_presence == PRESENCE_BRIEFLY_AWAY:
        state.expected_return_at = None
        if state.away_since is None:
            state.away_since = to_iso(now)

    else:  # AWAY
        state.expected_return_at = expected_return_at or None
        if state.away_since is None:
            state.away_since = to_iso(now)

    state.presence = new_presence
    logger.info(
        "Presence %s -> %s (expectedReturnAt=%s)",
        previous, new_presence, state.expected_return_at,
    )
    return transition
