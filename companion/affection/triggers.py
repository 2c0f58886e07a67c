"""
Text triggers: inbound message text -> metric deltas.

Rules are an ordered table. Every matching rule applies, in table order.
Adding a rule is a table insertion.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from companion.affection.core import AffectionState, TriggerResult
from companion.affection.config import AffectionConfig, get_config
from companion.affection.computation import apply_deltas

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerRule:
    """A text pattern and the deltas it proposes."""
    name: str
    pattern: "re.Pattern[str]"
    deltas: Dict[str, float]

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(name: str, pattern: str, **deltas: float) -> TriggerRule:
    return TriggerRule(name=name, pattern=re.compile(pattern, re.IGNORECASE), deltas=dict(deltas))


# Positive rules also take the edge off irritation.
TEXT_TRIGGER_RULES: List[TriggerRule] = [
    _rule(
        "gratitude",
        r"\b(thanks?(?: you)?|thank u|thx|ty|appreciate (?:it|you|that))\b",
        closeness=2.0, aff=1.0, irritation=-2.0,
    ),
    _rule(
        "praise",
        r"\b(good (?:job|work|girl|boy)|well done|great job|nice work|"
        r"you(?:'re| are) (?:the best|amazing|great|so smart|brilliant))\b",
        aff=2.0, trust=1.0, irritation=-2.0,
    ),
    _rule(
        "affection",
        r"(\blove you\b|\bmiss(?:ed)? you\b|\bhugs?\b|<3)",
        closeness=3.0, aff=2.0,
    ),
    _rule(
        "apology",
        r"\b(sorry|apologi[sz]e|my bad|forgive me)\b",
        irritation=-5.0, trust=1.0,
    ),
    _rule(
        "reliance",
        r"\b(i trust you|counting on you|rely on you|you(?:'ve| have) got my back)\b",
        trust=3.0, closeness=1.0,
    ),
    _rule(
        "greeting",
        r"\b(good (?:morning|night|evening)|hello|hi there|hey there)\b",
        closeness=0.5,
    ),
    _rule(
        "hostility",
        r"\b(shut up|stupid|idiot|useless|hate you|dumb|pathetic)\b",
        irritation=8.0, aff=-3.0, closeness=-1.0,
    ),
    _rule(
        "dismissal",
        r"\b(whatever|don'?t care|leave me alone|go away)\b",
        irritation=3.0, closeness=-1.0,
    ),
]


# =============================================================================
# MESSAGE DEDUP
# =============================================================================

def is_processed(state: AffectionState, message_id: Optional[str]) -> bool:
    return bool(message_id) and message_id in state.processed_message_ids


def record_message_id(
    state: AffectionState,
    message_id: Optional[str],
    config: Optional[AffectionConfig] = None,
) -> None:
    """Remember a message id, evicting the oldest ids past capacity."""
    if not message_id or message_id in state.processed_message_ids:
        return
    if config is None:
        config = get_config()

    state.processed_message_ids.append(message_id)
    overflow = len(state.processed_message_ids) - config.limits.processed_message_capacity
    if overflow > 0:
        del state.processed_message_ids[:overflow]


# =============================================================================
# EVALUATION
# =============================================================================

def match_rules(text: str, rules: Optional[Sequence[TriggerRule]] = None) -> List[TriggerRule]:
    """Return every rule whose pattern matches, in table order."""
    if rules is None:
        rules = TEXT_TRIGGER_RULES
    if not text:
        return []
    return [rule for rule in rules if rule.matches(text)]


def evaluate_text_triggers(
    text: str,
    state: AffectionState,
    message_id: Optional[str] = None,
    rules: Optional[Sequence[TriggerRule]] = None,
    config: Optional[AffectionConfig] = None,
) -> TriggerResult:
    """
    Evaluate message text against the trigger table and mutate state.

    A message id is evaluated at most once. It is recorded even when no rule
    matches, so a retry cannot produce a different outcome.

    Args:
        text: Inbound message text
        state: State to mutate
        message_id: Host message identifier, if any
        rules: Trigger table (TEXT_TRIGGER_RULES if None)
        config: Configuration (active config if None)

    Returns:
        TriggerResult with changed=True iff a metric value changed
    """
    if config is None:
        config = get_config()

    if is_processed(state, message_id):
        logger.debug("Skipping already processed message %s", message_id)
        return TriggerResult(changed=False, duplicate=True)

    matched = match_rules(text, rules)

    # Sum first so opposing rules net out before clamping
    combined: Dict[str, float] = {}
    for rule in matched:
        for metric, delta in rule.deltas.items():
            combined[metric] = combined.get(metric, 0.0) + delta

    changed = apply_deltas(state, combined, config) if combined else False
    record_message_id(state, message_id, config)

    if matched:
        logger.debug(
            "Text triggers %s matched (changed=%s, aff=%s)",
            [rule.name for rule in matched], changed, state.aff,
        )

    return TriggerResult(changed=changed, matched=[rule.name for rule in matched])
