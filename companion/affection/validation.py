"""
Errors and validation for the affection engine.

Ensures:
1. Trigger rules only touch configured metrics
2. Every rule carries a usable pattern and at least one delta
3. Caller input (presence values, timestamps) is rejected at the boundary
"""

import re
from typing import Dict, Iterable, List, Optional

from companion.affection.config import AffectionConfig, get_config
from companion.affection.core import PRESENCE_BRIEFLY_AWAY, PRESENCE_STATES


# =============================================================================
# ERRORS
# =============================================================================

class AffectionError(Exception):
    """Base class for affection engine errors."""
    pass


class AffectionValidationError(AffectionError):
    """Raised when a trigger table or delta mapping fails validation."""
    pass


class UnknownMetricError(AffectionValidationError):
    """Raised when a delta names a metric that has no configured bounds."""
    pass


class InvalidRuleError(AffectionValidationError):
    """Raised when a trigger rule is malformed."""
    pass


class InvalidPresenceError(AffectionError, ValueError):
    """Raised when a caller passes an unknown presence or bad return estimate."""
    pass


class StickerTriggerConflictError(AffectionError):
    """Raised when a sticker id is already registered under another kind."""

    def __init__(self, sticker_id: str, existing_kind: str, requested_kind: str):
        self.sticker_id = sticker_id
        self.existing_kind = existing_kind
        self.requested_kind = requested_kind
        super().__init__(
            f"Sticker '{sticker_id}' is already registered as '{existing_kind}'; "
            f"remove it before registering it as '{requested_kind}'"
        )


# =============================================================================
# DELTA / RULE VALIDATION
# =============================================================================

def validate_deltas(
    deltas: Dict[str, float],
    owner: str,
    config: Optional[AffectionConfig] = None,
) -> None:
    """
    Validate that a delta mapping only names configured metrics.

    Args:
        deltas: metric name -> delta
        owner: Name of the rule or trigger (for error messages)
        config: Configuration (active config if None)

    Raises:
        UnknownMetricError: If a metric is not configured
    """
    if config is None:
        config = get_config()

    for metric, value in deltas.items():
        if metric not in config.metrics:
            raise UnknownMetricError(
                f"'{owner}' adjusts unknown metric '{metric}'. "
                f"Known metrics: {', '.join(sorted(config.metrics))}"
            )
        if not isinstance(value, (int, float)):
            raise UnknownMetricError(
                f"'{owner}' has a non-numeric delta for '{metric}': {value!r}"
            )


def validate_trigger_rules(rules: Iterable, config: Optional[AffectionConfig] = None) -> int:
    """
    Validate an ordered trigger table.

    Args:
        rules: Iterable of TriggerRule
        config: Configuration (active config if None)

    Returns:
        Number of rules validated

    Raises:
        AffectionValidationError: Listing every failing rule
    """
    errors: List[str] = []
    seen = set()
    count = 0

    for rule in rules:
        count += 1
        if rule.name in seen:
            errors.append(f"Duplicate rule name '{rule.name}'")
        seen.add(rule.name)

        if not isinstance(rule.pattern, re.Pattern):
            errors.append(f"Rule '{rule.name}' has no compiled pattern")
        elif rule.pattern.search("") is not None:
            errors.append(f"Rule '{rule.name}' matches the empty string")

        if not rule.deltas:
            errors.append(f"Rule '{rule.name}' has no deltas")

        try:
            validate_deltas(rule.deltas, rule.name, config)
        except AffectionValidationError as e:
            errors.append(str(e))

    if errors:
        raise InvalidRuleError(
            f"Trigger rule validation failed with {len(errors)} errors:\n" +
            "\n".join(f"  - {e}" for e in errors)
        )

    return count


# =============================================================================
# BOUNDARY VALIDATION
# =============================================================================

# Older hosts still send the short form
PRESENCE_ALIASES: Dict[str, str] = {
    "BRB": PRESENCE_BRIEFLY_AWAY,
}


def normalize_presence(value: str) -> str:
    """
    Map a caller-supplied presence value to a persisted presence state.

    Raises:
        InvalidPresenceError: If the value is not a known presence
    """
    if not isinstance(value, str):
        raise InvalidPresenceError(f"Presence must be a string, got {type(value).__name__}")

    key = value.strip().upper()
    key = PRESENCE_ALIASES.get(key, key)
    if key not in PRESENCE_STATES:
        raise InvalidPresenceError(
            f"Unknown presence '{value}'. Expected one of: {', '.join(PRESENCE_STATES)}"
        )
    return key
