"""
Tests for sticker triggers and their registration.

See companion/affection/sticker_triggers.py for implementation.
"""

import pytest

from companion.affection.core import AffectionPrefs, StickerTriggers
from companion.affection.persistence import load_prefs
from companion.affection.presence import handle_presence_change
from companion.affection.sticker_triggers import (
    add_sticker_trigger,
    evaluate_sticker_triggers,
    remove_sticker_trigger,
    sticker_kind_from_prefs,
)
from companion.affection.validation import StickerTriggerConflictError
from tests.helpers import T0, make_state, read_prefs_file, write_prefs_file


def create_test_prefs(sleep=(), wake=()):
    return AffectionPrefs(sticker_triggers=StickerTriggers(sleep=list(sleep), wake=list(wake)))


# =============================================================================
# LOOKUP
# =============================================================================

def test_kind_lookup():
    """Registered ids resolve to their kind; others to None."""
    prefs = create_test_prefs(sleep=["zzz"], wake=["sun"])

    assert sticker_kind_from_prefs(prefs, "zzz") == "sleep"
    assert sticker_kind_from_prefs(prefs, "sun") == "wake"
    assert sticker_kind_from_prefs(prefs, "cat") is None
    assert sticker_kind_from_prefs(prefs, "") is None


def test_sleep_wins_when_registered_under_both(caplog):
    """An id in both sets always resolves as sleep, with a warning."""
    prefs = create_test_prefs(sleep=["both"], wake=["both"])

    for _ in range(3):
        assert sticker_kind_from_prefs(prefs, "both") == "sleep"
    assert "both sleep and wake" in caplog.text


# =============================================================================
# EVALUATION
# =============================================================================

def test_sleep_sticker_moves_to_away():
    """A sleep sticker sends the counterpart AWAY with unknown return."""
    state = make_state()
    prefs = create_test_prefs(sleep=["abc123"])

    result = evaluate_sticker_triggers("abc123", state, prefs, "m2", now=T0)

    assert result.changed is True
    assert result.matched == ["sleep"]
    assert state.presence == "AWAY"
    assert state.expected_return_at is None
    assert state.irritation == 0.0
    assert state.closeness == 21.0


def test_wake_sticker_returns_to_active():
    """A wake sticker brings the counterpart back and warms things up."""
    state = make_state()
    handle_presence_change(state, "AWAY", now=T0)
    prefs = create_test_prefs(wake=["sun"])

    result = evaluate_sticker_triggers("sun", state, prefs, "m3", now=T0)

    assert result.changed is True
    assert state.presence == "ACTIVE"
    assert state.trust == 31.0
    # wake bump + reconnection bump
    assert state.closeness == 22.0


def test_sticker_precedence_applies_sleep():
    """A conflicting id is evaluated as sleep."""
    state = make_state()
    prefs = create_test_prefs(sleep=["both"], wake=["both"])

    result = evaluate_sticker_triggers("both", state, prefs, now=T0)

    assert result.matched == ["sleep"]
    assert state.presence == "AWAY"


def test_unknown_sticker_is_unchanged():
    """Unregistered stickers change nothing."""
    state = make_state()

    result = evaluate_sticker_triggers("cat", state, create_test_prefs(), "m4", now=T0)

    assert result.changed is False
    assert result.matched == []
    assert state.presence == "ACTIVE"


def test_duplicate_sticker_message_ignored():
    """Re-delivery of a sticker message applies nothing the second time."""
    state = make_state()
    prefs = create_test_prefs(wake=["sun"])
    evaluate_sticker_triggers("sun", state, prefs, "m5", now=T0)
    trust = state.trust

    result = evaluate_sticker_triggers("sun", state, prefs, "m5", now=T0)

    assert result.changed is False
    assert result.duplicate is True
    assert state.trust == trust


def test_sticker_dedup_separate_from_text():
    """A message id already seen for text still runs its sticker."""
    state = make_state(processed_message_ids=["m6"])
    prefs = create_test_prefs(sleep=["zzz"])

    result = evaluate_sticker_triggers("zzz", state, prefs, "m6", now=T0)

    assert result.changed is True
    assert "sticker:m6" in state.processed_message_ids


def test_sleep_at_bounds_still_changes_presence():
    """Presence movement alone counts as a change."""
    state = make_state(closeness=100.0)
    prefs = create_test_prefs(sleep=["zzz"])

    result = evaluate_sticker_triggers("zzz", state, prefs, now=T0)

    assert result.changed is True


# =============================================================================
# REGISTRATION
# =============================================================================

@pytest.mark.asyncio
async def test_add_creates_prefs(workspace):
    """First registration creates prefs.json."""
    triggers = await add_sticker_trigger(workspace, "sleep", "abc123")

    assert triggers.sleep == ["abc123"]
    assert read_prefs_file(workspace)["stickerTriggers"] == {"sleep": ["abc123"], "wake": []}


@pytest.mark.asyncio
async def test_add_is_idempotent(workspace):
    """Adding an existing id is a no-op."""
    await add_sticker_trigger(workspace, "wake", "sun")
    await add_sticker_trigger(workspace, "wake", "sun")

    prefs = await load_prefs(workspace)
    assert prefs.sticker_triggers.wake == ["sun"]


@pytest.mark.asyncio
async def test_add_rejects_cross_kind_duplicate(workspace):
    """An id cannot be registered as both sleep and wake."""
    await add_sticker_trigger(workspace, "sleep", "abc123")

    with pytest.raises(StickerTriggerConflictError) as excinfo:
        await add_sticker_trigger(workspace, "wake", "abc123")

    assert excinfo.value.existing_kind == "sleep"
    prefs = await load_prefs(workspace)
    assert prefs.sticker_triggers.wake == []


@pytest.mark.asyncio
async def test_add_preserves_other_prefs(workspace):
    """Registration keeps existing style prefs."""
    write_prefs_file(workspace, {"mode": "fixed", "name": "Mika", "theme": "dark"})

    await add_sticker_trigger(workspace, "sleep", "zzz")

    data = read_prefs_file(workspace)
    assert data["mode"] == "fixed"
    assert data["name"] == "Mika"
    assert data["theme"] == "dark"


@pytest.mark.asyncio
async def test_add_rejects_bad_input(workspace):
    """Unknown kinds and empty ids are rejected."""
    with pytest.raises(ValueError, match="Unknown sticker trigger kind"):
        await add_sticker_trigger(workspace, "nap", "zzz")
    with pytest.raises(ValueError, match="non-empty"):
        await add_sticker_trigger(workspace, "sleep", "")


@pytest.mark.asyncio
async def test_remove_sticker_trigger(workspace):
    """Removal frees the id for the other kind."""
    await add_sticker_trigger(workspace, "sleep", "abc123")

    assert await remove_sticker_trigger(workspace, "sleep", "abc123") is True
    assert await remove_sticker_trigger(workspace, "sleep", "abc123") is False

    triggers = await add_sticker_trigger(workspace, "wake", "abc123")
    assert triggers.wake == ["abc123"]
