"""
Tests for affection computation helpers.

See companion/affection/computation.py for implementation.
"""

from datetime import datetime, timezone

import pytest

from companion.affection.computation import (
    apply_deltas,
    clamp_metric,
    day_bucket,
    default_state,
    get_decayed_value,
    get_relationship_label,
    parse_iso,
    to_iso,
)
from companion.affection.config import METRIC_NAMES, get_config
from tests.helpers import T0, make_state


def test_to_iso_uses_z_suffix():
    """Timestamps are written in UTC with a Z suffix."""
    assert to_iso(T0) == "2024-01-01T09:00:00.000Z"


def test_to_iso_treats_naive_as_utc():
    """Naive datetimes are assumed to be UTC."""
    assert to_iso(datetime(2024, 1, 1, 9, 0, 0)) == "2024-01-01T09:00:00.000Z"


def test_parse_iso_accepts_z_and_offsets():
    """Z and explicit offsets parse to the same instant."""
    assert parse_iso("2024-01-01T10:00:00Z") == parse_iso("2024-01-01T11:00:00+01:00")
    assert parse_iso("2024-01-01T10:00:00").tzinfo is not None


def test_parse_iso_accepts_any_fraction_length():
    """Fractions of one to nine digits parse; extra precision is truncated."""
    assert parse_iso("2024-01-01T10:00:00.5Z") == datetime(2024, 1, 1, 10, 0, 0, 500000, tzinfo=timezone.utc)
    assert parse_iso("2024-01-01T10:00:00.1234+01:00") == datetime(2024, 1, 1, 9, 0, 0, 123400, tzinfo=timezone.utc)
    assert parse_iso("2024-01-01T10:00:00.123456789Z").microsecond == 123456
    assert parse_iso("2024-01-01T10:00:00.12").tzinfo is not None


def test_parse_iso_rejects_garbage():
    """Unparsable timestamps raise ValueError."""
    with pytest.raises(ValueError):
        parse_iso("tomorrow-ish")
    with pytest.raises(ValueError):
        parse_iso("")


def test_day_bucket_is_utc_date():
    """Day bucket is the calendar date in the configured timezone."""
    late = datetime(2024, 1, 1, 23, 59, 59, tzinfo=timezone.utc)
    assert day_bucket(late) == "2024-01-01"
    assert day_bucket(parse_iso("2024-01-02T00:00:00Z")) == "2024-01-02"


def test_decay_halves_after_one_half_life():
    """One half-life leaves half the value."""
    assert get_decayed_value(10.0, 3600, 3600) == pytest.approx(5.0)
    assert get_decayed_value(10.0, 0, 3600) == 10.0
    assert get_decayed_value(10.0, -50, 3600) == 10.0


def test_relationship_label_tiers():
    """Label is the highest tier reached by aff."""
    assert get_relationship_label(0) == "stranger"
    assert get_relationship_label(19.99) == "stranger"
    assert get_relationship_label(20) == "acquaintance"
    assert get_relationship_label(59) == "friendly"
    assert get_relationship_label(60) == "close"
    assert get_relationship_label(100) == "devoted"


def test_default_state_uses_config_defaults():
    """A fresh state carries the configured defaults."""
    state = default_state(T0)
    defaults = get_config().defaults

    assert state.aff == defaults.aff
    assert state.closeness == defaults.closeness
    assert state.trust == defaults.trust
    assert state.reliability_trust == defaults.reliability_trust
    assert state.irritation == defaults.irritation
    assert state.label == "acquaintance"
    assert state.presence == "ACTIVE"
    assert state.expected_return_at is None
    assert state.today == "2024-01-01"
    assert state.processed_message_ids == []


def test_clamp_metric_bounds():
    """Values outside the range are clamped, not wrapped."""
    assert clamp_metric("aff", 150) == 100
    assert clamp_metric("irritation", -3) == 0
    assert clamp_metric("trust", 33.333) == 33.33


def test_apply_deltas_clamps_every_metric():
    """Huge deltas in either direction land on the bounds."""
    state = make_state()
    apply_deltas(state, {name: 1000.0 for name in METRIC_NAMES if name != "aff"})
    for name in METRIC_NAMES:
        if name != "aff":
            assert getattr(state, name) == 100

    apply_deltas(state, {name: -1000.0 for name in METRIC_NAMES})
    for name in METRIC_NAMES:
        assert getattr(state, name) == 0
    assert state.label == "stranger"


def test_apply_deltas_reports_change():
    """Only real value changes count as changes."""
    state = make_state(irritation=0.0)
    assert apply_deltas(state, {"irritation": -5.0}) is False
    assert apply_deltas(state, {"irritation": 5.0}) is True
    assert apply_deltas(state, {"trust": 0.0}) is False


def test_apply_deltas_daily_aff_cap():
    """Positive aff gain stops at the daily cap; losses are not capped."""
    state = make_state(aff=30.0, daily_aff_gain=8.0)

    apply_deltas(state, {"aff": 5.0})
    assert state.aff == 32.0
    assert state.daily_aff_gain == 10.0

    assert apply_deltas(state, {"aff": 5.0}) is False
    assert state.aff == 32.0

    apply_deltas(state, {"aff": -4.0})
    assert state.aff == 28.0


def test_apply_deltas_relabels():
    """Crossing a tier boundary updates the label."""
    state = make_state(aff=39.0)
    assert state.label == "acquaintance"

    apply_deltas(state, {"aff": 2.0})
    assert state.label == "friendly"


def test_apply_deltas_unknown_metric():
    """Unknown metrics are a programming error."""
    with pytest.raises(KeyError):
        apply_deltas(make_state(), {"charisma": 1.0})


def test_apply_deltas_unknown_metric_leaves_state_untouched():
    """A rejected delta map changes nothing, even metrics listed before the bad one."""
    state = make_state()
    before = state.metrics()

    with pytest.raises(KeyError):
        apply_deltas(state, {"closeness": 1.0, "aff": 2.0, "warmth": 1.0})

    assert state.metrics() == before
    assert state.daily_aff_gain == 0.0
