"""Tests for the cooldown gate."""
from datetime import timedelta

from alerts.cooldown import CooldownGate


def test_never_fired_may_fire(slow_rule, now):
    assert CooldownGate().may_fire(slow_rule, now) is True


def test_persisted_trigger_blocks_inside_window(slow_rule, now):
    gate = CooldownGate()
    rule = slow_rule.with_last_triggered(now - timedelta(seconds=299))
    assert gate.may_fire(rule, now) is False
    assert gate.remaining_seconds(rule, now) == 1


def test_boundary_is_inclusive(slow_rule, now):
    rule = slow_rule.with_last_triggered(now - timedelta(seconds=300))
    assert CooldownGate().may_fire(rule, now) is True


def test_record_fired_suppresses_without_persisted_value(slow_rule, now):
    gate = CooldownGate()
    fired = gate.record_fired(slow_rule, now)
    assert fired.last_triggered_at == now
    # The persisted copy never got updated, the gate still remembers.
    assert gate.may_fire(slow_rule, now + timedelta(seconds=10)) is False
    assert gate.may_fire(slow_rule, now + timedelta(seconds=300)) is True


def test_last_triggered_never_moves_backwards(slow_rule, now):
    gate = CooldownGate()
    gate.record_fired(slow_rule, now)
    fired = gate.record_fired(slow_rule, now - timedelta(minutes=5))
    assert fired.last_triggered_at == now


def test_naive_timestamps_treated_as_utc(slow_rule, now):
    rule = slow_rule.with_last_triggered(now.replace(tzinfo=None))
    assert CooldownGate().may_fire(rule, now + timedelta(seconds=60)) is False


def test_reset(slow_rule, now):
    gate = CooldownGate()
    gate.record_fired(slow_rule, now)
    gate.reset(slow_rule.id)
    assert gate.may_fire(slow_rule, now) is True


def test_window_edges(slow_rule, now):
    gate = CooldownGate()
    assert gate.may_fire(slow_rule.with_last_triggered(now - timedelta(seconds=100)), now) is False
    assert gate.may_fire(slow_rule.with_last_triggered(now - timedelta(seconds=301)), now) is True
