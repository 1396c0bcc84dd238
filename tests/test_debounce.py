import pytest

from git_autosync.debounce import DebounceGate


def test_gate_starts_at_clock_reading() -> None:
    gate = DebounceGate(5.0, clock=lambda: 42.0)
    assert gate.last_accepted == 42.0
    assert gate.elapsed() == 0.0


def test_gate_suppresses_inside_window() -> None:
    gate = DebounceGate(5.0, start=0.0)

    assert gate.offer(4.999) is False
    assert gate.last_accepted == 0.0


def test_gate_accepts_at_boundary() -> None:
    """An event exactly one window after the last accepted one is accepted."""
    gate = DebounceGate(5.0, start=0.0)

    assert gate.offer(5.0) is True
    assert gate.last_accepted == 5.0


def test_gate_measures_from_last_accepted_not_last_seen() -> None:
    gate = DebounceGate(5.0, start=0.0)

    assert gate.offer(5.0)
    assert not gate.offer(7.0)
    assert not gate.offer(9.5)
    assert gate.offer(10.0)


def test_zero_window_accepts_everything() -> None:
    gate = DebounceGate(0.0, start=0.0)
    assert all(gate.offer(t) for t in (0.0, 0.0, 0.1))


def test_negative_window_rejected() -> None:
    with pytest.raises(ValueError):
        DebounceGate(-1.0)
