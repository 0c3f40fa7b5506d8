# tests/test_history.py
import pytest

from energy_aim.history import AngleHistory, RingBuffer


def test_ring_buffer_evicts_oldest():
    buf = RingBuffer(3)
    assert [buf.push(v) for v in (1, 2, 3)] == [None, None, None]
    assert buf.full()
    assert buf.push(4) == 1
    assert buf.to_list() == [2, 3, 4]
    assert buf.latest() == 4
    assert buf[0] == 2
    assert len(buf) == 3


def test_ring_buffer_rejects_zero_capacity():
    with pytest.raises(ValueError):
        RingBuffer(0)


def test_empty_buffer_has_no_latest():
    buf = RingBuffer(2)
    assert buf.latest() is None
    assert list(buf) == []


def test_push_returns_speed_against_previous():
    hist = AngleHistory(capacity=3)
    assert hist.push(0.0, (60.0, 0.0), 0.0) is None
    speed = hist.push(-0.1, (59.7, -6.0), 0.1)
    assert speed == pytest.approx(1.0)
    stamp, value = hist.speeds.latest()
    assert stamp == pytest.approx(0.05)
    assert value == pytest.approx(1.0)


def test_push_ignores_non_increasing_stamp():
    hist = AngleHistory()
    hist.push(0.0, (1.0, 0.0), 1.0)
    assert hist.push(0.2, (1.0, 0.2), 1.0) is None
    assert len(hist.speeds) == 0
    assert len(hist) == 2


def test_deltas_are_signed_and_bounded_by_capacity():
    hist = AngleHistory(capacity=3)
    for i, angle in enumerate((0.0, 0.1, 0.3, 0.2)):
        hist.push(angle, (0.0, 0.0), i * 0.1)
    assert hist.deltas() == pytest.approx([0.2, -0.1])


def test_clear_keeps_speed_increments():
    hist = AngleHistory()
    hist.push(0.0, (0.0, 0.0), 0.0)
    hist.push(0.1, (0.0, 0.0), 0.1)
    hist.clear()
    assert len(hist) == 0
    assert len(hist.speeds) == 1
    hist.clear_all()
    assert len(hist.speeds) == 0
