# tests/test_direction.py
from energy_aim.common import RotationDirection
from energy_aim.direction import DirectionEstimator


def test_needs_two_deltas():
    est = DirectionEstimator()
    assert est.update([-0.1]) == RotationDirection.UNDETERMINED
    assert est.update([]) == RotationDirection.UNDETERMINED


def test_decreasing_angles_are_clockwise():
    est = DirectionEstimator()
    assert est.update([-0.1, -0.1]) == RotationDirection.CLOCKWISE
    assert est.confidence == 1.0


def test_increasing_angles_are_counter_clockwise():
    est = DirectionEstimator()
    assert est.update([0.05, 0.07]) == RotationDirection.COUNTER_CLOCKWISE


def test_single_outlier_does_not_flip():
    est = DirectionEstimator()
    est.update([-0.1, -0.1])
    assert est.update([-0.1, 0.1]) == RotationDirection.CLOCKWISE
    assert est.confidence == 0.5


def test_two_agreeing_deltas_flip():
    est = DirectionEstimator()
    est.update([-0.1, -0.1])
    assert est.update([0.1, 0.1]) == RotationDirection.COUNTER_CLOCKWISE


def test_deadband_counts_as_no_vote():
    est = DirectionEstimator(deadband=1e-3)
    assert est.update([1e-4, -1e-4]) == RotationDirection.UNDETERMINED


def test_reset():
    est = DirectionEstimator()
    est.update([0.1, 0.1])
    est.reset()
    assert est.direction == RotationDirection.UNDETERMINED
    assert est.confidence == 0.0
