# direction.py
"""Sticky rotation-direction classifier over the recent angle history."""
import logging
from typing import Sequence

from energy_aim.common import RotationDirection

logger = logging.getLogger(__name__)


class DirectionEstimator:
    """
    Majority vote over signed angle deltas. A new direction is adopted only
    when at least ``min_agreeing`` deltas share its sign, so a single outlier
    never flips the held value.
    """

    def __init__(self, min_agreeing: int = 2, deadband: float = 1e-4):
        self.min_agreeing = min_agreeing
        self.deadband = deadband
        self.direction = RotationDirection.UNDETERMINED
        self.confidence = 0.0

    def update(self, deltas: Sequence[float]) -> RotationDirection:
        signs = [1 if d > self.deadband else -1 if d < -self.deadband else 0 for d in deltas]
        votes = [s for s in signs if s != 0]
        if len(deltas) < self.min_agreeing:
            return self.direction

        pos = votes.count(1)
        neg = votes.count(-1)
        if pos >= self.min_agreeing and pos > neg:
            candidate = RotationDirection.COUNTER_CLOCKWISE
        elif neg >= self.min_agreeing and neg > pos:
            candidate = RotationDirection.CLOCKWISE
        else:
            candidate = RotationDirection.UNDETERMINED

        if candidate != RotationDirection.UNDETERMINED:
            if candidate != self.direction:
                logger.debug("Rotation direction %s -> %s", self.direction.name, candidate.name)
            self.direction = candidate
            self.confidence = max(pos, neg) / len(deltas)
        elif self.direction != RotationDirection.UNDETERMINED:
            agreeing = pos if self.direction > 0 else neg
            self.confidence = agreeing / len(deltas)
        return self.direction

    def reset(self) -> None:
        self.direction = RotationDirection.UNDETERMINED
        self.confidence = 0.0
