# common.py
"""Objects that are shared across multiple modules."""
from dataclasses import dataclass
from enum import Enum, IntEnum, auto
from typing import Optional, Tuple

import numpy as np

Point = Tuple[float, float]
# OpenCV's RotatedRect layout: ((cx, cy), (w, h), angle_deg)
RotatedRect = Tuple[Point, Tuple[float, float], float]


class RotationDirection(IntEnum):
    """Sign convention is the maths frame (y up): clockwise on screen is -1."""
    CLOCKWISE = -1
    UNDETERMINED = 0
    COUNTER_CLOCKWISE = 1


class TrackState(Enum):
    INIT = auto()
    TRACKING = auto()
    DEGRADED = auto()
    RESET = auto()


@dataclass(frozen=True)
class Frame:
    image: np.ndarray
    timestamp: float

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)"""
        return self.image.shape[1], self.image.shape[0]


@dataclass(frozen=True)
class ShapeCandidate:
    rect: RotatedRect
    contour: np.ndarray
    solidity: float

    @property
    def center(self) -> Point:
        return self.rect[0]

    @property
    def area(self) -> float:
        w, h = self.rect[1]
        return float(w * h)

    @property
    def aspect(self) -> float:
        w, h = self.rect[1]
        short = min(w, h)
        return float(max(w, h) / short) if short > 0 else 0.0


@dataclass
class ArmorPlate:
    """
    Output record owned by the caller and filled in by a successful run.
    Distance uses the calibration's plate units (mm); angles are degrees.
    """
    rect: Optional[RotatedRect] = None
    distance: float = 0.0
    angle_x: float = 0.0          # yaw
    angle_y: float = 0.0          # pitch
    flight_time_s: float = 0.0
    timestamp: float = 0.0


@dataclass(frozen=True)
class EnergySnapshot:
    """
    A single-frame copy of detector state for other threads.
    Positions are full-frame pixels.
    """
    timestamp: float
    state: TrackState
    roi: Tuple[int, int, int, int]
    center: Optional[Point]
    target_armor: Optional[RotatedRect]
    flow_strip_fan: Optional[RotatedRect]
    predict_point: Optional[Point]
    direction: RotationDirection
    angle_confidence: float
    angle_variance: float
    miss_count: int
    aim: Optional[ArmorPlate]
