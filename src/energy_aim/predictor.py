# predictor.py
"""Pure geometry for turning a fitted angle + lead displacement into an image point."""
import math
from typing import Tuple

from energy_aim.common import Point, RotatedRect, RotationDirection
from energy_aim.motion import SpeedModel


def relative_polar(center: Point, point: Point) -> Tuple[float, float]:
    """(radius, angle) of ``point`` about ``center`` in the maths frame (y up)."""
    dx = point[0] - center[0]
    dy = center[1] - point[1]
    return math.hypot(dx, dy), math.atan2(dy, dx)


def point_on_circle(center: Point, radius: float, angle: float) -> Point:
    return center[0] + radius * math.cos(angle), center[1] - radius * math.sin(angle)


def lead_displacement(
    model: SpeedModel, direction: RotationDirection, now: float, delay: float
) -> float:
    """Signed angle the blade sweeps during ``delay`` seconds from ``now``."""
    return int(direction) * model.displacement(model.elapsed(now), delay)


def predict_point(center: Point, radius: float, angle: float, displacement: float) -> Point:
    """Armor position after rotating by ``displacement`` rad about ``center``."""
    return point_on_circle(center, radius, angle + displacement)


def rotate_rect(rect: RotatedRect, new_center: Point, displacement: float) -> RotatedRect:
    """Move ``rect`` to ``new_center`` and turn it with the blade (image angles run clockwise)."""
    _, size, angle = rect
    return (new_center, size, angle - math.degrees(displacement))


def extrapolate_center(fan_center: Point, armor_center: Point, radius: float) -> Point:
    """Rotation center on the fan → armor axis, ``radius`` back from the armor."""
    dx = armor_center[0] - fan_center[0]
    dy = armor_center[1] - fan_center[1]
    norm = math.hypot(dx, dy)
    if norm < 1e-9:
        return armor_center
    return armor_center[0] - radius * dx / norm, armor_center[1] - radius * dy / norm
