# ballistics.py
"""Gravity-drop pitch correction and the solver → aim compensation step."""
import logging
import math
from typing import Optional, Protocol, Tuple

import numpy as np

from energy_aim.common import RotatedRect
from energy_aim.config import BallisticsConfig
from energy_aim.solver import AngleSolution, rect_to_quad

logger = logging.getLogger(__name__)


class AngleSolver(Protocol):
    def solve(self, quad: np.ndarray) -> Optional[AngleSolution]:
        ...


class BallisticCompensator:
    """
    Raises the launch pitch until a drag-free projectile at ``bullet_speed_mps``
    passes through the target point. Bounded by ``max_iterations``.
    """

    def __init__(self, cfg: BallisticsConfig):
        self.cfg = cfg

    def compensate(self, distance_m: float, pitch_deg: float) -> Tuple[float, float]:
        """Returns (launch pitch in degrees, flight time in seconds)."""
        v0 = max(self.cfg.bullet_speed_mps, 1e-3)
        g = self.cfg.gravity
        p = math.radians(pitch_deg)
        x = distance_m * math.cos(p)        # horizontal range
        y = distance_m * math.sin(p)        # height, up positive
        if x < 1e-6:
            return pitch_deg, distance_m / v0

        aim_y = y
        theta = p
        t = x / v0
        for _ in range(max(1, self.cfg.max_iterations)):
            theta = math.atan2(aim_y, x)
            t = x / (v0 * math.cos(theta))
            y_hit = v0 * math.sin(theta) * t - 0.5 * g * t * t
            err = y - y_hit
            if abs(err) < self.cfg.tolerance_m:
                break
            aim_y += err
        return math.degrees(theta), t


class ShootingCompensator:
    """Predicted plate → external angle solver → ballistic correction → offsets."""

    def __init__(self, solver: AngleSolver, cfg: BallisticsConfig):
        self.solver = solver
        self.cfg = cfg
        self.ballistics = BallisticCompensator(cfg)

    def aim(self, rect: RotatedRect) -> Optional[Tuple[float, float, float, float]]:
        """(distance, yaw_deg, pitch_deg, flight_time_s) or None if unsolvable."""
        solution = self.solver.solve(rect_to_quad(rect))
        if solution is None:
            logger.debug("Angle solver found no pose for %s", rect)
            return None
        distance, yaw, pitch = solution
        pitch, flight_time = self.ballistics.compensate(distance / 1000.0, pitch)
        return (
            distance,
            yaw + self.cfg.yaw_offset_deg,
            pitch + self.cfg.pitch_offset_deg,
            flight_time,
        )
