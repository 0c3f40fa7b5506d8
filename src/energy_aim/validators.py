# validators.py
"""Geometric/intensity acceptance tests and best-match selection per shape family."""
import logging
import math
from typing import Callable, Iterable, List, Optional, Tuple

import cv2
import numpy as np

from energy_aim.common import Point, ShapeCandidate
from energy_aim.config import DetectorConfig, ShapeTemplate

logger = logging.getLogger(__name__)


def distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def is_valid_shape(cand: ShapeCandidate, tpl: ShapeTemplate) -> bool:
    w, h = cand.rect[1]
    if w <= 0 or h <= 0:
        logger.debug("Degenerate candidate at %s", cand.center)
        return False
    area, aspect = cand.area, cand.aspect
    if not tpl.area_range[0] <= area <= tpl.area_range[1]:
        return False
    if not tpl.aspect_range[0] <= aspect <= tpl.aspect_range[1]:
        return False
    return cand.solidity >= tpl.min_solidity


def template_score(cand: ShapeCandidate, tpl: ShapeTemplate) -> float:
    """Normalized distance from the ideal geometry; lower is better."""
    return (
        tpl.area_weight * abs(cand.area / tpl.ideal_area - 1.0)
        + tpl.aspect_weight * abs(cand.aspect / tpl.ideal_aspect - 1.0)
    )


def best_candidate(
    cands: Iterable[ShapeCandidate],
    tpl: ShapeTemplate,
    penalty: Optional[Callable[[ShapeCandidate], float]] = None,
) -> Optional[ShapeCandidate]:
    scored = [(template_score(c, tpl) + (penalty(c) if penalty else 0.0), i, c) for i, c in enumerate(cands)]
    if not scored:
        return None
    return min(scored)[2]


def rect_intensity(channel: np.ndarray, rect: Tuple[int, int, int, int]) -> float:
    """Mean pixel value of an upright rect, clipped to the image."""
    x, y, w, h = rect
    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + w, channel.shape[1]), min(y + h, channel.shape[0])
    if x1 <= x0 or y1 <= y0:
        return 0.0
    return float(np.mean(channel[y0:y1, x0:x1]))


class ShapeValidator:
    """Per-family filters plus the arg-min selection of each frame's winner."""

    def __init__(self, cfg: DetectorConfig):
        self.cfg = cfg

    def select_center(
        self, cands: List[ShapeCandidate], last_center: Optional[Point]
    ) -> Optional[ShapeCandidate]:
        valid = [c for c in cands if is_valid_shape(c, self.cfg.center)]
        if last_center is None:
            return best_candidate(valid, self.cfg.center)
        scale = max(self.cfg.radius_range[1], 1.0)
        return best_candidate(
            valid, self.cfg.center, lambda c: distance(c.center, last_center) / scale
        )

    def is_valid_flow_strip_fan(
        self, cand: ShapeCandidate, channel: np.ndarray, offset: Tuple[int, int]
    ) -> bool:
        if not is_valid_shape(cand, self.cfg.fan):
            return False
        x, y, w, h = cv2.boundingRect(cand.contour)
        intensity = rect_intensity(channel, (x - offset[0], y - offset[1], w, h))
        if intensity < self.cfg.intensity_floor:
            logger.debug("Fan at %s too dark (%.1f)", cand.center, intensity)
            return False
        return True

    def select_fan(
        self, cands: List[ShapeCandidate], channel: np.ndarray, offset: Tuple[int, int]
    ) -> Optional[ShapeCandidate]:
        valid = [c for c in cands if self.is_valid_flow_strip_fan(c, channel, offset)]
        return best_candidate(valid, self.cfg.fan)

    def select_armor(
        self,
        cands: List[ShapeCandidate],
        fan: Optional[ShapeCandidate],
        prior: Optional[ShapeCandidate],
        center: Optional[Point],
    ) -> Optional[ShapeCandidate]:
        valid = [c for c in cands if is_valid_shape(c, self.cfg.armor)]
        if center is not None:
            valid = [c for c in valid if self.in_radius_band(c.center, center)]
        if fan is not None:
            # Only the armor on the lit blade is live
            valid = [c for c in valid if distance(c.center, fan.center) <= self.cfg.armor_fan_max_distance]
        elif prior is not None:
            near = [
                c for c in valid
                if distance(c.center, prior.center) <= self.cfg.armor_prior_max_distance
            ]
            valid = near or valid
        return best_candidate(valid, self.cfg.armor)

    def in_radius_band(self, point: Point, center: Point) -> bool:
        r_lo, r_hi = self.cfg.radius_range
        return r_lo <= distance(point, center) <= r_hi

    def select_center_and_armor(
        self,
        centers: List[ShapeCandidate],
        armors: List[ShapeCandidate],
        fan: Optional[ShapeCandidate],
        prior: Optional[ShapeCandidate],
        last_center: Optional[Point],
    ) -> Tuple[Optional[ShapeCandidate], Optional[ShapeCandidate]]:
        """
        Choose the center R and the target armor as a pair. A center candidate
        only counts when an eligible armor lies within ``radius_range`` of it.

        Without such a pair the last known center is kept as the axis; failing
        that, an armor on the lit blade is returned alone so the caller can
        place the center from the blade geometry.
        """
        paired = [c for c in centers if self.select_armor(armors, fan, prior, c.center) is not None]
        center = self.select_center(paired, last_center)
        if center is not None:
            return center, self.select_armor(armors, fan, prior, center.center)
        if last_center is not None:
            armor = self.select_armor(armors, fan, prior, last_center)
            if armor is not None:
                return None, armor
        if fan is not None:
            return None, self.select_armor(armors, fan, prior, None)
        return None, None
