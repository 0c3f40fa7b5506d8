# roi.py
"""Working-window management driven by the last anchor and the miss counter."""
import logging
from typing import Optional, Tuple

import numpy as np

from energy_aim.common import Point
from energy_aim.config import RoiConfig

logger = logging.getLogger(__name__)

Rect = Tuple[int, int, int, int]


def clip_rect(rect: Rect, size: Tuple[int, int]) -> Rect:
    x, y, w, h = rect
    x0, y0 = min(max(x, 0), size[0]), min(max(y, 0), size[1])
    x1, y1 = min(max(x + w, 0), size[0]), min(max(y + h, 0), size[1])
    return x0, y0, x1 - x0, y1 - y0


class RoiManager:
    """
    Keeps the ROI centered on the last anchor (rotation center, or the armor
    when no center is known). Each consecutive miss grows the window by
    ``growth_step``; beyond ``miss_threshold`` misses the target counts as lost.
    """

    def __init__(self, cfg: RoiConfig):
        self.cfg = cfg
        self.roi: Rect = (0, 0, 0, 0)
        self.offset: Tuple[int, int] = (0, 0)
        self.miss_cnt = 0
        self.anchor: Optional[Point] = None

    @property
    def lost(self) -> bool:
        return self.miss_cnt > self.cfg.miss_threshold

    def update(self, frame_size: Tuple[int, int]) -> Rect:
        """Compute this frame's ROI for a (width, height) frame."""
        fw, fh = frame_size
        if self.anchor is None or self.lost:
            self.roi = (0, 0, fw, fh)
        else:
            scale = 1.0 + self.cfg.growth_step * self.miss_cnt
            w = int(round(self.cfg.nominal_width * scale))
            h = int(round(self.cfg.nominal_height * scale))
            if w >= fw and h >= fh:
                self.roi = (0, 0, fw, fh)
            else:
                cx, cy = self.anchor
                self.roi = clip_rect((int(round(cx - w / 2.0)), int(round(cy - h / 2.0)), w, h), (fw, fh))
                if self.roi[2] <= 0 or self.roi[3] <= 0:
                    self.roi = (0, 0, fw, fh)
        self.offset = (self.roi[0], self.roi[1])
        return self.roi

    def crop(self, image: np.ndarray) -> np.ndarray:
        x, y, w, h = self.roi
        return image[y:y + h, x:x + w]

    def mark_found(self, anchor: Point) -> None:
        self.anchor = anchor
        self.miss_cnt = 0

    def mark_missed(self) -> bool:
        """
        Count a miss. Returns True exactly once, on the miss that crosses the
        threshold; the counter then stays put until the next detection.
        """
        if self.lost:
            return False
        self.miss_cnt += 1
        if self.lost:
            logger.info("Target lost after %d missed frames", self.miss_cnt)
            return True
        return False

    def reset(self) -> None:
        self.anchor = None
