# extractor.py
"""Binarization and contour extraction for the three shape families."""
import logging
from dataclasses import dataclass
from typing import List, Tuple

import cv2
import numpy as np

from energy_aim.common import ShapeCandidate
from energy_aim.config import DetectorConfig, ExtractionConfig, TargetColor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateSet:
    armors: List[ShapeCandidate]
    fans: List[ShapeCandidate]
    centers: List[ShapeCandidate]


def _kernel(size: int) -> np.ndarray:
    return cv2.getStructuringElement(cv2.MORPH_RECT, (size, size))


def color_channel(image: np.ndarray, color: TargetColor) -> np.ndarray:
    """Single-channel intensity of the target light color."""
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if color == TargetColor.GRAY:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    blue, _, red = cv2.split(image)
    if color == TargetColor.RED:
        return cv2.subtract(red, blue)
    return cv2.subtract(blue, red)


def binarize(channel: np.ndarray, params: ExtractionConfig) -> np.ndarray:
    _, binary = cv2.threshold(channel, params.threshold, 255, cv2.THRESH_BINARY)
    if params.close_size > 0:
        binary = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, _kernel(params.close_size))
    if params.erode_size > 0:
        binary = cv2.erode(binary, _kernel(params.erode_size))
    if params.dilate_size > 0:
        binary = cv2.dilate(binary, _kernel(params.dilate_size))
    return binary


def find_candidates(binary: np.ndarray, offset: Tuple[int, int] = (0, 0)) -> List[ShapeCandidate]:
    """Outer contours fitted to rotated rectangles, in full-frame coordinates."""
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)
    ox, oy = offset
    out: List[ShapeCandidate] = []
    for contour in contours:
        if len(contour) < 3:
            continue
        contour = contour + np.array([[ox, oy]], dtype=contour.dtype)
        (cx, cy), (w, h), angle = cv2.minAreaRect(contour)
        hull_area = cv2.contourArea(cv2.convexHull(contour))
        solidity = cv2.contourArea(contour) / hull_area if hull_area > 0 else 0.0
        out.append(
            ShapeCandidate(
                rect=((float(cx), float(cy)), (float(w), float(h)), float(angle)),
                contour=contour,
                solidity=float(solidity),
            )
        )
    return out


class CandidateExtractor:
    def __init__(self, cfg: DetectorConfig):
        self.cfg = cfg

    def preprocess(self, roi_image: np.ndarray) -> np.ndarray:
        return color_channel(roi_image, self.cfg.target_color)

    def extract(self, channel: np.ndarray, offset: Tuple[int, int]) -> CandidateSet:
        """Run the armor, fan and center passes over an already color-reduced ROI."""
        armors = find_candidates(binarize(channel, self.cfg.armor_pass), offset)
        fans = find_candidates(binarize(channel, self.cfg.fan_pass), offset)
        centers = find_candidates(binarize(channel, self.cfg.center_pass), offset)
        logger.debug(
            "Candidates: %d armor, %d fan, %d center", len(armors), len(fans), len(centers)
        )
        return CandidateSet(armors=armors, fans=fans, centers=centers)
