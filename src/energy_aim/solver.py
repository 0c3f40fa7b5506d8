# solver.py
"""PnP adapter: plate quadrilateral in pixels → distance and view angles."""
import logging
import math
from typing import Optional, Tuple

import cv2
import numpy as np

from energy_aim.common import RotatedRect
from energy_aim.config import CalibrationConfig

logger = logging.getLogger(__name__)

AngleSolution = Tuple[float, float, float]   # (distance, yaw_deg, pitch_deg)


def rect_to_quad(rect: RotatedRect) -> np.ndarray:
    """
    Corners of ``rect`` ordered tl, tr, br, bl with the long side first, so
    they line up with a landscape plate model.
    """
    pts = cv2.boxPoints(rect).astype(np.float64)
    if np.linalg.norm(pts[0] - pts[1]) < np.linalg.norm(pts[1] - pts[2]):
        pts = np.roll(pts, -1, axis=0)
    if pts[0, 1] + pts[1, 1] > pts[2, 1] + pts[3, 1]:
        pts = np.roll(pts, 2, axis=0)
    if pts[0, 0] > pts[1, 0]:
        pts = pts[[1, 0, 3, 2]]
    return pts


class PnPAngleSolver:
    """
    Solves the plate pose with ``cv2.solvePnP`` (IPPE, planar target).
    Built once from an immutable calibration; holds no per-frame state.
    """

    def __init__(self, calibration: CalibrationConfig):
        self.camera_matrix = np.array(calibration.camera_matrix, dtype=np.float64)
        self.dist_coeffs = np.array(calibration.dist_coeffs, dtype=np.float64)
        hw = calibration.plate_width_mm / 2.0
        hh = calibration.plate_height_mm / 2.0
        self.object_points = np.array(
            [[-hw, -hh, 0.0], [hw, -hh, 0.0], [hw, hh, 0.0], [-hw, hh, 0.0]],
            dtype=np.float64,
        )

    def solve(self, quad: np.ndarray) -> Optional[AngleSolution]:
        img_points = np.asarray(quad, dtype=np.float64).reshape(4, 2)
        try:
            ok, _rvec, tvec = cv2.solvePnP(
                self.object_points, img_points, self.camera_matrix, self.dist_coeffs,
                flags=cv2.SOLVEPNP_IPPE,
            )
        except cv2.error as exc:
            logger.debug("solvePnP failed: %s", exc)
            return None
        if not ok:
            return None
        x, y, z = (float(v) for v in tvec.ravel())
        if z <= 0.0:
            return None
        dist = math.sqrt(x * x + y * y + z * z)
        yaw = math.degrees(math.atan2(x, z))
        pitch = math.degrees(math.atan2(-y, math.hypot(x, z)))   # camera y points down
        return dist, yaw, pitch
