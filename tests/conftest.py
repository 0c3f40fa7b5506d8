# tests/conftest.py
"""Shared fixtures: a small synthetic energy mechanism drawn with OpenCV."""
import math

import cv2
import numpy as np
import pytest

from energy_aim.common import Frame
from energy_aim.config import (
    DetectorConfig,
    EnergyConfig,
    ExtractionConfig,
    MotionConfig,
    RoiConfig,
    ShapeTemplate,
    TargetColor,
)

FRAME_SIZE = 240
CENTER = (100.0, 100.0)
ARMOR_RADIUS = 60.0
FAN_RADIUS = 30.0
RED = (0, 0, 255)
SHIFT = 4


def fill_rotated_rect(image, center, size, angle_deg, color=RED):
    box = cv2.boxPoints((center, size, angle_deg))
    pts = np.round(box * (1 << SHIFT)).astype(np.int32)
    cv2.fillPoly(image, [pts], color, lineType=cv2.LINE_8, shift=SHIFT)


def draw_mechanism(blade_angle, *, fan=True, center=True, armor=True, fan_color=RED):
    """
    One lit blade at ``blade_angle`` (maths frame, y up) about CENTER.
    The armor's long side is tangential; the fan strip lies along the radius.
    """
    image = np.zeros((FRAME_SIZE, FRAME_SIZE, 3), dtype=np.uint8)
    c, s = math.cos(blade_angle), math.sin(blade_angle)
    img_deg = -math.degrees(blade_angle)
    if center:
        cv2.rectangle(image, (95, 95), (105, 105), RED, -1)
    if armor:
        pos = (CENTER[0] + ARMOR_RADIUS * c, CENTER[1] - ARMOR_RADIUS * s)
        fill_rotated_rect(image, pos, (14, 24), img_deg)
    if fan:
        pos = (CENTER[0] + FAN_RADIUS * c, CENTER[1] - FAN_RADIUS * s)
        fill_rotated_rect(image, pos, (34, 10), img_deg, fan_color)
    return image


def blade_frame(t, **kwargs):
    """Clockwise blade turning at 1 rad/s, sampled at ``t`` seconds."""
    return Frame(image=draw_mechanism(-t, **kwargs), timestamp=t)


def blank_frame(t):
    return Frame(image=np.zeros((FRAME_SIZE, FRAME_SIZE, 3), dtype=np.uint8), timestamp=t)


@pytest.fixture
def detector_cfg():
    no_morph = ExtractionConfig(threshold=100, dilate_size=0, erode_size=0, close_size=0)
    return DetectorConfig(
        target_color=TargetColor.RED,
        armor_pass=no_morph,
        fan_pass=no_morph,
        center_pass=no_morph,
        armor=ShapeTemplate(
            area_range=(150.0, 500.0), aspect_range=(1.3, 2.5),
            ideal_area=300.0, ideal_aspect=1.7,
        ),
        fan=ShapeTemplate(
            area_range=(150.0, 600.0), aspect_range=(2.8, 5.0),
            ideal_area=320.0, ideal_aspect=3.5, min_solidity=0.4,
        ),
        center=ShapeTemplate(
            area_range=(30.0, 200.0), aspect_range=(1.0, 1.5),
            ideal_area=100.0, ideal_aspect=1.0,
        ),
        intensity_floor=50.0,
        armor_fan_max_distance=45.0,
        armor_prior_max_distance=30.0,
        radius_range=(40.0, 80.0),
        blade_radius=ARMOR_RADIUS,
    )


@pytest.fixture
def motion_cfg():
    # Constant-speed mechanism
    return MotionConfig(
        amplitude_range=(0.0, 0.0),
        bias_range=(0.5, 2.0),
        measurement_noise_std=0.001,
        flight_delay_s=0.3,
    )


@pytest.fixture
def energy_cfg(detector_cfg, motion_cfg):
    return EnergyConfig(
        roi=RoiConfig(nominal_width=200, nominal_height=200, growth_step=0.25, miss_threshold=10),
        detector=detector_cfg,
        motion=motion_cfg,
    )


class FakeSolver:
    """Fixed pose; records the quads it was asked to solve."""

    def __init__(self, solution=(1000.0, 1.5, -2.0)):
        self.solution = solution
        self.quads = []

    def solve(self, quad):
        self.quads.append(np.asarray(quad))
        return self.solution


@pytest.fixture
def fake_solver():
    return FakeSolver()
