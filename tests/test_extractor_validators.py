# tests/test_extractor_validators.py
import math
from dataclasses import replace

import numpy as np
import pytest

from conftest import ARMOR_RADIUS, CENTER, FAN_RADIUS, draw_mechanism
from energy_aim.common import ShapeCandidate
from energy_aim.config import ExtractionConfig, ShapeTemplate, TargetColor
from energy_aim.extractor import CandidateExtractor, binarize, color_channel, find_candidates
from energy_aim.validators import (
    ShapeValidator,
    best_candidate,
    is_valid_shape,
    rect_intensity,
    template_score,
)

TPL = ShapeTemplate(area_range=(100.0, 400.0), aspect_range=(1.0, 3.0), ideal_area=200.0, ideal_aspect=2.0)


def _cand(center, size, angle=0.0, solidity=1.0):
    return ShapeCandidate(rect=(center, size, angle), contour=np.zeros((4, 1, 2), np.int32), solidity=solidity)


def test_color_channel_separates_red_and_blue():
    image = np.zeros((4, 4, 3), dtype=np.uint8)
    image[0, 0] = (0, 0, 200)      # red (BGR)
    image[1, 1] = (200, 0, 0)      # blue
    red = color_channel(image, TargetColor.RED)
    blue = color_channel(image, TargetColor.BLUE)
    assert red[0, 0] == 200 and red[1, 1] == 0
    assert blue[1, 1] == 200 and blue[0, 0] == 0
    assert color_channel(image, TargetColor.GRAY).ndim == 2


def test_binarize_thresholds():
    channel = np.array([[50, 150]], dtype=np.uint8)
    out = binarize(channel, ExtractionConfig(threshold=100, dilate_size=0))
    assert out.tolist() == [[0, 255]]


def test_find_candidates_applies_offset():
    binary = np.zeros((50, 50), dtype=np.uint8)
    binary[10:21, 20:41] = 255
    (cand,) = find_candidates(binary, offset=(100, 200))
    cx, cy = cand.center
    assert cx == pytest.approx(130.0)
    assert cy == pytest.approx(215.0)
    assert cand.solidity == pytest.approx(1.0)
    assert cand.aspect == pytest.approx(2.0)


def test_extract_finds_all_shape_families(detector_cfg):
    ext = CandidateExtractor(detector_cfg)
    channel = ext.preprocess(draw_mechanism(0.0))
    cands = ext.extract(channel, (0, 0))
    assert len(cands.armors) == 3
    assert len(cands.fans) == 3
    assert len(cands.centers) == 3


def test_is_valid_shape():
    assert is_valid_shape(_cand((0, 0), (20, 10)), TPL)
    assert not is_valid_shape(_cand((0, 0), (50, 10)), TPL)          # area
    assert not is_valid_shape(_cand((0, 0), (35, 5)), TPL)           # aspect
    assert not is_valid_shape(_cand((0, 0), (20, 10), solidity=0.3), TPL)
    assert not is_valid_shape(_cand((0, 0), (0, 10)), TPL)


def test_best_candidate_is_closest_to_template():
    good = _cand((0, 0), (20, 10))
    worse = _cand((5, 5), (18, 12))
    assert template_score(good, TPL) == pytest.approx(0.0)
    assert best_candidate([worse, good], TPL) is good
    assert best_candidate([], TPL) is None


def test_rect_intensity_is_clipped():
    channel = np.full((10, 10), 100, dtype=np.uint8)
    assert rect_intensity(channel, (5, 5, 20, 20)) == pytest.approx(100.0)
    assert rect_intensity(channel, (20, 20, 5, 5)) == 0.0


class TestShapeValidator:
    def _detect(self, detector_cfg, image):
        ext = CandidateExtractor(detector_cfg)
        channel = ext.preprocess(image)
        return channel, ext.extract(channel, (0, 0))

    def test_selects_lit_blade(self, detector_cfg):
        angle = 0.7
        channel, cands = self._detect(detector_cfg, draw_mechanism(angle))
        val = ShapeValidator(detector_cfg)

        center = val.select_center(cands.centers, None)
        assert center.center == pytest.approx(CENTER, abs=0.5)

        fan = val.select_fan(cands.fans, channel, (0, 0))
        expected_fan = (CENTER[0] + FAN_RADIUS * math.cos(angle), CENTER[1] - FAN_RADIUS * math.sin(angle))
        assert fan.center == pytest.approx(expected_fan, abs=1.0)

        armor = val.select_armor(cands.armors, fan, None, center.center)
        expected = (CENTER[0] + ARMOR_RADIUS * math.cos(angle), CENTER[1] - ARMOR_RADIUS * math.sin(angle))
        assert armor.center == pytest.approx(expected, abs=1.0)

    def test_dim_fan_is_rejected(self, detector_cfg):
        cfg = replace(detector_cfg, intensity_floor=150.0)
        lit_channel, lit = self._detect(cfg, draw_mechanism(0.0))
        channel, cands = self._detect(cfg, draw_mechanism(0.0, fan_color=(0, 0, 110)))
        val = ShapeValidator(cfg)
        assert val.select_fan(lit.fans, lit_channel, (0, 0)) is not None
        assert cands.fans
        assert val.select_fan(cands.fans, channel, (0, 0)) is None

    def test_armor_outside_radius_band_is_rejected(self, detector_cfg):
        val = ShapeValidator(detector_cfg)
        armor = _cand((200.0, 100.0), (14, 24))
        assert val.select_armor([armor], None, None, CENTER) is None
        assert val.select_armor([armor], None, None, None) is armor

    def test_prior_breaks_ties_without_fan(self, detector_cfg):
        val = ShapeValidator(detector_cfg)
        a = _cand((160.0, 100.0), (14, 24))
        b = _cand((100.0, 160.0), (14, 24))
        assert val.select_armor([a, b], None, b, CENTER) is b

    def test_center_prefers_last_position(self, detector_cfg):
        val = ShapeValidator(detector_cfg)
        near = _cand((101.0, 99.0), (10, 10))
        far = _cand((200.0, 200.0), (10, 10))
        assert val.select_center([far, near], (100.0, 100.0)) is near

    def test_pairing_rejects_center_without_armor_in_band(self, detector_cfg):
        val = ShapeValidator(detector_cfg)
        decoy = _cand((205.0, 205.0), (10, 10))
        real = _cand((100.0, 100.0), (10, 10))
        armor = _cand((160.0, 100.0), (14, 24))
        center, chosen = val.select_center_and_armor([decoy, real], [armor], None, None, None)
        assert center is real
        assert chosen is armor

    def test_pairing_keeps_last_center_when_marker_hidden(self, detector_cfg):
        val = ShapeValidator(detector_cfg)
        armor = _cand((160.0, 100.0), (14, 24))
        center, chosen = val.select_center_and_armor([], [armor], None, None, CENTER)
        assert center is None
        assert chosen is armor

    def test_pairing_falls_back_to_lit_blade(self, detector_cfg):
        val = ShapeValidator(detector_cfg)
        armor = _cand((160.0, 100.0), (14, 24))
        fan = _cand((130.0, 100.0), (34, 10))
        center, chosen = val.select_center_and_armor([], [armor], fan, None, None)
        assert center is None
        assert chosen is armor
        assert val.select_center_and_armor([], [armor], None, None, None) == (None, None)
