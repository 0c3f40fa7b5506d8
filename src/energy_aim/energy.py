# energy.py
"""Per-frame energy-mechanism pipeline: ROI → candidates → direction → fit → predict → aim."""
import logging
import math
import threading
from dataclasses import replace
from typing import Optional, Tuple

from energy_aim.ballistics import AngleSolver, ShootingCompensator
from energy_aim.common import (
    ArmorPlate,
    EnergySnapshot,
    Frame,
    Point,
    RotatedRect,
    RotationDirection,
    ShapeCandidate,
    TrackState,
)
from energy_aim.config import EnergyConfig
from energy_aim.direction import DirectionEstimator
from energy_aim.extractor import CandidateExtractor
from energy_aim.history import AngleHistory
from energy_aim.motion import AngleFilter, SpeedModel
from energy_aim.predictor import (
    extrapolate_center,
    lead_displacement,
    predict_point,
    relative_polar,
    rotate_rect,
)
from energy_aim.roi import RoiManager
from energy_aim.solver import PnPAngleSolver
from energy_aim.validators import ShapeValidator

logger = logging.getLogger(__name__)


class EnergyDetector:
    """
    Owns all tracking state for one energy mechanism. Not thread-safe except
    for :meth:`snapshot`, which returns the state published by the last
    completed :meth:`run`.
    """

    def __init__(self, cfg: EnergyConfig, solver: Optional[AngleSolver] = None):
        self.cfg = cfg

        # Build stages
        self.roi = RoiManager(cfg.roi)
        self.extractor = CandidateExtractor(cfg.detector)
        self.validator = ShapeValidator(cfg.detector)
        self.direction = DirectionEstimator()
        self.model = SpeedModel(cfg.motion)
        self.filter = AngleFilter(cfg.motion)
        self.history = AngleHistory(cfg.motion.history_size, cfg.motion.speed_history_size)
        self.compensator = ShootingCompensator(
            solver if solver is not None else PnPAngleSolver(cfg.calibration), cfg.ballistics
        )

        # Tracking state
        self.state = TrackState.INIT
        self.center: Optional[Point] = None
        self.radius = 0.0
        self.center_r: Optional[ShapeCandidate] = None
        self.target_armor: Optional[ShapeCandidate] = None
        self.prior_target_armor: Optional[ShapeCandidate] = None
        self.target_flow_strip_fan: Optional[ShapeCandidate] = None
        self.predict_point: Optional[Point] = None
        self._predict_rect: Optional[RotatedRect] = None
        self.angle_confidence = 0.0
        self.reset_count = 0

        self._lock = threading.Lock()
        self._snapshot: Optional[EnergySnapshot] = None

    # ---------------------------------------------------------------------
    #                             Public API
    # ---------------------------------------------------------------------
    def run(self, frame: Frame, predict_armor: ArmorPlate) -> bool:
        """
        Process one frame. On success ``predict_armor`` holds the compensated
        aim and True is returned; otherwise it is left untouched.
        """
        self._clear_frame()
        self.roi.update(frame.size)
        channel = self.extractor.preprocess(self.roi.crop(frame.image))
        cands = self.extractor.extract(channel, self.roi.offset)

        self.target_flow_strip_fan = self.validator.select_fan(cands.fans, channel, self.roi.offset)
        self.center_r, self.target_armor = self.validator.select_center_and_armor(
            cands.centers, cands.armors, self.target_flow_strip_fan, self.prior_target_armor, self.center
        )
        self._update_center()
        if self.target_armor is None or self.center is None:
            return self._handle_miss(frame.timestamp)

        self.roi.mark_found(self.center)
        self._track(self.target_armor, frame.timestamp)
        self.prior_target_armor = self.target_armor

        ok = self._predict_target_point(frame.timestamp)
        if ok:
            ok = self._final_hit_calc(predict_armor, frame.timestamp)
        self.state = TrackState.TRACKING if ok else TrackState.INIT
        self._publish(frame.timestamp, predict_armor if ok else None)
        return ok

    def snapshot(self) -> Optional[EnergySnapshot]:
        with self._lock:
            return self._snapshot

    @property
    def rotation(self) -> RotationDirection:
        return self.direction.direction

    @property
    def model_ready(self) -> bool:
        return (
            self.model.ready
            and self.direction.direction != RotationDirection.UNDETERMINED
            and self.filter.angle_variance <= self.cfg.motion.max_angle_variance
        )

    # ---------------------------------------------------------------------
    #                              Detection
    # ---------------------------------------------------------------------
    def _clear_frame(self) -> None:
        self.center_r = None
        self.target_armor = None
        self.target_flow_strip_fan = None
        self._predict_rect = None

    def _update_center(self) -> None:
        if self.center_r is not None:
            self.center = self.center_r.center
            return
        armor, fan = self.target_armor, self.target_flow_strip_fan
        if armor is None or fan is None:
            return
        if self.center is not None and self.validator.in_radius_band(armor.center, self.center):
            return      # Fixed axis
        self.center = extrapolate_center(fan.center, armor.center, self.cfg.detector.blade_radius)
        logger.debug("Center R not found, placed at %s from the blade", self.center)

    def _handle_miss(self, timestamp: float) -> bool:
        if self.roi.mark_missed():
            self._reset()
            self.state = TrackState.RESET
        elif self.roi.lost:
            self.state = TrackState.INIT
        elif self.state in (TrackState.TRACKING, TrackState.DEGRADED):
            self.state = TrackState.DEGRADED
        self._publish(timestamp, None)
        return False

    def _reset(self) -> None:
        logger.info("Resetting energy tracking state (reset #%d)", self.reset_count + 1)
        self.history.clear_all()
        self.model.reset()
        self.filter.reset()
        self.direction.reset()
        self.roi.reset()
        self.center = None
        self.prior_target_armor = None
        self.predict_point = None
        self.angle_confidence = 0.0
        self.reset_count += 1

    # ---------------------------------------------------------------------
    #                          Motion estimation
    # ---------------------------------------------------------------------
    def _model_step(self, t_prev: float, t_now: float) -> Optional[Tuple[float, float]]:
        d = int(self.direction.direction)
        if not self.model.ready or d == 0:
            return None
        t0 = self.model.elapsed(t_prev)
        dt = t_now - t_prev
        return d * self.model.displacement(t0, dt), d * self.model.spd_func(t0 + dt)

    def _track(self, armor: ShapeCandidate, timestamp: float) -> None:
        self.radius, raw = relative_polar(self.center, armor.center)
        f = self.filter
        if not f.initialized:
            f.initialize(raw, timestamp)
        else:
            predicted = f.predict(timestamp, self._model_step(f.last_time, timestamp))
            measured = f.unwrap(raw)
            if abs(measured - predicted) > self.cfg.motion.switch_angle_threshold:
                logger.debug("Target switch: %.2f rad jump", measured - predicted)
                self.history.clear()
                f.initialize(raw, timestamp)
            else:
                f.update(measured)

        angle = f.angle
        point = (self.radius * math.cos(angle), self.radius * math.sin(angle))
        speed = self.history.push(angle, point, timestamp)

        held = self.direction.direction
        now_dir = self.direction.update(self.history.deltas())
        if held != RotationDirection.UNDETERMINED and now_dir != held:
            logger.info("Rotation reversed to %s, refitting speed model", now_dir.name)
            self.model.reset()
            self.history.speeds.clear()
        elif speed is not None:
            self.model.add_sample(*self.history.speeds.latest())
        residual = self.model.rms_residual(self.history.speeds)
        self.angle_confidence = 1.0 / (1.0 + residual)

    # ---------------------------------------------------------------------
    #                         Prediction / aiming
    # ---------------------------------------------------------------------
    def _predict_target_point(self, timestamp: float) -> bool:
        if not self.model_ready:
            self.predict_point = self.target_armor.center
            return False
        disp = lead_displacement(
            self.model, self.direction.direction, timestamp, self.cfg.motion.flight_delay_s
        )
        self.predict_point = predict_point(self.center, self.radius, self.filter.angle, disp)
        self._predict_rect = rotate_rect(self.target_armor.rect, self.predict_point, disp)
        return True

    def _final_hit_calc(self, predict_armor: ArmorPlate, timestamp: float) -> bool:
        result = self.compensator.aim(self._predict_rect)
        if result is None:
            return False
        dist, yaw, pitch, flight_time = result
        predict_armor.rect = self._predict_rect
        predict_armor.distance = dist
        predict_armor.angle_x = yaw
        predict_armor.angle_y = pitch
        predict_armor.flight_time_s = flight_time
        predict_armor.timestamp = timestamp
        return True

    def _publish(self, timestamp: float, aim: Optional[ArmorPlate]) -> None:
        snap = EnergySnapshot(
            timestamp=timestamp,
            state=self.state,
            roi=self.roi.roi,
            center=self.center,
            target_armor=self.target_armor.rect if self.target_armor else None,
            flow_strip_fan=self.target_flow_strip_fan.rect if self.target_flow_strip_fan else None,
            predict_point=self.predict_point,
            direction=self.direction.direction,
            angle_confidence=self.angle_confidence,
            angle_variance=self.filter.angle_variance,
            miss_count=self.roi.miss_cnt,
            aim=replace(aim) if aim is not None else None,
        )
        with self._lock:
            self._snapshot = snap
