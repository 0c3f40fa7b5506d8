# motion.py
"""Angular-speed model of the energy mechanism and the 2-state Kalman angle filter."""
import logging
import math
from typing import Iterable, Optional, Tuple

import numpy as np
from filterpy.common import Q_discrete_white_noise
from filterpy.kalman import KalmanFilter

from energy_aim.config import MotionConfig

logger = logging.getLogger(__name__)


def wrap_angle(a: float) -> float:
    """Map to (-pi, pi]."""
    return math.atan2(math.sin(a), math.cos(a))


class SpeedModel:
    """
    speed(t) = A·sin(ω·t + φ) + b, with ω fixed and A, b clamped to their
    configured ranges. Parameters are refined by recursive least squares on
    the linear form a1·sin(ωt) + a2·cos(ωt) + b, where a1 = A·cosφ and
    a2 = A·sinφ. ``t`` is seconds since the first sample (the fit epoch).
    """

    def __init__(self, cfg: MotionConfig):
        self.cfg = cfg
        self.omega = cfg.omega
        self.reset()

    # ----------------- Private helpers -----------------
    @property
    def constant_speed(self) -> bool:
        return self.cfg.amplitude_range[1] <= 0.0

    def _refresh(self) -> None:
        a1, a2, b = self._theta
        lo, hi = self.cfg.amplitude_range
        amp = math.hypot(a1, a2)
        self.amplitude = min(max(amp, lo), hi)
        self.phase = math.atan2(a2, a1) if amp > 1e-9 else 0.0
        self.bias = min(max(b, self.cfg.bias_range[0]), self.cfg.bias_range[1])

    # ------------------ Public API --------------------
    def reset(self) -> None:
        a0 = 0.5 * (self.cfg.amplitude_range[0] + self.cfg.amplitude_range[1])
        b0 = 0.5 * (self.cfg.bias_range[0] + self.cfg.bias_range[1])
        self._theta = np.array([a0, 0.0, b0], dtype=float)
        self._P = np.eye(3) * self.cfg.initial_param_var
        self.epoch: Optional[float] = None
        self.samples = 0
        self._refresh()

    @property
    def ready(self) -> bool:
        return self.samples >= 2

    def elapsed(self, stamp: float) -> float:
        return 0.0 if self.epoch is None else stamp - self.epoch

    def add_sample(self, stamp: float, speed: float) -> None:
        """Fold one (timestamp, |angular speed|) observation into the fit."""
        if self.epoch is None:
            self.epoch = stamp
        t = stamp - self.epoch
        x = np.array([math.sin(self.omega * t), math.cos(self.omega * t), 1.0])
        free = [2] if self.constant_speed else [0, 1, 2]
        idx = np.ix_(free, free)

        lam = self.cfg.forgetting_factor
        xf = x[free]
        Pf = self._P[idx]
        Px = Pf @ xf
        gain = Px / (lam + xf @ Px)
        err = speed - float(x @ self._theta)
        self._theta[free] += gain * err
        self._P[idx] = (Pf - np.outer(gain, Px)) / lam
        self.samples += 1
        self._refresh()

    def spd_func(self, t: float) -> float:
        """Fitted angular speed (rad/s) at ``t`` seconds after the epoch."""
        return self.amplitude * math.sin(self.omega * t + self.phase) + self.bias

    def theta_func(self, t: float) -> float:
        """Closed-form integral of :meth:`spd_func` over [0, t]."""
        if abs(self.omega) < 1e-12:
            return (self.amplitude * math.sin(self.phase) + self.bias) * t
        return (
            -self.amplitude / self.omega
            * (math.cos(self.omega * t + self.phase) - math.cos(self.phase))
            + self.bias * t
        )

    def displacement(self, t0: float, duration: float) -> float:
        """Angle swept between ``t0`` and ``t0 + duration`` (unsigned model, rad)."""
        return self.theta_func(t0 + duration) - self.theta_func(t0)

    def rms_residual(self, samples: Iterable[Tuple[float, float]]) -> float:
        errs = [speed - self.spd_func(self.elapsed(stamp)) for stamp, speed in samples]
        if not errs:
            return 0.0
        return math.sqrt(sum(e * e for e in errs) / len(errs))


class AngleFilter:
    """2-state (angle, angular velocity) Kalman filter with variable Δt."""

    def __init__(self, cfg: MotionConfig):
        self.cfg = cfg

        # Build filter
        self.kf = KalmanFilter(dim_x=2, dim_z=1)
        self.kf.F = np.eye(2)
        self.kf.H = np.array([[1.0, 0.0]])
        self.kf.R = np.array([[cfg.measurement_noise_std ** 2]])
        self.kf.Q = np.zeros((2, 2))

        # Runtime bookkeeping
        self.initialized = False
        self.last_time: Optional[float] = None

    # ----------------- Private helpers -----------------
    def _update_Q(self, dt: float) -> None:
        self.kf.Q = Q_discrete_white_noise(dim=2, dt=dt, var=self.cfg.process_noise_std ** 2)

    # ------------------ Public API --------------------
    def reset(self) -> None:
        self.initialized = False
        self.last_time = None

    def initialize(self, angle: float, timestamp: float) -> None:
        self.kf.x = np.array([[angle], [0.0]])
        pos_var = self.cfg.measurement_noise_std ** 2
        vel_var = self.cfg.initial_velocity_error_std ** 2
        self.kf.P = np.diag([pos_var, vel_var])
        self.initialized = True
        self.last_time = timestamp

    def predict(self, timestamp: float, step: Optional[Tuple[float, float]] = None) -> float:
        """
        Advance to ``timestamp``. ``step`` is the model's (angle swept, speed at
        ``timestamp``), both signed; without it a constant-velocity model is used.
        Returns the predicted angle.
        """
        dt = timestamp - self.last_time if self.last_time is not None else 0.0
        if dt > 1e-6:
            self._update_Q(dt)
            if step is None:
                self.kf.predict(F=np.array([[1.0, dt], [0.0, 1.0]]))
            else:
                u = np.array([[step[0]], [step[1]]])
                self.kf.predict(u=u, B=np.eye(2), F=np.array([[1.0, 0.0], [0.0, 0.0]]))
        self.last_time = timestamp
        return self.angle

    def update(self, angle: float) -> None:
        self.kf.update(np.array([[angle]]))

    def unwrap(self, raw_angle: float) -> float:
        """Nearest equivalent of ``raw_angle`` to the current estimate."""
        return self.angle + wrap_angle(raw_angle - self.angle)

    @property
    def angle(self) -> float:
        return float(self.kf.x[0, 0])

    @property
    def velocity(self) -> float:
        return float(self.kf.x[1, 0])

    @property
    def angle_variance(self) -> float:
        return float(self.kf.P[0, 0]) if self.initialized else float("inf")
