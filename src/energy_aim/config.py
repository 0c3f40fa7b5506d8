# config.py
"""Typed configuration blobs for the whole system."""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple


class ConfigError(ValueError):
    """Raised when a configuration file cannot be applied."""


class TargetColor(str, Enum):
    RED = "red"
    BLUE = "blue"
    GRAY = "gray"


# ---------------------- Camera ----------------------
@dataclass(frozen=True)
class CameraConfig:
    device_index: int = 0
    source: str = ""                  # Video file path; empty → live device
    width: int = 640
    height: int = 480
    fps_request: int = 120
    use_v4l2: bool = True
    fourcc_str: str = "MJPG"
    exposure: float = -8.0            # Lit targets need a dark exposure
    auto_exposure: bool = False


# -------------------- Calibration -------------------
@dataclass(frozen=True)
class CalibrationConfig:
    camera_matrix: Tuple[Tuple[float, float, float], ...] = (
        (1200.9, 0.0, 134.8634),
        (0.0, 1196.2, 366.1528),
        (0.0, 0.0, 1.0),
    )
    dist_coeffs: Tuple[float, ...] = (-0.3524, 0.2160, 0.0, 0.0, 0.0)
    plate_width_mm: float = 225.0
    plate_height_mm: float = 55.0


# ------------------------ ROI -----------------------
@dataclass(frozen=True)
class RoiConfig:
    nominal_width: int = 420
    nominal_height: int = 420
    growth_step: float = 0.25         # Fractional growth per missed frame
    miss_threshold: int = 10          # Misses beyond this → full reset


# --------------------- Detection --------------------
@dataclass(frozen=True)
class ShapeTemplate:
    """Acceptance bounds and ideal geometry for one shape family."""
    area_range: Tuple[float, float]
    aspect_range: Tuple[float, float]  # long side / short side, always >= 1
    ideal_area: float
    ideal_aspect: float
    min_solidity: float = 0.6
    area_weight: float = 1.0
    aspect_weight: float = 1.0


@dataclass(frozen=True)
class ExtractionConfig:
    threshold: int = 80
    dilate_size: int = 3              # 0 disables the operation
    erode_size: int = 0
    close_size: int = 0


@dataclass(frozen=True)
class DetectorConfig:
    target_color: TargetColor = TargetColor.RED
    armor_pass: ExtractionConfig = ExtractionConfig(threshold=80, dilate_size=3)
    fan_pass: ExtractionConfig = ExtractionConfig(threshold=60, dilate_size=5, close_size=5)
    center_pass: ExtractionConfig = ExtractionConfig(threshold=80, dilate_size=3)
    armor: ShapeTemplate = ShapeTemplate(
        area_range=(300.0, 4000.0), aspect_range=(1.2, 2.6),
        ideal_area=1400.0, ideal_aspect=1.8,
    )
    fan: ShapeTemplate = ShapeTemplate(
        area_range=(1500.0, 12000.0), aspect_range=(2.0, 4.5),
        ideal_area=5000.0, ideal_aspect=3.0, min_solidity=0.4,
    )
    center: ShapeTemplate = ShapeTemplate(
        area_range=(40.0, 800.0), aspect_range=(1.0, 1.6),
        ideal_area=300.0, ideal_aspect=1.1,
    )
    intensity_floor: float = 40.0     # Mean brightness of the lit (active) blade
    armor_fan_max_distance: float = 160.0
    armor_prior_max_distance: float = 80.0
    radius_range: Tuple[float, float] = (100.0, 260.0)
    blade_radius: float = 180.0       # Armor → center distance used when R is not visible


# ---------------------- Motion ----------------------
@dataclass(frozen=True)
class MotionConfig:
    omega: float = 1.942              # rad/s, mid of the 1.884–2.000 rule range
    amplitude_range: Tuple[float, float] = (0.780, 1.045)
    bias_range: Tuple[float, float] = (1.045, 1.310)
    forgetting_factor: float = 0.98
    initial_param_var: float = 10.0
    history_size: int = 3
    speed_history_size: int = 3
    flight_delay_s: float = 0.35
    measurement_noise_std: float = 0.02       # rad
    process_noise_std: float = 1.0            # rad/s²
    initial_velocity_error_std: float = 2.0   # rad/s
    max_angle_variance: float = 0.05          # rad²
    switch_angle_threshold: float = 0.6       # rad; blades are 72° apart


# --------------------- Ballistics -------------------
@dataclass(frozen=True)
class BallisticsConfig:
    bullet_speed_mps: float = 27.0
    gravity: float = 9.81
    max_iterations: int = 5
    tolerance_m: float = 1e-3
    yaw_offset_deg: float = 0.0
    pitch_offset_deg: float = 0.0


# ---------------------- Link ------------------------
@dataclass(frozen=True)
class LinkConfig:
    port: str = ""                    # Set to "/dev/ttyUSB0" or COM-port to enable
    baudrate: int = 115_200
    timeout: float = 0.5
    wait_for_ack: bool = False
    max_cmd_rate_hz: float = 200.0
    cooldown_s: float = 5.0


@dataclass(frozen=True)
class EnergyConfig:
    camera: CameraConfig = field(default_factory=CameraConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    roi: RoiConfig = field(default_factory=RoiConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    ballistics: BallisticsConfig = field(default_factory=BallisticsConfig)
    link: LinkConfig = field(default_factory=LinkConfig)


# ------------------- JSON loading -------------------
def _coerce(value: Any, current: Any) -> Any:
    if isinstance(current, Enum):
        return type(current)(value)
    if isinstance(current, tuple) and isinstance(value, list):
        return tuple(tuple(v) if isinstance(v, list) else v for v in value)
    return value


def _apply(blob: Any, overrides: Dict[str, Any], where: str) -> Any:
    known = {f.name for f in fields(blob)}
    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            raise ConfigError(f"Unknown key {where}.{key}")
        current = getattr(blob, key)
        if is_dataclass(current) and isinstance(value, dict):
            changes[key] = _apply(current, value, f"{where}.{key}")
            continue
        try:
            changes[key] = _coerce(value, current)
        except ValueError as exc:
            raise ConfigError(f"Bad value for {where}.{key}: {exc}") from exc
    try:
        return replace(blob, **changes)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Bad value in {where}: {exc}") from exc


def load_config(path: str | Path) -> EnergyConfig:
    """
    Build an :class:`EnergyConfig` from a JSON file of per-section overrides,
    e.g. ``{"motion": {"flight_delay_s": 0.3}}``. Missing keys keep defaults.
    """
    path = Path(path).expanduser()
    try:
        with path.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"JSON error in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return _apply(EnergyConfig(), raw, "config")
