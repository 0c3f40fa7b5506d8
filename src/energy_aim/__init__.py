"""Energy-mechanism detection and hit prediction – re-export high-level API."""
from .common import ArmorPlate, EnergySnapshot, Frame, RotationDirection, TrackState  # noqa: F401
from .config import (                                                                  # noqa: F401
    BallisticsConfig, CalibrationConfig, CameraConfig, ConfigError, DetectorConfig,
    EnergyConfig, LinkConfig, MotionConfig, RoiConfig, load_config,
)
from .energy import EnergyDetector                                                     # noqa: F401
from .processor import AimingProcessor                                                 # noqa: F401
