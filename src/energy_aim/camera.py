# camera.py
"""A thin wrapper around cv2.VideoCapture yielding timestamped frames."""
import logging
import time
from typing import Optional

import cv2

from energy_aim.common import Frame
from energy_aim.config import CameraConfig

logger = logging.getLogger(__name__)


class Camera:
    def __init__(self, config: CameraConfig):
        self.config = config
        self.cap: Optional[cv2.VideoCapture] = None

        # Exposed runtime values
        self.actual_width = 0
        self.actual_height = 0
        self.actual_fps = 0.0

    # --------------- Internal helpers ---------------
    @property
    def is_replay(self) -> bool:
        return bool(self.config.source)

    def _apply_settings(self) -> None:
        if self.config.fourcc_str:
            self.cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*self.config.fourcc_str))
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        if self.config.fps_request > 0:
            self.cap.set(cv2.CAP_PROP_FPS, self.config.fps_request)
        # V4L2 maps 0.25 → manual, 0.75 → aperture priority
        self.cap.set(cv2.CAP_PROP_AUTO_EXPOSURE, 0.75 if self.config.auto_exposure else 0.25)
        if not self.config.auto_exposure:
            self.cap.set(cv2.CAP_PROP_EXPOSURE, self.config.exposure)
        time.sleep(0.1)  # Let driver settle

    # --------------- Public API ---------------------
    def open(self) -> bool:
        if self.is_replay:
            self.cap = cv2.VideoCapture(self.config.source)
        elif self.config.use_v4l2:
            self.cap = cv2.VideoCapture(self.config.device_index, cv2.CAP_V4L2)
        else:
            self.cap = cv2.VideoCapture(self.config.device_index)

        if not self.cap or not self.cap.isOpened():
            logger.error("Could not open %s", self.config.source or f"device {self.config.device_index}")
            self.cap = None
            return False

        if not self.is_replay:
            self._apply_settings()

        self.actual_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.actual_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.actual_fps = self.cap.get(cv2.CAP_PROP_FPS)
        logger.info(
            "Camera %dx%d@%.1f FPS%s",
            self.actual_width, self.actual_height, self.actual_fps,
            " (replay)" if self.is_replay else "",
        )
        if self.actual_width == 0 or self.actual_height == 0:
            logger.error("Camera returned zero resolution")
            self.release()
            return False
        return True

    def read(self) -> Optional[Frame]:
        """Next frame, stamped with capture time (video position for replays)."""
        if not self.is_opened():
            return None
        ts = time.time()
        ret, image = self.cap.read()
        if not ret or image is None:
            return None
        if self.is_replay:
            ts = self.cap.get(cv2.CAP_PROP_POS_MSEC) / 1000.0
        return Frame(image=image, timestamp=ts)

    def is_opened(self) -> bool:
        return bool(self.cap and self.cap.isOpened())

    def release(self) -> None:
        if self.cap:
            logger.info("Releasing capture device")
            self.cap.release()
            self.cap = None
