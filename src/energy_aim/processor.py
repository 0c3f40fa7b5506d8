# processor.py
"""Glue logic that wires camera → energy detector → aim link."""
import logging
import time
from typing import Optional

import cv2
import numpy as np
import serial

from energy_aim.camera import Camera
from energy_aim.common import ArmorPlate, EnergySnapshot
from energy_aim.config import EnergyConfig
from energy_aim.energy import EnergyDetector
from energy_aim.link import AimLink, LinkError

logger = logging.getLogger(__name__)

WINDOW = "Energy Aim"


class AimingProcessor:
    """The main high-level orchestrator."""

    def __init__(
        self,
        cfg: EnergyConfig,
        *,
        camera: Optional[Camera] = None,
        detector: Optional[EnergyDetector] = None,
        link: Optional[AimLink] = None,
        show: bool = False,
    ):
        self.cfg = cfg
        self.show = show

        # Build sub-systems
        self.camera = camera if camera is not None else Camera(cfg.camera)
        self.detector = detector if detector is not None else EnergyDetector(cfg)
        self.link = link
        if self.link is None and cfg.link.port:
            self.link = AimLink(
                cfg.link.port,
                baudrate=cfg.link.baudrate,
                timeout=cfg.link.timeout,
                wait_for_ack=cfg.link.wait_for_ack,
            )
        self.link_ok = False
        self.last_link_error = 0.0

        # Link command timing
        self.last_link_cmd = 0.0
        self.min_cmd_interval = (
            1.0 / cfg.link.max_cmd_rate_hz if cfg.link.max_cmd_rate_hz > 0 else 0.0
        )
        self.idle_sent = False

        # Runtime metrics
        self.frame_count = 0
        self.proc_time_sum = 0.0
        self.proc_samples = 0
        self.fps_timer_start = time.time()
        self.disp_fps = 0.0
        self.disp_proc_ms_avg = 0.0
        self.total_frames = 0
        self.aims_sent = 0

        # Recovery
        self.cam_reopens = 0
        self.max_cam_reopens = 5

    # ---------------------------------------------------------------------
    #                         Setup / teardown
    # ---------------------------------------------------------------------
    def setup(self) -> bool:
        """Open camera and link (if enabled)."""
        if not self.camera.open():
            return False
        if self.link is not None:
            try:
                self.link.open()
                self.link_ok = True
            except (serial.SerialException, LinkError) as exc:
                logger.warning("Link init error: %s", exc)
                self.link_ok = False
                self.last_link_error = time.time()
        if self.show:
            cv2.namedWindow(WINDOW, cv2.WINDOW_NORMAL)
        logger.info("Setup complete")
        return True

    def cleanup(self) -> None:
        self.camera.release()
        if self.link is not None and self.link.is_open():
            self.link.close()
        if self.show:
            cv2.destroyAllWindows()
        logger.info("Exited. Total frames: %d, aims sent: %d", self.total_frames, self.aims_sent)

    # ---------------------------------------------------------------------
    #                        Drawing / UI helpers
    # ---------------------------------------------------------------------
    def _draw_overlay(self, img: np.ndarray, snap: Optional[EnergySnapshot]) -> None:
        cv2.putText(img, f"FPS:{self.disp_fps:.1f}", (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 255, 0), 2)
        cv2.putText(img, f"Proc:{self.disp_proc_ms_avg:.1f}ms", (10, 60), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 255, 0), 2)
        if snap is None:
            return
        x, y, w, h = snap.roi
        cv2.rectangle(img, (x, y), (x + w, y + h), (255, 255, 0), 1)
        if snap.target_armor is not None:
            box = cv2.boxPoints(snap.target_armor).astype(np.int32)
            cv2.polylines(img, [box], True, (0, 255, 0), 2)
        if snap.center is not None:
            cv2.circle(img, tuple(int(v) for v in snap.center), 5, (0, 255, 255), -1)
        if snap.predict_point is not None:
            cv2.circle(img, tuple(int(v) for v in snap.predict_point), 9, (0, 0, 255), 2)
        label = f"{snap.state.name} {snap.direction.name} miss:{snap.miss_count}"
        cv2.putText(img, label, (10, 90), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 255), 1)
        if snap.aim is not None:
            aim = snap.aim
            cv2.putText(
                img, f"yaw:{aim.angle_x:.2f} pitch:{aim.angle_y:.2f} d:{aim.distance:.0f}",
                (10, 120), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 255), 1,
            )

    # ---------------------------------------------------------------------
    #                            Link control
    # ---------------------------------------------------------------------
    def _recover_link(self, now: float) -> None:
        if self.link is None or self.link_ok:
            return
        if now - self.last_link_error < self.cfg.link.cooldown_s:
            return
        try:
            self.link.open()
            self.link_ok = self.link.is_open()
        except (serial.SerialException, LinkError) as exc:
            logger.warning("Link reopen failed: %s", exc)
            self.last_link_error = now

    def _send(self, aim: Optional[ArmorPlate], now: float) -> bool:
        """Returns True if a command was sent."""
        if not (self.link and self.link.is_open() and self.link_ok):
            return False
        try:
            if aim is None:
                if self.idle_sent:
                    return False
                self.link.send_idle()
                self.idle_sent = True
                return True
            if now - self.last_link_cmd < self.min_cmd_interval:
                return False
            self.link.send_aim(aim.angle_x, aim.angle_y, aim.distance)
            self.last_link_cmd = now
            self.idle_sent = False
            self.aims_sent += 1
            return True
        except LinkError as exc:
            logger.warning("Link cmd error: %s", exc)
            self.link_ok = False
            self.last_link_error = now
            return False

    # ---------------------------------------------------------------------
    #                          Main per-frame loop
    # ---------------------------------------------------------------------
    def process_frame(self) -> bool:
        """Returns False if the caller should exit the main loop."""
        now = time.time()
        self._recover_link(now)

        frame = self.camera.read()
        if frame is None:
            if self.camera.is_replay:
                return False
            if not self.camera.is_opened() and self.cam_reopens < self.max_cam_reopens:
                if self.camera.open():
                    self.cam_reopens = 0
                else:
                    self.cam_reopens += 1
            time.sleep(0.05)
            return self.cam_reopens < self.max_cam_reopens
        self.total_frames += 1

        tic = time.time()
        aim = ArmorPlate()
        ok = self.detector.run(frame, aim)
        self._send(aim if ok else None, now)

        # -------- Stats --------
        proc_ms = (time.time() - tic) * 1000.0
        self.proc_time_sum += proc_ms
        self.proc_samples += 1
        self.frame_count += 1
        if now - self.fps_timer_start >= 1.0:
            self.disp_fps = self.frame_count / (now - self.fps_timer_start)
            if self.proc_samples > 0:
                self.disp_proc_ms_avg = self.proc_time_sum / self.proc_samples
            self.frame_count = 0
            self.proc_time_sum = 0.0
            self.proc_samples = 0
            self.fps_timer_start = now

        # -------- Display --------
        if self.show:
            out = frame.image.copy()
            self._draw_overlay(out, self.detector.snapshot())
            cv2.imshow(WINDOW, out)
        return True

    # ---------------------------------------------------------------------
    #                             Public run()
    # ---------------------------------------------------------------------
    def run(self) -> None:
        if not self.setup():
            self.cleanup()
            return
        try:
            while self.process_frame():
                if self.show and (cv2.waitKey(1) & 0xFF) == ord("q"):
                    break
        except KeyboardInterrupt:
            logger.info("Stopped by user")
        finally:
            self.cleanup()
