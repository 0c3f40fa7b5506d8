# main.py
"""
Entry-point for the energy-mechanism aiming system.

Tuning
------
Every parameter lives in :mod:`energy_aim.config`. Pass ``--config`` with a
JSON file of per-section overrides, e.g.::

    {"detector": {"target_color": "blue"}, "motion": {"flight_delay_s": 0.3}}

``--source`` replays a recorded video instead of the live camera; frames are
then stamped with the video position so the motion fit sees real time.
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace

from energy_aim.config import ConfigError, EnergyConfig, load_config
from energy_aim.processor import AimingProcessor


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Energy-mechanism detection and aim prediction")
    parser.add_argument("--config", help="JSON file with configuration overrides")
    parser.add_argument("--source", help="video file to replay instead of the live camera")
    parser.add_argument("--port", help="serial port of the turret controller, e.g. /dev/ttyACM0")
    parser.add_argument("--show", action="store_true", help="display the annotated video")
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> EnergyConfig:
    cfg = load_config(args.config) if args.config else EnergyConfig()
    if args.source:
        cfg = replace(cfg, camera=replace(cfg.camera, source=args.source))
    if args.port:
        cfg = replace(cfg, link=replace(cfg.link, port=args.port))
    return cfg


# ────────────────────────────────────────────────────────────────────────────
#   M A I N
# ────────────────────────────────────────────────────────────────────────────
def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        cfg = build_config(args)
    except (ConfigError, OSError) as exc:
        print(f"[Config] {exc}", file=sys.stderr)
        return 2

    print("Initializing Energy-Aim System…\n")

    # ------------------------ Banner ----------------------
    cam, det, mot, bal = cfg.camera, cfg.detector, cfg.motion, cfg.ballistics
    if cam.source:
        print(f"Camera: replay {cam.source}")
    else:
        print(f"Camera: idx={cam.device_index}, {cam.width}x{cam.height}@{cam.fps_request} FPS")
    print(
        f"Detector: color={det.target_color.value}, "
        f"radius={det.radius_range[0]:.0f}-{det.radius_range[1]:.0f}px, "
        f"ROI={cfg.roi.nominal_width}x{cfg.roi.nominal_height}"
    )
    mode = "constant" if mot.amplitude_range[1] <= 0.0 else "sinusoidal"
    print(f"Motion: {mode}, omega={mot.omega} rad/s, lead={mot.flight_delay_s}s")
    print(f"Ballistics: v0={bal.bullet_speed_mps} m/s, g={bal.gravity}")
    if cfg.link.port:
        print(f"Link: port={cfg.link.port}, baud={cfg.link.baudrate}, rate={cfg.link.max_cmd_rate_hz} Hz")
    else:
        print("Link: DISABLED")

    # ------------------------ Run -------------------------
    AimingProcessor(cfg, show=args.show).run()
    print("Main program finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
