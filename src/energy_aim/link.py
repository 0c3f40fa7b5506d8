# link.py
"""Serial link that hands compensated aim commands to the turret controller."""
from __future__ import annotations

import re
import threading
import time
from pathlib import Path
from typing import Optional

import serial


# ------------------- Exceptions / patterns -------------------
class LinkError(RuntimeError):
    """Raised when the controller does not answer as expected."""


_AIM_ACK = re.compile(r"^AIM_OK$")
_IDLE_ACK = re.compile(r"^IDLE_OK$")


# ---------------------- Main class ----------------------
class AimLink:
    """
    Line-based ASCII protocol:

    * ``AIM <yaw_deg> <pitch_deg> <distance>`` → optional ``AIM_OK``
    * ``IDLE`` (no target this frame) → optional ``IDLE_OK``
    """

    def __init__(
        self,
        port: str | Path,
        baudrate: int = 115_200,
        timeout: float = 0.5,
        *,
        wait_for_ack: bool = False,
        eol: str = "\n",
    ):
        self.port = str(port)
        self.baudrate = baudrate
        self.timeout = timeout
        self.wait_for_ack = wait_for_ack
        self._eol = eol.encode()
        self._ser: Optional[serial.Serial] = None
        self._lock = threading.Lock()

    # ---------------- Serial plumbing ----------------
    def open(self) -> None:
        if self._ser and self._ser.is_open:
            return
        self._ser = serial.Serial(
            port=self.port,
            baudrate=self.baudrate,
            timeout=self.timeout,
            write_timeout=self.timeout,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
        )
        time.sleep(0.2)
        if self._ser.is_open:
            self._ser.reset_input_buffer()

    def close(self) -> None:
        if self._ser and self._ser.is_open:
            self._ser.close()
        self._ser = None

    def is_open(self) -> bool:
        return bool(self._ser and self._ser.is_open)

    # ------------------ Public API -------------------
    def send_aim(self, yaw_deg: float, pitch_deg: float, distance: float) -> None:
        self._cmd(f"AIM {yaw_deg:.3f} {pitch_deg:.3f} {distance:.1f}", expect=_AIM_ACK)

    def send_idle(self) -> None:
        self._cmd("IDLE", expect=_IDLE_ACK)

    # ----------------- Internal core -----------------
    def _cmd(self, cmd: str, expect: re.Pattern[str]) -> Optional[str]:
        if not self.is_open():
            raise LinkError("Serial port is not open")
        with self._lock:
            try:
                self._ser.write(cmd.encode() + self._eol)
                self._ser.flush()
            except serial.SerialException as exc:
                raise LinkError(f"Write failed for {cmd!r}: {exc}") from exc
            if not self.wait_for_ack:
                return None
            while True:
                raw = self._ser.readline()
                if not raw:
                    raise LinkError(f"Timeout waiting for response to {cmd!r}")
                line = raw.decode(errors="replace").strip()
                if expect.match(line):
                    return line

    # ---------------- Context / repr ---------------
    def __enter__(self) -> "AimLink":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open() else "closed"
        return f"<AimLink port={self.port!r} ({state})>"
