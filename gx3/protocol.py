"""
protocol.py — 3DM-GX3-25 wire constants, error types and frame decoder.

Continuous-mode frame, preset 0xCC (79 bytes, big-endian):
  [0]       header / preset id (0xCC)
  [1:13]    accel        3 x float32   (g)
  [13:25]   angular rate 3 x float32   (rad/s)
  [25:37]   magnetic     3 x float32   (gauss)
  [37:73]   orientation  9 x float32   (M11 M21 M31 M12 ... column-major)
  [73:77]   timer        int32         (ticks, 62500 per second)
  [77:79]   checksum     uint16        (sum of bytes [0:77])
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .codec import decode_floats_be, decode_int_be
from .rotation import matrix_to_quaternion

# ── Link / protocol constants ───────────────────────────────────────────────
BAUD             = 115_200
FRAME_LEN        = 79
REPLY_LEN        = 4
REPLY_MODE_INDEX = 2          # byte checked for active mode (0x01)
TIMER_REPLY_LEN  = 7
GRAVITY          = 9.807      # m/s^2 per g
TICK_RATE        = 62_500.0   # timer ticks per second
SETTLE_S         = 0.1        # pause after stop / before re-open

# ── Commands ────────────────────────────────────────────────────────────────
CMD_STOP          = b"\xFA\x75\xB4"
CMD_MODE_PREFIX   = b"\xD4\xA3\x47"
MODE_QUERY        = 0x00
MODE_ACTIVE       = 0x01
MODE_CONTINUOUS   = 0x02
PRESET_ACC_ANG_MAG_ORIENT = 0xCC
CMD_PRESET        = b"\xD6\xC6\x6B" + bytes([PRESET_ACC_ANG_MAG_ORIENT])
CMD_SET_TIMER     = b"\xD7\xC1\x29\x01\x00\x00\x00\x00"  # restart at 0

# Field offsets inside a frame
_OFF_ACCEL  = 1
_OFF_GYRO   = 13
_OFF_MAG    = 25
_OFF_ORIENT = 37
_OFF_TIMER  = 73


def mode_command(mode: int) -> bytes:
    """Mode command: query (0x00), active (0x01) or continuous (0x02)."""
    return CMD_MODE_PREFIX + bytes([mode])


# ── Errors ──────────────────────────────────────────────────────────────────

class TransportError(IOError):
    """Serial channel closed, short read, or I/O failure."""


class ChecksumError(ValueError):
    """A device message failed its additive checksum."""

    def __init__(self, message: str, data: bytes = b""):
        super().__init__(message)
        self.data = bytes(data)


class HandshakeError(RuntimeError):
    """Device start-up sequence failed; the transport has been closed."""


# ── Decoded sample ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DecodedSample:
    """One calibrated measurement from a valid frame."""
    t: float              # host timestamp (s)
    accel: np.ndarray     # (3,) linear acceleration (m/s^2)
    gyro: np.ndarray      # (3,) angular rate (rad/s)
    mag: np.ndarray       # (3,) magnetic field (gauss)
    q: np.ndarray         # (4,) orientation [w, x, y, z]
    ticks: int = 0        # raw device timer
    frame_id: str = "imu"


def decode_frame(frame: bytes,
                 time_origin: float,
                 delay: float = 0.0,
                 frame_id: str = "imu") -> DecodedSample:
    """
    Decode one checksum-verified frame into a :class:`DecodedSample`.

    *time_origin* is the host time at device tick 0 and *delay* a fixed
    transport latency subtracted from every stamp.
    """
    accel = np.array(decode_floats_be(frame, _OFF_ACCEL, 3)) * GRAVITY
    gyro  = np.array(decode_floats_be(frame, _OFF_GYRO, 3))
    mag   = np.array(decode_floats_be(frame, _OFF_MAG, 3))

    # Column-major on the wire: M[row][col] = m[col*3 + row]
    m = np.array(decode_floats_be(frame, _OFF_ORIENT, 9))
    R = m.reshape(3, 3).T

    ticks = decode_int_be(frame[_OFF_TIMER:_OFF_TIMER + 4])
    t = time_origin + ticks / TICK_RATE - delay

    return DecodedSample(
        t=t, accel=accel, gyro=gyro, mag=mag,
        q=matrix_to_quaternion(R),
        ticks=ticks, frame_id=frame_id,
    )
