"""
codec.py — Big-endian field decoding and the GX3 additive checksum.

Every multi-byte field on the wire is sent most-significant byte first:
  float  : IEEE-754 single precision, 4 bytes
  int    : two's-complement 32-bit, 4 bytes
  chksum : unsigned 16-bit, 2 bytes, sum of all preceding bytes mod 2^16
"""

from __future__ import annotations

import struct
from typing import Optional, Tuple

_F32 = struct.Struct(">f")
_I32 = struct.Struct(">i")
_U16 = struct.Struct(">H")


def decode_float_be(b: bytes) -> float:
    """Four bytes (MSB first) -> float32 value."""
    return _F32.unpack(bytes(b[:4]))[0]


def decode_int_be(b: bytes) -> int:
    """Four bytes (MSB first) -> signed 32-bit integer."""
    return _I32.unpack(bytes(b[:4]))[0]


def decode_floats_be(data: bytes, offset: int, count: int) -> Tuple[float, ...]:
    """Decode *count* consecutive big-endian floats starting at *offset*."""
    return struct.unpack_from(f">{count}f", data, offset)


def checksum(payload: bytes) -> int:
    """16-bit wraparound byte sum."""
    return sum(payload) & 0xFFFF


def validate_checksum(frame: bytes, length: Optional[int] = None) -> bool:
    """
    Check the trailing 2-byte checksum of *frame*.

    The first ``length - 2`` bytes are summed and compared against the
    big-endian 16-bit value held in the last two bytes.  This is a plain
    additive sum: byte swaps and offsetting errors go undetected.
    """
    n = len(frame) if length is None else length
    if n < 2:
        return False
    return checksum(frame[:n - 2]) == _U16.unpack_from(bytes(frame[n - 2:n]))[0]


def with_checksum(payload: bytes) -> bytes:
    """Append the big-endian checksum to *payload*."""
    return bytes(payload) + _U16.pack(checksum(payload))
