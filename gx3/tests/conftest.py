"""Shared fixtures: a scripted in-memory device and a frame builder."""

import struct

import pytest

# Allow running from repo root
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from gx3.codec import with_checksum
from gx3.protocol import TransportError

IDENTITY = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0)


def build_frame(accel=(0.0, 0.0, 1.0), gyro=(0.0, 0.0, 0.0),
                mag=(0.0, 0.0, 0.0), orient=IDENTITY, ticks=0,
                header=0xCC) -> bytes:
    """79-byte continuous-mode frame; *orient* is column-major."""
    payload = struct.pack(">B3f3f3f9fi", header, *accel, *gyro, *mag,
                          *orient, ticks)
    return with_checksum(payload)


class FakeTransport:
    """
    Duplex channel fed from a script of replies.

    Every ``read_exact`` pops the next scripted chunk, which must have the
    requested length.  An exhausted script behaves like a closed port.
    """

    def __init__(self, replies=()):
        self.replies = list(replies)
        self.written: list[bytes] = []
        self.events: list[str] = []
        self.is_open = True

    def write(self, data: bytes) -> None:
        if not self.is_open:
            raise TransportError("closed")
        self.written.append(bytes(data))

    def read_exact(self, n: int) -> bytes:
        if not self.is_open or not self.replies:
            raise TransportError("channel closed")
        chunk = self.replies.pop(0)
        assert len(chunk) == n, f"script expected read of {len(chunk)}, got {n}"
        return chunk

    def read_into(self, buf: bytearray) -> None:
        buf[:] = self.read_exact(len(buf))

    def reopen(self) -> None:
        self.events.append("reopen")
        self.is_open = True

    def close(self) -> None:
        self.events.append("close")
        self.is_open = False


@pytest.fixture
def make_frame():
    return build_frame


@pytest.fixture
def fake_transport():
    return FakeTransport
