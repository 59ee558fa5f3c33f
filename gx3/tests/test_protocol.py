#!/usr/bin/env python3
"""
test_protocol.py -- Tests for the GX3 wire codec and frame decoder.

Tests cover:
  * Big-endian float / int decoding
  * Additive checksum (including its known blind spots)
  * Rotation matrix -> quaternion conversion
  * Full 79-byte frame decoding

Run:  python3 -m pytest gx3/tests/test_protocol.py -v
"""

import math
import struct

import numpy as np
import pytest

from gx3.codec import (
    checksum, decode_float_be, decode_floats_be, decode_int_be,
    validate_checksum, with_checksum,
)
from gx3.protocol import FRAME_LEN, GRAVITY, TICK_RATE, decode_frame
from gx3.rotation import matrix_to_quaternion, quaternion_to_matrix


def _random_rotation(rng: np.random.Generator) -> np.ndarray:
    """Uniform-ish proper rotation via QR of a Gaussian matrix."""
    a = rng.normal(size=(3, 3))
    q, r = np.linalg.qr(a)
    q = q @ np.diag(np.sign(np.diag(r)))
    if np.linalg.det(q) < 0:
        q[:, 0] = -q[:, 0]
    return q


def _rot_axis(axis: str, angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    if axis == "x":
        return np.array([[1, 0, 0], [0, c, -s], [0, s, c]])
    if axis == "y":
        return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])


def _column_major(R: np.ndarray) -> tuple:
    return tuple(float(v) for v in R.T.reshape(9))


# ── Byte codec ──────────────────────────────────────────────────────────────

class TestByteCodec:
    def test_float_known_values(self):
        assert decode_float_be(b"\x3F\x80\x00\x00") == 1.0
        assert decode_float_be(b"\xBF\x80\x00\x00") == -1.0
        assert decode_float_be(b"\x00\x00\x00\x00") == 0.0

    def test_int_known_values(self):
        assert decode_int_be(b"\x00\x00\xF4\x24") == 62500
        assert decode_int_be(b"\xFF\xFF\xFF\xFF") == -1
        assert decode_int_be(b"\x80\x00\x00\x00") == -2**31
        assert decode_int_be(b"\x7F\xFF\xFF\xFF") == 2**31 - 1

    def test_reverse_of_little_endian(self):
        rng = np.random.default_rng(7)
        for _ in range(200):
            b = bytes(rng.integers(0, 256, size=4, dtype=np.uint8))
            le_int = struct.unpack("<i", b[::-1])[0]
            assert decode_int_be(b) == le_int
            le_f = struct.unpack("<f", b[::-1])[0]
            be_f = decode_float_be(b)
            assert (math.isnan(le_f) and math.isnan(be_f)) or be_f == le_f

    def test_deterministic(self):
        b = b"\x41\x1C\xE9\x79"
        assert decode_float_be(b) == decode_float_be(bytearray(b))
        assert decode_int_be(b) == decode_int_be(memoryview(b))

    def test_decode_floats_at_offset(self):
        data = b"\xAA" + struct.pack(">3f", 1.5, -2.25, 4.0)
        assert decode_floats_be(data, 1, 3) == (1.5, -2.25, 4.0)


# ── Checksum ────────────────────────────────────────────────────────────────

class TestChecksum:
    def test_valid_reply(self):
        reply = bytes([0xD4, 0x01, 0x00, 0xD5])
        assert validate_checksum(reply, 4)

    def test_wraps_at_16_bits(self):
        payload = b"\xFF" * 300               # 76500 -> 0x2AD4 after wrap
        assert checksum(payload) == 76500 & 0xFFFF
        assert validate_checksum(payload + b"\x2A\xD4")

    def test_with_checksum_roundtrip(self, make_frame):
        frame = make_frame()
        assert len(frame) == FRAME_LEN
        assert validate_checksum(frame, FRAME_LEN)

    def test_single_bit_flip_rejected(self, make_frame):
        frame = make_frame(accel=(0.1, -0.2, 0.98), ticks=123456)
        for i in range(FRAME_LEN - 2):
            for bit in range(8):
                bad = bytearray(frame)
                bad[i] ^= 1 << bit
                assert not validate_checksum(bytes(bad), FRAME_LEN)

    def test_checksum_field_corruption_rejected(self, make_frame):
        bad = bytearray(make_frame())
        bad[-1] ^= 0x01
        assert not validate_checksum(bad, FRAME_LEN)

    def test_byte_swap_goes_undetected(self, make_frame):
        """Additive sum is order-blind: swapped bytes still pass."""
        frame = bytearray(make_frame(accel=(0.5, 0.0, 1.0)))
        frame[1], frame[2] = frame[2], frame[1]
        assert validate_checksum(frame, FRAME_LEN)

    def test_compensating_errors_go_undetected(self, make_frame):
        frame = bytearray(make_frame(accel=(0.5, 0.0, 1.0)))
        frame[1] -= 1     # 0x3F -> 0x3E
        frame[9] += 1     # 0x3F -> 0x40
        assert validate_checksum(frame, FRAME_LEN)

    def test_too_short(self):
        assert not validate_checksum(b"\x01")


# ── Rotation converter ──────────────────────────────────────────────────────

class TestRotation:
    def test_identity(self):
        q = matrix_to_quaternion(np.eye(3))
        np.testing.assert_allclose(q, [1, 0, 0, 0], atol=1e-12)

    def test_90deg_z(self):
        q = matrix_to_quaternion(_rot_axis("z", math.pi / 2))
        h = math.sqrt(0.5)
        np.testing.assert_allclose(q, [h, 0, 0, h], atol=1e-12)

    @pytest.mark.parametrize("axis", ["x", "y", "z"])
    def test_180deg_uses_diagonal_branch(self, axis):
        """Trace = -1: w is zero and must not be divided by."""
        R = _rot_axis(axis, math.pi)
        q = matrix_to_quaternion(R)
        assert abs(q[0]) < 1e-12
        idx = {"x": 1, "y": 2, "z": 3}[axis]
        assert abs(abs(q[idx]) - 1.0) < 1e-12
        np.testing.assert_allclose(quaternion_to_matrix(q), R, atol=1e-12)

    def test_random_rotations_unit_and_reproduce(self):
        rng = np.random.default_rng(42)
        for _ in range(500):
            R = _random_rotation(rng)
            q = matrix_to_quaternion(R)
            assert abs(np.linalg.norm(q) - 1.0) < 1e-6
            np.testing.assert_allclose(quaternion_to_matrix(q), R, atol=1e-9)

    def test_float32_input_is_normalised(self):
        """Rounded device matrices still give a unit quaternion."""
        rng = np.random.default_rng(3)
        for _ in range(100):
            R = _random_rotation(rng).astype(np.float32)
            q = matrix_to_quaternion(R)
            assert abs(np.linalg.norm(q) - 1.0) < 1e-12
            np.testing.assert_allclose(quaternion_to_matrix(q), R, atol=1e-5)

    @pytest.mark.parametrize("R, expected", [
        (0.9 * np.eye(3), [1, 0, 0, 0]),
        (0.9 * _rot_axis("z", math.pi), [0, 0, 0, 1]),
    ])
    def test_scaled_matrix_divides_by_norm(self, R, expected):
        q = matrix_to_quaternion(R)
        np.testing.assert_allclose(np.abs(q), expected, atol=1e-12)


# ── Frame decoder ───────────────────────────────────────────────────────────

class TestFrameDecoder:
    def test_end_to_end_identity_frame(self, make_frame):
        frame = make_frame(header=0x01, accel=(0.0, 0.0, 1.0), ticks=62500)
        assert validate_checksum(frame, FRAME_LEN)
        s = decode_frame(frame, time_origin=100.0)
        np.testing.assert_allclose(s.q, [1, 0, 0, 0], atol=1e-12)
        np.testing.assert_allclose(s.accel, [0, 0, 9.807], atol=1e-12)
        np.testing.assert_allclose(s.gyro, [0, 0, 0])
        np.testing.assert_allclose(s.mag, [0, 0, 0])
        assert s.t - 100.0 == pytest.approx(1.0)
        assert s.ticks == 62500

    def test_gravity_scaling(self, make_frame):
        s = decode_frame(make_frame(accel=(1.0, 0.0, -1.0)), 0.0)
        np.testing.assert_allclose(s.accel, [GRAVITY, 0.0, -GRAVITY])
        assert s.accel[0] == 9.807

    def test_fields_passed_through(self, make_frame):
        gyro = (0.125, -1.5, 3.0)
        mag = (0.25, -0.375, 0.5)
        s = decode_frame(make_frame(gyro=gyro, mag=mag), 0.0)
        np.testing.assert_array_equal(s.gyro, gyro)
        np.testing.assert_array_equal(s.mag, mag)

    def test_float32_precision(self, make_frame):
        accel = (0.1, -0.2, 0.3)
        s = decode_frame(make_frame(accel=accel), 0.0)
        np.testing.assert_allclose(s.accel, np.array(accel) * GRAVITY, rtol=1e-6)

    def test_column_major_orientation(self, make_frame):
        R = _rot_axis("z", math.pi / 2)
        s = decode_frame(make_frame(orient=_column_major(R)), 0.0)
        np.testing.assert_allclose(quaternion_to_matrix(s.q), R, atol=1e-6)
        # Row-major on the wire would have produced the inverse rotation
        assert s.q[3] > 0

    def test_timestamp_with_delay(self, make_frame):
        s = decode_frame(make_frame(ticks=125000), time_origin=50.0,
                         delay=0.25, frame_id="imu_link")
        assert s.t == pytest.approx(50.0 + 125000 / TICK_RATE - 0.25)
        assert s.frame_id == "imu_link"

    def test_negative_ticks(self, make_frame):
        s = decode_frame(make_frame(ticks=-62500), time_origin=10.0)
        assert s.t == pytest.approx(9.0)

    def test_header_ignored(self, make_frame):
        a = decode_frame(make_frame(header=0x01, ticks=5), 0.0)
        b = decode_frame(make_frame(header=0xCC, ticks=5), 0.0)
        np.testing.assert_array_equal(a.accel, b.accel)
        np.testing.assert_array_equal(a.q, b.q)
        assert a.t == b.t

    def test_bytearray_input(self, make_frame):
        frame = bytearray(make_frame(ticks=62500))
        s = decode_frame(frame, 0.0)
        assert s.t == pytest.approx(1.0)
        frame[:] = bytes(FRAME_LEN)
        np.testing.assert_allclose(s.accel, [0, 0, GRAVITY])

    def test_with_checksum_appends_be(self):
        assert with_checksum(b"\xD4\x01") == b"\xD4\x01\x00\xD5"
