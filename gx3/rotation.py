"""
rotation.py — Rotation matrix <-> unit quaternion (scalar-first: q = [w, x, y, z]).
"""

from __future__ import annotations

import math

import numpy as np


def matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
    """
    3x3 rotation matrix -> unit quaternion ``[w, x, y, z]``.

    Uses the trace when it is positive; otherwise pivots on the largest
    diagonal element so the square root never sees a near-zero argument.
    *R* must be a proper rotation (orthonormal, det = +1); this is not
    checked.
    """
    m = np.asarray(R, dtype=float)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    q = np.empty(4)

    if trace > 0.0:
        s = math.sqrt(trace + 1.0)
        q[0] = 0.5 * s
        s = 0.5 / s
        q[1] = (m[2, 1] - m[1, 2]) * s
        q[2] = (m[0, 2] - m[2, 0]) * s
        q[3] = (m[1, 0] - m[0, 1]) * s
    else:
        i = int(np.argmax(np.diag(m)))
        j = (i + 1) % 3
        k = (j + 1) % 3
        s = math.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        q[1 + i] = 0.5 * s
        s = 0.5 / s
        q[0] = (m[k, j] - m[j, k]) * s
        q[1 + j] = (m[j, i] + m[i, j]) * s
        q[1 + k] = (m[k, i] + m[i, k]) * s

    return q / np.linalg.norm(q)


def quaternion_to_matrix(q: np.ndarray) -> np.ndarray:
    """Unit quaternion -> 3x3 rotation matrix."""
    w, x, y, z = q
    return np.array([
        [1 - 2*(y*y + z*z),     2*(x*y - w*z),     2*(x*z + w*y)],
        [    2*(x*y + w*z), 1 - 2*(x*x + z*z),     2*(y*z - w*x)],
        [    2*(x*z - w*y),     2*(y*z + w*x), 1 - 2*(x*x + y*y)],
    ])
