"""
Vector helpers for points on a sphere.

Every function accepts a single 3-vector or an (N, 3) array where noted.
Zero-length vectors normalise to zero rather than NaN.
"""

import math

import numpy as np

EPSILON = 1e-12


def normalize(v: np.ndarray) -> np.ndarray:
    """Unit vector(s) along v; zero vectors stay zero."""
    v = np.asarray(v, dtype=float)
    if v.ndim == 1:
        length = np.linalg.norm(v)
        if length < EPSILON:
            return np.zeros_like(v)
        return v / length
    lengths = np.linalg.norm(v, axis=1, keepdims=True)
    safe = np.where(lengths < EPSILON, 1.0, lengths)
    return np.where(lengths < EPSILON, 0.0, v / safe)


def set_length(v: np.ndarray, length: float) -> np.ndarray:
    """Scale v to the given length (zero vectors stay zero)."""
    return normalize(v) * length


def project_on_vector(v: np.ndarray, axis: np.ndarray) -> np.ndarray:
    """Projection of v onto the line spanned by axis."""
    denominator = np.dot(axis, axis)
    if denominator < EPSILON:
        return np.zeros(3)
    return axis * (np.dot(v, axis) / denominator)


def slerp(p0: np.ndarray, p1: np.ndarray, t: float) -> np.ndarray:
    """
    Spherical linear interpolation between two unit vectors.

    Args:
        p0: Start point on the unit sphere
        p1: End point on the unit sphere
        t: Interpolation parameter in [0, 1]

    Returns:
        Point on the great circle arc from p0 to p1
    """
    dot = float(np.clip(np.dot(p0, p1), -1.0, 1.0))
    omega = math.acos(dot)
    sin_omega = math.sin(omega)
    if sin_omega < EPSILON:
        return np.array(p0, dtype=float)
    return (math.sin((1 - t) * omega) * np.asarray(p0) + math.sin(t * omega) * np.asarray(p1)) / sin_omega


def rotate_about_axis(v: np.ndarray, axis: np.ndarray, angle: float) -> np.ndarray:
    """Rotate v (or each row of v) about a unit axis by angle (Rodrigues)."""
    v = np.asarray(v, dtype=float)
    axis = normalize(axis)
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    if v.ndim == 1:
        return v * cos_a + np.cross(axis, v) * sin_a + axis * np.dot(axis, v) * (1 - cos_a)
    dots = v @ axis
    return v * cos_a + np.cross(axis, v) * sin_a + np.outer(dots, axis) * (1 - cos_a)


def spherical_triangle_area(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    """
    Area of the spherical triangle abc on the unit sphere.

    Uses the Van Oosterom-Strackee formula for the solid angle, so the
    triangles of a closed tiling sum to exactly 4*pi. The result is signed:
    positive when a, b, c wind counter-clockwise seen from outside.
    """
    a = normalize(a)
    b = normalize(b)
    c = normalize(c)
    numerator = float(np.dot(a, np.cross(b, c)))
    denominator = 1.0 + float(np.dot(a, b) + np.dot(b, c) + np.dot(c, a))
    return 2.0 * math.atan2(numerator, denominator)


def adjust_range(value: float, old_min: float, old_max: float, new_min: float, new_max: float) -> float:
    """Linearly remap value from [old_min, old_max] to [new_min, new_max]."""
    return (value - old_min) / (old_max - old_min) * (new_max - new_min) + new_min
