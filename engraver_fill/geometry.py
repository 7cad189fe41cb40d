"""Small 2D vector and cubic Bezier helpers on plain float tuples."""

from __future__ import annotations

import math
from typing import Optional, Tuple

Vec = Tuple[float, float]

EPSILON = 1e-12


def vec_add(a: Vec, b: Vec) -> Vec:
    return a[0] + b[0], a[1] + b[1]


def vec_sub(a: Vec, b: Vec) -> Vec:
    return a[0] - b[0], a[1] - b[1]


def vec_scale(v: Vec, k: float) -> Vec:
    return v[0] * k, v[1] * k


def dot(a: Vec, b: Vec) -> float:
    return a[0] * b[0] + a[1] * b[1]


def norm(v: Vec) -> float:
    return math.hypot(v[0], v[1])


def distance(a: Vec, b: Vec) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def is_zero(v: Vec) -> bool:
    return abs(v[0]) <= EPSILON and abs(v[1]) <= EPSILON


def normalize(v: Vec, default: Vec = (0.0, 0.0)) -> Vec:
    """Return ``v`` scaled to unit length, or ``default`` for a zero vector."""

    length = norm(v)
    if length <= EPSILON:
        return default
    return v[0] / length, v[1] / length


def transpose(v: Vec) -> Vec:
    """Rotate by +90 degrees: (x, y) -> (-y, x)."""

    return -v[1], v[0]


def rotate(v: Vec, angle: float) -> Vec:
    c = math.cos(angle)
    s = math.sin(angle)
    return v[0] * c - v[1] * s, v[0] * s + v[1] * c


def in_unit_square(p: Vec) -> bool:
    return 0.0 <= p[0] <= 1.0 and 0.0 <= p[1] <= 1.0


def line_intersection(p1: Vec, v1: Vec, p2: Vec, v2: Vec) -> Optional[Vec]:
    """Intersect the lines ``p1 + a*v1`` and ``p2 + b*v2``; None when parallel."""

    denom = v1[0] * v2[1] - v1[1] * v2[0]
    if abs(denom) <= EPSILON:
        return None
    d = vec_sub(p2, p1)
    a = (d[0] * v2[1] - d[1] * v2[0]) / denom
    return p1[0] + a * v1[0], p1[1] + a * v1[1]


def bez_point(t: float, p0: Vec, c0: Vec, c1: Vec, p1: Vec) -> Vec:
    mt = 1.0 - t
    a = mt * mt * mt
    b = 3.0 * mt * mt * t
    c = 3.0 * mt * t * t
    d = t * t * t
    return (
        a * p0[0] + b * c0[0] + c * c1[0] + d * p1[0],
        a * p0[1] + b * c0[1] + c * c1[1] + d * p1[1],
    )


def bez_segment_length(p0: Vec, c0: Vec, c1: Vec, p1: Vec, samples: int = 8) -> float:
    """Approximate arc length of one cubic segment with a polyline."""

    samples = max(1, samples)
    total = 0.0
    last = p0
    for i in range(1, samples + 1):
        cur = bez_point(i / samples, p0, c0, c1, p1)
        total += distance(last, cur)
        last = cur
    return total
