"""Line generators: fill the unit parametric square with families of lines.

Every generator works in parametric space. Spacing is converted from object
units with the surface scaling at the centre of the patch, and all random
choices come from generators seeded with the direction's ``seed``.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .chain import LineChain, LinePoint, PointState
from .config import get_engine_config
from .geometry import (
    Vec,
    distance,
    dot,
    in_unit_square,
    line_intersection,
    norm,
    normalize,
    rotate,
    transpose,
    vec_add,
    vec_scale,
    vec_sub,
)
from .logging_utils import apply_debug_logging
from .noise import CoherentNoise
from .settings import DirectionSettings, FieldKind, SpacingSettings
from .surface import Surface

logger = logging.getLogger(__name__)

_CORNERS: Tuple[Vec, ...] = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))


def _prepare(surface: Surface, spacing: SpacingSettings, weight: float) -> Tuple[float, float, float]:
    """Resolve default spacing and weight; return ``(spacing, weight, param_spacing)``."""

    if spacing.spacing <= 0:
        _, _, miny, maxy = surface.bounds
        spacing.spacing = (maxy - miny) / 20
        logger.debug("Spacing defaulted to %g", spacing.spacing)
    sp = spacing.spacing
    if weight <= 0:
        weight = sp / 10
    return sp, weight, sp / surface.get_scaling(0.5, 0.5)


def _resolution(direction: DirectionSettings) -> float:
    return direction.resolution if direction.resolution > 0 else 1.0


def _feature_size(direction: DirectionSettings) -> float:
    return max(direction.noise_scale, 0.8) ** 2


def _largest_radius(position: Vec) -> float:
    return max(distance(position, corner) for corner in _CORNERS)


def _chains(polylines: Sequence[Sequence[Vec]], weight: float) -> List[LineChain]:
    return [LineChain.from_coords(pts, weight) for pts in polylines if len(pts) >= 2]


def apply_profile(
    coords: Sequence[Vec],
    direction: DirectionSettings,
    rng: np.random.Generator,
    spacing: float,
    weight: float,
) -> LineChain:
    """Build a chain from ``coords`` visible only between the profile fractions.

    Points before the start fraction and after the end fraction are Off, and
    points are inserted exactly at both fractions. With a profile curve the
    visible points take ``curve(u) * max_height * spacing``.
    """

    start, end, _ = direction.start_end(rng, keep_increasing=True)
    cum = [0.0]
    for a, b in zip(coords, coords[1:]):
        cum.append(cum[-1] + distance(a, b))
    total = cum[-1]
    ss = start * total
    ee = end * total

    samples: List[Tuple[Vec, float]] = []
    for i, p in enumerate(coords):
        if i > 0 and cum[i] > cum[i - 1]:
            prev = coords[i - 1]
            for cut in (ss, ee):
                if cum[i - 1] < cut < cum[i]:
                    f = (cut - cum[i - 1]) / (cum[i] - cum[i - 1])
                    samples.append((vec_add(prev, vec_scale(vec_sub(p, prev), f)), cut))
        samples.append((p, cum[i]))

    eps = 1e-12 * max(total, 1.0)
    curve = direction.profile
    line = LineChain()
    for (s, t), u in samples:
        visible = ss - eps <= u <= ee + eps
        w = weight
        if curve is not None and visible:
            if direction.scale_profile:
                x = (u - ss) / (ee - ss) if ee > ss else 0.0
            else:
                x = u / total if total > 0 else 0.0
            w = curve(x) * direction.max_height * spacing
        line.append(LinePoint(s, t, w, PointState.ON if visible else PointState.OFF))
    return line


def fill_regular_lines(
    surface: Surface,
    direction: DirectionSettings,
    spacing: SpacingSettings,
    position: Vec,
    directionv: Vec,
    weight: float = -1.0,
) -> List[LineChain]:
    """Parallel lines along ``directionv``, one through ``position``."""

    sp, weight, stsp = _prepare(surface, spacing, weight)
    rng = np.random.default_rng(direction.seed)
    noise = CoherentNoise(direction.seed)
    fs = _feature_size(direction)

    v = vec_scale(normalize(directionv, (1.0, 0.0)), stsp)
    vt = transpose(v)

    # starters sit on a diagonal of the square, one line spacing apart
    if (v[1] >= 0 and v[0] >= 0) or (v[1] <= 0 and v[0] <= 0):
        sp0: Vec = (0.0, 1.0)
        sv = normalize((1.0, -1.0))
    else:
        sp0 = (0.0, 0.0)
        sv = normalize((1.0, 1.0))
    sv = vec_scale(sv, stsp * stsp / dot(sv, vt))

    origin = line_intersection(sp0, sv, position, v)
    if origin is None:
        origin = (0.5, 0.5)

    starters: List[Vec] = []
    pp = origin
    while in_unit_square(pp):
        starters.append(pp)
        pp = vec_add(pp, sv)
    pp = vec_sub(origin, sv)
    while in_unit_square(pp):
        starters.append(pp)
        pp = vec_sub(pp, sv)

    step = vec_scale(v, _resolution(direction))
    polylines: List[List[Vec]] = []
    for starter in starters:
        if direction.line_offset:
            starter = vec_add(starter, vec_scale(vt, direction.line_offset * (rng.random() - 0.5)))
        if not in_unit_square(starter):
            continue
        pts = [starter]
        cur = vec_add(starter, step)
        while in_unit_square(cur):
            pts.append(cur)
            cur = vec_add(cur, step)
        cur = vec_sub(starter, step)
        while in_unit_square(cur):
            pts.insert(0, cur)
            cur = vec_sub(cur, step)

        if direction.point_offset:
            jittered = []
            for x, y in pts:
                n = noise.evaluate((x - 0.5) / stsp / fs, (y - 0.5) / stsp / fs)
                jittered.append(vec_add((x, y), vec_scale(vt, direction.point_offset * (n - 0.5))))
            pts = jittered
        polylines.append(pts)

    if direction.has_profile():
        lines = [apply_profile(pts, direction, rng, sp, weight) for pts in polylines if len(pts) >= 2]
    else:
        lines = _chains(polylines, weight)
    logger.info("Linear fill: %d lines at spacing %g", len(lines), sp)
    return lines


def fill_radial(
    surface: Surface,
    direction: DirectionSettings,
    spacing: SpacingSettings,
    position: Vec,
    directionv: Vec,
    weight: float = -1.0,
) -> List[LineChain]:
    """Rays leaving ``position``, the first one along ``directionv``."""

    sp, weight, stsp = _prepare(surface, spacing, weight)
    stsp *= 2
    rng = np.random.default_rng(direction.seed)
    noise = CoherentNoise(direction.seed)
    fs = _feature_size(direction)

    numpoints = max(3, int(2 * math.pi / stsp))
    dangle = 2 * math.pi / numpoints
    base = vec_scale(normalize(directionv, (1.0, 0.0)), 0.05)
    resolution = _resolution(direction)

    polylines: List[List[Vec]] = []
    for c in range(numpoints):
        ang_offset = (rng.random() - 0.5) * 2 * math.pi / numpoints * direction.line_offset / 2
        v = vec_scale(rotate(base, ang_offset + 2 * math.pi * c / numpoints), resolution)
        side = normalize(transpose(v))
        step = norm(v)

        pts: List[Vec] = []
        pp = position
        curr = 0.0
        while in_unit_square(pp):
            q = pp
            if direction.point_offset:
                n = noise.evaluate(pp[0] / stsp / fs, pp[1] / stsp / fs)
                q = vec_add(pp, vec_scale(side, curr * dangle * direction.point_offset * (n - 0.5)))
            pts.append(q)
            pp = vec_add(pp, v)
            curr += step
        polylines.append(pts)

    lines = _chains(polylines, weight)
    logger.info("Radial fill: %d rays at spacing %g", len(lines), sp)
    return lines


def fill_circular(
    surface: Surface,
    direction: DirectionSettings,
    spacing: SpacingSettings,
    position: Vec,
    directionv: Vec,
    weight: float = -1.0,
) -> List[LineChain]:
    """Concentric rings around ``position``.

    Rings are split where they leave the square. A full ring that stays
    inside is one chain whose last point coincides with its first.
    """

    sp, weight, stsp = _prepare(surface, spacing, weight)
    rng = np.random.default_rng(direction.seed)
    noise = CoherentNoise(direction.seed)
    fs = _feature_size(direction)
    largestr = _largest_radius(position)

    polylines: List[List[Vec]] = []
    r = -stsp / 2
    while r < largestr:
        r += stsp
        numpoints = int(10 + 2 * r * math.pi / stsp)

        start, end, _ = direction.start_end(rng, keep_increasing=False)
        if (start, end) in ((0.0, 1.0), (1.0, 0.0)):
            start, end = 0.0, 1.0
        if end < start:
            end += 1
        full = math.isclose(end, start + 1)
        start *= 2 * math.pi
        end *= 2 * math.pi

        rr = r
        if direction.line_offset:
            rr += stsp * direction.line_offset * (rng.random() - 0.5)

        segments: List[List[Vec]] = []
        current: Optional[List[Vec]] = None
        first_at_start = False
        for c in range(numpoints + 1):
            angle = start + (end - start) * c / numpoints
            pp: Vec = (rr * math.cos(angle), rr * math.sin(angle))
            if direction.point_offset:
                n = noise.evaluate(pp[0] / stsp / fs, pp[1] / stsp / fs)
                pp = vec_add(pp, vec_scale(normalize(pp), stsp * direction.point_offset * (n - 0.5)))
            pp = vec_add(pp, position)
            if in_unit_square(pp):
                if current is None:
                    current = []
                    segments.append(current)
                    if c == 0:
                        first_at_start = True
                current.append(pp)
            else:
                current = None

        if full and first_at_start and current is not None and len(segments) > 1:
            # join the arc running through the start angle
            last = segments.pop()
            segments[0] = last + segments[0][1:]
        polylines.extend(segments)

    lines = _chains(polylines, weight)
    logger.info("Circular fill: %d arcs at spacing %g", len(lines), sp)
    return lines


def fill_spiral(
    surface: Surface,
    direction: DirectionSettings,
    spacing: SpacingSettings,
    position: Vec,
    directionv: Vec,
    weight: float = -1.0,
) -> List[LineChain]:
    """Archimedean spiral arms around ``position``."""

    sp, weight, stsp = _prepare(surface, spacing, weight)
    stsp /= 2 * math.pi
    noise = CoherentNoise(direction.seed)
    fs = _feature_size(direction) * 1.5
    max_dtheta = get_engine_config().spiral_max_dtheta

    arms = direction.spiral_arms()
    spin = direction.spiral_spin()
    dist = stsp * _resolution(direction) * 5
    dirn = normalize(directionv, (1.0, 0.0))
    angle0 = math.atan2(dirn[1], dirn[0])
    armangle = 2 * math.pi / arms
    largestr = _largest_radius(position)
    noise_unit = stsp * 2 * math.pi * fs

    polylines: List[List[Vec]] = []
    for c in range(arms):
        theta = 0.0
        lastr = 0.0
        current: List[Vec] = []
        while True:
            r = stsp * arms * theta
            if r >= largestr:
                break
            ang = theta + angle0 + c * armangle
            rr = r
            if direction.point_offset:
                bx = position[0] + r * math.cos(ang)
                by = position[1] + r * math.sin(ang)
                n = noise.evaluate((bx - 0.5) / noise_unit, (by - 0.5) / noise_unit)
                rr += min(r / stsp, 1.0) * stsp * 2 * direction.point_offset * (n - 0.5)
            pp = (position[0] + spin * rr * math.cos(ang), position[1] + rr * math.sin(ang))

            if in_unit_square(pp):
                current.append(pp)
            elif current:
                polylines.append(current)
                current = []

            if r == 0 or lastr == 0:
                dtheta = math.pi / 10
            else:
                inside = dist * dist - (r - lastr) ** 2
                dtheta = math.sqrt(inside) / lastr if inside > 0 else math.pi / 10
            dtheta = min(dtheta, max_dtheta)
            lastr = r
            theta += dtheta
        if current:
            polylines.append(current)

    lines = _chains(polylines, weight)
    logger.info("Spiral fill: %d segments, %d arms at spacing %g", len(lines), arms, sp)
    return lines


_GENERATORS = {
    FieldKind.LINEAR: fill_regular_lines,
    FieldKind.RADIAL: fill_radial,
    FieldKind.CIRCULAR: fill_circular,
    FieldKind.SPIRAL: fill_spiral,
}


def generate_lines(
    surface: Surface,
    direction: DirectionSettings,
    spacing: SpacingSettings,
    position: Vec,
    directionv: Vec,
    weight: float = -1.0,
) -> List[LineChain]:
    """Dispatch on ``direction.kind``; map and unknown kinds fill linearly."""

    generator = _GENERATORS.get(direction.kind, fill_regular_lines)
    return generator(surface, direction, spacing, position, directionv, weight)


apply_debug_logging(globals(), logger=logger, skip=("apply_profile",))
