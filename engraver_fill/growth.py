"""Field-agnostic line growth with merge stops and fill-in seeding.

Growth is split into :func:`grow_lines_init`, repeated calls to
:func:`grow_lines_iterate` and :func:`grow_lines_finish` so a host loop can
time-slice it. Points live in parametric space. Spacing is given in object
units and converted at each point by dividing by the surface scaling there,
so lines stay evenly spaced on a distorted surface.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .chain import LineChain, LinePoint
from .config import get_engine_config
from .fields import DirectionField
from .geometry import EPSILON, Vec, distance, dot, normalize, vec_add, vec_scale
from .settings import FieldKind, ScalarMap

logger = logging.getLogger(__name__)

FORWARD = 1
BACKWARD = 2
BOTH = FORWARD | BACKWARD

Bounds = Tuple[float, float, float, float]  # (minx, maxx, miny, maxy)


@dataclass
class StarterPoint:
    """A growing tip: the end of ``line`` that advances in ``direction``."""

    line: int
    index: int
    direction: int
    ordinal: int = 0


@dataclass
class GrowResult:
    lines: List[LineChain]
    iterations: int
    incomplete: bool


@dataclass
class GrowContext:
    """Resumable growth state."""

    direction_field: DirectionField
    spacing: float
    weight: float
    resolution: float = 1.0
    bounds: Bounds = (0.0, 1.0, 0.0, 1.0)
    spacing_map: Optional[ScalarMap] = None
    weight_map: Optional[ScalarMap] = None
    scaling: Optional[ScalarMap] = None
    min_scaling: float = 1e-9
    iteration_limit: int = 10000
    least: float = 0.95
    most: float = 1.5

    lines: List[LineChain] = field(default_factory=list)
    tips: List[StarterPoint] = field(default_factory=list)
    iterations: int = 0
    cursor: int = 0
    done: bool = False
    incomplete: bool = False

    coords: List[Vec] = field(default_factory=list)
    owners: List[int] = field(default_factory=list)
    ordinals: List[int] = field(default_factory=list)
    grid: Optional[np.ndarray] = None

    def spacing_at(self, s: float, t: float) -> float:
        """Parametric spacing at ``(s, t)``."""

        value = self.spacing
        if self.spacing_map is not None:
            mapped = float(self.spacing_map(s, t))
            if mapped > 0:
                value = mapped
        if self.scaling is not None:
            value /= max(float(self.scaling(s, t)), self.min_scaling)
        return value

    @property
    def varies(self) -> bool:
        return self.spacing_map is not None or self.scaling is not None

    def finest_spacing(self, samples: int = 5) -> float:
        """Smallest parametric spacing over a coarse sample of the bounds."""

        if not self.varies:
            return self.spacing
        minx, maxx, miny, maxy = self.bounds
        return min(
            self.spacing_at(x, y)
            for x in np.linspace(minx, maxx, samples)
            for y in np.linspace(miny, maxy, samples)
        )

    def weight_at(self, s: float, t: float) -> float:
        if self.weight_map is not None:
            return max(0.0, float(self.weight_map(s, t)))
        return self.weight

    def in_bounds(self, p: Vec) -> bool:
        minx, maxx, miny, maxy = self.bounds
        return minx <= p[0] <= maxx and miny <= p[1] <= maxy

    @property
    def adjacency(self) -> int:
        """Own-line neighbours within this many steps never stop a tip."""

        return int(math.ceil(self.least / self.resolution)) + 2

    def register(self, line: int, point: LinePoint, ordinal: int) -> None:
        self.coords.append(point.st)
        self.owners.append(line)
        self.ordinals.append(ordinal)

    def tree(self, min_points: int = 1) -> Optional[cKDTree]:
        """KD-tree over the points of lines holding at least ``min_points``."""

        if min_points > 1:
            coords = [p for p, owner in zip(self.coords, self.owners) if len(self.lines[owner]) >= min_points]
        else:
            coords = self.coords
        if not coords:
            return None
        return cKDTree(np.asarray(coords, dtype=float))


def _add_starter(context: GrowContext, p: Vec, dodir: int) -> None:
    line = LineChain()
    idx = line.append(LinePoint(p[0], p[1], context.weight_at(p[0], p[1])))
    number = len(context.lines)
    context.lines.append(line)
    context.register(number, line.point(idx), 0)
    if dodir & FORWARD:
        context.tips.append(StarterPoint(number, idx, FORWARD))
    if dodir & BACKWARD:
        context.tips.append(StarterPoint(number, idx, BACKWARD))


def _edge_starters(context: GrowContext) -> List[Vec]:
    """Starters along the rectangle edges wherever the field points inward."""

    minx, maxx, miny, maxy = context.bounds
    # (origin, edge direction, edge length, inward normal)
    edges = [
        ((minx, miny), (1.0, 0.0), maxx - minx, (0.0, 1.0)),
        ((maxx, miny), (0.0, 1.0), maxy - miny, (-1.0, 0.0)),
        ((maxx, maxy), (-1.0, 0.0), maxx - minx, (0.0, -1.0)),
        ((minx, maxy), (0.0, -1.0), maxy - miny, (1.0, 0.0)),
    ]
    starters: List[Vec] = []
    for origin, along, length, inward in edges:
        first = True
        u = 0.0
        while u <= length:
            p = vec_add(origin, vec_scale(along, u))
            curspace = context.spacing_at(*p)
            if context.varies:
                # neighbouring starters sit at the wider of their two spacings
                curspace = max(curspace, context.spacing_at(*vec_add(p, vec_scale(along, curspace))))
            dn = dot(normalize(context.direction_field.direction(*p)), inward)
            du = curspace / abs(dn) if abs(dn) > 0.1 else curspace
            if first:
                u += du / 2
                first = False
                continue
            if dn > EPSILON:
                starters.append(p)
            u += du
    return starters


def _segment_starters(context: GrowContext, centre: Vec) -> List[Vec]:
    minx, maxx, miny, maxy = context.bounds
    corners = [(minx, miny), (maxx, miny), (maxx, maxy), (minx, maxy)]
    far = max(corners, key=lambda c: distance(centre, c))
    length = distance(centre, far)
    if length <= EPSILON:
        return []
    along = normalize((far[0] - centre[0], far[1] - centre[1]))
    starters: List[Vec] = []
    u = context.spacing_at(*centre) / 2
    while u < length:
        p = vec_add(centre, vec_scale(along, u))
        if context.in_bounds(p):
            starters.append(p)
        u += context.spacing_at(*p)
    return starters


def _ring_starters(context: GrowContext, centre: Vec) -> List[Vec]:
    minx, maxx, miny, maxy = context.bounds
    radius = min(centre[0] - minx, maxx - centre[0], centre[1] - miny, maxy - centre[1])
    curspace = context.spacing_at(*centre)
    radius = max(radius, curspace)
    count = max(3, int(2 * math.pi * radius / curspace))
    starters = []
    for c in range(count):
        angle = 2 * math.pi * c / count
        p = (centre[0] + radius * math.cos(angle), centre[1] + radius * math.sin(angle))
        if context.in_bounds(p):
            starters.append(p)
    return starters


def _field_centre(direction_field: DirectionField) -> Vec:
    return getattr(direction_field, "position", (0.5, 0.5))


def grow_lines_init(
    direction_field: DirectionField,
    spacing: float,
    weight: float,
    *,
    resolution: float = 1.0,
    bounds: Bounds = (0.0, 1.0, 0.0, 1.0),
    seeds: Optional[Sequence[Vec]] = None,
    spacing_map: Optional[ScalarMap] = None,
    weight_map: Optional[ScalarMap] = None,
    scaling: Optional[ScalarMap] = None,
    iteration_limit: Optional[int] = None,
) -> GrowContext:
    """Create a growth context and place the initial starters.

    Caller ``seeds`` grow both ways. Without seeds the starters depend on the
    field kind. With ``scaling`` (the surface scaling at a parametric point)
    ``spacing`` and ``spacing_map`` are object distances.
    """

    if spacing <= 0:
        raise ValueError(f"growth spacing must be positive, got {spacing}")
    config = get_engine_config()
    context = GrowContext(
        direction_field=direction_field,
        spacing=spacing,
        weight=weight,
        resolution=resolution if resolution > 0 else 1.0,
        bounds=bounds,
        spacing_map=spacing_map,
        weight_map=weight_map,
        scaling=scaling,
        min_scaling=config.min_scaling,
        iteration_limit=iteration_limit if iteration_limit is not None else config.iteration_limit,
        least=config.least_spacing_factor,
        most=config.most_spacing_factor,
    )

    kind = getattr(direction_field, "kind", FieldKind.MAP)
    if seeds:
        for p in seeds:
            _add_starter(context, (float(p[0]), float(p[1])), BOTH)
    elif kind is FieldKind.RADIAL:
        for p in _ring_starters(context, _field_centre(direction_field)):
            _add_starter(context, p, BOTH)
    elif kind in (FieldKind.CIRCULAR, FieldKind.SPIRAL):
        for p in _segment_starters(context, _field_centre(direction_field)):
            _add_starter(context, p, BOTH)
    else:
        for p in _edge_starters(context):
            _add_starter(context, p, FORWARD)

    logger.debug("Growth initialised with %d starters", len(context.lines))
    return context


def _step_direction(direction_field: DirectionField, p: Vec, step: float, sign: float) -> Optional[Vec]:
    """Midpoint direction for one step, or None when the field vanishes."""

    d1 = vec_scale(normalize(direction_field.direction(*p)), sign)
    if d1 == (0.0, 0.0):
        return None
    mid = vec_add(p, vec_scale(d1, step / 2))
    d2 = vec_scale(normalize(direction_field.direction(*mid)), sign)
    if d2 == (0.0, 0.0) or dot(d1, d2) < 0:
        return d1
    return d2


def _too_close(context: GrowContext, tree: Optional[cKDTree], q: Vec, tip: StarterPoint, radius: float) -> bool:
    if tree is None:
        return False
    skip = context.adjacency
    for i in tree.query_ball_point(q, radius):
        if context.owners[i] == tip.line and abs(context.ordinals[i] - tip.ordinal) <= skip:
            continue
        return True
    return False


def _advance_tips(context: GrowContext, tree: Optional[cKDTree]) -> None:
    survivors: List[StarterPoint] = []
    for tip in context.tips:
        line = context.lines[tip.line]
        point = line.point(tip.index)
        curspace = context.spacing_at(point.s, point.t)
        step = curspace * context.resolution
        sign = 1.0 if tip.direction == FORWARD else -1.0

        d = _step_direction(context.direction_field, point.st, step, sign)
        if d is None:
            continue
        q = vec_add(point.st, vec_scale(d, step))
        if not context.in_bounds(q):
            continue
        if _too_close(context, tree, q, tip, context.least * curspace):
            continue

        new = LinePoint(q[0], q[1], context.weight_at(q[0], q[1]))
        if tip.direction == FORWARD:
            idx = line.insert_after(tip.index, new)
            ordinal = tip.ordinal + 1
        else:
            idx = line.insert_before(tip.index, new)
            ordinal = tip.ordinal - 1
        context.register(tip.line, new, ordinal)
        survivors.append(replace(tip, index=idx, ordinal=ordinal))
    context.tips = survivors


def _scan_grid(context: GrowContext) -> np.ndarray:
    if context.grid is None:
        minx, maxx, miny, maxy = context.bounds
        step = context.finest_spacing() / 2
        xs = np.arange(minx, maxx + step / 2, step)
        ys = np.arange(miny, maxy + step / 2, step)
        gx, gy = np.meshgrid(np.clip(xs, minx, maxx), np.clip(ys, miny, maxy))
        context.grid = np.column_stack([gx.ravel(), gy.ravel()])
    return context.grid


def _seed_fill_starter(context: GrowContext, tree: Optional[cKDTree]) -> bool:
    """Start one line at the next grid point far from every line."""

    grid = _scan_grid(context)
    if context.cursor >= len(grid):
        return False
    remaining = grid[context.cursor :]
    if tree is None:
        found = 0
    else:
        dists, _ = tree.query(remaining)
        if not context.varies:
            limits = np.full(len(remaining), context.most * context.spacing)
        else:
            limits = np.array([context.most * context.spacing_at(x, y) for x, y in remaining])
        far = np.nonzero(dists > limits)[0]
        if len(far) == 0:
            context.cursor = len(grid)
            return False
        found = int(far[0])

    p = remaining[found]
    context.cursor += found + 1
    _add_starter(context, (float(p[0]), float(p[1])), BOTH)
    logger.debug("Fill starter at (%.4g, %.4g)", p[0], p[1])
    return True


def grow_lines_iterate(context: GrowContext) -> bool:
    """Run one growth iteration; return True while more work remains."""

    if context.done:
        return False
    if context.iterations >= context.iteration_limit:
        context.tips = []
        context.incomplete = True
        context.done = True
        logger.warning(
            "Growth hit the iteration limit (%d) with %d lines; result is incomplete",
            context.iteration_limit,
            len(context.lines),
        )
        return False

    context.iterations += 1
    if context.tips:
        _advance_tips(context, context.tree())
        return True
    # single-point lines are dropped at the end, so they do not count as coverage
    if _seed_fill_starter(context, context.tree(min_points=2)):
        return True
    context.done = True
    return False


def grow_lines_finish(context: GrowContext) -> GrowResult:
    """Collect the grown lines; unfinished growth is reported as incomplete."""

    if not context.done:
        context.incomplete = True
        context.tips = []
        context.done = True
    lines = [line for line in context.lines if len(line) >= 2]
    logger.info(
        "Growth finished: %d lines after %d iterations%s",
        len(lines),
        context.iterations,
        " (incomplete)" if context.incomplete else "",
    )
    return GrowResult(lines, context.iterations, context.incomplete)


def grow_lines(
    direction_field: DirectionField,
    spacing: float,
    weight: float,
    **kwargs,
) -> GrowResult:
    """Grow a full line collection in one call."""

    context = grow_lines_init(direction_field, spacing, weight, **kwargs)
    while grow_lines_iterate(context):
        pass
    return grow_lines_finish(context)
