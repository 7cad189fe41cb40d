"""Direction fields: the vector a line follows at each parametric point."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Union

import numpy as np
from PIL import Image
from scipy.spatial import cKDTree

from .chain import LineChain
from .geometry import Vec, normalize, transpose, vec_sub
from .settings import DirectionSettings, FieldKind

logger = logging.getLogger(__name__)

VectorMap = Callable[[float, float], Vec]


class DirectionField(Protocol):
    kind: FieldKind

    def direction(self, s: float, t: float) -> Vec:
        """Unnormalised direction at ``(s, t)``; (0, 0) means no direction."""


@dataclass
class LinearField:
    vector: Vec = (1.0, 0.0)
    kind: FieldKind = FieldKind.LINEAR

    def direction(self, s: float, t: float) -> Vec:
        return self.vector


@dataclass
class RadialField:
    position: Vec = (0.5, 0.5)
    kind: FieldKind = FieldKind.RADIAL

    def direction(self, s: float, t: float) -> Vec:
        return vec_sub((s, t), self.position)


@dataclass
class CircularField:
    position: Vec = (0.5, 0.5)
    kind: FieldKind = FieldKind.CIRCULAR

    def direction(self, s: float, t: float) -> Vec:
        return transpose(vec_sub((s, t), self.position))


@dataclass
class SpiralField:
    """Tangent of an Archimedean spiral; only the distance to the centre matters."""

    position: Vec = (0.5, 0.5)
    spacing: float = 0.1
    arms: int = 2
    spin: int = 1
    kind: FieldKind = FieldKind.SPIRAL

    def direction(self, s: float, t: float) -> Vec:
        d = vec_sub((s, t), self.position)
        r = math.hypot(d[0], d[1])
        if self.spacing <= 0:
            return 0.0, 0.0
        theta = r / max(self.arms, 1) / self.spacing
        v = (
            self.spin * (math.cos(theta) + theta * math.sin(theta)),
            math.sin(theta) - theta * math.cos(theta),
        )
        return normalize(v)


@dataclass
class ExternalMapField:
    func: VectorMap
    kind: FieldKind = FieldKind.MAP

    def direction(self, s: float, t: float) -> Vec:
        x, y = self.func(s, t)
        return float(x), float(y)


class NormalMapField:
    """Directions read from the green/blue channels of a normal-map image.

    ``matrix`` maps homogeneous ``(s, t, 1)`` to pixel ``(x, y, 1)`` with y
    measured upward from the bottom row. By default the unit square covers
    the whole image.
    """

    kind = FieldKind.MAP

    def __init__(self, image: Union[str, Path, Image.Image], matrix: Optional[np.ndarray] = None) -> None:
        if isinstance(image, (str, Path)):
            with Image.open(image) as img:
                rgb = img.convert("RGB")
        else:
            rgb = image.convert("RGB")
        self.pixels = np.asarray(rgb, dtype=float)
        height, width = self.pixels.shape[:2]
        if matrix is None:
            matrix = np.array([[width, 0.0, 0.0], [0.0, height, 0.0], [0.0, 0.0, 1.0]])
        self.matrix = np.asarray(matrix, dtype=float)
        self._linear_inv = np.linalg.inv(self.matrix[:2, :2])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def direction(self, s: float, t: float) -> Vec:
        x, y, _ = self.matrix @ np.array([s, t, 1.0])
        col = int(math.floor(x))
        row = self.height - 1 - int(math.floor(y))
        if col < 0 or col >= self.width or row < 0 or row >= self.height:
            return 0.0, 0.0
        _, g, b = self.pixels[row, col]
        v = self._linear_inv @ np.array([g - 128.0, b - 128.0])
        return float(v[0]), float(v[1])


class LinesField:
    """Tangents of existing lines; a group can steer growth with its own lines."""

    kind = FieldKind.MAP

    def __init__(self, lines: Sequence[LineChain]) -> None:
        coords: List[Vec] = []
        tangents: List[Vec] = []
        for line in lines:
            pts = [point.st for point in line]
            if len(pts) < 2:
                continue
            for i, p in enumerate(pts):
                before = pts[max(i - 1, 0)]
                after = pts[min(i + 1, len(pts) - 1)]
                coords.append(p)
                tangents.append(normalize(vec_sub(after, before)))
        self.tangents = tangents
        self._tree = cKDTree(np.asarray(coords, dtype=float)) if coords else None

    def direction(self, s: float, t: float) -> Vec:
        if self._tree is None:
            return 0.0, 0.0
        _, i = self._tree.query((s, t))
        return self.tangents[int(i)]


def field_from_settings(
    direction: DirectionSettings,
    position: Vec,
    directionv: Vec,
    spacing: float,
    direction_map: Optional[DirectionField] = None,
) -> DirectionField:
    """Build the field variant for ``direction.kind``.

    Unknown kinds and map kinds without a map fall back to a linear field.
    """

    kind = direction.kind
    if kind is FieldKind.RADIAL:
        return RadialField(position)
    if kind is FieldKind.CIRCULAR:
        return CircularField(position)
    if kind is FieldKind.SPIRAL:
        return SpiralField(
            position,
            spacing / (2 * math.pi),
            direction.spiral_arms(),
            direction.spiral_spin(),
        )
    if kind is FieldKind.MAP:
        if direction_map is not None:
            return direction_map
        logger.warning("Direction %s is a map field without a map, using linear", direction.id)
    elif kind is not FieldKind.LINEAR:
        logger.warning("Unknown direction type for %s, using linear", direction.id)
    return LinearField(normalize(directionv, (1.0, 0.0)))
