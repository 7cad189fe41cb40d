"""Surfaces mapping parametric (s,t) coordinates into object space."""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from scipy.optimize import least_squares

from .config import get_engine_config
from .geometry import Vec

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]  # (minx, maxx, miny, maxy)


class Surface(Protocol):
    """What the engine needs from the host surface."""

    @property
    def bounds(self) -> Bounds:
        """Object-space bounding box."""

    def get_point(self, s: float, t: float) -> Vec:
        """Object-space position of the parametric point."""

    def get_scaling(self, s: float, t: float) -> float:
        """Object-space length of one parametric unit around ``(s, t)``."""

    def get_point_reverse(self, x: float, y: float) -> Optional[Vec]:
        """Parametric coordinates of an object-space point, or None."""


class BilinearSurface:
    """Patch spanned by four corners in (0,0), (1,0), (1,1), (0,1) order."""

    def __init__(self, corners: Sequence[Vec] = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))) -> None:
        if len(corners) != 4:
            raise ValueError(f"bilinear surface needs 4 corners, got {len(corners)}")
        self.corners: List[Vec] = [(float(x), float(y)) for x, y in corners]
        self._c = np.array(self.corners, dtype=float)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(corners={self.corners!r})"

    @property
    def bounds(self) -> Bounds:
        xs = self._c[:, 0]
        ys = self._c[:, 1]
        return float(xs.min()), float(xs.max()), float(ys.min()), float(ys.max())

    def _point(self, s: float, t: float) -> np.ndarray:
        p00, p10, p11, p01 = self._c
        return (1 - s) * (1 - t) * p00 + s * (1 - t) * p10 + s * t * p11 + (1 - s) * t * p01

    def _jacobian(self, s: float, t: float) -> np.ndarray:
        p00, p10, p11, p01 = self._c
        ds = (1 - t) * (p10 - p00) + t * (p11 - p01)
        dt = (1 - s) * (p01 - p00) + s * (p11 - p10)
        return np.column_stack([ds, dt])

    def get_point(self, s: float, t: float) -> Vec:
        p = self._point(s, t)
        return float(p[0]), float(p[1])

    def get_scaling(self, s: float, t: float) -> float:
        det = abs(float(np.linalg.det(self._jacobian(s, t))))
        scale = math.sqrt(det)
        if scale <= get_engine_config().min_scaling:
            return 1.0
        return scale

    def get_point_reverse(self, x: float, y: float) -> Optional[Vec]:
        target = np.array([x, y], dtype=float)

        def residual(st: np.ndarray) -> np.ndarray:
            return self._point(st[0], st[1]) - target

        def jac(st: np.ndarray) -> np.ndarray:
            return self._jacobian(st[0], st[1])

        result = least_squares(residual, np.array([0.5, 0.5]), jac=jac, method="lm")
        minx, maxx, miny, maxy = self.bounds
        size = max(maxx - minx, maxy - miny, 1e-12)
        if not result.success or float(np.max(np.abs(result.fun))) > 1e-9 * size:
            logger.debug("Reverse mapping failed for (%g, %g): %s", x, y, result.message)
            return None
        return float(result.x[0]), float(result.x[1])


class RectSurface(BilinearSurface):
    """Axis-aligned rectangle with a closed-form inverse."""

    def __init__(self, x: float = 0.0, y: float = 0.0, width: float = 1.0, height: float = 1.0) -> None:
        super().__init__(((x, y), (x + width, y), (x + width, y + height), (x, y + height)))
        self.x = x
        self.y = y
        self.width = width
        self.height = height

    def get_point_reverse(self, x: float, y: float) -> Optional[Vec]:
        if self.width == 0 or self.height == 0:
            return None
        return (x - self.x) / self.width, (y - self.y) / self.height
