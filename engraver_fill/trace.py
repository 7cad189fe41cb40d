"""Trace sources, their raster cache, and the per-point weight sampler."""

from __future__ import annotations

import logging
import math
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image

from .chain import LineChain, PointState
from .config import get_engine_config
from .geometry import Vec
from .settings import TraceSettings, TraceType

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]  # (minx, maxx, miny, maxy)
Color = Tuple[int, int, int, int]

_UNIT_BOUNDS: Bounds = (0.0, 1.0, 0.0, 1.0)


@dataclass
class RasterImage:
    """RGBA raster; row 0 is the top edge of the source bounds."""

    width: int
    height: int
    pixels: np.ndarray
    timestamp: float


class TraceSource:
    """Something that can be rendered to a raster for tracing.

    ``bounds`` are in the source's local coordinates and ``matrix`` maps
    local coordinates to object space.
    """

    kind = "none"

    def __init__(self, bounds: Bounds = _UNIT_BOUNDS, matrix: Optional[np.ndarray] = None) -> None:
        self.bounds = tuple(float(v) for v in bounds)
        self.matrix = np.eye(3) if matrix is None else np.asarray(matrix, dtype=float)
        self.modified = time.time()

    def touch(self) -> None:
        self.modified = time.time()

    def needs_update(self, timestamp: float) -> bool:
        return self.modified > timestamp

    def render(self, size: int) -> Optional[RasterImage]:
        raise NotImplementedError

    def raster_shape(self, size: int) -> Tuple[int, int]:
        minx, maxx, miny, maxy = self.bounds
        bw = maxx - minx
        bh = maxy - miny
        if bw <= 0 or bh <= 0:
            return 0, 0
        if bw >= bh:
            return size, max(1, int(round(size * bh / bw)))
        return max(1, int(round(size * bw / bh))), size

    def pixel_centres(self, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
        """Local coordinates of every pixel centre, shaped ``(height, width)``."""

        minx, maxx, miny, maxy = self.bounds
        xs = minx + (np.arange(width) + 0.5) / width * (maxx - minx)
        ys = miny + (height - 1 - np.arange(height) + 0.5) / height * (maxy - miny)
        return np.meshgrid(xs, ys)


def _blend(fraction: np.ndarray, start: Color, end: Color) -> np.ndarray:
    f = np.clip(fraction, 0.0, 1.0)[..., None]
    a = np.asarray(start, dtype=float)
    b = np.asarray(end, dtype=float)
    return np.rint(a + (b - a) * f).astype(np.uint8)


def _fit(image: Image.Image, size: int) -> Image.Image:
    if max(image.size) > size:
        image = image.copy()
        image.thumbnail((size, size), Image.Resampling.LANCZOS)
    return image


class ImageSource(TraceSource):
    """An image file; it is re-read when the file changes on disk."""

    kind = "image"

    def __init__(
        self,
        path: Union[str, Path],
        bounds: Bounds = _UNIT_BOUNDS,
        matrix: Optional[np.ndarray] = None,
    ) -> None:
        super().__init__(bounds, matrix)
        self.path = Path(path)

    def needs_update(self, timestamp: float) -> bool:
        try:
            return os.path.getmtime(self.path) > timestamp
        except OSError:
            return False

    def render(self, size: int) -> Optional[RasterImage]:
        try:
            with Image.open(self.path) as img:
                rgba = _fit(img.convert("RGBA"), size)
            stamp = os.path.getmtime(self.path)
        except OSError as exc:
            logger.warning("Cannot read trace image %s: %s", self.path, exc)
            return None
        pixels = np.asarray(rgba, dtype=np.uint8)
        return RasterImage(pixels.shape[1], pixels.shape[0], pixels, stamp)


class LinearGradientSource(TraceSource):
    kind = "linear_gradient"

    def __init__(
        self,
        start: Vec = (0.0, 0.0),
        end: Vec = (1.0, 0.0),
        start_color: Color = (0, 0, 0, 255),
        end_color: Color = (255, 255, 255, 255),
        bounds: Bounds = _UNIT_BOUNDS,
        matrix: Optional[np.ndarray] = None,
    ) -> None:
        super().__init__(bounds, matrix)
        self.start = start
        self.end = end
        self.start_color = start_color
        self.end_color = end_color

    def render(self, size: int) -> Optional[RasterImage]:
        width, height = self.raster_shape(size)
        if width == 0:
            return None
        gx, gy = self.pixel_centres(width, height)
        dx = self.end[0] - self.start[0]
        dy = self.end[1] - self.start[1]
        length2 = dx * dx + dy * dy
        if length2 <= 0:
            fraction = np.zeros_like(gx)
        else:
            fraction = ((gx - self.start[0]) * dx + (gy - self.start[1]) * dy) / length2
        return RasterImage(width, height, _blend(fraction, self.start_color, self.end_color), self.modified)


class RadialGradientSource(TraceSource):
    kind = "radial_gradient"

    def __init__(
        self,
        center: Vec = (0.5, 0.5),
        radius: float = 0.5,
        start_color: Color = (0, 0, 0, 255),
        end_color: Color = (255, 255, 255, 255),
        bounds: Bounds = _UNIT_BOUNDS,
        matrix: Optional[np.ndarray] = None,
    ) -> None:
        super().__init__(bounds, matrix)
        self.center = center
        self.radius = radius
        self.start_color = start_color
        self.end_color = end_color

    def render(self, size: int) -> Optional[RasterImage]:
        width, height = self.raster_shape(size)
        if width == 0:
            return None
        gx, gy = self.pixel_centres(width, height)
        dist = np.hypot(gx - self.center[0], gy - self.center[1])
        fraction = dist / self.radius if self.radius > 0 else np.ones_like(dist)
        return RasterImage(width, height, _blend(fraction, self.start_color, self.end_color), self.modified)


class SnapshotSource(TraceSource):
    """A fixed RGBA array, for instance a rendering of another object."""

    kind = "snapshot"

    def __init__(
        self,
        pixels: np.ndarray,
        bounds: Bounds = _UNIT_BOUNDS,
        matrix: Optional[np.ndarray] = None,
    ) -> None:
        super().__init__(bounds, matrix)
        pixels = np.asarray(pixels, dtype=np.uint8)
        if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
            raise ValueError(f"snapshot pixels must be (h, w, 3|4), got {pixels.shape}")
        if pixels.shape[2] == 3:
            alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
            pixels = np.concatenate([pixels, alpha], axis=2)
        self.pixels = pixels

    def render(self, size: int) -> Optional[RasterImage]:
        image = _fit(Image.fromarray(self.pixels), size)
        pixels = np.asarray(image, dtype=np.uint8)
        return RasterImage(pixels.shape[1], pixels.shape[0], pixels, self.modified)


class CurrentSource(TraceSource):
    """Reshape the current weights through the curve instead of sampling."""

    kind = "current"

    def render(self, size: int) -> Optional[RasterImage]:
        return None


class TraceCache:
    """Lazily rendered raster of a trace source."""

    def __init__(self, source: TraceSource, size: Optional[int] = None) -> None:
        self.source = source
        self.size = size if size is not None else get_engine_config().trace_sample_size
        self.image: Optional[RasterImage] = None
        self.stale = True

    def invalidate(self) -> None:
        self.stale = True

    def update(self) -> bool:
        """Re-render when stale; return whether a raster is available."""

        if self.image is None or self.stale or self.source.needs_update(self.image.timestamp):
            image = self.source.render(self.size)
            self.stale = False
            if image is None:
                self.image = None
                return False
            self.image = image
            logger.debug("Rendered %s trace source at %dx%d", self.source.kind, image.width, image.height)
        return True

    def value_at(self, x: float, y: float) -> float:
        """Darkness in ``[0, 1]`` at local ``(x, y)``, or -1 outside or transparent."""

        image = self.image
        if image is None:
            return -1.0
        minx, maxx, miny, maxy = self.source.bounds
        if maxx <= minx or maxy <= miny:
            return -1.0
        col = int(math.floor(image.width * (x - minx) / (maxx - minx)))
        row = int(math.floor(image.height * (y - miny) / (maxy - miny)))
        if col < 0 or col >= image.width or row < 0 or row >= image.height:
            return -1.0
        r, g, b, a = (int(v) for v in image.pixels[image.height - 1 - row, col])
        if a == 0:
            return -1.0
        luma = 0.3 * r + 0.59 * g + 0.11 * b
        return (255 - luma) / 255


def _local_matrix(source: TraceSource, transform: Optional[np.ndarray]) -> np.ndarray:
    inverse = np.linalg.inv(source.matrix)
    if transform is None:
        return inverse
    return inverse @ np.asarray(transform, dtype=float)


def trace_lines(
    lines: Iterable[LineChain],
    settings: TraceSettings,
    spacing: float,
    transform: Optional[np.ndarray] = None,
) -> bool:
    """Set point weights from the trace source; return False when nothing was traced.

    Points are sampled at their object-space position ``p``. ``transform``
    maps object space into the space the source matrix expects.
    """

    source = settings.source
    if source is None:
        logger.info("Trace %s has no source; weights left unchanged", settings.id)
        return False

    lines = list(lines)
    curve = settings.curve
    if isinstance(source, CurrentSource):
        for line in lines:
            for point in line:
                base = point.weight_orig if point.weight_orig is not None else point.weight
                ratio = base / spacing if spacing > 0 else 0.0
                point.weight = max(0.0, spacing * curve(ratio))
        return True

    cache = settings.cache
    if cache is None or cache.source is not source:
        cache = settings.cache = TraceCache(source)
    if not cache.update():
        logger.warning("Trace source for %s could not be rendered; weights left unchanged", settings.id)
        return False

    matrix = _local_matrix(source, transform)
    sampled = 0
    blanked = 0
    for line in lines:
        for point in line:
            x, y, w = matrix @ np.array([point.p[0], point.p[1], 1.0])
            if w != 0:
                x, y = x / w, y / w
            a = cache.value_at(float(x), float(y))
            if a < 0:
                point.weight = 0.0
                point.on = PointState.OFF
                blanked += 1
                continue
            new = spacing * curve(a)
            old = point.weight_orig if point.weight_orig is not None else point.weight
            point.weight = _combine(settings.trace_type, old, new, spacing)
            point.on = PointState.ON
            sampled += 1

    logger.info("Traced %d points, %d outside the source", sampled, blanked)
    return True


def _combine(trace_type: TraceType, old: float, new: float, spacing: float) -> float:
    if trace_type is TraceType.MULTIPLY:
        return old * new / spacing if spacing > 0 else 0.0
    if trace_type is TraceType.ADD:
        return old + new
    if trace_type is TraceType.SUBTRACT:
        return max(0.0, old - new)
    return new


def _colors(args: Sequence[str]) -> Tuple[Color, ...]:
    if len(args) < 8:
        return ()
    values = [int(v) for v in args[:8]]
    return tuple(values[:4]), tuple(values[4:8])  # type: ignore[return-value]


def _color_args(*colors: Color) -> Tuple[str, ...]:
    return tuple(str(int(v)) for color in colors for v in color)


def source_from_description(kind: str, args: Sequence[str]) -> Optional[TraceSource]:
    """Rebuild a file-backed or gradient source from its persisted description."""

    if kind == "image" and args:
        return ImageSource(args[0])
    if kind == "linear_gradient" and len(args) >= 4:
        x1, y1, x2, y2 = (float(v) for v in args[:4])
        return LinearGradientSource((x1, y1), (x2, y2), *_colors(args[4:]))
    if kind == "radial_gradient" and len(args) >= 3:
        cx, cy, r = (float(v) for v in args[:3])
        return RadialGradientSource((cx, cy), r, *_colors(args[3:]))
    if kind == "current":
        return CurrentSource()
    return None


def describe_source(source: Optional[TraceSource]) -> Optional[Tuple[str, Tuple[str, ...]]]:
    if isinstance(source, ImageSource):
        return "image", (str(source.path),)
    if isinstance(source, LinearGradientSource):
        return "linear_gradient", tuple(f"{v:.10g}" for v in (*source.start, *source.end)) + _color_args(
            source.start_color, source.end_color
        )
    if isinstance(source, RadialGradientSource):
        return "radial_gradient", tuple(f"{v:.10g}" for v in (*source.center, source.radius)) + _color_args(
            source.start_color, source.end_color
        )
    if isinstance(source, CurrentSource):
        return "current", ()
    return None
