"""Settings objects for point groups and the handle used to share them."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Generic, List, Optional, Tuple, TypeVar

import numpy as np

from .geometry import Vec

if TYPE_CHECKING:  # pragma: no cover - imported for type checking only
    from .trace import TraceCache, TraceSource

ScalarMap = Callable[[float, float], float]

T = TypeVar("T")

_id_counter = itertools.count(1)


def make_id(prefix: str) -> str:
    return f"{prefix}{next(_id_counter)}"


class FieldKind(Enum):
    LINEAR = "linear"
    RADIAL = "radial"
    CIRCULAR = "circular"
    SPIRAL = "spiral"
    MAP = "map"
    UNKNOWN = "unknown"

    @classmethod
    def from_name(cls, name: str) -> "FieldKind":
        try:
            return cls(name.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class TraceType(Enum):
    SET = "set"
    MULTIPLY = "multiply"
    ADD = "add"
    SUBTRACT = "subtract"


@dataclass
class ResponseCurve:
    """Piecewise linear map from ``[0, 1]`` to ``[ymin, ymax]``."""

    points: List[Vec] = field(default_factory=lambda: [(0.0, 0.0), (1.0, 1.0)])
    ymin: float = 0.0
    ymax: float = 1.0

    def __call__(self, x: float) -> float:
        if not self.points:
            return self.ymin
        pts = sorted(self.points)
        xs = np.array([p[0] for p in pts], dtype=float)
        ys = np.array([p[1] for p in pts], dtype=float)
        x = min(max(float(x), 0.0), 1.0)
        y = float(np.interp(x, xs, ys))
        return self.ymin + y * (self.ymax - self.ymin)

    @classmethod
    def flat(cls, value: float) -> "ResponseCurve":
        return cls(points=[(0.0, value), (1.0, value)])


@dataclass
class DashSettings:
    """Thresholds and shape of the dash pattern (the line quality)."""

    id: str = field(default_factory=lambda: make_id("Dashes"))
    dash_length: float = 2.0  # multiple of the group spacing
    dash_density: float = 0.0
    dash_randomness: float = 0.0
    random_seed: int = 0
    zero_threshold: float = 0.0
    broken_threshold: float = 0.0
    dash_taper: float = 0.0
    indashcaps: int = 0
    outdashcaps: int = 0
    startcaps: int = 0
    endcaps: int = 0

    def is_disabled(self) -> bool:
        return self.zero_threshold == 0 and self.broken_threshold <= self.zero_threshold

    def dash_weight(self, weight: float) -> float:
        """Stroke width of a dash drawn for ``weight``; unchanged outside the band."""

        zero = self.zero_threshold
        broken = max(self.broken_threshold, zero)
        if weight >= broken or weight <= zero:
            return weight
        a = (weight - zero) / (broken - zero)
        return broken * a + (self.dash_taper * (broken - zero) + zero) * (1 - a)


@dataclass
class Parameter:
    """Extra named value consumed by one field kind (e.g. spiral arms)."""

    name: str
    label: str = ""
    kind: FieldKind = FieldKind.LINEAR
    dtype: str = "real"  # boolean | int | real
    value: float = 0.0
    min: float = 0.0
    min_bounded: bool = False
    max: float = 0.0
    max_bounded: bool = False
    mingap: float = 0.0

    def clamp(self, value: float) -> float:
        if self.min_bounded and value < self.min:
            value = self.min
        if self.max_bounded and value > self.max:
            value = self.max
        if self.dtype == "int":
            value = float(int(value + 0.5))
        elif self.dtype == "boolean":
            value = 1.0 if value else 0.0
        return value


def spiral_parameters() -> List[Parameter]:
    return [
        Parameter("arms", "Arms", FieldKind.SPIRAL, "int", 2, 1, True, 10, False, 1),
        Parameter("spin", "Spin direction", FieldKind.SPIRAL, "boolean", 0, 0, True, 1, True, 1),
    ]


@dataclass
class DirectionSettings:
    id: str = field(default_factory=lambda: make_id("Dir"))
    kind: FieldKind = FieldKind.LINEAR
    resolution: float = 1.0  # samples per spacing unit
    default_weight: float = 0.1
    parameters: List[Parameter] = field(default_factory=list)

    seed: int = 0
    line_offset: float = 0.0
    point_offset: float = 0.0
    noise_scale: float = 1.0

    start_type: str = "normal"  # normal | random
    start_rand_width: float = 0.0
    profile_start: float = 0.0
    end_type: str = "normal"
    end_rand_width: float = 0.0
    profile_end: float = 1.0
    max_height: float = 1.0
    scale_profile: bool = False
    profile: Optional[ResponseCurve] = None

    grow: bool = False
    fill: bool = True
    merge: bool = True
    spread: float = 1.5
    spread_depth: float = 3.0
    merge_angle: float = 0.0

    def __post_init__(self) -> None:
        if self.kind is FieldKind.SPIRAL:
            self.set_kind(FieldKind.SPIRAL)

    def set_kind(self, kind: FieldKind) -> None:
        self.kind = kind
        if kind is FieldKind.SPIRAL:
            for param in spiral_parameters():
                if self.find_parameter(param.name) is None:
                    self.parameters.append(param)

    def find_parameter(self, name: str) -> Optional[Parameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def parameter_value(self, name: str, default: float) -> float:
        param = self.find_parameter(name)
        return default if param is None else param.value

    def spiral_arms(self) -> int:
        return max(1, int(self.parameter_value("arms", 2) + 0.5))

    def spiral_spin(self) -> int:
        return 1 if self.parameter_value("spin", 0) == 0 else -1

    def has_profile(self) -> bool:
        return (
            self.profile is not None
            or self.profile_start != 0
            or self.profile_end != 1
            or self.start_rand_width != 0
            or self.end_rand_width != 0
        )

    def start_end(self, rng: np.random.Generator, keep_increasing: bool) -> Tuple[float, float, int]:
        """Draw the profile start/end fractions.

        Returns ``(start, end, order)`` with ``order`` 1 when end > start, -1
        when reversed and 0 when they coincide.
        """

        if (
            self.profile_start == 0
            and self.profile_end == 1
            and self.start_rand_width == 0
            and self.end_rand_width == 0
        ):
            return 0.0, 1.0, 1

        start = self.profile_start
        if self.start_rand_width:
            start += self.start_rand_width * (2 * rng.random() - 1)
        start = min(max(start, 0.0), 1.0)

        end = self.profile_end
        if self.end_rand_width:
            end += self.end_rand_width * (2 * rng.random() - 1)
        end = min(max(end, 0.0), 1.0)

        if keep_increasing and start > end:
            start, end = end, start

        if math.isclose(start, end):
            return start, end, 0
        return start, end, 1 if end > start else -1


@dataclass
class SpacingSettings:
    id: str = field(default_factory=lambda: make_id("Spacing"))
    kind: str = "default"  # default | map
    spacing: float = -1.0
    map: Optional[ScalarMap] = None

    def value_at(self, x: float, y: float) -> float:
        if self.map is not None:
            return float(self.map(x, y))
        return self.spacing


@dataclass
class TraceSettings:
    id: str = field(default_factory=lambda: make_id("Trace"))
    trace_type: TraceType = TraceType.SET
    curve: ResponseCurve = field(default_factory=ResponseCurve)
    view_opacity: float = 1.0
    show_trace: bool = True
    continuous: bool = False
    lock_ref_to_obj: bool = True
    source: Optional["TraceSource"] = None
    cache: Optional["TraceCache"] = field(default=None, repr=False, compare=False)


class SharedSettings(Generic[T]):
    """Counted handle to a settings object used by one or more groups.

    At most one group owns the value; any number of further groups may be
    linked to it. Changes made through any user are seen by all of them.
    """

    def __init__(self, value: T, owner: Optional[int] = None) -> None:
        self.value = value
        self.owner = owner
        self._linked: List[int] = []

    def __repr__(self) -> str:
        return f"SharedSettings({self.value!r}, owner={self.owner}, linked={self._linked})"

    @property
    def users(self) -> List[int]:
        owner = [] if self.owner is None else [self.owner]
        return owner + list(self._linked)

    @property
    def count(self) -> int:
        return len(self.users)

    def is_shared(self) -> bool:
        return self.count > 1

    def attach(self, group_id: int) -> "SharedSettings[T]":
        if self.owner is None:
            self.owner = group_id
        elif group_id != self.owner and group_id not in self._linked:
            self._linked.append(group_id)
        return self

    def release(self, group_id: int) -> None:
        if group_id == self.owner:
            self.owner = self._linked.pop(0) if self._linked else None
        elif group_id in self._linked:
            self._linked.remove(group_id)

    def rename_user(self, old_id: int, new_id: int) -> None:
        if self.owner == old_id:
            self.owner = new_id
        self._linked = [new_id if gid == old_id else gid for gid in self._linked]
