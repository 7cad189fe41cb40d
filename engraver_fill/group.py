"""Point groups and the fill data object that owns them."""

from __future__ import annotations

import copy
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from . import dashes as dash_engine
from .chain import LineChain, LinePointCache, PointState, SyncState
from .fields import DirectionField, field_from_settings
from .generators import generate_lines
from .geometry import Vec, is_zero
from .growth import GrowContext, GrowResult, grow_lines_finish, grow_lines_init, grow_lines_iterate
from .settings import (
    DashSettings,
    DirectionSettings,
    FieldKind,
    SharedSettings,
    SpacingSettings,
    TraceSettings,
    make_id,
)
from .surface import RectSurface, Surface
from .trace import trace_lines

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float, float]

SETTING_KINDS = ("dashes", "direction", "spacing", "trace")

_ID_PREFIX = {"dashes": "Dashes", "direction": "Dir", "spacing": "Spacing", "trace": "Trace"}
_FACTORY = {
    "dashes": DashSettings,
    "direction": DirectionSettings,
    "spacing": SpacingSettings,
    "trace": TraceSettings,
}

_VISIBLE = (PointState.ON, PointState.START)


def _fresh_copy(kind: str, value: Any) -> Any:
    duplicate = copy.deepcopy(value)
    duplicate.id = make_id(_ID_PREFIX[kind])
    if kind == "trace":
        duplicate.cache = None
    return duplicate


class PointGroup:
    """One family of lines with its generation, dash and trace settings."""

    def __init__(
        self,
        id: int,
        name: str = "",
        *,
        color: Color = (0.0, 0.0, 1.0, 1.0),
        position: Vec = (0.5, 0.5),
        directionv: Vec = (1.0, 0.0),
        default_weight: float = -1.0,
    ) -> None:
        self.id = id
        self.name = name or f"Group {id}"
        self.active = True
        self.linked = False
        self.color = color
        self.position = position
        self.directionv = directionv
        self.default_weight = default_weight
        self.lines: List[LineChain] = []
        self.direction_map: Optional[DirectionField] = None

        self.needtoreline = False
        self.needtotrace = False
        self.needtodash = True
        self.grow_context: Optional[GrowContext] = None
        self.last_growth: Optional[GrowResult] = None

        self._handles: Dict[str, SharedSettings[Any]] = {}
        for kind in SETTING_KINDS:
            self.install(kind, _FACTORY[kind]())
        self.needtotrace = False

    def __repr__(self) -> str:
        return f"PointGroup(id={self.id}, name={self.name!r}, lines={len(self.lines)})"

    # ------------------------------------------------------------------
    # settings

    def handle(self, kind: str) -> SharedSettings[Any]:
        try:
            return self._handles[kind]
        except KeyError:
            raise KeyError(f"unknown settings kind {kind!r}") from None

    def install(self, kind: str, settings: Any) -> SharedSettings[Any]:
        """Use ``settings`` for ``kind``; a :class:`SharedSettings` handle is shared."""

        if kind not in SETTING_KINDS:
            raise KeyError(f"unknown settings kind {kind!r}")
        old = self._handles.get(kind)
        if old is not None:
            old.release(self.id)
        if isinstance(settings, SharedSettings):
            handle = settings.attach(self.id)
        else:
            handle = SharedSettings(settings, owner=self.id)
        self._handles[kind] = handle
        if kind == "dashes":
            self.needtodash = True
        elif kind == "trace":
            self.needtotrace = True
        return handle

    def install_dashes(self, settings: Any) -> SharedSettings[DashSettings]:
        return self.install("dashes", settings)

    def install_direction(self, settings: Any) -> SharedSettings[DirectionSettings]:
        return self.install("direction", settings)

    def install_spacing(self, settings: Any) -> SharedSettings[SpacingSettings]:
        return self.install("spacing", settings)

    def install_trace(self, settings: Any) -> SharedSettings[TraceSettings]:
        return self.install("trace", settings)

    def release_settings(self) -> None:
        for handle in self._handles.values():
            handle.release(self.id)

    @property
    def dashes(self) -> DashSettings:
        return self._handles["dashes"].value

    @property
    def direction(self) -> DirectionSettings:
        return self._handles["direction"].value

    @property
    def spacing(self) -> SpacingSettings:
        return self._handles["spacing"].value

    @property
    def trace_settings(self) -> TraceSettings:
        return self._handles["trace"].value

    # ------------------------------------------------------------------
    # lines

    def point_count(self) -> int:
        return sum(len(line) for line in self.lines)

    def parametric_spacing(self, surface: Optional[Surface]) -> float:
        spacing = self.spacing.spacing
        if surface is None:
            return spacing
        return spacing / surface.get_scaling(0.5, 0.5)

    def direction_field(self, surface: Optional[Surface] = None) -> DirectionField:
        return field_from_settings(
            self.direction,
            self.position,
            self.directionv,
            self.parametric_spacing(surface),
            self.direction_map,
        )

    def direction_at(self, s: float, t: float, surface: Optional[Surface] = None) -> Vec:
        return self.direction_field(surface).direction(s, t)

    def fill(self, surface: Surface, weight: float = -1.0) -> int:
        """Regenerate every line; return the number of lines produced."""

        if is_zero(self.directionv):
            self.directionv = (1.0, 0.0)
        if weight <= 0:
            weight = self.direction.default_weight

        self.last_growth = None
        if self.direction.grow:
            self.grow_lines(surface, weight)
        else:
            self.lines = generate_lines(
                surface, self.direction, self.spacing, self.position, self.directionv, weight
            )
        if self.default_weight < 0:
            self.default_weight = self.spacing.spacing / 10

        self.sync(surface)
        self.needtoreline = False
        self.needtotrace = self.trace_settings.source is not None
        self.needtodash = True
        logger.info("Filled group %s (%s) with %d lines", self.id, self.direction.kind.value, len(self.lines))
        return len(self.lines)

    def start_growth(
        self,
        surface: Surface,
        weight: float = -1.0,
        seeds: Optional[Sequence[Vec]] = None,
        iteration_limit: Optional[int] = None,
    ) -> GrowContext:
        if weight <= 0:
            weight = self.direction.default_weight
        if self.spacing.spacing <= 0:
            _, _, miny, maxy = surface.bounds
            self.spacing.spacing = (maxy - miny) / 20

        self.grow_context = grow_lines_init(
            self.direction_field(surface),
            self.spacing.spacing,
            weight,
            resolution=self.direction.resolution,
            seeds=seeds,
            spacing_map=self.spacing.map,
            scaling=surface.get_scaling,
            iteration_limit=iteration_limit,
        )
        return self.grow_context

    def continue_growth(self, iterations: int = 1) -> bool:
        """Advance the saved growth; return True while more work remains."""

        context = self.grow_context
        if context is None:
            return False
        for _ in range(iterations):
            if not grow_lines_iterate(context):
                return False
        return True

    def finish_growth(self) -> Optional[GrowResult]:
        context = self.grow_context
        if context is None:
            return None
        return self._finish(context)

    def _finish(self, context: GrowContext) -> GrowResult:
        result = grow_lines_finish(context)
        self.lines = result.lines
        self.last_growth = result
        self.grow_context = None
        self.needtodash = True
        return result

    def grow_lines(
        self,
        surface: Surface,
        weight: float = -1.0,
        seeds: Optional[Sequence[Vec]] = None,
        iteration_limit: Optional[int] = None,
    ) -> GrowResult:
        context = self.start_growth(surface, weight, seeds, iteration_limit)
        while grow_lines_iterate(context):
            pass
        return self._finish(context)

    # ------------------------------------------------------------------
    # derived data

    def update_dash_cache(self) -> int:
        units = dash_engine.update_dash_cache(self.lines, self.dashes, self.spacing.spacing)
        self.needtodash = False
        return units

    def strip_dashes(self) -> None:
        dash_engine.strip_dashes(self.lines)

    def apply_blockout(self) -> None:
        for line in self.lines:
            dash_engine.apply_blockout(line)

    def trace(self, surface: Optional[Surface] = None, transform: Optional[np.ndarray] = None) -> bool:
        """Sample weights from the trace source and re-dash; False if nothing was traced."""

        if surface is not None:
            self.sync(surface, as_needed=True)
        traced = trace_lines(self.lines, self.trace_settings, self.spacing.spacing, transform)
        self.needtotrace = False
        if traced:
            self.update_dash_cache()
        return traced

    def quick_adjust(self, factor: float) -> None:
        """Scale every weight by ``factor``."""

        if factor <= 0 or factor == 1:
            return
        for line in self.lines:
            for point in line:
                point.weight *= factor
                if point.cache is not None:
                    line.node(point.cache).weight *= factor
        self.update_dash_cache()

    def sync(self, surface: Surface, as_needed: bool = False) -> None:
        """Resolve object-space positions from parametric coordinates."""

        for line in self.lines:
            for point in line:
                if as_needed and point.needtosync != SyncState.TO_POSITION:
                    continue
                point.p = surface.get_point(point.s, point.t)
                point.needtosync = SyncState.NONE
            self._refresh_line(line)

    def reverse_sync(self, surface: Surface, as_needed: bool = False) -> None:
        """Resolve parametric coordinates from object-space positions."""

        for line in self.lines:
            for point in line:
                if as_needed and point.needtosync != SyncState.TO_PARAMETER:
                    continue
                st = surface.get_point_reverse(*point.p)
                if st is None:
                    logger.debug("Point %s has no parametric position on the surface", point.p)
                    continue
                point.s, point.t = st
                point.needtosync = SyncState.NONE
            self._refresh_line(line)

    @staticmethod
    def _refresh_line(line: LineChain) -> None:
        if line.cache_head is None:
            line.update_bez_cache()
        else:
            line.update_position_cache()

    # ------------------------------------------------------------------
    # visibility

    def point_on(self, node: LinePointCache) -> bool:
        return node.on in _VISIBLE and node.weight >= self.dashes.zero_threshold

    def point_on_dash(self, node: LinePointCache) -> bool:
        return node.dashon in _VISIBLE and node.weight >= self.dashes.zero_threshold

    def cache_point_on(self, node: LinePointCache) -> bool:
        return self.point_on(node) and self.point_on_dash(node)

    # ------------------------------------------------------------------

    def copy_from(
        self,
        other: "PointGroup",
        *,
        link_dashes: bool = False,
        link_direction: bool = False,
        link_spacing: bool = False,
        link_trace: bool = False,
        copy_lines: bool = True,
    ) -> None:
        self.name = other.name
        self.active = other.active
        self.linked = other.linked
        self.color = other.color
        self.position = other.position
        self.directionv = other.directionv
        self.default_weight = other.default_weight
        self.direction_map = other.direction_map
        links = {
            "dashes": link_dashes,
            "direction": link_direction,
            "spacing": link_spacing,
            "trace": link_trace,
        }
        for kind in SETTING_KINDS:
            handle = other.handle(kind)
            self.install(kind, handle if links[kind] else _fresh_copy(kind, handle.value))
        if copy_lines:
            self.lines = [line.copy() for line in other.lines]
        self.needtodash = True


class FillData:
    """A surface plus an ordered list of point groups."""

    def __init__(self, surface: Optional[Surface] = None) -> None:
        self.surface: Surface = surface if surface is not None else RectSurface()
        self.groups: List[PointGroup] = []

    def __repr__(self) -> str:
        return f"FillData(groups={[group.name for group in self.groups]!r})"

    def __iter__(self) -> Iterator[PointGroup]:
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)

    def next_group_id(self) -> int:
        return max((group.id for group in self.groups), default=0) + 1

    def make_default_group(self, id: Optional[int] = None) -> PointGroup:
        group = PointGroup(self.next_group_id() if id is None else id, color=(0.0, 0.0, 1.0, 1.0))
        _, _, miny, maxy = self.surface.bounds
        group.spacing.spacing = (maxy - miny) / 20
        group.name = self.make_group_name_unique("Default")
        self.groups.append(group)
        return group

    def add_group(self, group: Optional[PointGroup] = None, name: str = "") -> PointGroup:
        if group is None:
            group = PointGroup(self.next_group_id(), name)
        elif self.find_group(group.id) is not None:
            raise ValueError(f"group id {group.id} is already in use")
        group.name = self.make_group_name_unique(name or group.name)
        self.groups.append(group)
        return group

    def remove_group(self, group_id: int) -> PointGroup:
        group = self.find_group(group_id)
        if group is None:
            raise KeyError(f"no group with id {group_id}")
        group.release_settings()
        self.groups.remove(group)
        return group

    def make_group_name_unique(self, name: str) -> str:
        """Return ``name``, or it with a numeric suffix added or bumped until unused."""

        taken = {group.name for group in self.groups}
        if name not in taken:
            return name
        match = re.match(r"^(.*?)(\d+)$", name)
        if match:
            stem, number = match.group(1), int(match.group(2))
        else:
            stem, number = name + " ", 1
        while True:
            number += 1
            candidate = f"{stem}{number}"
            if candidate not in taken:
                return candidate

    def find_group(self, group_id: int) -> Optional[PointGroup]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def group_from_index(self, index: int) -> Optional[PointGroup]:
        if 0 <= index < len(self.groups):
            return self.groups[index]
        return None

    def group_by_name(self, name: str) -> Optional[PointGroup]:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def group_for_settings(self, kind: str, settings_id: str) -> Optional[PointGroup]:
        for group in self.groups:
            if group.handle(kind).value.id == settings_id:
                return group
        return None

    def is_sharing(self, kind: str, group: PointGroup) -> bool:
        return group.handle(kind).is_shared()

    def merge_down(self, group_id: int) -> PointGroup:
        """Move the lines of ``group_id`` into the group after it."""

        group = self.find_group(group_id)
        if group is None:
            raise KeyError(f"no group with id {group_id}")
        index = self.groups.index(group)
        if index + 1 >= len(self.groups):
            raise ValueError(f"group {group.name!r} has no group below it to merge into")
        target = self.groups[index + 1]
        target.lines.extend(group.lines)
        target.name = f"{target.name}+{group.name}"
        target.needtodash = True
        group.lines = []
        self.remove_group(group_id)
        logger.info("Merged group %s into %s", group_id, target.id)
        return target

    def sync(self, as_needed: bool = False) -> None:
        for group in self.groups:
            group.sync(self.surface, as_needed)

    def reverse_sync(self, as_needed: bool = False) -> None:
        for group in self.groups:
            group.reverse_sync(self.surface, as_needed)

    def fill_regular_lines(self, weight: float = -1.0, spacing: float = -1.0) -> PointGroup:
        """Fill the first group (made if missing) with linear lines."""

        group = self.groups[0] if self.groups else self.make_default_group()
        if spacing > 0:
            group.spacing.spacing = spacing
        group.direction.set_kind(FieldKind.LINEAR)
        group.fill(self.surface, weight)
        group.update_dash_cache()
        return group

    def update(self, force: bool = False) -> List[PointGroup]:
        """Bring every group up to date: reline, then trace, then dash.

        Returns the groups whose growth stopped at the iteration limit.
        """

        incomplete: List[PointGroup] = []
        for group in self.groups:
            if force or group.needtoreline:
                group.fill(self.surface)
                if group.last_growth is not None and group.last_growth.incomplete:
                    logger.warning("Growth for group %s stopped early; lines are incomplete", group.id)
                    incomplete.append(group)
            if force or group.needtotrace:
                if group.trace_settings.source is not None:
                    group.trace(self.surface)
                group.needtotrace = False
            if force or group.needtodash:
                group.update_dash_cache()
        return incomplete

    def copy_from(self, other: "FillData") -> None:
        """Deep copy ``other``; settings shared there are shared in the copy."""

        self.surface = copy.deepcopy(other.surface)
        for group in self.groups:
            group.release_settings()
        self.groups = []
        copies: Dict[int, SharedSettings[Any]] = {}
        for source in other.groups:
            group = PointGroup(source.id)
            group.copy_from(source)
            for kind in SETTING_KINDS:
                handle = source.handle(kind)
                shared = copies.get(id(handle))
                if shared is None:
                    copies[id(handle)] = group.handle(kind)
                else:
                    group.install(kind, shared)
            self.groups.append(group)
