"""Sample point chains and their render caches, stored in per-line arenas."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import get_engine_config
from .geometry import Vec, bez_point, bez_segment_length, distance, normalize, vec_add, vec_scale, vec_sub

logger = logging.getLogger(__name__)


class PointState(IntEnum):
    OFF = 0
    ON = 1
    END = -1
    START = -2


class CacheKind(IntEnum):
    ORIGINAL = 0
    SAMPLE = 1
    BLOCK_START = 2
    BLOCK_END = 3
    VISUAL = 4
    END_DASH = 5
    START_DASH = 6


DASH_KINDS = (CacheKind.END_DASH, CacheKind.START_DASH)


class SyncState(IntEnum):
    NONE = 0
    TO_POSITION = 1  # (s,t) is authoritative, p must be recomputed
    TO_PARAMETER = 2  # p is authoritative, (s,t) must be recomputed


LineRecord = Tuple[float, float, float, PointState]


@dataclass
class LinePoint:
    """One authoritative sample along a line."""

    s: float
    t: float
    weight: float = 1.0
    on: PointState = PointState.ON
    weight_orig: Optional[float] = None
    p: Optional[Vec] = None
    bez_before: Optional[Vec] = None
    bez_after: Optional[Vec] = None
    length: float = 0.0
    needtosync: SyncState = SyncState.TO_POSITION
    spacing: float = -1.0
    prev: Optional[int] = None
    next: Optional[int] = None
    cache: Optional[int] = None

    def __post_init__(self) -> None:
        if self.weight_orig is None:
            self.weight_orig = self.weight
        if self.p is None:
            self.p = (self.s, self.t)
        if self.bez_before is None:
            self.bez_before = self.p
        if self.bez_after is None:
            self.bez_after = self.p

    @property
    def st(self) -> Vec:
        return self.s, self.t

    def set(self, s: float, t: float, weight: float = -1.0) -> None:
        self.s = s
        self.t = t
        if weight >= 0:
            self.weight = weight
        self.needtosync = SyncState.TO_POSITION

    def record(self) -> LineRecord:
        return self.s, self.t, self.weight, self.on


@dataclass
class LinePointCache:
    """Render-ready node; ``original`` is the arena index of the mirrored sample."""

    kind: CacheKind = CacheKind.ORIGINAL
    bt: float = 0.0
    p: Vec = (0.0, 0.0)
    weight: float = 0.0
    on: PointState = PointState.ON
    dashon: PointState = PointState.ON
    original: Optional[int] = None
    prev: Optional[int] = None
    next: Optional[int] = None


class LineChain:
    """One engraved line: a sample chain plus its denser render cache.

    Both chains live in index arenas and link through ``prev``/``next``
    indices. Cache slots released by :meth:`cache_detach` go on a free list
    and are reused before the arena grows.
    """

    def __init__(self, points: Iterable[LinePoint] = ()) -> None:
        self._points: List[Optional[LinePoint]] = []
        self._free_points: List[int] = []
        self._nodes: List[Optional[LinePointCache]] = []
        self._free_nodes: List[int] = []
        self.head: Optional[int] = None
        self.tail: Optional[int] = None
        self.cache_head: Optional[int] = None
        self.cache_stale = False
        self._count = 0
        for point in points:
            self.append(point)

    @classmethod
    def from_coords(cls, coords: Iterable[Vec], weight: float) -> "LineChain":
        return cls(LinePoint(s, t, weight) for s, t in coords)

    @classmethod
    def from_records(cls, records: Iterable[Sequence[object]]) -> "LineChain":
        chain = cls()
        for s, t, weight, on in records:  # type: ignore[misc]
            chain.append(LinePoint(float(s), float(t), float(weight), PointState(on)))  # type: ignore[arg-type]
        return chain

    def __len__(self) -> int:
        return self._count

    def __iter__(self) -> Iterator[LinePoint]:
        for _, point in self.items():
            yield point

    def __repr__(self) -> str:
        return f"LineChain(points={self._count}, cached={self.cache_head is not None})"

    # ------------------------------------------------------------------
    # sample chain

    def point(self, index: int) -> LinePoint:
        point = self._points[index] if 0 <= index < len(self._points) else None
        if point is None:
            raise IndexError(f"no sample point at arena index {index}")
        return point

    def items(self) -> Iterator[Tuple[int, LinePoint]]:
        idx = self.head
        while idx is not None:
            point = self.point(idx)
            yield idx, point
            idx = point.next

    def indices(self) -> List[int]:
        return [idx for idx, _ in self.items()]

    @property
    def first(self) -> Optional[LinePoint]:
        return None if self.head is None else self.point(self.head)

    @property
    def last(self) -> Optional[LinePoint]:
        return None if self.tail is None else self.point(self.tail)

    def next_of(self, point: LinePoint) -> Optional[LinePoint]:
        return None if point.next is None else self.point(point.next)

    def prev_of(self, point: LinePoint) -> Optional[LinePoint]:
        return None if point.prev is None else self.point(point.prev)

    def records(self) -> List[LineRecord]:
        return [point.record() for point in self]

    def _store_point(self, point: LinePoint) -> int:
        point.prev = point.next = None
        point.cache = None
        if self._free_points:
            idx = self._free_points.pop()
            self._points[idx] = point
        else:
            idx = len(self._points)
            self._points.append(point)
        self._count += 1
        if self.cache_head is not None:
            self.cache_stale = True
        return idx

    def append(self, point: LinePoint) -> int:
        idx = self._store_point(point)
        if self.tail is None:
            self.head = self.tail = idx
        else:
            self.point(self.tail).next = idx
            point.prev = self.tail
            self.tail = idx
        return idx

    def prepend(self, point: LinePoint) -> int:
        idx = self._store_point(point)
        if self.head is None:
            self.head = self.tail = idx
        else:
            self.point(self.head).prev = idx
            point.next = self.head
            self.head = idx
        return idx

    def insert_after(self, index: int, point: LinePoint) -> int:
        anchor = self.point(index)
        if anchor.next is None:
            return self.append(point)
        idx = self._store_point(point)
        point.prev = index
        point.next = anchor.next
        self.point(anchor.next).prev = idx
        anchor.next = idx
        return idx

    def insert_before(self, index: int, point: LinePoint) -> int:
        anchor = self.point(index)
        if anchor.prev is None:
            return self.prepend(point)
        return self.insert_after(anchor.prev, point)

    def remove(self, index: int) -> None:
        """Delete one sample; cache back-references to it are cleared."""

        point = self.point(index)
        if point.cache is not None:
            self.cache_detach(point.cache)
            point.cache = None
        for node in self._nodes:
            if node is not None and node.original == index:
                node.original = None

        if point.prev is not None:
            self.point(point.prev).next = point.next
        else:
            self.head = point.next
        if point.next is not None:
            self.point(point.next).prev = point.prev
        else:
            self.tail = point.prev

        self._points[index] = None
        self._free_points.append(index)
        self._count -= 1
        if self.cache_head is not None:
            self.cache_stale = True

    def extend(self, other: "LineChain") -> None:
        for point in other:
            self.append(replace(point))

    def copy(self) -> "LineChain":
        return LineChain(replace(point) for point in self)

    # ------------------------------------------------------------------
    # bezier and position data

    def update_bez_cache(self) -> None:
        """Recompute Bezier handles and per-segment arc lengths from ``p``."""

        samples = get_engine_config().bezier_length_samples
        for _, point in self.items():
            prev = self.prev_of(point)
            nxt = self.next_of(point)
            pp = prev.p if prev is not None else point.p
            nn = nxt.p if nxt is not None else point.p
            v = normalize(vec_sub(nn, pp))
            point.bez_before = vec_sub(point.p, vec_scale(v, distance(pp, point.p) * 0.333))
            point.bez_after = vec_add(point.p, vec_scale(v, distance(point.p, nn) * 0.333))

        for _, point in self.items():
            nxt = self.next_of(point)
            if nxt is None:
                point.length = 0.0
            else:
                point.length = bez_segment_length(point.p, point.bez_after, nxt.bez_before, nxt.p, samples)

    def segment_point(self, index: int, bt: float) -> Vec:
        point = self.point(index)
        nxt = self.next_of(point)
        if nxt is None:
            return point.p
        return bez_point(bt, point.p, point.bez_after, nxt.bez_before, nxt.p)

    def update_position_cache(self) -> None:
        """Move existing cache nodes onto the current curve without re-dashing."""

        self.update_bez_cache()
        owner: Optional[int] = None
        for _, node in self.cache_items():
            if node.original is not None:
                owner = node.original
                node.p = self.point(owner).p
            elif owner is not None:
                node.p = self.segment_point(owner, node.bt)

    # ------------------------------------------------------------------
    # render cache

    def node(self, index: int) -> LinePointCache:
        node = self._nodes[index] if 0 <= index < len(self._nodes) else None
        if node is None:
            raise IndexError(f"no cache node at arena index {index}")
        return node

    def cache_items(self) -> Iterator[Tuple[int, LinePointCache]]:
        idx = self.cache_head
        while idx is not None:
            node = self.node(idx)
            yield idx, node
            idx = node.next

    def cache_nodes(self) -> List[LinePointCache]:
        return [node for _, node in self.cache_items()]

    @property
    def free_node_count(self) -> int:
        return len(self._free_nodes)

    def needs_baseline(self) -> bool:
        if self.head is None:
            return False
        if self.cache_head is None or self.cache_stale:
            return True
        return any(point.cache is None for point in self)

    def clear_cache(self) -> None:
        self._nodes = []
        self._free_nodes = []
        self.cache_head = None
        self.cache_stale = False
        for point in self:
            point.cache = None

    def alloc_node(self, kind: CacheKind) -> int:
        if self._free_nodes:
            idx = self._free_nodes.pop()
            self._nodes[idx] = LinePointCache(kind)
        else:
            idx = len(self._nodes)
            self._nodes.append(LinePointCache(kind))
        return idx

    def baseline_cache(self) -> None:
        """Rebuild the cache as a one-to-one mirror of the sample chain."""

        self.clear_cache()
        last: Optional[int] = None
        for idx, point in self.items():
            ci = self.alloc_node(CacheKind.ORIGINAL)
            node = self.node(ci)
            node.original = idx
            node.p = point.p
            node.weight = point.weight
            node.on = point.on
            point.cache = ci
            if last is None:
                self.cache_head = ci
            else:
                self.cache_add_after(last, ci)
            last = ci

    def cache_add_after(self, index: int, new_index: int) -> None:
        anchor = self.node(index)
        node = self.node(new_index)
        node.prev = index
        node.next = anchor.next
        if anchor.next is not None:
            self.node(anchor.next).prev = new_index
        anchor.next = new_index

    def cache_add_before(self, index: int, new_index: int) -> None:
        anchor = self.node(index)
        node = self.node(new_index)
        node.next = index
        node.prev = anchor.prev
        if anchor.prev is not None:
            self.node(anchor.prev).next = new_index
        else:
            self.cache_head = new_index
        anchor.prev = new_index

    def cache_insert_after(self, index: int, new_index: int) -> int:
        """Splice ``new_index`` at the position its ``bt`` calls for.

        ``bt >= 1`` first hops whole sample segments forward from the owning
        Original node. The walk never crosses into the next segment.
        """

        node = self.node(new_index)
        t = node.bt
        cur = index
        if t >= 1:
            while self.node(cur).kind != CacheKind.ORIGINAL and self.node(cur).prev is not None:
                cur = self.node(cur).prev  # type: ignore[assignment]
            owner = self.node(cur).original
            if owner is not None:
                point = self.point(owner)
                while t >= 1 and point.next is not None:
                    t -= 1
                    point = self.point(point.next)
                if point.cache is not None:
                    cur = point.cache
            node.bt = t

        while True:
            here = self.node(cur)
            if not t > here.bt or here.next is None:
                break
            ahead = self.node(here.next)
            if ahead.kind == CacheKind.ORIGINAL or t < ahead.bt:
                break
            cur = here.next
        self.cache_add_after(cur, new_index)
        return new_index

    def cache_detach(self, index: int) -> Optional[int]:
        """Unlink a node and return its slot to the free list.

        Returns the previous node, or the next one when there is no previous.
        """

        node = self.node(index)
        result = node.prev if node.prev is not None else node.next
        if node.prev is not None:
            self.node(node.prev).next = node.next
        elif self.cache_head == index:
            self.cache_head = node.next
        if node.next is not None:
            self.node(node.next).prev = node.prev
        node.prev = node.next = None
        if node.original is not None:
            owner = self._points[node.original] if node.original < len(self._points) else None
            if owner is not None and owner.cache == index:
                owner.cache = None
            node.original = None
        self._free_nodes.append(index)
        return result

    def cache_prev_original(self, index: int) -> Optional[int]:
        idx: Optional[int] = index
        while idx is not None:
            node = self.node(idx)
            if node.original is not None:
                return node.original
            idx = node.prev
        return None

    def detach_dash_nodes(self, point_index: int) -> int:
        """Detach dash boundaries between a sample and the next Original node."""

        point = self.point(point_index)
        if point.cache is None:
            return 0
        removed = 0
        ci = self.node(point.cache).next
        while ci is not None:
            node = self.node(ci)
            if node.kind == CacheKind.ORIGINAL:
                break
            nxt = node.next
            if node.kind in DASH_KINDS:
                self.cache_detach(ci)
                removed += 1
            ci = nxt
        return removed

    def strip_dashes(self) -> None:
        """Drop all dash boundaries and reset Original nodes from their samples."""

        for _, node in list(self.cache_items()):
            if node.kind in DASH_KINDS:
                continue
            while node.next is not None and self.node(node.next).kind in DASH_KINDS:
                self.cache_detach(node.next)
            if node.original is not None:
                point = self.point(node.original)
                node.weight = point.weight
                node.on = point.on
                node.dashon = PointState.ON
