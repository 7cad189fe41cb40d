"""Dash engine: rebuilds the render cache of each line from weights and thresholds.

Weights at or above the broken threshold draw solid, weights at or below the
zero threshold draw nothing, and weights in between are broken into repeating
dash units whose on-length grows with the weight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import numpy as np

from .chain import CacheKind, LineChain, PointState
from .config import get_engine_config
from .logging_utils import apply_debug_logging
from .settings import DashSettings

logger = logging.getLogger(__name__)

END_OF_LINE_T = 0.9999


@dataclass
class _DashCursor:
    """Running state of one dash pass over one line."""

    line: LineChain
    settings: DashSettings
    dashlen: float
    zero: float
    broken: float
    rng: np.random.Generator
    point: int = 0
    lc: int = 0
    laston: PointState = PointState.OFF
    dashweight: float = 0.0
    next: List[float] = field(default_factory=lambda: [0.0] * 4)
    nexton: List[PointState] = field(default_factory=lambda: [PointState.OFF] * 4)
    nextmax: int = 0


def _add_point(cur: _DashCursor, s: float, on: PointState, kind: Optional[CacheKind] = None) -> int:
    """Insert a dash boundary ``s`` units into the current segment."""

    line = cur.line
    point = line.point(cur.point)
    if kind is None:
        kind = CacheKind.START_DASH if on == PointState.START else CacheKind.END_DASH
    ci = line.alloc_node(kind)
    node = line.node(ci)
    node.bt = s / point.length if point.length > 0 else 0.0
    node.p = line.segment_point(cur.point, node.bt)
    node.weight = cur.dashweight
    node.on = on
    node.dashon = on
    line.cache_insert_after(cur.lc, ci)
    cur.lc = ci
    return ci


def _establish_dash_metrics(cur: _DashCursor, s: float, weight: float) -> None:
    """Lay out the boundaries of one dash unit starting ``s`` into the segment.

    A negative ``weight`` means interpolate the weight at ``s``.
    """

    line = cur.line
    point = line.point(cur.point)
    nxt = line.next_of(point)
    if weight < 0:
        if nxt is None or point.length <= 0:
            weight = point.weight
        else:
            weight = point.weight + s / point.length * (nxt.weight - point.weight)

    zero = cur.zero
    broken = cur.broken
    a = (weight - zero) / (broken - zero) if broken > zero else 1.0
    a = min(max(a, 0.0), 1.0)
    settings = cur.settings
    dashlen = cur.dashlen

    cur.dashweight = broken * a + (settings.dash_taper * (broken - zero) + zero) * (1 - a)
    dashonlen = dashlen * (settings.dash_density + (1 - settings.dash_density) * a)
    gaplen = dashlen - dashonlen
    gapstart = dashlen / 2 + dashonlen / 2 + dashlen * settings.dash_randomness * cur.rng.random()
    gapstart = gapstart % dashlen

    eps = 1e-12 * dashlen
    on, end, start = PointState.ON, PointState.END, PointState.START
    if abs(gapstart) <= eps:
        cur.next[:3] = [s, s + gaplen, s + dashlen]
        cur.nexton[:3] = [end, start, end]
        cur.nextmax = 3
    elif abs(gapstart + gaplen - dashlen) <= eps:
        cur.next[:3] = [s, s + gapstart, s + dashlen]
        cur.nexton[:3] = [start, end, start]
        cur.nextmax = 3
    elif gapstart + gaplen > dashlen:
        restart = s + gapstart + gaplen - dashlen
        cur.next[:] = [s, restart, restart + dashonlen, s + dashlen]
        cur.nexton[:] = [end, start, end, start]
        cur.nextmax = 4
    else:
        cur.next[:] = [s, s + gapstart, s + gapstart + gaplen, s + dashlen]
        cur.nexton[:] = [start, end, start, end]
        cur.nextmax = 4

    first = cur.nexton[0]
    if (cur.laston == PointState.OFF and first == start) or (cur.laston == on and first == end):
        _add_point(cur, cur.next[0], first)
        cur.laston = on if first == start else PointState.OFF


def _dash_line(cur: _DashCursor) -> int:
    line = cur.line
    zero = cur.zero
    broken = cur.broken
    units = 0

    if line.needs_baseline():
        line.baseline_cache()
    line.update_bez_cache()

    head = line.first
    if head is None or head.cache is None:
        return 0
    head_node = line.node(head.cache)
    head_node.on = head_node.dashon = PointState.OFF

    cur.laston = PointState.OFF
    indash = 0
    idx: Optional[int] = line.head
    while idx is not None:
        point = line.point(idx)
        cur.point = idx
        cur.lc = point.cache  # type: ignore[assignment]
        lc = line.node(cur.lc)
        lc.on = lc.dashon = cur.laston
        nxt = line.next_of(point)
        if nxt is None:
            break

        line.detach_dash_nodes(idx)
        w = point.weight
        wn = nxt.weight
        length = point.length

        if not indash:
            cur.laston = PointState.OFF if lc.dashon in (PointState.END, PointState.OFF) else PointState.ON

            if w >= broken and wn >= broken:
                lc.on = lc.dashon = PointState.ON
                lc.weight = w
                cur.laston = PointState.ON
                line.node(nxt.cache).weight = wn  # type: ignore[arg-type]
                idx = point.next
                continue
            if w <= zero and wn <= zero:
                lc.dashon = PointState.OFF
                lc.weight = w
                cur.laston = PointState.OFF
                line.node(nxt.cache).weight = wn  # type: ignore[arg-type]
                idx = point.next
                continue

            if w <= broken and w <= zero:
                t = (zero - w) / (wn - w)
                weight = (zero + wn) / 2
                if weight > broken:
                    weight = broken - 0.1 * (broken - zero)
            elif w <= broken:
                t = 0.0
                ww = min(max(wn, zero), broken)
                weight = (w + ww) / 2
            else:
                t = (w - broken) / (w - wn)
                weight = (broken + wn) / 2
                if weight < zero:
                    weight = zero + 0.05 * (broken - zero)

            _establish_dash_metrics(cur, t * length, weight)
            indash = 1
            units += 1

        hastoend = 0
        maxs = 0.0
        if indash:
            if wn >= broken:
                maxt = (broken - w) / (wn - w) if wn != w else 0.0
                hastoend = 1
            elif wn <= zero:
                maxt = (w - zero) / (w - wn) if wn != w else 0.0
                hastoend = -1
            elif nxt.next is None:
                maxt = END_OF_LINE_T
                hastoend = -1
            else:
                maxt = 0.0
            maxs = maxt * length

        while indash:
            if hastoend and maxs <= cur.next[indash]:
                if hastoend < 0 and cur.nexton[indash] == PointState.END:
                    _add_point(cur, maxs, PointState.END, CacheKind.END_DASH)
                    cur.laston = PointState.OFF
                elif hastoend > 0 and cur.nexton[indash] == PointState.START:
                    _add_point(cur, maxs, PointState.START, CacheKind.START_DASH)
                    cur.laston = PointState.ON
                indash = 0
                break
            if cur.next[indash] < length:
                if indash != cur.nextmax - 1:
                    _add_point(cur, cur.next[indash], cur.nexton[indash])
                    cur.laston = PointState.ON if cur.nexton[indash] == PointState.START else PointState.OFF
                indash += 1
                if indash == cur.nextmax:
                    _establish_dash_metrics(cur, cur.next[cur.nextmax - 1], -1.0)
                    indash = 1
                    units += 1
            else:
                break

        next_node = line.node(nxt.cache)  # type: ignore[arg-type]
        if indash:
            for c in range(indash, cur.nextmax):
                cur.next[c] -= length
            if wn != w:
                cur.dashweight = cur.settings.dash_weight(wn)
            next_node.weight = cur.dashweight
        else:
            next_node.weight = wn
        idx = point.next

    return units


def apply_blockout(line: LineChain) -> None:
    """Force cache nodes Off wherever the sample chain says Off.

    A segment touching an Off sample is blanked from the sample's cache node
    up to (not including) the next sample's cache node.
    """

    for _, point in line.items():
        if point.cache is None:
            continue
        nxt = line.next_of(point)
        if point.on != PointState.OFF and (nxt is None or nxt.on != PointState.OFF):
            continue
        stop = nxt.cache if nxt is not None else None
        ci: Optional[int] = point.cache
        while ci is not None and ci != stop:
            node = line.node(ci)
            node.on = node.dashon = PointState.OFF
            ci = node.next


def strip_dashes(lines: Iterable[LineChain]) -> None:
    for line in lines:
        line.strip_dashes()


def update_dash_cache(lines: Iterable[LineChain], settings: DashSettings, spacing: float) -> int:
    """Rebuild the render caches of ``lines``; return the number of dash units."""

    lines = list(lines)
    if settings.is_disabled():
        for line in lines:
            if line.needs_baseline():
                line.baseline_cache()
            else:
                line.strip_dashes()
            apply_blockout(line)
        return 0

    dashlen = settings.dash_length * spacing
    if dashlen <= 0:
        fallback = get_engine_config().fallback_dash_length
        dashlen = fallback * spacing if spacing > 0 else 1.0
        logger.debug("Non-positive dash length, falling back to %g", dashlen)

    zero = settings.zero_threshold
    broken = max(settings.broken_threshold, zero)
    rng = np.random.default_rng(settings.random_seed)

    units = 0
    for line in lines:
        cur = _DashCursor(line, settings, dashlen, zero, broken, rng)
        units += _dash_line(cur)
        apply_blockout(line)

    logger.debug("Dashed %d lines into %d units", len(lines), units)
    return units


apply_debug_logging(globals(), logger=logger, only=("update_dash_cache",))
