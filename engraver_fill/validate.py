import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Set

from .group import FillData, PointGroup
from .settings import FieldKind

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    pass


@dataclass
class NormalizationWarning:
    group: Optional[int]
    kind: str
    message: str

    def __str__(self) -> str:  # pragma: no cover - trivial string formatting
        return self.message


def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def validate_fill_data(data: FillData) -> None:
    """Reject data the engine cannot repair."""

    seen: Set[int] = set()
    for group in data.groups:
        if group.id in seen:
            raise ValidationError(f'duplicate group id {group.id}')
        seen.add(group.id)


def _normalize_group(data: FillData, group: PointGroup, done: Set[int], warnings: List[NormalizationWarning]) -> None:
    def warn(kind: str, message: str) -> None:
        warnings.append(NormalizationWarning(group.id, kind, message))

    direction = group.direction
    if id(direction) not in done:
        done.add(id(direction))
        if direction.kind is FieldKind.UNKNOWN:
            direction.set_kind(FieldKind.LINEAR)
            warn('unknown-direction', f'group {group.name!r}: unknown direction type, using linear')
        if direction.resolution <= 0:
            warn('resolution', f'group {group.name!r}: resolution {direction.resolution} reset to 1')
            direction.resolution = 1.0
        if direction.noise_scale <= 0:
            warn('noise-scale', f'group {group.name!r}: noise scale {direction.noise_scale} reset to 1')
            direction.noise_scale = 1.0
        for name in ('profile_start', 'profile_end'):
            value = getattr(direction, name)
            if not 0 <= value <= 1:
                setattr(direction, name, _clamp01(value))
                warn('fraction', f'group {group.name!r}: {name} {value} clamped to [0, 1]')

    dashes = group.dashes
    if id(dashes) not in done:
        done.add(id(dashes))
        if dashes.zero_threshold < 0:
            warn('threshold', f'group {group.name!r}: negative zero threshold reset to 0')
            dashes.zero_threshold = 0.0
        if dashes.broken_threshold < dashes.zero_threshold:
            warn(
                'inverted-thresholds',
                f'group {group.name!r}: broken threshold {dashes.broken_threshold} below zero threshold '
                f'{dashes.zero_threshold}',
            )
            dashes.broken_threshold = dashes.zero_threshold
        for name in ('dash_density', 'dash_randomness', 'dash_taper'):
            value = getattr(dashes, name)
            if not 0 <= value <= 1:
                setattr(dashes, name, _clamp01(value))
                warn('fraction', f'group {group.name!r}: {name} {value} clamped to [0, 1]')

    spacing = group.spacing
    if id(spacing) not in done:
        done.add(id(spacing))
        if spacing.spacing <= 0:
            _, _, miny, maxy = data.surface.bounds
            default = (maxy - miny) / 20
            warn('spacing', f'group {group.name!r}: spacing {spacing.spacing} replaced by {default:g}')
            spacing.spacing = default

    trace = group.trace_settings
    if id(trace) not in done:
        done.add(id(trace))
        if not 0 <= trace.view_opacity <= 1:
            warn('fraction', f'group {group.name!r}: view opacity {trace.view_opacity} clamped to [0, 1]')
            trace.view_opacity = _clamp01(trace.view_opacity)

    dropped = 0
    blanked = 0
    negative = 0
    for line in group.lines:
        for index, point in list(line.items()):
            if not (math.isfinite(point.s) and math.isfinite(point.t)):
                line.remove(index)
                dropped += 1
            elif not math.isfinite(point.weight):
                point.weight = 0.0
                blanked += 1
            elif point.weight < 0:
                point.weight = 0.0
                negative += 1
    if dropped:
        group.lines = [line for line in group.lines if len(line)]
        warn('non-finite', f'group {group.name!r}: {dropped} points with non-finite coordinates dropped')
    if blanked:
        warn('non-finite', f'group {group.name!r}: {blanked} non-finite weights set to 0')
    if negative:
        warn('weight', f'group {group.name!r}: {negative} negative weights set to 0')


def normalize_fill_data(data: FillData) -> List[NormalizationWarning]:
    """Repair out-of-range settings and weights in place; report every repair.

    Shared settings objects are checked once.
    """

    validate_fill_data(data)
    warnings: List[NormalizationWarning] = []
    done: Set[int] = set()
    for group in data.groups:
        _normalize_group(data, group, done, warnings)
    for warning in warnings:
        logger.warning('%s', warning.message)
    return warnings
