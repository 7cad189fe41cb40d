from .chain import CacheKind, LineChain, LinePoint, LinePointCache, PointState
from .config import EngineConfig, get_engine_config, set_engine_config
from .dashes import apply_blockout, strip_dashes, update_dash_cache
from .fields import (
    CircularField,
    DirectionField,
    ExternalMapField,
    LinearField,
    LinesField,
    NormalMapField,
    RadialField,
    SpiralField,
    field_from_settings,
)
from .generators import fill_circular, fill_radial, fill_regular_lines, fill_spiral, generate_lines
from .group import FillData, PointGroup
from .growth import GrowContext, GrowResult, grow_lines, grow_lines_finish, grow_lines_init, grow_lines_iterate
from .parser import load_fill_data, parse_fill_data
from .printer import print_fill_data
from .settings import (
    DashSettings,
    DirectionSettings,
    FieldKind,
    ResponseCurve,
    SharedSettings,
    SpacingSettings,
    TraceSettings,
    TraceType,
)
from .surface import BilinearSurface, RectSurface, Surface
from .trace import (
    CurrentSource,
    ImageSource,
    LinearGradientSource,
    RadialGradientSource,
    SnapshotSource,
    TraceCache,
    trace_lines,
)
from .validate import NormalizationWarning, ValidationError, normalize_fill_data, validate_fill_data

__all__ = [
    'CacheKind',
    'LineChain',
    'LinePoint',
    'LinePointCache',
    'PointState',
    'EngineConfig',
    'get_engine_config',
    'set_engine_config',
    'apply_blockout',
    'strip_dashes',
    'update_dash_cache',
    'CircularField',
    'DirectionField',
    'ExternalMapField',
    'LinearField',
    'LinesField',
    'NormalMapField',
    'RadialField',
    'SpiralField',
    'field_from_settings',
    'fill_circular',
    'fill_radial',
    'fill_regular_lines',
    'fill_spiral',
    'generate_lines',
    'FillData',
    'PointGroup',
    'GrowContext',
    'GrowResult',
    'grow_lines',
    'grow_lines_finish',
    'grow_lines_init',
    'grow_lines_iterate',
    'load_fill_data',
    'parse_fill_data',
    'print_fill_data',
    'DashSettings',
    'DirectionSettings',
    'FieldKind',
    'ResponseCurve',
    'SharedSettings',
    'SpacingSettings',
    'TraceSettings',
    'TraceType',
    'BilinearSurface',
    'RectSurface',
    'Surface',
    'CurrentSource',
    'ImageSource',
    'LinearGradientSource',
    'RadialGradientSource',
    'SnapshotSource',
    'TraceCache',
    'trace_lines',
    'NormalizationWarning',
    'ValidationError',
    'normalize_fill_data',
    'validate_fill_data',
]
