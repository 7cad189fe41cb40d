"""Configuration helpers for engine components."""

from __future__ import annotations

import copy
from dataclasses import dataclass


@dataclass
class EngineConfig:
    """Tunables shared by the generators, growth, trace and dash stages."""

    iteration_limit: int = 10000
    trace_sample_size: int = 500
    bezier_length_samples: int = 8
    least_spacing_factor: float = 0.95
    most_spacing_factor: float = 1.5
    spiral_max_dtheta: float = 0.3
    fallback_dash_length: float = 2.0
    min_scaling: float = 1e-9


_ENGINE_CONFIG = EngineConfig()


def get_engine_config() -> EngineConfig:
    return copy.deepcopy(_ENGINE_CONFIG)


def set_engine_config(config: EngineConfig) -> None:
    global _ENGINE_CONFIG
    _ENGINE_CONFIG = copy.deepcopy(config)
