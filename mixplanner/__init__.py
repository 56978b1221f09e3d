"""
Mix Planner

Mixes several audio files into one FLAC or M4A/AAC track. The first input
defines the reference format; every input is resampled and remapped to it
and the streams are combined with an ``amix``-style filter graph, or averaged
directly as raw PCM.

Example:
    >>> from mixplanner import mix
    >>> result = mix(["voice.m4a", "music.m4a"], "mixed.flac", weights=[1.0, 0.5])
    >>> print(result.output, result.duration_sec)
"""

from mixplanner.config import MixConfig
from mixplanner.errors import CleanupError, ConfigurationError, MixError, ResourceError, StreamError
from mixplanner.mixer.service import MixPlanner, MixResult, mix
from mixplanner.planner import (
    DurationPolicy,
    FilterGraphParams,
    MixRequest,
    ReferenceFormat,
    build_filter_graph,
    build_request,
    resolve_reference_format,
)

__all__ = [
    "MixConfig",
    "MixError",
    "ConfigurationError",
    "ResourceError",
    "StreamError",
    "CleanupError",
    "MixPlanner",
    "MixResult",
    "mix",
    "DurationPolicy",
    "FilterGraphParams",
    "MixRequest",
    "ReferenceFormat",
    "build_filter_graph",
    "build_request",
    "resolve_reference_format",
]

__version__ = "0.1.0"
