"""
Mix planning: request model, reference format and filter graph description.
"""

from mixplanner.planner.reference_format import (
    DEFAULT_SAMPLE_RATE,
    ReferenceFormat,
    resolve_reference_format,
)
from mixplanner.planner.request import (
    AAC_OUTPUT,
    FLAC_OUTPUT,
    DurationPolicy,
    MixRequest,
    OutputFormat,
    build_request,
)
from mixplanner.planner.filter_graph import (
    FilterGraphDescription,
    FilterGraphParams,
    build_filter_graph,
)

__all__ = [
    "DEFAULT_SAMPLE_RATE",
    "ReferenceFormat",
    "resolve_reference_format",
    "AAC_OUTPUT",
    "FLAC_OUTPUT",
    "DurationPolicy",
    "MixRequest",
    "OutputFormat",
    "build_request",
    "FilterGraphDescription",
    "FilterGraphParams",
    "build_filter_graph",
]
