"""
Filter graph description builder.

Produces an ffmpeg-syntax filter graph that resamples and remaps every input
to the reference format and mixes the normalized streams with ``amix``.
The builder is a pure function of its parameters, so identical parameters
always give a byte-identical description.
"""

from dataclasses import dataclass
from typing import List, NewType, Optional, Sequence, Tuple

from mixplanner.errors import ConfigurationError
from mixplanner.planner.reference_format import ReferenceFormat
from mixplanner.planner.request import DurationPolicy, MixRequest

FilterGraphDescription = NewType("FilterGraphDescription", str)

MIX_OUTPUT_LABEL = "out"

# Channel maps per reference layout. Mono inputs referenced as c1 broadcast
# their single channel; a mono reference averages the first two channels.
STEREO_PAN = "pan=stereo|c0=c0|c1=c1"
MONO_PAN = "pan=mono|c0=0.5*c0+0.5*c1"


@dataclass(frozen=True)
class FilterGraphParams:
    """Everything the description depends on."""

    input_count: int
    reference: ReferenceFormat
    weights: Optional[Tuple[float, ...]] = None
    duration: DurationPolicy = DurationPolicy.LONGEST
    normalize: bool = True

    @classmethod
    def from_request(cls, request: MixRequest, reference: ReferenceFormat) -> "FilterGraphParams":
        return cls(
            input_count=len(request.inputs),
            reference=reference,
            weights=request.weights,
            duration=request.duration,
            normalize=request.normalize,
        )


def input_label(index: int) -> str:
    return f"a{index}"


def format_weights(weights: Sequence[float]) -> str:
    """Space separated gains using the shortest float repr ("1.0 0.5")."""
    return " ".join(repr(float(w)) for w in weights)


def _normalize_chain(index: int, reference: ReferenceFormat) -> str:
    pan = STEREO_PAN if reference.channels == 2 else MONO_PAN
    return f"[{index}:a]aresample={reference.sample_rate},{pan}[{input_label(index)}]"


def _mix_chain(params: FilterGraphParams) -> str:
    sources = "".join(f"[{input_label(i)}]" for i in range(params.input_count))
    options: List[str] = [
        f"inputs={params.input_count}",
        f"duration={params.duration.value}",
    ]
    if params.weights is not None:
        options.append(f"weights={format_weights(params.weights)}")
    options.append(f"normalize={1 if params.normalize else 0}")
    return f"{sources}amix={':'.join(options)}[{MIX_OUTPUT_LABEL}]"


def build_filter_graph(params: FilterGraphParams) -> FilterGraphDescription:
    """
    Build the filter graph description for a mix.

    Args:
        params: Input count, reference format, weights, duration policy, normalize flag

    Returns:
        Filter graph description string

    Raises:
        ConfigurationError: If there are no inputs or the weights do not match the inputs
    """
    if params.input_count < 1:
        raise ConfigurationError(f"Filter graph needs at least one input, got {params.input_count}")
    if params.weights is not None and len(params.weights) != params.input_count:
        raise ConfigurationError(
            f"Got {len(params.weights)} weights for {params.input_count} inputs (need exactly one per input)"
        )

    chains = [_normalize_chain(i, params.reference) for i in range(params.input_count)]
    chains.append(_mix_chain(params))
    return FilterGraphDescription(";".join(chains))
