"""
In-process filter engine.

Executes the filter graph descriptions produced by
``mixplanner.planner.filter_graph``: per-input ``aresample`` and ``pan``
chains feeding a single ``amix``. Frames are pushed per input index and mixed
frames are pulled until the engine has nothing more to emit.

Only the filters the planner generates are understood; anything else is
rejected when the engine is opened.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple

import numpy as np

from mixplanner.engine.frame import Frame
from mixplanner.engine.resampler import LinearResampler
from mixplanner.errors import ResourceError, StreamError
from mixplanner.planner.reference_format import ReferenceFormat
from mixplanner.planner.request import DurationPolicy

logger = logging.getLogger(__name__)

INT16_MIN = -32768.0
INT16_MAX = 32767.0

LAYOUT_CHANNELS = {"mono": 1, "stereo": 2}

_CHAIN_RE = re.compile(r"^((?:\[[^\[\]]+\])+)([^\[\]]+)\[([^\[\]]+)\]$")
_LABEL_RE = re.compile(r"\[([^\[\]]+)\]")
_SOURCE_RE = re.compile(r"^(\d+):a$")
_PAN_TERM_RE = re.compile(r"^(?:(\d+(?:\.\d+)?)\*)?c(\d+)$")


class FilterGraphError(ValueError):
    """The description cannot be executed by this engine."""


@dataclass
class PanSpec:
    """Output channel count and, per output channel, (gain, input channel) terms."""
    channels: int
    terms: List[List[Tuple[float, int]]]

    def matrix(self, in_channels: int) -> np.ndarray:
        """Mixing matrix (in_channels, channels); missing input channels alias the last one."""
        m = np.zeros((in_channels, self.channels), dtype=np.float32)
        for out_ch, terms in enumerate(self.terms):
            for gain, in_ch in terms:
                m[min(in_ch, in_channels - 1), out_ch] += gain
        return m


@dataclass
class InputChain:
    index: int
    sample_rate: int
    pan: PanSpec
    label: str


@dataclass
class MixSpec:
    sources: List[str]
    duration: DurationPolicy
    weights: List[float]
    normalize: bool
    label: str


@dataclass
class GraphPlan:
    inputs: List[InputChain]
    mix: MixSpec


def _split_filter(spec: str) -> Tuple[str, str]:
    name, sep, args = spec.partition("=")
    return name.strip(), args if sep else ""


def _parse_pan(args: str) -> PanSpec:
    layout, *channel_specs = args.split("|")
    if layout not in LAYOUT_CHANNELS:
        raise FilterGraphError(f"Unsupported pan layout {layout!r}")
    channels = LAYOUT_CHANNELS[layout]
    terms: Dict[int, List[Tuple[float, int]]] = {}
    for channel_spec in channel_specs:
        target, sep, expr = channel_spec.partition("=")
        if not sep or not target.startswith("c") or not target[1:].isdigit():
            raise FilterGraphError(f"Malformed pan channel spec {channel_spec!r}")
        out_ch = int(target[1:])
        if out_ch >= channels:
            raise FilterGraphError(f"pan output channel c{out_ch} outside {layout}")
        parsed = []
        for term in expr.split("+"):
            match = _PAN_TERM_RE.match(term.strip())
            if not match:
                raise FilterGraphError(f"Malformed pan term {term!r}")
            gain = float(match.group(1)) if match.group(1) else 1.0
            parsed.append((gain, int(match.group(2))))
        terms[out_ch] = parsed
    if sorted(terms) != list(range(channels)):
        raise FilterGraphError(f"pan must define every {layout} output channel")
    return PanSpec(channels=channels, terms=[terms[c] for c in range(channels)])


def _parse_amix(args: str, sources: List[str], label: str) -> MixSpec:
    options = {}
    for option in args.split(":") if args else []:
        key, sep, value = option.partition("=")
        if not sep:
            raise FilterGraphError(f"Malformed amix option {option!r}")
        options[key.strip()] = value.strip()

    try:
        inputs = int(options.get("inputs", "2"))
    except ValueError:
        raise FilterGraphError(f"Invalid amix inputs {options['inputs']!r}")
    if inputs != len(sources):
        raise FilterGraphError(f"amix declares {inputs} inputs but is fed {len(sources)}")

    try:
        duration = DurationPolicy(options.get("duration", "longest"))
    except ValueError:
        raise FilterGraphError(f"Unsupported amix duration {options.get('duration')!r}")

    if "weights" in options:
        try:
            weights = [float(w) for w in options["weights"].split()]
        except ValueError:
            raise FilterGraphError(f"Malformed amix weights {options['weights']!r}")
        if len(weights) != inputs:
            raise FilterGraphError(f"amix has {len(weights)} weights for {inputs} inputs")
    else:
        weights = [1.0] * inputs

    normalize = options.get("normalize", "1") not in ("0", "false")
    return MixSpec(sources=sources, duration=duration, weights=weights, normalize=normalize, label=label)


def parse_filter_graph(description: str) -> GraphPlan:
    """Parse a planner-generated description into an executable plan."""
    inputs: List[InputChain] = []
    mix: Optional[MixSpec] = None

    for chain in description.split(";"):
        match = _CHAIN_RE.match(chain.strip())
        if not match:
            raise FilterGraphError(f"Malformed filter chain {chain!r}")
        sources = _LABEL_RE.findall(match.group(1))
        filters = [f for f in match.group(2).split(",") if f]
        label = match.group(3)

        names = [_split_filter(f)[0] for f in filters]
        if names == ["amix"]:
            if mix is not None:
                raise FilterGraphError("Only one amix stage is supported")
            mix = _parse_amix(_split_filter(filters[0])[1], sources, label)
            continue

        if names != ["aresample", "pan"] or len(sources) != 1:
            raise FilterGraphError(f"Unsupported filter chain {chain!r}")
        source = _SOURCE_RE.match(sources[0])
        if not source:
            raise FilterGraphError(f"Unsupported input label [{sources[0]}]")
        rate_arg = _split_filter(filters[0])[1]
        if not rate_arg.isdigit() or int(rate_arg) <= 0:
            raise FilterGraphError(f"Invalid aresample rate {rate_arg!r}")
        inputs.append(InputChain(
            index=int(source.group(1)),
            sample_rate=int(rate_arg),
            pan=_parse_pan(_split_filter(filters[1])[1]),
            label=label,
        ))

    if mix is None:
        raise FilterGraphError("Description has no amix stage")

    by_label = {chain.label: chain for chain in inputs}
    if sorted(by_label) != sorted(mix.sources) or len(by_label) != len(inputs):
        raise FilterGraphError("amix sources do not match the input chains")
    ordered = [by_label[s] for s in mix.sources]
    if [c.index for c in ordered] != list(range(len(ordered))):
        raise FilterGraphError("Input chains must cover inputs 0..N-1 in mix order")
    return GraphPlan(inputs=ordered, mix=mix)


@dataclass
class _InputStream:
    chain: InputChain
    channels: int
    chunks: Deque[np.ndarray] = field(default_factory=deque)
    pending: int = 0
    ended: bool = False
    resampler: Optional[LinearResampler] = None
    in_channels: int = 0
    matrices: Dict[int, np.ndarray] = field(default_factory=dict)

    @property
    def drained(self) -> bool:
        return self.ended and self.pending == 0

    def feed(self, frame: Frame) -> None:
        if (self.resampler is None
                or self.resampler.in_rate != frame.sample_rate
                or self.in_channels != frame.channels):
            self._flush_resampler()
            self.resampler = LinearResampler(frame.sample_rate, self.chain.sample_rate)
            self.in_channels = frame.channels
        self._append(self.resampler.process(frame.samples))

    def end(self) -> None:
        self._flush_resampler()
        self.ended = True

    def take(self, n: int) -> np.ndarray:
        """Remove and return the oldest ``n`` pending samples (n <= pending)."""
        parts = []
        needed = n
        while needed > 0:
            chunk = self.chunks[0]
            if len(chunk) <= needed:
                parts.append(self.chunks.popleft())
                needed -= len(chunk)
            else:
                parts.append(chunk[:needed])
                self.chunks[0] = chunk[needed:]
                needed = 0
        self.pending -= n
        if not parts:
            return np.zeros((0, self.channels), dtype=np.float32)
        return parts[0] if len(parts) == 1 else np.concatenate(parts)

    def clear(self) -> None:
        self.chunks.clear()
        self.pending = 0
        self.resampler = None

    def _flush_resampler(self) -> None:
        if self.resampler is not None:
            self._append(self.resampler.flush(self.in_channels))

    def _append(self, block: np.ndarray) -> None:
        if len(block) == 0:
            return
        in_channels = block.shape[1]
        if in_channels not in self.matrices:
            self.matrices[in_channels] = self.chain.pan.matrix(in_channels)
        panned = block @ self.matrices[in_channels]
        self.chunks.append(panned.astype(np.float32))
        self.pending += len(panned)


class GraphFilterEngine:
    """
    Executes one filter graph description for the lifetime of a mix.

    push(index, frame) feeds decoded audio for one input; push(index, None)
    marks that input as finished. wants_input(index) tells the caller whether
    that input should be read this round. pull() returns the next mixed frame,
    or None when nothing can be emitted until more input arrives (or ever
    again, once the duration policy is satisfied).
    """

    def __init__(self, description: str, reference: ReferenceFormat, input_count: int, frame_size: int = 1024):
        self.plan = parse_filter_graph(description)
        if len(self.plan.inputs) != input_count:
            raise FilterGraphError(
                f"Description mixes {len(self.plan.inputs)} inputs but {input_count} were opened"
            )
        for chain in self.plan.inputs:
            if chain.sample_rate != reference.sample_rate or chain.pan.channels != reference.channels:
                raise FilterGraphError(
                    f"Input chain [{chain.label}] does not target {reference.sample_rate} Hz / "
                    f"{reference.channels} ch"
                )
        self.reference = reference
        self.frame_size = frame_size
        self._streams = [
            _InputStream(chain=chain, channels=reference.channels)
            for chain in self.plan.inputs
        ]
        self._finished = False
        self._closed = False
        self.frames_emitted = 0

    @property
    def input_count(self) -> int:
        return len(self._streams)

    @property
    def finished(self) -> bool:
        return self._finished

    def pending_samples(self, index: int) -> int:
        """Samples queued for input ``index`` that the mix has not consumed yet."""
        return self._streams[index].pending

    def wants_input(self, index: int) -> bool:
        """
        True while input ``index`` holds less than one output frame.

        An input whose native rate differs from the reference converts to a
        different number of samples per decoded frame than the others. Skipping
        reads of an input that is ahead keeps its queue within about one round
        instead of letting it grow for the whole mix.
        """
        stream = self._streams[index]
        return not (self._closed or self._finished or stream.ended) and stream.pending < self.frame_size

    def push(self, index: int, frame: Optional[Frame]) -> None:
        if self._closed:
            raise StreamError("Filter engine is closed", stream_index=index)
        if not 0 <= index < len(self._streams):
            raise StreamError(f"No input {index} in filter graph", stream_index=index)

        stream = self._streams[index]
        if stream.ended:
            if frame is not None:
                logger.warning(f"[FILTER] Dropping frame pushed to input {index} after end of stream")
            return
        if frame is None:
            stream.end()
            logger.debug(f"[FILTER] Input {index} ended ({stream.pending} samples pending)")
            return
        if self._finished:
            return
        stream.feed(frame)

    def pull(self) -> Optional[Frame]:
        if self._closed or self._finished:
            return None
        if self._duration_satisfied():
            self._finish()
            return None

        participants = [(i, s) for i, s in enumerate(self._streams) if not s.drained]
        n = min(s.pending for _, s in participants)
        if n == 0:
            return None
        n = min(n, self.frame_size)

        weights = self.plan.mix.weights
        acc = np.zeros((n, self.reference.channels), dtype=np.float32)
        weight_sum = 0.0
        for i, stream in participants:
            acc += stream.take(n) * weights[i]
            weight_sum += abs(weights[i])
        if self.plan.mix.normalize and weight_sum > 0:
            acc /= weight_sum

        # Round and clip back to int16
        np.rint(acc, out=acc)
        np.clip(acc, INT16_MIN, INT16_MAX, out=acc)
        self.frames_emitted += 1
        return Frame(samples=acc.astype(np.int16), sample_rate=self.reference.sample_rate)

    def close(self) -> None:
        """Release buffered audio. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        for stream in self._streams:
            stream.clear()
        logger.debug(f"[FILTER] Closed after {self.frames_emitted} frames")

    def _duration_satisfied(self) -> bool:
        duration = self.plan.mix.duration
        if duration is DurationPolicy.SHORTEST:
            return any(s.drained for s in self._streams)
        if duration is DurationPolicy.FIRST:
            return self._streams[0].drained
        return all(s.drained for s in self._streams)

    def _finish(self) -> None:
        self._finished = True
        for stream in self._streams:
            stream.clear()
        logger.debug(f"[FILTER] Mix complete ({self.plan.mix.duration.value})")


def open_filter_engine(description: str, reference: ReferenceFormat, input_count: int,
                       frame_size: int = 1024) -> GraphFilterEngine:
    """Open an engine for the description; unusable descriptions raise ResourceError."""
    try:
        engine = GraphFilterEngine(description, reference, input_count, frame_size=frame_size)
    except FilterGraphError as e:
        raise ResourceError(f"Cannot open filter graph: {e}") from e
    logger.info(f"[FILTER] Opened graph for {input_count} inputs: {description}")
    return engine
