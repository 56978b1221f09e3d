"""
Mix service: the caller-facing mix operation.

Opens every collaborator for one mix, registers its release with an
ExitStack so that filter engine, encoder and decoders are closed in that
order on every exit path, and runs the matching pump.
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from mixplanner.config import MixConfig
from mixplanner.engine.decoder import open_decoder
from mixplanner.engine.encoder import open_encoder
from mixplanner.engine.filter_engine import open_filter_engine
from mixplanner.errors import CleanupError, ConfigurationError, MixError, ResourceError
from mixplanner.mixer.pcm_mixer import ManualPCMPump
from mixplanner.mixer.pump import MixPump, PumpStats
from mixplanner.planner.filter_graph import FilterGraphDescription, FilterGraphParams, build_filter_graph
from mixplanner.planner.reference_format import ReferenceFormat, resolve_reference_format
from mixplanner.planner.request import DurationPolicy, MixRequest, Quality, build_request

logger = logging.getLogger(__name__)

MANUAL_PCM_MIN_INPUTS = 2


@dataclass
class MixResult:
    """Outcome of a successful mix."""
    output: str
    reference: ReferenceFormat
    graph: Optional[FilterGraphDescription]
    stats: PumpStats
    elapsed_sec: float
    cleanup_errors: List[CleanupError] = field(default_factory=list)

    @property
    def frames_written(self) -> int:
        return self.stats.frames_written

    @property
    def samples_written(self) -> int:
        return self.stats.samples_written

    @property
    def duration_sec(self) -> float:
        return self.stats.samples_written / self.reference.sample_rate


def _release(handle, name: str, errors: List[CleanupError]) -> None:
    """Close one resource; failures are logged and collected, never raised."""
    try:
        handle.close()
    except Exception as e:
        error = CleanupError(name, e)
        errors.append(error)
        logger.warning(f"[CLEANUP] {error}", exc_info=True)


def _acquire(name: str, opener: Callable[[], object]):
    """Run an opener, reporting any non-MixError failure as ResourceError."""
    try:
        return opener()
    except MixError:
        raise
    except Exception as e:
        raise ResourceError(f"Cannot open {name}: {e}") from e


class MixPlanner:
    """
    Mixes several audio files into one FLAC or MP4/AAC file.

    Collaborator factories default to the ffmpeg-backed decoder/encoder and the
    in-process filter engine; tests swap in doubles.

    Example:
        >>> planner = MixPlanner(MixConfig.load_config())
        >>> request = build_request(["a.m4a", "b.m4a"], "mixed.flac", weights=[1.0, 0.5])
        >>> result = planner.mix(request)
    """

    def __init__(
        self,
        config: Optional[MixConfig] = None,
        decoder_factory: Optional[Callable] = None,
        encoder_factory: Optional[Callable] = None,
        filter_factory: Optional[Callable] = None,
    ):
        self.config = config or MixConfig()
        self.decoder_factory = decoder_factory or self._open_ffmpeg_decoder
        self.encoder_factory = encoder_factory or self._open_ffmpeg_encoder
        self.filter_factory = filter_factory or open_filter_engine

    # ---------------------
    # Public API
    # ---------------------
    def mix(self, request: MixRequest) -> MixResult:
        """
        Mix through a filter graph (resample, remap, amix).

        Raises:
            ConfigurationError: Bad request or settings (nothing was opened)
            ResourceError: A decoder, the encoder or the filter engine could not be opened
            StreamError: Decoding (with the "abort" policy, or of every input) or encoding
                failed mid-stream
        """
        self._check_output(request)
        started = time.monotonic()
        cleanup_errors: List[CleanupError] = []
        logger.info(f"[MIX] Inputs: {list(request.inputs)}")
        logger.info(f"[MIX] Output: {request.output}")

        with ExitStack() as stack:
            decoders = self._open_decoders(request, stack, cleanup_errors)
            reference = self._resolve_reference(decoders[0])
            graph = build_filter_graph(FilterGraphParams.from_request(request, reference))

            encoder = self._open_encoder(request, reference, stack, cleanup_errors)
            engine = _acquire("filter engine", lambda: self.filter_factory(
                graph, reference, len(decoders), self.config.frame_size
            ))
            stack.callback(_release, engine, "filter engine", cleanup_errors)

            stats = MixPump(decoders, engine, encoder, self.config.stream_error_policy).run()
            encoder.finish()

        return self._result(request, reference, graph, stats, started, cleanup_errors)

    def mix_manual(self, request: MixRequest) -> MixResult:
        """
        Mix by averaging raw PCM in-process; needs at least two inputs.

        Weights, duration policy and normalize are not applied on this path.
        """
        request.require_inputs(MANUAL_PCM_MIN_INPUTS)
        self._check_output(request)
        if request.weights is not None or request.duration is not DurationPolicy.LONGEST:
            logger.warning("[MIX] Manual PCM mixing ignores weights and duration policy")
        started = time.monotonic()
        cleanup_errors: List[CleanupError] = []
        logger.info(f"[MIX] Inputs: {list(request.inputs)}")
        logger.info(f"[MIX] Output: {request.output}")

        with ExitStack() as stack:
            decoders = self._open_decoders(request, stack, cleanup_errors)
            reference = self._resolve_reference(decoders[0])
            for decoder in decoders:
                decoder.set_output_format(reference.sample_rate, reference.channels)

            encoder = self._open_encoder(request, reference, stack, cleanup_errors)
            stats = ManualPCMPump(decoders, encoder, reference, self.config.stream_error_policy).run()
            encoder.finish()

        return self._result(request, reference, None, stats, started, cleanup_errors)

    # ---------------------
    # Internals
    # ---------------------
    def _check_output(self, request: MixRequest) -> None:
        if not self.config.overwrite and Path(request.output).exists():
            raise ConfigurationError(f"Output file already exists: {request.output}")

    def _open_decoders(self, request: MixRequest, stack: ExitStack, errors: List[CleanupError]) -> list:
        decoders = []
        for index, path in enumerate(request.inputs):
            decoder = _acquire(f"decoder for {path}", lambda p=path: self.decoder_factory(p))
            stack.callback(_release, decoder, f"decoder[{index}]", errors)
            decoders.append(decoder)
        return decoders

    def _open_encoder(self, request: MixRequest, reference: ReferenceFormat, stack: ExitStack,
                      errors: List[CleanupError]):
        output_format = request.output_format
        quality = self._quality_for(request)
        encoder = _acquire(f"encoder for {request.output}", lambda: self.encoder_factory(
            request.output, output_format, reference, quality
        ))
        stack.callback(_release, encoder, "encoder", errors)
        return encoder

    def _resolve_reference(self, first_decoder) -> ReferenceFormat:
        sample_rate, channels, sample_format = first_decoder.properties()
        reference = resolve_reference_format(
            sample_rate, channels, sample_format, default_channels=self.config.default_channels
        )
        logger.info(
            f"[MIX] Reference: {reference.sample_rate} Hz, {reference.channels} ch, {reference.sample_format}"
        )
        return reference

    def _quality_for(self, request: MixRequest) -> Quality:
        if request.quality is not None:
            return request.quality
        if request.output_format.lossless:
            return self.config.flac_compression_level
        return self.config.aac_bitrate

    def _result(self, request, reference, graph, stats, started, cleanup_errors) -> MixResult:
        elapsed = time.monotonic() - started
        logger.info(f"[MIX] Done: {request.output} ({stats.samples_written} samples in {elapsed:.2f}s)")
        return MixResult(
            output=request.output,
            reference=reference,
            graph=graph,
            stats=stats,
            elapsed_sec=elapsed,
            cleanup_errors=cleanup_errors,
        )

    def _open_ffmpeg_decoder(self, path: str):
        return open_decoder(
            path,
            frame_size=self.config.frame_size,
            ffmpeg_bin=self.config.ffmpeg_bin,
            ffprobe_bin=self.config.ffprobe_bin,
        )

    def _open_ffmpeg_encoder(self, path, output_format, reference, quality):
        return open_encoder(
            path,
            output_format,
            reference,
            quality,
            ffmpeg_bin=self.config.ffmpeg_bin,
            overwrite=self.config.overwrite,
        )


def mix(
    inputs: Sequence[Union[str, Path]],
    output: Union[str, Path],
    weights: Optional[Sequence[float]] = None,
    duration: Union[str, DurationPolicy] = DurationPolicy.LONGEST,
    normalize: bool = True,
    quality: Optional[Quality] = None,
    config: Optional[MixConfig] = None,
) -> MixResult:
    """Mix ``inputs`` into ``output`` through the filter graph path."""
    request = build_request(inputs, output, weights=weights, duration=duration,
                            normalize=normalize, quality=quality)
    return MixPlanner(config).mix(request)
