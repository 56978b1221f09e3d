"""
Mix pump: drives decoders → filter engine → encoder until every input is
exhausted or the duration policy is met, then flushes whatever the filter
engine still holds.

Single-threaded and synchronous. Frames are fed to the filter engine in
stream order every round and mixed frames are written in emission order.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from mixplanner.errors import MixError, StreamError

logger = logging.getLogger(__name__)


class StreamState(enum.Enum):
    """Per-input pump state. ENDED is terminal."""
    ACTIVE = 1
    ENDED = 2


@dataclass
class PumpStats:
    """Counters collected during one pump run."""
    rounds: int = 0
    frames_fed: int = 0
    frames_written: int = 0
    samples_written: int = 0
    flushed_frames: int = 0
    held_reads: int = 0
    failed_streams: List[int] = field(default_factory=list)


def decode_next(decoder, index: int, policy: str, stats: PumpStats):
    """
    Decode one frame from an input.

    Returns the frame, or None when the stream is over. With the "degrade"
    policy a decode failure is logged and reported as end of stream; with
    "abort" it raises StreamError.
    """
    try:
        return decoder.next_frame()
    except Exception as e:
        if policy != "degrade":
            if isinstance(e, StreamError):
                raise
            raise StreamError(f"Decoding input {index} failed: {e}", stream_index=index) from e
        logger.error(f"[PUMP] Input {index} failed, continuing without it: {e}", exc_info=True)
        stats.failed_streams.append(index)
        return None


def write_mixed(encoder, frame, stats: PumpStats) -> None:
    try:
        encoder.write_frame(frame)
    except MixError:
        raise
    except Exception as e:
        raise StreamError(f"Encoder write failed: {e}") from e
    stats.frames_written += 1
    stats.samples_written += frame.num_samples


def require_surviving_input(stats: PumpStats, input_count: int) -> None:
    """Raise StreamError when the "degrade" policy has dropped every input."""
    if input_count and len(set(stats.failed_streams)) >= input_count:
        raise StreamError(f"All {input_count} inputs failed to decode, nothing left to mix")


class MixPump:
    """
    Pumps frames through the filter engine.

    Each round decodes one frame from every ACTIVE input the engine still
    wants and pushes it tagged with the input index (end of stream is pushed
    as None), then drains every frame the engine will emit into the encoder.
    An input that already holds a full output frame is held for that round.
    The loop stops once every input has ENDED, the engine has finished its
    duration policy, or a round made no progress.
    """

    def __init__(self, decoders: Sequence, engine, encoder, stream_error_policy: str = "degrade"):
        self.decoders = list(decoders)
        self.engine = engine
        self.encoder = encoder
        self.stream_error_policy = stream_error_policy

    def run(self) -> PumpStats:
        stats = PumpStats()
        states = [StreamState.ACTIVE] * len(self.decoders)

        while StreamState.ACTIVE in states:
            stats.rounds += 1
            fed = 0
            held = 0
            for index, decoder in enumerate(self.decoders):
                if states[index] is StreamState.ENDED:
                    continue
                if not self.engine.wants_input(index):
                    held += 1
                    continue
                frame = decode_next(decoder, index, self.stream_error_policy, stats)
                if frame is None:
                    states[index] = StreamState.ENDED
                    logger.debug(f"[PUMP] Input {index} ended in round {stats.rounds}")
                    self._push(index, None)
                    continue
                self._push(index, frame)
                fed += 1
            stats.frames_fed += fed
            stats.held_reads += held

            drained = self._drain(stats)

            if self.engine.finished:
                if StreamState.ACTIVE in states:
                    logger.debug(f"[PUMP] Mix complete in round {stats.rounds}, not reading remaining inputs")
                break
            if fed == 0 and (held == 0 or drained == 0):
                break

        # Flush: end any input still open and collect the engine's tail
        for index, state in enumerate(states):
            if state is StreamState.ACTIVE:
                states[index] = StreamState.ENDED
                self._push(index, None)
        stats.flushed_frames = self._drain(stats)
        require_surviving_input(stats, len(self.decoders))

        logger.info(
            f"[PUMP] Done after {stats.rounds} rounds: {stats.frames_fed} frames in, "
            f"{stats.frames_written} frames out ({stats.flushed_frames} flushed, {stats.held_reads} reads held)"
        )
        return stats

    def _push(self, index: int, frame: Optional[object]) -> None:
        try:
            self.engine.push(index, frame)
        except MixError:
            raise
        except Exception as e:
            raise StreamError(f"Filter engine rejected input {index}: {e}", stream_index=index) from e

    def _drain(self, stats: PumpStats) -> int:
        drained = 0
        while True:
            try:
                frame = self.engine.pull()
            except MixError:
                raise
            except Exception as e:
                raise StreamError(f"Filter engine failed: {e}") from e
            if frame is None:
                return drained
            write_mixed(self.encoder, frame, stats)
            drained += 1
