"""
Manual PCM mixer.

Mixes 16-bit PCM by plain arithmetic mean, without a filter graph. Every
input must already be decoded at the reference rate and channel count.
Equal weighting only: there are no weights, no duration policy and no
normalization on this path.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from mixplanner.engine.frame import Frame
from mixplanner.errors import StreamError
from mixplanner.mixer.pump import PumpStats, decode_next, require_surviving_input, write_mixed
from mixplanner.planner.reference_format import ReferenceFormat

logger = logging.getLogger(__name__)

INT16_MIN = -32768
INT16_MAX = 32767


def mix_block(buffers: Sequence[Optional[np.ndarray]], length: int) -> np.ndarray:
    """
    Average interleaved int16 buffers into one block of ``length`` samples.

    At each position only buffers long enough to reach it contribute, and the
    divisor is the number of contributors. The mean is truncated toward zero
    and clamped to the int16 range.
    """
    total = np.zeros(length, dtype=np.int64)
    counts = np.zeros(length, dtype=np.int64)
    for buf in buffers:
        if buf is None:
            continue
        n = min(len(buf), length)
        total[:n] += np.asarray(buf[:n], dtype=np.int64)
        counts[:n] += 1

    mixed = np.zeros(length, dtype=np.int64)
    present = counts > 0
    quotient = np.abs(total[present]) // counts[present]
    mixed[present] = np.where(total[present] < 0, -quotient, quotient)
    np.clip(mixed, INT16_MIN, INT16_MAX, out=mixed)
    return mixed.astype(np.int16)


class ManualPCMPump:
    """
    Round-based loop: one frame from every unfinished input, averaged with
    mix_block(), written to the encoder. Stops when a round yields no samples.
    """

    def __init__(self, decoders: Sequence, encoder, reference: ReferenceFormat,
                 stream_error_policy: str = "degrade"):
        self.decoders = list(decoders)
        self.encoder = encoder
        self.reference = reference
        self.stream_error_policy = stream_error_policy

    def run(self) -> PumpStats:
        stats = PumpStats()
        ended = [False] * len(self.decoders)

        while True:
            buffers = [None] * len(self.decoders)
            max_len = 0
            for index, decoder in enumerate(self.decoders):
                if ended[index]:
                    continue
                frame = decode_next(decoder, index, self.stream_error_policy, stats)
                if frame is None:
                    ended[index] = True
                    continue
                self._check_format(index, frame)
                buffers[index] = frame.samples.reshape(-1)
                max_len = max(max_len, len(buffers[index]))
                stats.frames_fed += 1

            if max_len == 0:
                break  # all inputs finished
            stats.rounds += 1

            mixed = mix_block(buffers, max_len)
            frame = Frame(samples=mixed.reshape(-1, self.reference.channels), sample_rate=self.reference.sample_rate)
            write_mixed(self.encoder, frame, stats)

        require_surviving_input(stats, len(self.decoders))
        logger.info(
            f"[PCM_MIXER] Done after {stats.rounds} rounds: {stats.frames_fed} frames in, "
            f"{stats.frames_written} frames out"
        )
        return stats

    def _check_format(self, index: int, frame: Frame) -> None:
        if frame.channels != self.reference.channels or frame.sample_rate != self.reference.sample_rate:
            raise StreamError(
                f"Input {index} delivered {frame.sample_rate} Hz/{frame.channels} ch, "
                f"expected {self.reference.sample_rate} Hz/{self.reference.channels} ch",
                stream_index=index,
            )
