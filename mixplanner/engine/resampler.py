"""
Streaming linear-interpolation resampler used by the filter engine's
``aresample`` stage.

State carries across calls so frame boundaries do not introduce clicks or
drop samples.
"""

import math

import numpy as np


class LinearResampler:
    """
    Resample float32 blocks shaped (N, channels) from in_rate to out_rate.

    Output sample k sits at input position ``k * in_rate / out_rate``.
    """

    def __init__(self, in_rate: int, out_rate: int):
        if in_rate <= 0 or out_rate <= 0:
            raise ValueError(f"Sample rates must be positive (in={in_rate}, out={out_rate})")
        self.in_rate = in_rate
        self.out_rate = out_rate
        self.step = in_rate / out_rate
        self._buffer = None
        self._position = 0.0  # next output position relative to _buffer[0]

    @property
    def passthrough(self) -> bool:
        return self.in_rate == self.out_rate

    def process(self, samples: np.ndarray) -> np.ndarray:
        samples = np.asarray(samples, dtype=np.float32)
        if self.passthrough:
            return samples

        if self._buffer is None or len(self._buffer) == 0:
            buffer = samples
        else:
            buffer = np.concatenate([self._buffer, samples])

        n = len(buffer)
        # Interpolation needs the sample after each position
        count = math.ceil((n - 1 - self._position) / self.step) if n >= 2 else 0
        if count <= 0:
            self._buffer = buffer
            return np.zeros((0, samples.shape[1]), dtype=np.float32)

        out = _interpolate(buffer, self._position, self.step, count)

        next_position = self._position + count * self.step
        drop = min(int(math.floor(next_position)), n)
        self._buffer = buffer[drop:]
        self._position = next_position - drop
        return out

    def flush(self, channels: int) -> np.ndarray:
        """Emit the tail held back for interpolation and reset."""
        buffer, position = self._buffer, self._position
        self._buffer = None
        self._position = 0.0
        if self.passthrough or buffer is None or len(buffer) == 0:
            return np.zeros((0, channels), dtype=np.float32)

        count = math.ceil((len(buffer) - position) / self.step)
        if count <= 0:
            return np.zeros((0, buffer.shape[1]), dtype=np.float32)
        return _interpolate(buffer, position, self.step, count)


def _interpolate(buffer: np.ndarray, position: float, step: float, count: int) -> np.ndarray:
    n = len(buffer)
    positions = position + np.arange(count, dtype=np.float64) * step
    left = np.clip(np.floor(positions).astype(np.int64), 0, n - 1)
    right = np.minimum(left + 1, n - 1)
    frac = (positions - left).astype(np.float32)[:, None]
    return buffer[left] * (1.0 - frac) + buffer[right] * frac
