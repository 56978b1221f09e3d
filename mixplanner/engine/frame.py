from dataclasses import dataclass

import numpy as np

BYTES_PER_SAMPLE = 2  # s16le


@dataclass
class Frame:
    """
    A block of decoded or mixed audio.

    samples is an int16 array shaped (N, channels); sample_rate is in Hz.
    """

    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1])

    @property
    def num_samples(self) -> int:
        return int(self.samples.shape[0])

    @classmethod
    def from_bytes(cls, data: bytes, sample_rate: int, channels: int) -> "Frame":
        """Build a frame from raw s16le interleaved PCM."""
        samples = np.frombuffer(data, dtype="<i2").astype(np.int16).reshape(-1, channels)
        return cls(samples=samples, sample_rate=sample_rate)

    def to_bytes(self) -> bytes:
        """Raw s16le interleaved PCM."""
        return np.ascontiguousarray(self.samples, dtype="<i2").tobytes()
