"""
FFmpeg-backed audio decoder.

Probes an input with ffprobe, then decodes it to raw s16le PCM through an
ffmpeg subprocess, one fixed-size frame at a time.
"""

import json
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from mixplanner.engine.frame import BYTES_PER_SAMPLE, Frame
from mixplanner.errors import ResourceError, StreamError
from mixplanner.planner.reference_format import DEFAULT_SAMPLE_RATE

logger = logging.getLogger(__name__)

FALLBACK_CHANNELS = 2
STDERR_TAIL_BYTES = 2048


@dataclass(frozen=True)
class AudioProperties:
    """Properties reported by ffprobe; 0 / None mean unknown."""
    sample_rate: int
    channels: int
    sample_format: Optional[str]


def read_stderr_tail(handle) -> str:
    """Return the last bytes ffmpeg wrote to a temp-file stderr, decoded."""
    if handle is None or handle.closed:
        return ""
    try:
        handle.flush()
        size = handle.seek(0, os.SEEK_END)
        handle.seek(max(0, size - STDERR_TAIL_BYTES))
        return handle.read().decode("utf-8", errors="replace").strip()
    except (OSError, ValueError):
        return ""


def probe_audio(path: str, ffprobe_bin: str = "ffprobe") -> AudioProperties:
    """
    Read sample rate, channel count and sample format of the first audio stream.

    Raises:
        ResourceError: If the file is missing, ffprobe fails, or there is no audio stream
    """
    if not Path(path).exists():
        raise ResourceError(f"Input not found: {path}")

    cmd = [
        ffprobe_bin,
        "-v", "error",
        "-select_streams", "a:0",
        "-show_entries", "stream=sample_rate,channels,sample_fmt",
        "-of", "json",
        str(path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as e:
        raise ResourceError(f"Cannot run {ffprobe_bin}: {e}") from e

    if result.returncode != 0:
        raise ResourceError(f"ffprobe failed for {path} (exit {result.returncode}): {result.stderr.strip()}")

    try:
        streams = json.loads(result.stdout or "{}").get("streams") or []
    except json.JSONDecodeError as e:
        raise ResourceError(f"Unreadable ffprobe output for {path}: {e}") from e
    if not streams:
        raise ResourceError(f"No audio stream in {path}")

    stream = streams[0]
    try:
        sample_rate = int(stream.get("sample_rate") or 0)
    except (TypeError, ValueError):
        sample_rate = 0
    try:
        channels = int(stream.get("channels") or 0)
    except (TypeError, ValueError):
        channels = 0
    return AudioProperties(
        sample_rate=sample_rate,
        channels=channels,
        sample_format=stream.get("sample_fmt") or None,
    )


class FFmpegDecoder:
    """
    Decodes one input file to PCM frames.

    - open() probes the file; decoding starts lazily on the first next_frame()
    - Output is s16le at the input's own rate and channel count unless
      set_output_format() asked ffmpeg to convert
    - next_frame() returns int16 frames of frame_size samples (the last one may
      be shorter) and None at end of stream
    """

    def __init__(self, path: str, frame_size: int = 1024, ffmpeg_bin: str = "ffmpeg",
                 ffprobe_bin: str = "ffprobe"):
        self.path = str(path)
        self.frame_size = frame_size
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.proc: Optional[subprocess.Popen] = None
        self.output_sample_rate: Optional[int] = None
        self.output_channels: Optional[int] = None
        self.frames_decoded = 0
        self._props: Optional[AudioProperties] = None
        self._stderr = None
        self._eof = False

    def open(self) -> "FFmpegDecoder":
        self._props = probe_audio(self.path, self.ffprobe_bin)
        self.output_sample_rate = self._props.sample_rate if self._props.sample_rate > 0 else DEFAULT_SAMPLE_RATE
        self.output_channels = self._props.channels if self._props.channels > 0 else FALLBACK_CHANNELS
        logger.info(
            f"[DECODER] Opened {self.path} ({self._props.sample_rate} Hz, "
            f"{self._props.channels} ch, {self._props.sample_format})"
        )
        return self

    def properties(self) -> Tuple[int, int, Optional[str]]:
        """(sample_rate, channels, sample_format) as reported by the input."""
        if self._props is None:
            raise RuntimeError("Decoder is not open")
        return self._props.sample_rate, self._props.channels, self._props.sample_format

    def set_output_format(self, sample_rate: int, channels: int) -> None:
        """Have ffmpeg convert to this rate/layout. Only valid before decoding starts."""
        if self.proc is not None:
            raise RuntimeError("Output format cannot change after decoding started")
        self.output_sample_rate = sample_rate
        self.output_channels = channels

    def build_command(self) -> List[str]:
        return [
            self.ffmpeg_bin,
            "-hide_banner",
            "-nostdin",
            "-loglevel", "error",
            "-i", self.path,
            "-vn",
            "-map", "0:a:0",
            "-f", "s16le",
            "-acodec", "pcm_s16le",
            "-ar", str(self.output_sample_rate),
            "-ac", str(self.output_channels),
            "pipe:1",
        ]

    def next_frame(self) -> Optional[Frame]:
        if self._eof:
            return None
        if self.proc is None:
            self._start()
        assert self.proc is not None and self.proc.stdout is not None

        sample_bytes = self.output_channels * BYTES_PER_SAMPLE
        data = self._read_exactly(self.frame_size * sample_bytes)
        # Drop a trailing partial sample, if any
        usable = len(data) - len(data) % sample_bytes
        if usable == 0:
            self._eof = True
            self._check_exit()
            return None

        self.frames_decoded += 1
        return Frame.from_bytes(data[:usable], self.output_sample_rate, self.output_channels)

    def close(self) -> None:
        """
        Clean up the ffmpeg process.

        Closes stdout and terminates/kills the process if still running.
        Safe to call multiple times.
        """
        if self.proc is not None:
            try:
                if self.proc.stdout:
                    self.proc.stdout.close()
            finally:
                if self.proc.poll() is None:
                    try:
                        self.proc.terminate()
                        self.proc.wait(timeout=2)
                    except subprocess.TimeoutExpired:
                        logger.warning(f"[DECODER] FFmpeg process didn't terminate, killing: {self.path}")
                        self.proc.kill()
                        self.proc.wait(timeout=1)
                self.proc = None
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None
        self._eof = True

    def _start(self) -> None:
        cmd = self.build_command()
        logger.debug(f"[DECODER] Starting: {' '.join(cmd)}")
        self._stderr = tempfile.TemporaryFile()
        try:
            self.proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=self._stderr,
            )
        except OSError as e:
            raise StreamError(f"Cannot start {self.ffmpeg_bin} for {self.path}: {e}") from e

    def _read_exactly(self, size: int) -> bytes:
        buffer = bytearray()
        while len(buffer) < size:
            chunk = self.proc.stdout.read(size - len(buffer))
            if not chunk:
                break
            buffer.extend(chunk)
        return bytes(buffer)

    def _check_exit(self) -> None:
        returncode = self.proc.wait()
        if returncode != 0:
            raise StreamError(
                f"ffmpeg exited with {returncode} while decoding {self.path}: "
                f"{read_stderr_tail(self._stderr)}"
            )
        logger.debug(f"[DECODER] {self.path} finished after {self.frames_decoded} frames")


def open_decoder(path: str, frame_size: int = 1024, ffmpeg_bin: str = "ffmpeg",
                 ffprobe_bin: str = "ffprobe") -> FFmpegDecoder:
    return FFmpegDecoder(path, frame_size=frame_size, ffmpeg_bin=ffmpeg_bin, ffprobe_bin=ffprobe_bin).open()
