"""
FFmpeg-backed encoder.

Writes s16le PCM frames to an ffmpeg subprocess over stdin, which encodes
them into the output container (FLAC, or AAC in MP4 with fast start).
"""

import logging
import subprocess
import tempfile
from typing import List, Optional

from mixplanner.engine.decoder import read_stderr_tail
from mixplanner.engine.frame import Frame
from mixplanner.errors import ResourceError, StreamError
from mixplanner.planner.reference_format import ReferenceFormat
from mixplanner.planner.request import OutputFormat, Quality

logger = logging.getLogger(__name__)


class FFmpegEncoder:
    """
    Encodes reference-format PCM frames into the output file.

    The encoder owns a single ffmpeg process. finish() completes the file and
    checks ffmpeg's exit status; close() tears the process down and is safe to
    call at any time, any number of times.
    """

    def __init__(
        self,
        path: str,
        output_format: OutputFormat,
        reference: ReferenceFormat,
        quality: Quality,
        ffmpeg_bin: str = "ffmpeg",
        overwrite: bool = True,
    ):
        self.path = str(path)
        self.output_format = output_format
        self.reference = reference
        self.quality = quality
        self.ffmpeg_bin = ffmpeg_bin
        self.overwrite = overwrite
        self.proc: Optional[subprocess.Popen] = None
        self.frames_written = 0
        self.samples_written = 0
        self._stderr = None
        self._finished = False

    def build_command(self) -> List[str]:
        fmt = self.output_format
        cmd = [
            self.ffmpeg_bin,
            "-hide_banner",
            "-nostdin",
            "-loglevel", "error",
            "-y" if self.overwrite else "-n",
            "-f", "s16le",
            "-ar", str(self.reference.sample_rate),
            "-ac", str(self.reference.channels),
            "-i", "pipe:0",
            "-c:a", fmt.codec,
        ]
        if fmt.lossless:
            cmd += ["-compression_level", str(self.quality)]
        else:
            cmd += ["-b:a", str(self.quality)]
        if fmt.movflags:
            cmd += ["-movflags", fmt.movflags]
        cmd += ["-f", fmt.container, self.path]
        return cmd

    def open(self) -> "FFmpegEncoder":
        cmd = self.build_command()
        logger.debug(f"[ENCODER] Starting: {' '.join(cmd)}")
        self._stderr = tempfile.TemporaryFile()
        try:
            self.proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=self._stderr,
            )
        except OSError as e:
            self._stderr.close()
            self._stderr = None
            raise ResourceError(f"Cannot start {self.ffmpeg_bin} for {self.path}: {e}") from e
        logger.info(
            f"[ENCODER] Writing {self.path} ({self.output_format.codec}, "
            f"{self.reference.sample_rate} Hz, {self.reference.channels} ch, quality={self.quality})"
        )
        return self

    def write_frame(self, frame: Frame) -> None:
        if self.proc is None or self.proc.stdin is None or self._finished:
            raise StreamError("Encoder is not open")
        if frame.channels != self.reference.channels or frame.sample_rate != self.reference.sample_rate:
            raise StreamError(
                f"Frame format {frame.sample_rate} Hz/{frame.channels} ch does not match "
                f"encoder format {self.reference.sample_rate} Hz/{self.reference.channels} ch"
            )
        try:
            self.proc.stdin.write(frame.to_bytes())
        except (BrokenPipeError, OSError) as e:
            raise StreamError(f"Encoder write failed for {self.path}: {e} {read_stderr_tail(self._stderr)}") from e
        self.frames_written += 1
        self.samples_written += frame.num_samples

    def finish(self) -> None:
        """Close stdin so ffmpeg finalizes the file, then check its exit status."""
        if self.proc is None or self._finished:
            return
        self._finished = True
        try:
            self.proc.stdin.close()
        except (BrokenPipeError, OSError) as e:
            raise StreamError(f"Encoder finalize failed for {self.path}: {e}") from e
        returncode = self.proc.wait()
        if returncode != 0:
            raise StreamError(
                f"ffmpeg exited with {returncode} while encoding {self.path}: "
                f"{read_stderr_tail(self._stderr)}"
            )
        logger.info(f"[ENCODER] Finished {self.path} ({self.frames_written} frames, {self.samples_written} samples)")

    def close(self) -> None:
        """Stop the ffmpeg process if it is still running. Safe to call multiple times."""
        if self.proc is not None:
            try:
                if self.proc.stdin and not self.proc.stdin.closed:
                    self.proc.stdin.close()
            except (BrokenPipeError, OSError) as e:
                logger.debug(f"[ENCODER] stdin close failed during teardown: {e}")
            if self.proc.poll() is None:
                try:
                    self.proc.terminate()
                    self.proc.wait(timeout=2)
                except subprocess.TimeoutExpired:
                    logger.warning(f"[ENCODER] FFmpeg process didn't terminate, killing: {self.path}")
                    self.proc.kill()
                    self.proc.wait(timeout=1)
            self.proc = None
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None


def open_encoder(path: str, output_format: OutputFormat, reference: ReferenceFormat, quality: Quality,
                 ffmpeg_bin: str = "ffmpeg", overwrite: bool = True) -> FFmpegEncoder:
    return FFmpegEncoder(
        path, output_format, reference, quality, ffmpeg_bin=ffmpeg_bin, overwrite=overwrite
    ).open()
