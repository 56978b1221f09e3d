"""
Decode, filter and encode collaborators used by the mix pumps.

- FFmpegDecoder: input file → int16 PCM frames (ffmpeg subprocess)
- GraphFilterEngine: executes planner filter graph descriptions in-process
- FFmpegEncoder: int16 PCM frames → FLAC or MP4/AAC file (ffmpeg subprocess)
"""

from mixplanner.engine.frame import Frame
from mixplanner.engine.decoder import AudioProperties, FFmpegDecoder, open_decoder, probe_audio
from mixplanner.engine.encoder import FFmpegEncoder, open_encoder
from mixplanner.engine.filter_engine import FilterGraphError, GraphFilterEngine, open_filter_engine

__all__ = [
    "Frame",
    "AudioProperties",
    "FFmpegDecoder",
    "open_decoder",
    "probe_audio",
    "FFmpegEncoder",
    "open_encoder",
    "FilterGraphError",
    "GraphFilterEngine",
    "open_filter_engine",
]
