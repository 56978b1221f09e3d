"""
Shared pytest fixtures for Mix Planner contract tests.

Contract tests use test doubles (fakes, stubs, mocks) to avoid real
dependencies: no ffmpeg binaries, no real audio files, no ambient
MIXPLANNER_* environment.
"""

import os

import pytest

from mixplanner.config import MixConfig
from mixplanner.mixer.service import MixPlanner
from mixplanner.planner.reference_format import ReferenceFormat
from mixplanner.tests.contracts.test_doubles import RecordingEncoder, StubDecoder, make_frames

# Canonical test format
TEST_SAMPLE_RATE = 48000
TEST_CHANNELS = 2
TEST_FRAME_SIZE = 1024


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Strip MIXPLANNER_* variables and point the env file somewhere empty."""
    for key in list(os.environ):
        if key.startswith("MIXPLANNER_") or key == "FFMPEG_BIN":
            monkeypatch.delenv(key)
    monkeypatch.setenv("MIXPLANNER_ENV_FILE", str(tmp_path / "missing.env"))


@pytest.fixture
def stereo_reference():
    return ReferenceFormat(sample_rate=TEST_SAMPLE_RATE, channels=TEST_CHANNELS)


@pytest.fixture
def events():
    """Shared list collecting close/finish calls in order."""
    return []


@pytest.fixture
def stub_decoders(events):
    """Two stereo 48 kHz inputs: constant 1000 for 3 frames, constant 3000 for 3 frames."""
    return {
        "/fake/a.wav": StubDecoder(make_frames(3, value=1000), name="a", events=events),
        "/fake/b.wav": StubDecoder(make_frames(3, value=3000), name="b", events=events),
    }


@pytest.fixture
def recording_encoder(events):
    return RecordingEncoder(events=events)


@pytest.fixture
def encoder_calls():
    """Arguments each encoder factory call received."""
    return []


@pytest.fixture
def planner_factory(stub_decoders, recording_encoder, encoder_calls):
    """Build a MixPlanner wired to the stub decoders and recording encoder."""

    def build(config=None, decoders=None, encoder=None, filter_factory=None):
        decoders = decoders if decoders is not None else stub_decoders
        encoder = encoder if encoder is not None else recording_encoder

        def open_encoder(path, output_format, reference, quality):
            encoder_calls.append((path, output_format, reference, quality))
            return encoder

        kwargs = {}
        if filter_factory is not None:
            kwargs["filter_factory"] = filter_factory
        return MixPlanner(
            config or MixConfig(),
            decoder_factory=lambda path: decoders[path],
            encoder_factory=open_encoder,
            **kwargs,
        )

    return build
