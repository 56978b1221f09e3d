"""
Contract tests for the manual PCM mixer.

Covers:
- PM1: Arithmetic mean of contributing inputs
- PM2: Truncation toward zero and int16 clamping
- PM3: Round loop and format checks
"""

import numpy as np
import pytest

from mixplanner.errors import StreamError
from mixplanner.mixer.pcm_mixer import ManualPCMPump, mix_block
from mixplanner.planner.reference_format import ReferenceFormat
from mixplanner.tests.contracts.test_doubles import RecordingEncoder, StubDecoder, make_frames

STEREO_48K = ReferenceFormat(48000, 2)


def block(*values):
    return np.array(values, dtype=np.int16)


class TestPM1_Mean:
    """Tests for PM1: Arithmetic mean of contributing inputs."""

    @pytest.mark.parametrize("value", [0, 1, -1, 1234, -32768, 32767])
    def test_pm1_equal_inputs_give_same_value(self, value):
        mixed = mix_block([np.full(8, value, dtype=np.int16)] * 3, 8)
        assert np.all(mixed == value)

    def test_pm1_mean_of_two(self):
        assert list(mix_block([block(1000, 2000), block(3000, 4000)], 2)) == [2000, 3000]

    def test_pm1_short_buffer_excluded_past_its_end(self):
        """PM1: Past the end of a shorter buffer the divisor shrinks instead of padding with zeros."""
        mixed = mix_block([block(100, 100, 100, 100), block(300, 300)], 4)
        assert list(mixed) == [200, 200, 100, 100]

    def test_pm1_missing_buffers_ignored(self):
        mixed = mix_block([None, block(500, 700), None], 2)
        assert list(mixed) == [500, 700]

    def test_pm1_no_contributors_is_silence(self):
        assert list(mix_block([None, None], 3)) == [0, 0, 0]


class TestPM2_Rounding:
    """Tests for PM2: Truncation toward zero and int16 clamping."""

    @pytest.mark.parametrize("a,b,expected", [(-3, 0, -1), (3, 0, 1), (-1, 0, 0), (1, 2, 1), (-1, -2, -1)])
    def test_pm2_truncates_toward_zero(self, a, b, expected):
        assert list(mix_block([block(a), block(b)], 1)) == [expected]

    def test_pm2_extremes_stay_in_range(self):
        assert list(mix_block([block(32767), block(32767)], 1)) == [32767]
        assert list(mix_block([block(-32768), block(-32768)], 1)) == [-32768]

    def test_pm2_output_is_int16(self):
        assert mix_block([block(1, 2)], 2).dtype == np.int16


class TestPM3_Pump:
    """Tests for PM3: Round loop and format checks."""

    def test_pm3_mixes_until_all_inputs_end(self):
        decoders = [
            StubDecoder(make_frames(2, value=1000)),
            StubDecoder(make_frames(3, value=3000)),
        ]
        encoder = RecordingEncoder()

        stats = ManualPCMPump(decoders, encoder, STEREO_48K).run()

        assert stats.rounds == 3
        assert stats.frames_fed == 5
        assert stats.samples_written == 3 * 1024
        out = encoder.samples
        assert out.shape == (3 * 1024, 2)
        assert np.all(out[:2048] == 2000)
        assert np.all(out[2048:] == 3000)

    def test_pm3_partial_last_frame(self):
        decoders = [
            StubDecoder(make_frames(1, value=1000, num_samples=1024)),
            StubDecoder(make_frames(1, value=3000, num_samples=512)),
        ]
        encoder = RecordingEncoder()

        ManualPCMPump(decoders, encoder, STEREO_48K).run()

        out = encoder.samples
        assert out.shape == (1024, 2)
        assert np.all(out[:512] == 2000)
        assert np.all(out[512:] == 1000)

    def test_pm3_format_mismatch_is_stream_error(self):
        decoders = [
            StubDecoder(make_frames(1)),
            StubDecoder(make_frames(1, channels=1)),
        ]
        with pytest.raises(StreamError) as exc_info:
            ManualPCMPump(decoders, RecordingEncoder(), STEREO_48K).run()
        assert exc_info.value.stream_index == 1

    def test_pm3_empty_inputs_write_nothing(self):
        encoder = RecordingEncoder()
        stats = ManualPCMPump([StubDecoder([]), StubDecoder([])], encoder, STEREO_48K).run()
        assert stats.rounds == 0
        assert encoder.frames == []

    def test_pm3_degrade_continues_with_remaining_input(self):
        decoders = [
            StubDecoder(make_frames(2, value=1000)),
            StubDecoder(make_frames(2, value=3000), fail_at=1),
        ]
        encoder = RecordingEncoder()

        stats = ManualPCMPump(decoders, encoder, STEREO_48K, stream_error_policy="degrade").run()

        assert stats.failed_streams == [1]
        assert np.all(encoder.samples[:1024] == 2000)
        assert np.all(encoder.samples[1024:] == 1000)

    def test_pm3_degrade_with_every_input_failed(self):
        decoders = [
            StubDecoder(make_frames(2, value=1000), fail_at=1),
            StubDecoder(make_frames(2, value=3000), fail_at=0),
        ]
        encoder = RecordingEncoder()
        with pytest.raises(StreamError, match="All 2 inputs failed"):
            ManualPCMPump(decoders, encoder, STEREO_48K, stream_error_policy="degrade").run()
        assert len(encoder.frames) == 1
