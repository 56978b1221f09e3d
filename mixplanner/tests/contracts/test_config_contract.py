"""
Contract tests for configuration loading.

Covers:
- CF1: Defaults
- CF2: Environment overrides
- CF3: Invalid values
- CF4: Environment file
"""

import pytest

from mixplanner.config import MixConfig
from mixplanner.errors import ConfigurationError


class TestCF1_Defaults:
    """Tests for CF1: Defaults."""

    def test_cf1_defaults(self):
        config = MixConfig.load_config()
        assert config.ffmpeg_bin == "ffmpeg"
        assert config.ffprobe_bin == "ffprobe"
        assert config.default_channels == 2
        assert config.frame_size == 1024
        assert config.stream_error_policy == "degrade"
        assert config.flac_compression_level == 5
        assert config.aac_bitrate == "192k"
        assert config.overwrite is True
        assert config.log_level == "INFO"
        assert config.log_file is None

    def test_cf1_loaded_defaults_match_dataclass(self):
        assert MixConfig.load_config() == MixConfig()


class TestCF2_Overrides:
    """Tests for CF2: Environment overrides."""

    def test_cf2_all_keys(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MIXPLANNER_FFMPEG_BIN", "/opt/ffmpeg/bin/ffmpeg")
        monkeypatch.setenv("MIXPLANNER_FFPROBE_BIN", "/opt/ffmpeg/bin/ffprobe")
        monkeypatch.setenv("MIXPLANNER_DEFAULT_CHANNELS", "1")
        monkeypatch.setenv("MIXPLANNER_FRAME_SIZE", "4096")
        monkeypatch.setenv("MIXPLANNER_STREAM_ERRORS", "ABORT")
        monkeypatch.setenv("MIXPLANNER_FLAC_COMPRESSION", "12")
        monkeypatch.setenv("MIXPLANNER_AAC_BITRATE", "256k")
        monkeypatch.setenv("MIXPLANNER_OVERWRITE", "no")
        monkeypatch.setenv("MIXPLANNER_LOG_LEVEL", "debug")
        monkeypatch.setenv("MIXPLANNER_LOG_FILE", str(tmp_path / "mix.log"))

        config = MixConfig.load_config()

        assert config.ffmpeg_bin == "/opt/ffmpeg/bin/ffmpeg"
        assert config.ffprobe_bin == "/opt/ffmpeg/bin/ffprobe"
        assert config.default_channels == 1
        assert config.frame_size == 4096
        assert config.stream_error_policy == "abort"
        assert config.flac_compression_level == 12
        assert config.aac_bitrate == "256k"
        assert config.overwrite is False
        assert config.log_level == "DEBUG"
        assert config.log_file == str(tmp_path / "mix.log")

    def test_cf2_generic_ffmpeg_bin_fallback(self, monkeypatch):
        monkeypatch.setenv("FFMPEG_BIN", "/usr/local/bin/ffmpeg")
        assert MixConfig.load_config().ffmpeg_bin == "/usr/local/bin/ffmpeg"
        monkeypatch.setenv("MIXPLANNER_FFMPEG_BIN", "/opt/ffmpeg")
        assert MixConfig.load_config().ffmpeg_bin == "/opt/ffmpeg"


class TestCF3_InvalidValues:
    """Tests for CF3: Invalid values."""

    @pytest.mark.parametrize("name,value", [
        ("MIXPLANNER_DEFAULT_CHANNELS", "6"),
        ("MIXPLANNER_DEFAULT_CHANNELS", "stereo"),
        ("MIXPLANNER_FRAME_SIZE", "0"),
        ("MIXPLANNER_STREAM_ERRORS", "ignore"),
        ("MIXPLANNER_FLAC_COMPRESSION", "13"),
        ("MIXPLANNER_OVERWRITE", "maybe"),
        ("MIXPLANNER_AAC_BITRATE", "loud"),
        ("MIXPLANNER_AAC_BITRATE", "0"),
        ("MIXPLANNER_LOG_LEVEL", "CHATTY"),
    ])
    def test_cf3_rejected(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigurationError, match=name):
            MixConfig.load_config()

    @pytest.mark.parametrize("kwargs", [
        {"default_channels": 0},
        {"frame_size": -1},
        {"stream_error_policy": "retry"},
        {"aac_bitrate": "192 kbps"},
        {"log_level": "verbose"},
    ])
    def test_cf3_dataclass_validation(self, kwargs):
        with pytest.raises(ConfigurationError):
            MixConfig(**kwargs)

    def test_cf3_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            MixConfig(frame_size=0)


class TestCF4_EnvFile:
    """Tests for CF4: Environment file."""

    def test_cf4_env_file_loaded_without_overriding(self, monkeypatch, tmp_path):
        env_file = tmp_path / "mixplanner.env"
        env_file.write_text("MIXPLANNER_FRAME_SIZE=2048\nMIXPLANNER_AAC_BITRATE=128k\n")
        # Registered with monkeypatch so values loaded from the file are removed afterwards
        monkeypatch.setenv("MIXPLANNER_FRAME_SIZE", "unset")
        monkeypatch.delenv("MIXPLANNER_FRAME_SIZE")
        monkeypatch.setenv("MIXPLANNER_AAC_BITRATE", "320k")

        config = MixConfig.load_config(str(env_file))

        assert config.frame_size == 2048
        assert config.aac_bitrate == "320k"

    def test_cf4_env_file_from_environment(self, monkeypatch, tmp_path):
        env_file = tmp_path / "other.env"
        env_file.write_text("MIXPLANNER_FLAC_COMPRESSION=8\n")
        monkeypatch.setenv("MIXPLANNER_FLAC_COMPRESSION", "unset")
        monkeypatch.delenv("MIXPLANNER_FLAC_COMPRESSION")
        monkeypatch.setenv("MIXPLANNER_ENV_FILE", str(env_file))

        assert MixConfig.load_config().flac_compression_level == 8

    def test_cf4_missing_env_file_ignored(self, tmp_path):
        assert MixConfig.load_config(str(tmp_path / "absent.env")) == MixConfig()
