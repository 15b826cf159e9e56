"""Tests for composition configuration."""

from pathlib import Path

import pytest

from scenecompose.config import AudioEncoding, CompositionConfig, VideoEncoding
from scenecompose.errors import ConfigError


class TestDefaults:
    def test_frame_defaults(self):
        cfg = CompositionConfig()
        assert (cfg.frame_width, cfg.frame_height, cfg.frame_rate) == (1280, 720, 30)
        assert cfg.concurrency == 1
        assert cfg.logging_enabled is False
        assert cfg.audio_loop_default is False

    def test_cache_dir_under_tmp(self):
        assert CompositionConfig().cache_dir.name == "scenecompose-cache"

    def test_option_names_are_exactly_the_documented_set(self):
        assert CompositionConfig.option_names() == {
            "frame_width", "frame_height", "frame_rate", "concurrency",
            "cache_dir", "output_dir", "logging_enabled",
            "default_background_color", "audio_loop_default",
            "video_encoding", "audio_encoding",
        }


class TestFromOptions:
    def test_applies_options(self):
        cfg = CompositionConfig.from_options(frame_width=640, frame_height=360, concurrency=3)
        assert cfg.frame_width == 640
        assert cfg.concurrency == 3

    def test_unknown_top_level_key_raises(self):
        with pytest.raises(ConfigError, match="Unknown option"):
            CompositionConfig.from_options(framewidth=640)

    def test_unknown_nested_key_raises(self):
        with pytest.raises(ConfigError, match="video_encoding"):
            CompositionConfig.from_options(video_encoding={"crf": 20})

    def test_nested_merge_keeps_other_fields(self):
        cfg = CompositionConfig.from_options(video_encoding={"preset": "fast"})
        assert cfg.video_encoding.preset == "fast"
        assert cfg.video_encoding.codec == "libx264"

    def test_odd_dimension_rejected(self):
        with pytest.raises(ConfigError, match="even"):
            CompositionConfig.from_options(frame_width=641)

    @pytest.mark.parametrize("value", [0, -1, 2.5, True, "4"])
    def test_concurrency_must_be_positive_int(self, value):
        with pytest.raises(ConfigError):
            CompositionConfig.from_options(concurrency=value)

    def test_bad_background_color(self):
        with pytest.raises(ConfigError):
            CompositionConfig.from_options(default_background_color="nope")

    def test_paths_become_path_objects(self, tmp_path):
        cfg = CompositionConfig.from_options(cache_dir=str(tmp_path / "c"))
        assert cfg.cache_dir == Path(tmp_path / "c")

    def test_audio_channels_validated(self):
        with pytest.raises(ConfigError, match="channels"):
            CompositionConfig.from_options(audio_encoding={"channels": 6})


class TestGetSet:
    def test_get_unknown_raises(self):
        with pytest.raises(ConfigError):
            CompositionConfig().get("bogus")

    def test_set_then_get(self):
        cfg = CompositionConfig()
        cfg.set("frame_rate", 24)
        assert cfg.get("frame_rate") == 24

    def test_as_dict_is_plain(self):
        data = CompositionConfig().as_dict()
        assert isinstance(data["cache_dir"], str)
        assert data["audio_encoding"]["sample_rate"] == 44100


class TestEncodingArgs:
    def test_default_video_args(self):
        args = VideoEncoding().to_args()
        assert args[:2] == ["-c:v", "libx264"]
        assert "-crf" in args and "20" in args
        assert args[-2:] == ["-pix_fmt", "yuv420p"]

    def test_nvenc_uses_cq(self):
        args = VideoEncoding(codec="h264_nvenc").to_args()
        assert "-cq" in args
        assert "-crf" not in args

    def test_optional_rate_control(self):
        args = VideoEncoding(bitrate="4M", max_bitrate="6M", buffer_size="8M", keyframe_interval=60).to_args()
        for flag in ("-b:v", "-maxrate", "-bufsize", "-g"):
            assert flag in args

    def test_audio_args(self):
        args = AudioEncoding(channels=1).to_args()
        assert args == ["-c:a", "aac", "-b:a", "128k", "-ar", "44100", "-ac", "1"]
        assert AudioEncoding(channels=1).channel_layout == "mono"
