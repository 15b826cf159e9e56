"""Composition configuration.

One explicit configuration object per Composition. Defaults are applied
once at construction; unknown keys are rejected with ConfigError, both at
the top level and inside the two encoding groups.

Option names:
  frame_width, frame_height, frame_rate, concurrency, cache_dir,
  output_dir, logging_enabled, default_background_color,
  audio_loop_default, video_encoding{...}, audio_encoding{...}
"""

import tempfile
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path

from .common import parse_color
from .errors import ConfigError


@dataclass(frozen=True)
class VideoEncoding:
    """Video stream parameters handed to the encoder."""

    codec: str = "libx264"
    bitrate: str | None = None
    preset: str | None = "medium"
    quality_factor: int | None = 20
    profile: str | None = None
    level: str | None = None
    max_bitrate: str | None = None
    buffer_size: str | None = None
    keyframe_interval: int | None = None
    pixel_format: str = "yuv420p"

    def to_args(self) -> list[str]:
        """ffmpeg output arguments for the video stream."""
        args = ["-c:v", self.codec]
        if self.bitrate:
            args += ["-b:v", str(self.bitrate)]
        if self.preset:
            args += ["-preset", str(self.preset)]
        if self.quality_factor is not None:
            # h264_nvenc takes -cq, software encoders take -crf.
            flag = "-cq" if self.codec.endswith("_nvenc") else "-crf"
            args += [flag, str(self.quality_factor)]
        if self.profile:
            args += ["-profile:v", str(self.profile)]
        if self.level:
            args += ["-level:v", str(self.level)]
        if self.max_bitrate:
            args += ["-maxrate", str(self.max_bitrate)]
        if self.buffer_size:
            args += ["-bufsize", str(self.buffer_size)]
        if self.keyframe_interval:
            args += ["-g", str(self.keyframe_interval)]
        args += ["-pix_fmt", self.pixel_format]
        return args


@dataclass(frozen=True)
class AudioEncoding:
    """Audio stream parameters handed to the encoder."""

    codec: str = "aac"
    bitrate: str | None = "128k"
    sample_rate: int = 44100
    channels: int = 2

    @property
    def channel_layout(self) -> str:
        return "mono" if self.channels == 1 else "stereo"

    def to_args(self) -> list[str]:
        """ffmpeg output arguments for the audio stream."""
        args = ["-c:a", self.codec]
        if self.bitrate:
            args += ["-b:a", str(self.bitrate)]
        args += ["-ar", str(self.sample_rate), "-ac", str(self.channels)]
        return args


@dataclass
class CompositionConfig:
    frame_width: int = 1280
    frame_height: int = 720
    frame_rate: int = 30
    concurrency: int = 1
    cache_dir: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "scenecompose-cache"
    )
    output_dir: Path = field(default_factory=lambda: Path("output"))
    logging_enabled: bool = False
    default_background_color: str = "#000000"
    audio_loop_default: bool = False
    video_encoding: VideoEncoding = field(default_factory=VideoEncoding)
    audio_encoding: AudioEncoding = field(default_factory=AudioEncoding)

    @classmethod
    def from_options(cls, **options) -> "CompositionConfig":
        """Build a config from keyword options, applying defaults once."""
        config = cls()
        for name, value in options.items():
            config.set(name, value)
        return config

    @classmethod
    def option_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def get(self, name: str):
        if name not in self.option_names():
            raise ConfigError(
                f"Unknown option '{name}'. Valid: {sorted(self.option_names())}"
            )
        return getattr(self, name)

    def set(self, name: str, value) -> None:
        """Validate and store one option."""
        if name not in self.option_names():
            raise ConfigError(
                f"Unknown option '{name}'. Valid: {sorted(self.option_names())}"
            )
        setattr(self, name, _VALIDATORS[name](self, value))

    def as_dict(self) -> dict:
        data = asdict(self)
        data["cache_dir"] = str(self.cache_dir)
        data["output_dir"] = str(self.output_dir)
        return data


# ── Validators ─────────────────────────────────────────────────────


def _positive_int(name):
    def _check(_config, value):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigError(f"{name} must be a positive integer, got {value!r}")
        return value
    return _check


def _even_dimension(name):
    check = _positive_int(name)

    def _check(config, value):
        value = check(config, value)
        if value % 2:
            raise ConfigError(f"{name} must be even for yuv420p output, got {value}")
        return value
    return _check


def _bool(name):
    def _check(_config, value):
        if not isinstance(value, bool):
            raise ConfigError(f"{name} must be a boolean, got {value!r}")
        return value
    return _check


def _path(_config, value):
    if not isinstance(value, (str, Path)) or not str(value):
        raise ConfigError(f"Expected a directory path, got {value!r}")
    return Path(value)


def _color(_config, value):
    parse_color(value)
    return value


def _merge_group(cls, name):
    """Merge a partial dict over the current group, rejecting unknown keys."""
    valid = {f.name for f in fields(cls)}

    def _check(config, value):
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            raise ConfigError(f"{name} must be a mapping, got {value!r}")
        unknown = set(value) - valid
        if unknown:
            raise ConfigError(
                f"Unknown {name} option(s) {sorted(unknown)}. Valid: {sorted(valid)}"
            )
        merged = replace(getattr(config, name), **value)
        if cls is AudioEncoding:
            if merged.channels not in (1, 2):
                raise ConfigError(f"audio_encoding.channels must be 1 or 2, got {merged.channels!r}")
            if not isinstance(merged.sample_rate, int) or merged.sample_rate <= 0:
                raise ConfigError(
                    f"audio_encoding.sample_rate must be a positive integer, "
                    f"got {merged.sample_rate!r}"
                )
        return merged
    return _check


_VALIDATORS = {
    "frame_width": _even_dimension("frame_width"),
    "frame_height": _even_dimension("frame_height"),
    "frame_rate": _positive_int("frame_rate"),
    "concurrency": _positive_int("concurrency"),
    "cache_dir": _path,
    "output_dir": _path,
    "logging_enabled": _bool("logging_enabled"),
    "default_background_color": _color,
    "audio_loop_default": _bool("audio_loop_default"),
    "video_encoding": _merge_group(VideoEncoding, "video_encoding"),
    "audio_encoding": _merge_group(AudioEncoding, "audio_encoding"),
}
