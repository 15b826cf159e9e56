"""Scene elements: Image, Video, Text, Gif.

Every element is a positioned, time-bounded item inside a scene. Position
(x, y) is the element's center on the output frame; None centers it on
that axis. Width/height set the base size; None keeps the source's natural
size. appear_time is the offset from the scene start, duration defaults to
the scene duration and is clamped to it when the timeline is resolved.

Elements are mutable until their composition starts; afterwards every
setter raises ConfigError.
"""

from pathlib import Path

from .common import parse_color
from .effects import Animation, animation_from_dict, expand_effect
from .errors import ConfigError


def _check_number(value, name: str, minimum: float | None = None, strict: bool = False):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if minimum is not None:
        if strict and value <= minimum:
            raise ConfigError(f"{name} must be > {minimum}, got {value}")
        if not strict and value < minimum:
            raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


class Element:
    """Base class for everything placed inside a Scene."""

    kind = "element"

    def __init__(
        self,
        x: float | None = None,
        y: float | None = None,
        width: int | None = None,
        height: int | None = None,
        appear_time: float = 0.0,
        duration: float | None = None,
        scale: float = 1.0,
        rotate: float = 0.0,
    ):
        self._frozen = False
        self.x = None
        self.y = None
        self.width = None
        self.height = None
        self.scale = 1.0
        self.rotate = 0.0
        self.appear_time = 0.0
        self.duration = None
        self.animations: list[Animation] = []

        self.set_position(x, y)
        self.set_size(width, height)
        self.set_scale(scale)
        self.set_rotate(rotate)
        self.set_appear_time(appear_time)
        self.set_duration(duration)

    def __repr__(self):
        return f"<{type(self).__name__} at ({self.x}, {self.y}) appear={self.appear_time}>"

    # ── Mutation guard ──────────────────────────────────────────

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def _mutable(self) -> None:
        if self._frozen:
            raise ConfigError(
                f"{type(self).__name__} is frozen: the composition has already started"
            )

    # ── Geometry and timing ─────────────────────────────────────

    def set_position(self, x: float | None, y: float | None) -> None:
        self._mutable()
        if x is not None:
            _check_number(x, "x")
        if y is not None:
            _check_number(y, "y")
        self.x, self.y = x, y

    def set_size(self, width: int | None, height: int | None) -> None:
        self._mutable()
        for name, value in (("width", width), ("height", height)):
            if value is not None:
                _check_number(value, name, 0, strict=True)
        self.width = int(width) if width is not None else None
        self.height = int(height) if height is not None else None

    def set_scale(self, scale: float) -> None:
        self._mutable()
        self.scale = float(_check_number(scale, "scale", 0, strict=True))

    def set_rotate(self, degrees: float) -> None:
        self._mutable()
        self.rotate = float(_check_number(degrees, "rotate"))

    def set_appear_time(self, appear_time: float) -> None:
        self._mutable()
        self.appear_time = float(_check_number(appear_time, "appear_time", 0))

    def set_duration(self, duration: float | None) -> None:
        self._mutable()
        if duration is not None:
            duration = float(_check_number(duration, "duration", 0, strict=True))
        self.duration = duration

    # ── Animation ───────────────────────────────────────────────

    def add_effect(self, name: str, time: float = 1.0, delay: float = 0.0) -> int:
        """Append the expansion of a named effect.

        Returns the number of Animation descriptors appended (always >= 1).
        Unknown names raise ConfigError here, not at render time.
        """
        self._mutable()
        animations = expand_effect(name, time, delay)
        self.animations.extend(animations)
        return len(animations)

    def add_animate(self, descriptor: dict | Animation) -> None:
        """Append one caller-supplied animation descriptor."""
        self._mutable()
        self.animations.append(animation_from_dict(descriptor))

    # ── Render inputs ───────────────────────────────────────────

    def sources(self) -> list[Path]:
        """Files this element reads at render time."""
        return []

    def describe(self) -> dict:
        """Canonical description used for job fingerprints."""
        return {
            "kind": self.kind,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "scale": self.scale,
            "rotate": self.rotate,
            "appear_time": self.appear_time,
            "duration": self.duration,
            "animations": [
                {
                    "type": a.type,
                    "show_type": a.show_type,
                    "time": a.time,
                    "delay": a.delay,
                    "easing": a.easing,
                    "from": a.from_state,
                    "to": a.to_state,
                }
                for a in self.animations
            ],
        }


class _FileElement(Element):
    """An element backed by a media file."""

    def __init__(self, path: str | Path, **kwargs):
        if not path:
            raise ConfigError(f"{type(self).__name__} requires a 'path'")
        self.path = Path(path)
        super().__init__(**kwargs)

    def sources(self) -> list[Path]:
        return [self.path]

    def describe(self) -> dict:
        return {**super().describe(), "path": str(self.path)}


class Image(_FileElement):
    """A still image shown for the element's window."""

    kind = "image"


class Gif(_FileElement):
    """An animated GIF, looped for the element's window."""

    kind = "gif"


class Video(_FileElement):
    """A video clip, optionally trimmed to [clip_start_time, clip_end_time].

    When the element plays longer than the clip window, `loop` wraps the
    source at the clip boundary; without it the last frame is held.
    `audio` mixes the clip's own audio track into the scene.
    """

    kind = "video"

    def __init__(
        self,
        path: str | Path,
        clip_start_time: float = 0.0,
        clip_end_time: float | None = None,
        loop: bool = False,
        audio: bool = False,
        **kwargs,
    ):
        self.clip_start_time = 0.0
        self.clip_end_time = None
        self.loop = bool(loop)
        self.audio = bool(audio)
        super().__init__(path, **kwargs)
        self.set_clip(clip_start_time, clip_end_time)

    def set_clip(self, start: float = 0.0, end: float | None = None) -> None:
        self._mutable()
        start = float(_check_number(start, "clip_start_time", 0))
        if end is not None:
            end = float(_check_number(end, "clip_end_time", 0))
            if end <= start:
                raise ConfigError(
                    f"clip_end_time ({end}) must exceed clip_start_time ({start})"
                )
        self.clip_start_time, self.clip_end_time = start, end

    def set_loop(self, loop: bool) -> None:
        self._mutable()
        self.loop = bool(loop)

    def set_audio(self, audio: bool) -> None:
        self._mutable()
        self.audio = bool(audio)

    def describe(self) -> dict:
        return {
            **super().describe(),
            "clip_start_time": self.clip_start_time,
            "clip_end_time": self.clip_end_time,
            "loop": self.loop,
            "audio": self.audio,
        }


class Text(Element):
    """Text rasterized to an image at render time."""

    kind = "text"

    def __init__(
        self,
        text: str,
        font_size: int = 24,
        color="#ffffff",
        background_color=None,
        border_width: int = 0,
        border_color="#000000",
        font_path: str | Path | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.set_text(text)
        self.set_font_size(font_size)
        self.set_color(color)
        self.set_background_color(background_color)
        self.set_border(border_width, border_color)
        self.font_path = Path(font_path) if font_path else None

    def set_text(self, text: str) -> None:
        self._mutable()
        if not isinstance(text, str) or not text:
            raise ConfigError("Text requires a non-empty 'text' string")
        self.text = text

    def set_font_size(self, size: int) -> None:
        self._mutable()
        self.font_size = int(_check_number(size, "font_size", 0, strict=True))

    def set_color(self, color) -> None:
        self._mutable()
        self.color = parse_color(color)

    def set_background_color(self, color) -> None:
        self._mutable()
        self.background_color = parse_color(color) if color is not None else None

    def set_border(self, width: int, color="#000000") -> None:
        self._mutable()
        self.border_width = int(_check_number(width, "border width", 0))
        self.border_color = parse_color(color)

    def sources(self) -> list[Path]:
        return [self.font_path] if self.font_path else []

    def describe(self) -> dict:
        return {
            **super().describe(),
            "text": self.text,
            "font_size": self.font_size,
            "color": self.color,
            "background_color": self.background_color,
            "border_width": self.border_width,
            "border_color": self.border_color,
            "font_path": str(self.font_path) if self.font_path else None,
        }


ELEMENT_TYPES = {
    "image": Image,
    "video": Video,
    "text": Text,
    "gif": Gif,
}
