"""Scene: a time-bounded segment of the output.

A scene owns an ordered list of elements (insertion order = z-order,
index 0 is drawn first), an optional background color kept separate
from the element list, and an optional transition into the next scene.
"""

from dataclasses import dataclass

from .common import parse_color
from .elements import Element
from .errors import ConfigError


DEFAULT_SCENE_DURATION = 10.0

# Accepted transition names and the ffmpeg xfade transition each maps to.
TRANSITIONS = {
    "fade": "fade",
    "crossfade": "fade",
    "fadeblack": "fadeblack",
    "fade_to_black": "fadeblack",
    "fadewhite": "fadewhite",
    "dissolve": "dissolve",
    "wipeleft": "wipeleft",
    "wiperight": "wiperight",
    "wipeup": "wipeup",
    "wipedown": "wipedown",
    "slideleft": "slideleft",
    "slideright": "slideright",
    "slideup": "slideup",
    "slidedown": "slidedown",
    "circleopen": "circleopen",
    "circleclose": "circleclose",
    "radial": "radial",
    "pixelize": "pixelize",
}


@dataclass(frozen=True)
class Transition:
    name: str
    duration: float  # seconds

    @property
    def xfade(self) -> str:
        return TRANSITIONS[self.name]


class Scene:
    def __init__(self, duration: float | None = None, background=None):
        self._frozen = False
        self.duration = DEFAULT_SCENE_DURATION
        self.background: tuple[int, int, int] | None = None
        self.transition: Transition | None = None
        self.elements: list[Element] = []
        if duration is not None:
            self.set_duration(duration)
        if background is not None:
            self.set_background(background)

    def __repr__(self):
        return f"<Scene duration={self.duration} elements={len(self.elements)}>"

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Freeze the scene and its elements. Irreversible."""
        self._frozen = True
        for element in self.elements:
            element.freeze()

    def _mutable(self) -> None:
        if self._frozen:
            raise ConfigError("Scene is frozen: the composition has already started")

    def add_element(self, element: Element) -> int:
        """Append an element and return its position index."""
        self._mutable()
        if not isinstance(element, Element):
            raise ConfigError(f"Expected an Element, got {element!r}")
        if element.frozen:
            raise ConfigError("Element belongs to a composition that has already started")
        if any(e is element for e in self.elements):
            raise ConfigError("Element is already part of this scene")
        self.elements.append(element)
        return len(self.elements) - 1

    def set_duration(self, duration: float) -> None:
        self._mutable()
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration <= 0:
            raise ConfigError(f"Scene duration must be a positive number, got {duration!r}")
        self.duration = float(duration)

    def set_background(self, color) -> None:
        """Set a solid background color, or None to use the default."""
        self._mutable()
        self.background = parse_color(color) if color is not None else None

    def set_transition(self, name: str | None, duration_ms: float = 500) -> None:
        """Blend into the next scene with a named transition.

        The duration is in milliseconds. None (or a zero duration) clears
        the transition, giving a hard cut.
        """
        self._mutable()
        if name is None:
            self.transition = None
            return
        if name not in TRANSITIONS:
            raise ConfigError(
                f"Unknown transition '{name}'. Valid: {sorted(TRANSITIONS)}"
            )
        if isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float)) or duration_ms < 0:
            raise ConfigError(
                f"Transition duration must be a number >= 0 (ms), got {duration_ms!r}"
            )
        self.transition = Transition(name, duration_ms / 1000.0) if duration_ms else None

    def describe(self) -> dict:
        """Canonical description used for job fingerprints."""
        return {
            "duration": self.duration,
            "background": self.background,
            "elements": [e.describe() for e in self.elements],
        }
