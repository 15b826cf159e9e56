"""Timeline resolution: relative element timing to absolute scene windows.

Pure functions: nothing here touches the filesystem, and resolving the
same scene twice gives identical results.

Rules:
  - start = appear_time
  - end   = min(appear_time + duration, scene duration)
    (duration defaults to the scene duration; excess is clamped, never
    extended)
  - an element whose window is empty is not drawn.

Video clip plans, for a play duration P and a clip window of length L:
  - P <= L            -> "trim"   (play the first P seconds of the window)
  - P >  L, loop      -> "loop"   (wrap exactly at the clip boundary)
  - P >  L, no loop   -> "freeze" (hold the last frame, pad audio with silence)
When the window end is unknown (no clip_end_time and no probed source
duration) the mode is "loop" or "freeze" and only engages if the source
runs out.
"""

from dataclasses import dataclass

from .elements import Element, Video
from .scene import Scene


@dataclass(frozen=True)
class TimeWindow:
    start: float
    end: float

    @property
    def duration(self) -> float:
        return max(0.0, self.end - self.start)

    @property
    def empty(self) -> bool:
        return self.end <= self.start


@dataclass(frozen=True)
class ClipPlan:
    source_start: float
    source_end: float | None
    play_duration: float
    mode: str  # "trim" | "loop" | "freeze"

    @property
    def clip_length(self) -> float | None:
        if self.source_end is None:
            return None
        return self.source_end - self.source_start


@dataclass(frozen=True)
class ResolvedElement:
    index: int
    element: Element
    window: TimeWindow
    clip: ClipPlan | None = None


def resolve_window(element: Element, scene_duration: float) -> TimeWindow:
    """Absolute, scene-clamped window of one element."""
    start = min(element.appear_time, scene_duration)
    requested = element.duration if element.duration is not None else scene_duration
    end = min(element.appear_time + requested, scene_duration)
    return TimeWindow(start, max(start, end))


def plan_clip(video: Video, play_duration: float, source_duration: float | None = None) -> ClipPlan:
    """Decide how a video element's source covers its play duration."""
    source_start = video.clip_start_time
    source_end = video.clip_end_time
    if source_duration is not None:
        source_end = source_duration if source_end is None else min(source_end, source_duration)
        # A start past the end of the source leaves an empty window.
        source_end = max(source_end, source_start)

    if source_end is not None and play_duration <= source_end - source_start:
        mode = "trim"
    elif video.loop:
        mode = "loop"
    else:
        mode = "freeze"
    return ClipPlan(source_start, source_end, play_duration, mode)


def resolve_element(
    element: Element,
    scene_duration: float,
    index: int = 0,
    source_duration: float | None = None,
) -> ResolvedElement:
    window = resolve_window(element, scene_duration)
    clip = None
    if isinstance(element, Video):
        clip = plan_clip(element, window.duration, source_duration)
    return ResolvedElement(index, element, window, clip)


def resolve_scene(
    scene: Scene,
    source_durations: dict | None = None,
) -> list[ResolvedElement]:
    """Resolve every element of a scene, in z-order.

    Args:
        scene: The scene to resolve.
        source_durations: Optional {element index: probed source duration}
            for video elements.
    """
    source_durations = source_durations or {}
    return [
        resolve_element(element, scene.duration, i, source_durations.get(i))
        for i, element in enumerate(scene.elements)
    ]


def composition_duration(scenes: list[Scene]) -> float:
    """Output length: scene durations minus the transition overlaps."""
    if not scenes:
        return 0.0
    total = sum(s.duration for s in scenes)
    for current, following in zip(scenes, scenes[1:]):
        total -= transition_overlap(current, following)
    return total


def transition_overlap(current: Scene, following: Scene) -> float:
    """Seconds two neighbouring scenes overlap during their transition.

    Clamped so the blend never swallows a whole scene.
    """
    if current.transition is None:
        return 0.0
    limit = min(current.duration, following.duration) / 2
    return min(current.transition.duration, limit)
