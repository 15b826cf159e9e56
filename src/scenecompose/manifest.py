"""YAML manifests for compositions.

Schema:

    paths:                 # optional ${name} substitution in any string
      media: /data/media
    video:                 # composition options
      frame_width: 1280
      frame_height: 720
      frame_rate: 30
      concurrency: 2
    encoding:              # optional encoder groups
      video: {preset: fast, quality_factor: 23}
      audio: {bitrate: 192k}
    audio:                 # optional global audio track
      path: ${media}/music.mp3
      volume: 0.5
      fade_in: 1
      fade_out: 2
      loop: true
    output: ${media}/out.mp4
    scenes:
      - duration: 4
        background: "#101820"
        transition: {name: fade, duration: 500}   # duration in ms
        elements:
          - type: video                # image | video | text | gif
            path: ${media}/clip.mp4
            x: 640
            y: 360
            width: 640
            clip_start_time: 2
            loop: true
            effects:
              - fadeIn                 # or {name: zoomIn, time: 1.5, delay: 0}
            animations:
              - {type: move, showType: in, time: 1, from: {x: -100}, to: {x: 0}}

Unknown keys anywhere raise ConfigError, which is also what every
structural check raises.
"""

from pathlib import Path

import yaml

from .common import resolve_path_vars
from .composition import Composition
from .elements import ELEMENT_TYPES
from .errors import ConfigError, ResourceNotFoundError
from .scene import Scene


TOP_LEVEL_KEYS = {"paths", "video", "encoding", "audio", "output", "scenes"}

SCENE_KEYS = {"duration", "background", "transition", "elements"}

AUDIO_KEYS = {"path", "volume", "fade_in", "fade_out", "loop"}

# Element fields accepted on top of each element class's constructor.
ELEMENT_EXTRA_KEYS = {"type", "effects", "animations"}


def load_composition(manifest_path: str | Path, runner_factory=None) -> Composition:
    """Build a Composition from a YAML manifest.

    Processing:
      1. Parse YAML.
      2. Resolve ${name} path variables in every string value.
      3. Apply video/encoding options, audio and output.
      4. Build scenes, elements, effects and animations.

    Raises:
        ConfigError: Unknown keys, bad values, undefined path variables.
        FileNotFoundError: Missing manifest file.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{manifest_path}: manifest must be a mapping")

    _reject_unknown(raw, TOP_LEVEL_KEYS, "manifest")
    paths = raw.get("paths") or {}
    data = _resolve_paths({k: v for k, v in raw.items() if k != "paths"}, paths)

    options = dict(data.get("video") or {})
    encoding = data.get("encoding") or {}
    _reject_unknown(encoding, {"video", "audio"}, "encoding")
    if "video" in encoding:
        options["video_encoding"] = encoding["video"]
    if "audio" in encoding:
        options["audio_encoding"] = encoding["audio"]
    comp = Composition(runner_factory=runner_factory, **options)

    audio = data.get("audio")
    if audio is not None:
        if isinstance(audio, str):
            audio = {"path": audio}
        _reject_unknown(audio, AUDIO_KEYS, "audio")
        if "path" not in audio:
            raise ConfigError("audio: missing 'path'")
        comp.add_audio(**audio)

    if data.get("output"):
        comp.set_output(data["output"])

    scenes = data.get("scenes") or []
    if not scenes:
        raise ConfigError("Manifest has no scenes")
    for i, scene_data in enumerate(scenes):
        comp.add_scene(_build_scene(scene_data, i))
    return comp


def _reject_unknown(data, valid: set, where: str) -> None:
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: expected a mapping, got {data!r}")
    unknown = set(data) - valid
    if unknown:
        raise ConfigError(f"{where}: unknown key(s) {sorted(unknown)}. Valid: {sorted(valid)}")


def _resolve_paths(obj, paths: dict):
    """Recursively resolve ${var} in all string values."""
    if isinstance(obj, str):
        return resolve_path_vars(obj, paths)
    elif isinstance(obj, dict):
        return {k: _resolve_paths(v, paths) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_resolve_paths(item, paths) for item in obj]
    return obj


def _build_scene(data: dict, index: int) -> Scene:
    where = f"Scene {index}"
    _reject_unknown(data, SCENE_KEYS, where)
    scene = Scene(duration=data.get("duration"), background=data.get("background"))

    transition = data.get("transition")
    if transition is not None:
        if isinstance(transition, str):
            transition = {"name": transition}
        _reject_unknown(transition, {"name", "duration"}, f"{where} transition")
        scene.set_transition(transition.get("name"), transition.get("duration", 500))

    for j, element_data in enumerate(data.get("elements") or []):
        scene.add_element(_build_element(element_data, f"{where} element {j}"))
    return scene


def _build_element(data: dict, where: str):
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: expected a mapping, got {data!r}")
    kind = data.get("type")
    if kind not in ELEMENT_TYPES:
        raise ConfigError(
            f"{where}: unknown element type {kind!r}. Valid: {sorted(ELEMENT_TYPES)}"
        )
    fields = {k: v for k, v in data.items() if k not in ELEMENT_EXTRA_KEYS}
    try:
        element = ELEMENT_TYPES[kind](**fields)
    except TypeError as exc:
        raise ConfigError(f"{where}: {exc}") from exc

    for effect in data.get("effects") or []:
        if isinstance(effect, str):
            element.add_effect(effect)
        elif isinstance(effect, dict):
            _reject_unknown(effect, {"name", "time", "delay"}, f"{where} effect")
            element.add_effect(effect.get("name"), effect.get("time", 1.0), effect.get("delay", 0.0))
        else:
            raise ConfigError(f"{where}: effect must be a name or a mapping, got {effect!r}")

    for animation in data.get("animations") or []:
        element.add_animate(animation)
    return element


def validate_sources(composition: Composition) -> None:
    """Check that every file the composition reads exists on disk.

    Reports all missing paths at once.

    Raises:
        ResourceNotFoundError: Lists all missing files.
    """
    missing = []
    for scene in composition.scenes:
        for element in scene.elements:
            for path in element.sources():
                if not Path(path).is_file() and str(path) not in missing:
                    missing.append(str(path))
    if composition.audio is not None and not composition.audio.path.is_file():
        missing.append(str(composition.audio.path))

    if missing:
        msg = f"Missing {len(missing)} file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise ResourceNotFoundError(msg, missing[0])


def summarize(composition: Composition) -> list[str]:
    """One line per scene for CLI listings."""
    lines = []
    for i, scene in enumerate(composition.scenes):
        kinds = ", ".join(e.kind for e in scene.elements) or "background only"
        transition = f" -> {scene.transition.name}" if scene.transition else ""
        lines.append(f"  {i}: {scene.duration:.1f}s [{kinds}]{transition}")
    return lines
