"""ffmpeg argument builders for render jobs.

Two job kinds produce artifacts in the cache:

  extraction  trims one source video to its clip window and normalizes
              frame rate, pixel format and audio layout. Shared by every
              element that uses the same source and window.
  scene       composites one scene: a solid background, then every
              element overlaid in z-order with its timing window and
              animated transforms, plus a silent audio bed mixed with
              any element audio.

Per-element video chain (element-local time, before the final shift):
  [freeze pad] -> rgba -> base scale -> alpha (geq) -> rotate
  -> animated scale -> setpts shift to the element's start
and then `overlay` places the element's center at its (animated) x/y,
enabled only inside its window.
"""

from dataclasses import dataclass
from pathlib import Path

from .common import color_to_ffmpeg, parse_color
from .config import CompositionConfig
from .effects import channel_expr
from .elements import Gif, Video
from .scene import Scene
from .timing import ResolvedElement


@dataclass(frozen=True)
class ElementInput:
    """A resolved element plus the file the encoder reads for it."""

    resolved: ResolvedElement
    path: Path
    natural_size: tuple[int, int] | None = None
    has_audio: bool = False


def _t(value: float) -> str:
    return f"{value:.3f}"


# ── Extraction jobs ───────────────────────────────────────────────


def extraction_args(
    source: str | Path,
    start: float,
    end: float | None,
    output: str | Path,
    config: CompositionConfig,
) -> list[str]:
    """Cut [start, end) out of a source video and normalize it.

    Re-encodes for frame-accurate cuts. The audio stream is optional
    (`0:a:0?`), so sources without audio extract cleanly.
    """
    args = []
    if start > 0:
        args += ["-ss", _t(start)]
    if end is not None:
        args += ["-t", _t(end - start)]
    args += [
        "-i", str(source),
        "-map", "0:v:0", "-map", "0:a:0?",
        "-vf", f"fps={config.frame_rate},format={config.video_encoding.pixel_format}",
        *config.video_encoding.to_args(),
        *config.audio_encoding.to_args(),
        str(output),
    ]
    return args


# ── Scene jobs ────────────────────────────────────────────────────


def _input_args(item: ElementInput, duration: float, fps: int) -> list[str]:
    element = item.resolved.element
    path = str(item.path)
    if isinstance(element, Video):
        if item.resolved.clip is not None and item.resolved.clip.mode == "loop":
            return ["-stream_loop", "-1", "-t", _t(duration), "-i", path]
        return ["-t", _t(duration), "-i", path]
    if isinstance(element, Gif):
        return ["-ignore_loop", "0", "-t", _t(duration), "-i", path]
    # Images and rasterized text.
    return ["-loop", "1", "-framerate", str(fps), "-t", _t(duration), "-i", path]


def _base_scale(item: ElementInput) -> str | None:
    element = item.resolved.element
    s = element.scale
    w, h = element.width, element.height
    if w is None and h is None and item.natural_size is not None:
        w, h = item.natural_size
    if w is None and h is None:
        if s == 1.0:
            return None
        return f"scale=w='max(1,iw*{s:.6g})':h='max(1,ih*{s:.6g})'"
    sw = max(1, round(w * s)) if w is not None else -1
    sh = max(1, round(h * s)) if h is not None else -1
    return f"scale={sw}:{sh}"


def element_video_chain(item: ElementInput, fps: int) -> list[str]:
    """Filters for one element's video stream, in element-local time."""
    resolved = item.resolved
    element = resolved.element
    duration = resolved.window.duration
    animations = element.animations
    parts = []

    if resolved.clip is not None and resolved.clip.mode == "freeze":
        parts += [
            f"tpad=stop_mode=clone:stop_duration={_t(duration)}",
            f"trim=duration={_t(duration)}",
        ]
    if isinstance(element, Gif):
        parts.append(f"fps={fps}")
    parts.append("format=rgba")

    scale = _base_scale(item)
    if scale:
        parts.append(scale)

    alpha = channel_expr("alpha", 1.0, animations, duration, time_var="T")
    if alpha is not None:
        parts.append(
            "geq=r='r(X,Y)':g='g(X,Y)':b='b(X,Y)'"
            f":a='alpha(X,Y)*clip({alpha},0,1)'"
        )

    angle = channel_expr("rotate", element.rotate, animations, duration, time_var="t")
    if angle is None and element.rotate:
        angle = f"{element.rotate:.6g}"
    if angle is not None:
        parts.append(
            f"rotate=a='({angle})*PI/180':c=none"
            ":ow='hypot(iw,ih)':oh='hypot(iw,ih)'"
        )

    zoom = channel_expr("scale", 1.0, animations, duration, time_var="t")
    if zoom is not None:
        parts.append(
            f"scale=w='max(1,iw*({zoom}))':h='max(1,ih*({zoom}))':eval=frame"
        )

    parts.append(f"setpts=PTS-STARTPTS+{_t(resolved.window.start)}/TB")
    return parts


def element_overlay(item: ElementInput, frame_w: int, frame_h: int) -> str:
    """overlay filter options placing the element's center."""
    resolved = item.resolved
    element = resolved.element
    start, end = resolved.window.start, resolved.window.end
    duration = resolved.window.duration
    cx = element.x if element.x is not None else frame_w / 2
    cy = element.y if element.y is not None else frame_h / 2

    x = channel_expr("x", cx, element.animations, duration, time_var="t", offset=start)
    y = channel_expr("y", cy, element.animations, duration, time_var="t", offset=start)
    x = x if x is not None else f"{cx:.6g}"
    y = y if y is not None else f"{cy:.6g}"
    return (
        f"overlay=x='({x})-w/2':y='({y})-h/2'"
        f":enable='between(t,{_t(start)},{_t(end)})'"
        ":eof_action=pass:format=auto"
    )


def element_audio_chain(item: ElementInput, config: CompositionConfig) -> list[str] | None:
    """Filters for a video element's own audio, or None when silent."""
    element = item.resolved.element
    if not (isinstance(element, Video) and element.audio and item.has_audio):
        return None
    resolved = item.resolved
    delay_ms = round(resolved.window.start * 1000)
    audio = config.audio_encoding
    parts = []
    if resolved.clip is not None and resolved.clip.mode == "freeze":
        parts.append("apad")
    parts += [
        f"atrim=duration={_t(resolved.window.duration)}",
        "asetpts=PTS-STARTPTS",
        f"aformat=sample_rates={audio.sample_rate}:channel_layouts={audio.channel_layout}",
    ]
    if delay_ms:
        parts.append(f"adelay={delay_ms}:all=1")
    return parts


def scene_args(
    scene: Scene,
    inputs: list[ElementInput],
    output: str | Path,
    config: CompositionConfig,
) -> list[str]:
    """Full ffmpeg argument list rendering one scene to `output`."""
    w, h, fps = config.frame_width, config.frame_height, config.frame_rate
    duration = scene.duration
    audio = config.audio_encoding
    background = scene.background or parse_color(config.default_background_color)

    args = [
        "-f", "lavfi", "-i",
        f"color=c={color_to_ffmpeg(background)}:s={w}x{h}:r={fps}:d={_t(duration)}",
        "-f", "lavfi", "-i",
        f"anullsrc=r={audio.sample_rate}:cl={audio.channel_layout}",
    ]
    graph = [f"[1:a]atrim=duration={_t(duration)},asetpts=PTS-STARTPTS[abed]"]
    video_label = "[0:v]"
    audio_labels = ["[abed]"]

    drawn = [item for item in inputs if not item.resolved.window.empty]
    for k, item in enumerate(drawn):
        n = k + 2
        args += _input_args(item, item.resolved.window.duration, fps)

        chain = ",".join(element_video_chain(item, fps))
        graph.append(f"[{n}:v]{chain}[e{k}]")
        graph.append(f"{video_label}[e{k}]{element_overlay(item, w, h)}[v{k}]")
        video_label = f"[v{k}]"

        audio_chain = element_audio_chain(item, config)
        if audio_chain:
            graph.append(f"[{n}:a]{','.join(audio_chain)}[a{k}]")
            audio_labels.append(f"[a{k}]")

    graph.append(f"{video_label}format={config.video_encoding.pixel_format}[vout]")
    if len(audio_labels) > 1:
        graph.append(
            f"{''.join(audio_labels)}amix=inputs={len(audio_labels)}"
            ":duration=first:normalize=0[aout]"
        )
    else:
        graph.append("[abed]anull[aout]")

    args += [
        "-filter_complex", ";".join(graph),
        "-map", "[vout]", "-map", "[aout]",
        *config.video_encoding.to_args(),
        "-r", str(fps),
        *config.audio_encoding.to_args(),
        "-t", _t(duration),
        "-movflags", "+faststart",
        str(output),
    ]
    return args
