"""Join scene artifacts into the final output.

Scenes are chained pairwise in declaration order. A scene that declares a
transition blends into the next one with ffmpeg `xfade` (video) and
`acrossfade` (audio) over the clamped overlap; otherwise the pair is
joined by `concat` (hard cut). Every input is first normalized to the
same timebase, frame rate, pixel format and audio layout, which both
`xfade` and `concat` require.

A global audio track, when configured, is looped with `-stream_loop -1`,
volume-scaled, trimmed to the output duration, given fade-in/out
envelopes and mixed over the scene audio with `amix`.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .config import CompositionConfig
from .encoder import run_with_retries
from .errors import ResourceNotFoundError
from .scene import Scene
from .timing import composition_duration, transition_overlap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioTrack:
    """Background audio mixed over the whole output."""

    path: Path
    volume: float = 1.0
    fade_in: float = 0.0
    fade_out: float = 0.0
    loop: bool = False


def build_filter_graph(
    scenes: list[Scene],
    config: CompositionConfig,
    audio: AudioTrack | None = None,
) -> tuple[str, str, str]:
    """Build the stitch filter_complex.

    Inputs 0..n-1 are the scene artifacts in order; the audio track, if
    any, is input n.

    Returns:
        (filter_complex, video_label, audio_label)
    """
    fps = config.frame_rate
    pix_fmt = config.video_encoding.pixel_format
    enc = config.audio_encoding
    n = len(scenes)

    graph = []
    for i in range(n):
        graph.append(f"[{i}:v]settb=AVTB,fps={fps},format={pix_fmt}[v{i}]")
        graph.append(
            f"[{i}:a]aformat=sample_rates={enc.sample_rate}"
            f":channel_layouts={enc.channel_layout},asetpts=PTS-STARTPTS[a{i}]"
        )

    video, sound = "[v0]", "[a0]"
    elapsed = scenes[0].duration
    for i in range(1, n):
        overlap = transition_overlap(scenes[i - 1], scenes[i])
        if overlap > 0:
            # xfade's offset is measured on the accumulated left stream.
            offset = elapsed - overlap
            graph.append(
                f"{video}[v{i}]xfade=transition={scenes[i - 1].transition.xfade}"
                f":duration={overlap:.3f}:offset={offset:.3f}[vx{i}]"
            )
            graph.append(f"{sound}[a{i}]acrossfade=d={overlap:.3f}[ax{i}]")
            elapsed += scenes[i].duration - overlap
        else:
            graph.append(f"{video}{sound}[v{i}][a{i}]concat=n=2:v=1:a=1[vx{i}][ax{i}]")
            elapsed += scenes[i].duration
        video, sound = f"[vx{i}]", f"[ax{i}]"

    if audio is not None:
        total = composition_duration(scenes)
        chain = [
            f"volume={audio.volume:.6g}",
            f"atrim=duration={total:.3f}",
            "asetpts=PTS-STARTPTS",
            f"aformat=sample_rates={enc.sample_rate}:channel_layouts={enc.channel_layout}",
        ]
        if audio.fade_in > 0:
            chain.append(f"afade=t=in:st=0:d={audio.fade_in:.3f}")
        if audio.fade_out > 0:
            start = max(0.0, total - audio.fade_out)
            chain.append(f"afade=t=out:st={start:.3f}:d={audio.fade_out:.3f}")
        graph.append(f"[{n}:a]{','.join(chain)}[bgm]")
        graph.append(f"{sound}[bgm]amix=inputs=2:duration=first:normalize=0[aout]")
        sound = "[aout]"

    return ";".join(graph), video, sound


def build_stitch_args(
    artifacts: list[Path],
    scenes: list[Scene],
    output: str | Path,
    config: CompositionConfig,
    audio: AudioTrack | None = None,
) -> list[str]:
    if len(artifacts) != len(scenes):
        raise ValueError(
            f"Got {len(artifacts)} artifacts for {len(scenes)} scenes"
        )
    args = []
    for path in artifacts:
        args += ["-i", str(path)]
    if audio is not None:
        if audio.loop:
            args += ["-stream_loop", "-1"]
        args += ["-i", str(audio.path)]

    graph, video, sound = build_filter_graph(scenes, config, audio)
    args += [
        "-filter_complex", graph,
        "-map", video, "-map", sound,
        *config.video_encoding.to_args(),
        "-r", str(config.frame_rate),
        *config.audio_encoding.to_args(),
        "-t", f"{composition_duration(scenes):.3f}",
        "-movflags", "+faststart",
        str(output),
    ]
    return args


def stitch(
    artifacts: list[Path],
    scenes: list[Scene],
    output: Path,
    config: CompositionConfig,
    runner,
    log_path: Path,
    audio: AudioTrack | None = None,
    on_progress: Callable[[float], None] | None = None,
    **retry,
) -> Path:
    """Write the joined video to `output` (normally a staging path).

    A single scene without a global audio track is already the final
    video and is copied as is.

    Args:
        on_progress: Called with the fraction of the output encoded so far.
        **retry: Passed to run_with_retries (max_retries, retry_delay,
            cancelled, on_attempt); see RenderTaskQueue.retry_policy.
    """
    if audio is not None and not Path(audio.path).is_file():
        raise ResourceNotFoundError(
            f"Audio track not found: {audio.path}", str(audio.path),
        )

    if len(artifacts) == 1 and audio is None:
        shutil.copyfile(artifacts[0], output)
        logger.debug("Single scene, copied %s", artifacts[0].name)
        return output

    total = composition_duration(scenes)

    def _progress(seconds: float) -> None:
        if on_progress is not None and total > 0:
            on_progress(min(1.0, seconds / total))

    run_with_retries(
        runner,
        build_stitch_args(artifacts, scenes, output, config, audio),
        output,
        log_path,
        label="stitch",
        on_progress=_progress,
        **retry,
    )
    return output
