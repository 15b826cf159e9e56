"""Composition: the root of the scene graph and the render lifecycle.

States:
  IDLE -> BUILDING     first structural change (add_scene, set_option, ...)
  BUILDING -> STARTED  start(); the graph is frozen from here on
  STARTED -> COMPLETED | FAILED   exactly once, with one terminal event
  any -> DESTROYED     destroy(); tears down jobs and the cache

A render runs on its own thread in three phases:
  1. extraction  one job per distinct (source, clip window)
  2. scenes      one job per scene, reading the extracted clips
  3. stitch      join the scene artifacts and mix the global audio,
                 then publish the output with an atomic rename
"""

import enum
import logging
import threading
import time
import uuid
from dataclasses import asdict
from pathlib import Path
from typing import Callable

from .cache import CacheManager, fingerprint, source_stamp
from .common import probe_media, render_text_image
from .config import CompositionConfig
from .elements import Text, Video
from .encoder import EncoderRunner
from .errors import ConfigError, RenderCancelled
from .events import Completed, EventBus, Failed, Progress, RenderRun, Started
from .filtergraph import ElementInput, extraction_args, scene_args
from .render_queue import RenderJob, RenderTaskQueue
from .scene import Scene
from .stitch import AudioTrack, stitch
from .timing import composition_duration, resolve_scene

logger = logging.getLogger(__name__)

# How long destroy() waits for the render thread to unwind.
DESTROY_JOIN_TIMEOUT = 30.0


class CompositionState(enum.Enum):
    IDLE = "idle"
    BUILDING = "building"
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    DESTROYED = "destroyed"


class Composition:
    """An ordered list of scenes rendered to one output file.

    Keyword options are the configuration keys (frame_width, frame_rate,
    concurrency, video_encoding={...}, ...); unknown keys raise ConfigError.
    `runner_factory` replaces the ffmpeg runner, mainly for tests.

    Usage:
        comp = Composition(frame_width=640, frame_height=360)
        scene = comp.add_scene()
        scene.add_element(Text("hello"))
        comp.set_output("out.mp4")
        path = comp.start().result()
    """

    def __init__(self, runner_factory: Callable[[], object] | None = None, **options):
        self.config = CompositionConfig.from_options(**options)
        self.id = uuid.uuid4().hex[:12]
        self.scenes: list[Scene] = []
        self.audio: AudioTrack | None = None
        self.output_path: Path | None = None
        self._runner_factory = runner_factory or EncoderRunner
        self._state = CompositionState.IDLE
        self._lock = threading.RLock()
        self._bus = EventBus()
        self._cache: CacheManager | None = None
        self._queue: RenderTaskQueue | None = None
        self._thread: threading.Thread | None = None
        self._jobs_total = 0
        self._jobs_done = 0

    def __repr__(self):
        return f"<Composition {self.id} {self._state.value} scenes={len(self.scenes)}>"

    @property
    def state(self) -> CompositionState:
        return self._state

    @property
    def cache(self) -> CacheManager | None:
        return self._cache

    def _log(self, msg: str, *args) -> None:
        level = logging.INFO if self.config.logging_enabled else logging.DEBUG
        logger.log(level, msg, *args)

    def _mutable(self) -> None:
        with self._lock:
            if self._state is CompositionState.DESTROYED:
                raise ConfigError("Composition has been destroyed")
            if self._state is not CompositionState.IDLE and self._state is not CompositionState.BUILDING:
                raise ConfigError("Composition has already started")
            self._state = CompositionState.BUILDING

    # ── Building ────────────────────────────────────────────────

    def add_scene(self, scene: Scene | None = None) -> Scene:
        """Append a scene (a new empty one by default) and return it."""
        self._mutable()
        if scene is None:
            scene = Scene()
        elif not isinstance(scene, Scene):
            raise ConfigError(f"Expected a Scene, got {scene!r}")
        if scene.frozen or any(s is scene for s in self.scenes):
            raise ConfigError("Scene already belongs to a composition")
        self.scenes.append(scene)
        return scene

    def set_output(self, path: str | Path) -> None:
        self._mutable()
        if not path:
            raise ConfigError("Output path must be a non-empty path")
        self.output_path = Path(path)

    def get_option(self, name: str):
        return self.config.get(name)

    def set_option(self, name: str, value) -> None:
        self._mutable()
        self.config.set(name, value)

    def set_size(self, width: int, height: int) -> None:
        self.set_option("frame_width", width)
        self.set_option("frame_height", height)

    def open_log(self) -> None:
        self.set_option("logging_enabled", True)

    def close_log(self) -> None:
        self.set_option("logging_enabled", False)

    def add_audio(
        self,
        path: str | Path,
        volume: float = 1.0,
        fade_in: float = 0.0,
        fade_out: float = 0.0,
        loop: bool | None = None,
    ) -> AudioTrack:
        """Set the global audio track mixed over the whole output.

        `loop` defaults to the audio_loop_default option. Fade durations
        are in seconds.
        """
        self._mutable()
        if not path:
            raise ConfigError("Audio track requires a path")
        for name, value in (("volume", volume), ("fade_in", fade_in), ("fade_out", fade_out)):
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ConfigError(f"Audio {name} must be a number >= 0, got {value!r}")
        if loop is None:
            loop = self.config.audio_loop_default
        self.audio = AudioTrack(Path(path), float(volume), float(fade_in), float(fade_out), bool(loop))
        return self.audio

    def on(self, kind: str, handler: Callable) -> None:
        """Register a handler for "start", "progress", "complete" or "error"."""
        self._bus.on(kind, handler)

    def off(self, kind: str, handler: Callable) -> None:
        self._bus.off(kind, handler)

    # ── Lifecycle ───────────────────────────────────────────────

    def start(self) -> RenderRun:
        """Freeze the graph and begin rendering in the background.

        Emits Started before returning. Build-time problems (no scenes,
        already started, destroyed) raise ConfigError here; everything
        after reaches the caller through the returned RenderRun.
        """
        with self._lock:
            if self._state is CompositionState.DESTROYED:
                raise ConfigError("Composition has been destroyed")
            if self._state not in (CompositionState.IDLE, CompositionState.BUILDING):
                raise ConfigError("Composition has already started")
            if not self.scenes:
                raise ConfigError("Composition has no scenes")

            for scene in self.scenes:
                scene.freeze()
            self._state = CompositionState.STARTED
            self._cache = CacheManager(self.config.cache_dir, self.config.output_dir, run_id=self.id)
            self._queue = RenderTaskQueue(
                self._cache,
                concurrency=self.config.concurrency,
                runner=self._runner_factory(),
                on_job_done=self._job_done,
            )
            run = RenderRun(self._bus)
            self._log("Composition %s started: %d scene(s)", self.id, len(self.scenes))
            self._bus.emit(Started())
            self._thread = threading.Thread(
                target=self._render, name=f"scenecompose-{self.id}", daemon=True,
            )
            self._thread.start()
        return run

    def render(self, timeout: float | None = None) -> Path:
        """start() and block for the output path; raises the render error."""
        return self.start().result(timeout)

    def destroy(self) -> None:
        """Tear down from any state. No events are delivered afterwards.

        Terminates running encoders, removes partial files and deletes this
        composition's cache directory. A published output file is kept.
        Safe to call more than once, and from inside an event handler.
        """
        with self._lock:
            if self._state is CompositionState.DESTROYED:
                return
            self._state = CompositionState.DESTROYED
            self._bus.close()
            queue, thread = self._queue, self._thread

        if queue is not None:
            queue.cancel()
        if thread is not None and thread is not threading.current_thread():
            thread.join(DESTROY_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning("Render thread of %s did not stop in time", self.id)
        if queue is not None:
            queue.shutdown(wait=False)
        if self._cache is not None:
            self._cache.cleanup()
        self._log("Composition %s destroyed", self.id)

    # ── Render thread ───────────────────────────────────────────

    def _job_done(self, job: RenderJob) -> None:
        with self._lock:
            self._jobs_done += 1
            fraction = self._jobs_done / (self._jobs_total + 1)
        self._log("Finished %s (%d/%d)", job.label, self._jobs_done, self._jobs_total)
        self._bus.emit(Progress(fraction))

    def _render(self) -> None:
        started_at = time.monotonic()
        try:
            output = self._render_pipeline()
        except RenderCancelled:
            self._log("Composition %s cancelled", self.id)
            return
        except Exception as exc:
            with self._lock:
                if self._state is CompositionState.DESTROYED:
                    return
                logger.error("Composition %s failed: %s", self.id, exc)
                self._state = CompositionState.FAILED
                if self._cache is not None:
                    self._cache.discard_staging()
                self._bus.emit(Failed(exc))
            return
        finally:
            if self._queue is not None:
                self._queue.shutdown(wait=False)

        with self._lock:
            if self._state is CompositionState.DESTROYED:
                return
            self._state = CompositionState.COMPLETED
            usage = {
                "elapsed": round(time.monotonic() - started_at, 3),
                "scenes": len(self.scenes),
                "jobs": self._jobs_total,
                "encoder_invocations": self._queue.encoder_invocations,
                "cache_hits": self._queue.cache_hits,
                "duration": composition_duration(self.scenes),
                "size": output.stat().st_size,
            }
            self._log("Composition %s completed: %s", self.id, output)
            self._bus.emit(Progress(1.0))
            self._bus.emit(Completed(output, usage))

    def _render_pipeline(self) -> Path:
        cache, queue = self._cache, self._queue
        cache.ensure()

        probes: dict[Path, dict] = {}
        resolved_scenes = []
        for scene in self.scenes:
            durations = {}
            for i, element in enumerate(scene.elements):
                if isinstance(element, Video):
                    if element.path not in probes:
                        probes[element.path] = probe_media(element.path)
                    durations[i] = probes[element.path]["duration"]
            resolved_scenes.append(resolve_scene(scene, durations))

        extractions: dict[str, RenderJob] = {}
        clip_keys: dict[tuple[int, int], str] = {}
        for si, resolved in enumerate(resolved_scenes):
            for r in resolved:
                if isinstance(r.element, Video) and not r.window.empty:
                    job = self._extraction_job(r)
                    extractions.setdefault(job.fingerprint, job)
                    clip_keys[si, r.index] = job.fingerprint

        scene_jobs = [
            self._scene_job(si, scene, resolved_scenes[si], clip_keys, probes)
            for si, scene in enumerate(self.scenes)
        ]
        with self._lock:
            self._jobs_total = len(extractions) + len(scene_jobs)

        try:
            self._log("Extracting %d clip(s)", len(extractions))
            queue.run_all(list(extractions.values()))
            self._log("Rendering %d scene(s)", len(scene_jobs))
            artifacts = queue.run_all(scene_jobs)
        except Exception:
            # A failed scene also takes the first phase's clips with it.
            for fp in extractions:
                cache.discard(fp)
            raise

        output = cache.resolve_output(self.output_path)
        staging = cache.staging_path(output)
        base = self._jobs_total / (self._jobs_total + 1)

        def _stitch_progress(fraction: float) -> None:
            self._bus.emit(Progress(base + fraction / (self._jobs_total + 1)))

        self._log("Stitching %d scene(s) into %s", len(artifacts), output)
        stitch(
            artifacts, self.scenes, staging, self.config, queue.runner,
            cache.log_path("stitch"), audio=self.audio, on_progress=_stitch_progress,
            **queue.retry_policy(),
        )

        with self._lock:
            if self._state is CompositionState.DESTROYED:
                raise RenderCancelled("Composition destroyed before publishing")
            return cache.publish(staging, output)

    def _extraction_job(self, resolved) -> RenderJob:
        element, clip = resolved.element, resolved.clip
        start, end = clip.source_start, clip.source_end
        if clip.clip_length is not None and clip.clip_length <= 0:
            raise ConfigError(
                f"{element.path.name}: clip_start_time {start} is past the end of the source"
            )
        fp = fingerprint("clip", {
            "source": source_stamp(element.path),
            "start": start,
            "end": end,
            "frame_rate": self.config.frame_rate,
            "video": asdict(self.config.video_encoding),
            "audio": asdict(self.config.audio_encoding),
        })
        end_label = f"{end:.2f}" if end is not None else "end"
        return RenderJob(
            fingerprint=fp,
            label=f"clip {element.path.name} [{start:.2f}-{end_label}]",
            kind="extract",
            sources=[element.path],
            build_args=lambda out: extraction_args(element.path, start, end, out, self.config),
            duration=clip.clip_length,
        )

    def _scene_job(self, si: int, scene: Scene, resolved, clip_keys, probes) -> RenderJob:
        cache, config = self._cache, self.config
        drawn = [r for r in resolved if not r.window.empty]
        sources = [p for r in drawn if not isinstance(r.element, Video) for p in r.element.sources()]
        fp = fingerprint("scene", {
            "scene": scene.describe(),
            "frame": [config.frame_width, config.frame_height, config.frame_rate],
            "default_background": config.default_background_color,
            "video": asdict(config.video_encoding),
            "audio": asdict(config.audio_encoding),
            "clips": sorted(clip_keys.get((si, r.index), "") for r in drawn),
            "sources": [source_stamp(p) for p in sources],
        }, index=si)

        text_assets: dict[int, Path] = {}
        for r in drawn:
            if isinstance(r.element, Text):
                text_fp = fingerprint("text", _text_payload(r.element))
                text_assets[r.index] = cache.asset_path(f"{text_fp}.png")
        text_sizes: dict[int, tuple[int, int]] = {}

        def prepare() -> None:
            for r in drawn:
                if r.index in text_assets:
                    el = r.element
                    text_sizes[r.index] = render_text_image(
                        el.text, el.font_size, el.color, text_assets[r.index],
                        background=el.background_color,
                        border_width=el.border_width,
                        border_color=el.border_color,
                        font_path=el.font_path,
                    )

        def build_args(out: Path) -> list[str]:
            inputs = []
            for r in drawn:
                el = r.element
                if isinstance(el, Video):
                    path = cache.artifact_path(clip_keys[si, r.index])
                    inputs.append(ElementInput(r, path, has_audio=probes[el.path]["audio_found"]))
                elif isinstance(el, Text):
                    inputs.append(ElementInput(r, text_assets[r.index], text_sizes.get(r.index)))
                else:
                    inputs.append(ElementInput(r, el.path))
            return scene_args(scene, inputs, out, config)

        return RenderJob(
            fingerprint=fp,
            label=f"scene {si}",
            kind="scene",
            sources=sources,
            prepare=prepare,
            build_args=build_args,
            duration=scene.duration,
        )


def _text_payload(text: Text) -> dict:
    return {
        "text": text.text,
        "font_size": text.font_size,
        "color": text.color,
        "background_color": text.background_color,
        "border_width": text.border_width,
        "border_color": text.border_color,
        "font_path": str(text.font_path) if text.font_path else None,
    }
