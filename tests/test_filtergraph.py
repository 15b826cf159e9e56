"""Tests for the ffmpeg argument builders (no encoder runs)."""

from pathlib import Path

from scenecompose import Gif, Image, Scene, Text, Video
from scenecompose.config import CompositionConfig
from scenecompose.filtergraph import (
    ElementInput,
    element_audio_chain,
    element_overlay,
    element_video_chain,
    extraction_args,
    scene_args,
)
from scenecompose.timing import resolve_element


CONFIG = CompositionConfig.from_options(frame_width=320, frame_height=240, frame_rate=10)


def _input(element, scene_duration=4.0, source_duration=None, **kwargs):
    resolved = resolve_element(element, scene_duration, 0, source_duration)
    return ElementInput(resolved, Path("in.png"), **kwargs)


def _graph(args):
    return args[args.index("-filter_complex") + 1]


class TestExtractionArgs:
    def test_trim_window(self):
        args = extraction_args("src.mp4", 1.0, 3.5, "out.mp4", CONFIG)
        assert args[:4] == ["-ss", "1.000", "-t", "2.500"]
        assert args[args.index("-i") + 1] == "src.mp4"
        assert "0:a:0?" in args
        assert args[-1] == "out.mp4"

    def test_open_ended_from_zero(self):
        args = extraction_args("src.mp4", 0.0, None, "out.mp4", CONFIG)
        assert "-ss" not in args and "-t" not in args
        assert "fps=10,format=yuv420p" in args


class TestSceneArgs:
    def test_background_only_scene(self):
        scene = Scene(duration=2, background="#102030")
        args = scene_args(scene, [], "out.mp4", CONFIG)
        assert "color=c=0x102030:s=320x240:r=10:d=2.000" in args
        graph = _graph(args)
        assert "[0:v]format=yuv420p[vout]" in graph
        assert "[abed]anull[aout]" in graph
        assert args[-1] == "out.mp4"
        assert args[args.index("-t") + 1] == "2.000"

    def test_default_background_color(self):
        config = CompositionConfig.from_options(default_background_color="white")
        args = scene_args(Scene(duration=1), [], "out.mp4", config)
        assert any(a.startswith("color=c=0xFFFFFF") for a in args)

    def test_elements_overlaid_in_z_order(self):
        scene = Scene(duration=4)
        items = [
            ElementInput(resolve_element(Image("a.png"), 4, 0), Path("a.png")),
            ElementInput(resolve_element(Image("b.png", appear_time=1), 4, 1), Path("b.png")),
        ]
        graph = _graph(scene_args(scene, items, "out.mp4", CONFIG))
        assert graph.index("[0:v][e0]overlay") < graph.index("[v0][e1]overlay")
        assert "[v1]format=yuv420p[vout]" in graph

    def test_empty_window_is_skipped(self):
        scene = Scene(duration=2)
        item = ElementInput(resolve_element(Image("late.png", appear_time=5), 2, 0), Path("late.png"))
        args = scene_args(scene, [item], "out.mp4", CONFIG)
        assert "late.png" not in args

    def test_element_audio_mixed(self):
        scene = Scene(duration=3)
        video = Video("v.mp4", audio=True, appear_time=1)
        item = ElementInput(resolve_element(video, 3, 0, 10.0), Path("clip.mp4"), has_audio=True)
        graph = _graph(scene_args(scene, [item], "out.mp4", CONFIG))
        assert "adelay=1000:all=1" in graph
        assert "amix=inputs=2:duration=first:normalize=0[aout]" in graph


class TestElementChains:
    def test_image_input_loops(self):
        from scenecompose.filtergraph import _input_args

        args = _input_args(_input(Image("a.png")), 4.0, 10)
        assert args[:2] == ["-loop", "1"]

    def test_gif_and_looped_video_inputs(self):
        from scenecompose.filtergraph import _input_args

        assert "-ignore_loop" in _input_args(_input(Gif("a.gif")), 4.0, 10)
        looped = _input(Video("v.mp4", loop=True), source_duration=1.0)
        assert _input_args(looped, 4.0, 10)[:3] == ["-stream_loop", "-1", "-t"]

    def test_freeze_pads_last_frame(self):
        chain = element_video_chain(_input(Video("v.mp4"), source_duration=1.0), 10)
        assert chain[0].startswith("tpad=stop_mode=clone")

    def test_shift_to_start_is_last(self):
        chain = element_video_chain(_input(Image("a.png", appear_time=1.5)), 10)
        assert chain[-1] == "setpts=PTS-STARTPTS+1.500/TB"

    def test_explicit_size_and_scale(self):
        chain = element_video_chain(_input(Image("a.png", width=100, height=50, scale=2)), 10)
        assert "scale=200:100" in chain

    def test_text_uses_natural_size(self):
        chain = element_video_chain(_input(Text("hi", scale=0.5), natural_size=(80, 40)), 10)
        assert "scale=40:20" in chain

    def test_fade_adds_alpha_expression(self):
        img = Image("a.png")
        img.add_effect("fadeIn", 1, 0)
        chain = ",".join(element_video_chain(_input(img), 10))
        assert "geq=" in chain and "alpha(X,Y)" in chain

    def test_static_element_has_no_animation_filters(self):
        chain = ",".join(element_video_chain(_input(Image("a.png")), 10))
        assert "geq" not in chain
        assert "rotate" not in chain
        assert "eval=frame" not in chain

    def test_rotation_and_zoom(self):
        img = Image("a.png", rotate=15)
        img.add_effect("rotateInBig", 1, 0)
        chain = ",".join(element_video_chain(_input(img), 10))
        assert "rotate=a=" in chain and "c=none" in chain
        assert "eval=frame" in chain

    def test_overlay_centers_element(self):
        overlay = element_overlay(_input(Image("a.png", x=100, y=80, appear_time=1, duration=2)), 320, 240)
        assert "x='(100)-w/2'" in overlay
        assert "between(t,1.000,3.000)" in overlay

    def test_overlay_defaults_to_frame_center(self):
        overlay = element_overlay(_input(Image("a.png")), 320, 240)
        assert "x='(160)-w/2'" in overlay and "y='(120)-h/2'" in overlay

    def test_overlay_moves_with_animation(self):
        img = Image("a.png", x=100, appear_time=1)
        img.add_effect("moveInLeft", 1, 0)
        overlay = element_overlay(_input(img), 320, 240)
        assert "(t-(1))" in overlay

    def test_audio_only_when_requested_and_present(self):
        assert element_audio_chain(_input(Video("v.mp4"), source_duration=9, has_audio=True), CONFIG) is None
        assert element_audio_chain(_input(Video("v.mp4", audio=True), source_duration=9), CONFIG) is None
        chain = element_audio_chain(
            _input(Video("v.mp4", audio=True), source_duration=1, has_audio=True), CONFIG,
        )
        assert chain[0] == "apad"
