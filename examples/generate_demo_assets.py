#!/usr/bin/env python3
"""Generate synthetic media for the scenecompose demo manifest.

Creates three short clips, a logo PNG and a music bed in examples/demo-assets/.
Each clip counts seconds in its corner, so looped and frozen playback is
easy to spot in the render.

Usage:
    python examples/generate_demo_assets.py
    # Then render:
    scenecompose render --manifest examples/demo.yaml
"""

from pathlib import Path

import numpy as np
from moviepy import AudioArrayClip, ColorClip, CompositeVideoClip, ImageClip
from PIL import Image, ImageDraw

from scenecompose.common import load_font

OUTPUT_DIR = Path(__file__).resolve().parent / "demo-assets"
SIZE = (320, 240)
FPS = 30

CLIPS = [
    ("intro", (180, 60, 60), 3.0),
    ("middle", (60, 60, 180), 2.0),
    ("outro", (60, 160, 60), 4.0),
]


def _counter_frame(bg_color: tuple[int, int, int], second: int) -> np.ndarray:
    img = Image.new("RGB", SIZE, bg_color)
    draw = ImageDraw.Draw(img)
    draw.text((12, 8), f"{second}s", fill=(255, 255, 255), font=load_font(32))
    return np.array(img)


def _make_clip(name: str, color: tuple[int, int, int], duration: float) -> None:
    out = OUTPUT_DIR / f"{name}.mp4"
    if out.exists():
        print(f"  skip {name} (exists)")
        return
    body = ColorClip(size=SIZE, color=color, duration=duration)
    counters = [
        ImageClip(_counter_frame(color, s), duration=min(1.0, duration - s)).with_start(s)
        for s in range(int(np.ceil(duration)))
    ]
    final = CompositeVideoClip([body, *counters], size=SIZE)
    final.write_videofile(str(out), fps=FPS, codec="libx264", audio=False, logger=None)
    final.close()
    print(f"  {name}: {duration}s")


def _make_logo() -> None:
    out = OUTPUT_DIR / "logo.png"
    img = Image.new("RGBA", (120, 120), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.ellipse((4, 4, 116, 116), fill=(245, 190, 40, 255), outline=(255, 255, 255, 255), width=4)
    draw.text((60, 60), "SC", fill=(30, 30, 30, 255), font=load_font(44), anchor="mm")
    img.save(out)
    print("  logo.png")


def _make_music(duration: float = 6.0, rate: int = 44100) -> None:
    out = OUTPUT_DIR / "music.m4a"
    if out.exists():
        print("  skip music (exists)")
        return
    t = np.arange(int(duration * rate)) / rate
    tone = 0.2 * np.sin(2 * np.pi * 220 * t) + 0.1 * np.sin(2 * np.pi * 330 * t)
    clip = AudioArrayClip(np.column_stack([tone, tone]), fps=rate)
    clip.write_audiofile(str(out), fps=rate, codec="aac", logger=None)
    print(f"  music.m4a: {duration}s")


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    for name, color, duration in CLIPS:
        _make_clip(name, color, duration)
    _make_logo()
    _make_music()
    print(f"\nAssets in {OUTPUT_DIR}")


if __name__ == "__main__":
    main()
