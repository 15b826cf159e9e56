"""scenecompose.common: shared utilities.

Contains: color parsing, path variable resolution, font loading,
text rasterization, and media probing.
"""

import re
from pathlib import Path

import imageio_ffmpeg
from PIL import Image, ImageColor, ImageDraw, ImageFont
from moviepy.video.io.ffmpeg_reader import ffmpeg_parse_infos

from .errors import ConfigError, ResourceNotFoundError


# ── Font paths ─────────────────────────────────────────────────────
# Inter preferred, DejaVu Sans as fallback.

FONT_PATHS = [
    Path.home() / ".local/share/fonts/Inter.ttc",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
]


def ffmpeg_executable() -> str:
    """Path of the ffmpeg binary bundled with imageio-ffmpeg."""
    return imageio_ffmpeg.get_ffmpeg_exe()


# ── Color utilities ────────────────────────────────────────────────

def parse_hex_color(hex_str: str) -> tuple[int, int, int]:
    """Convert '#RRGGBB' or 'RRGGBB' string to (R, G, B) tuple."""
    hex_str = hex_str.lstrip("#")
    return (int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16))


def parse_color(value) -> tuple[int, int, int]:
    """Resolve a color given as '#RRGGBB', 'RRGGBB', an RGB sequence,
    or any color name Pillow knows ('white', 'crimson', ...).

    Raises:
        ConfigError: the value is not a color.
    """
    if isinstance(value, (tuple, list)) and len(value) == 3:
        if all(isinstance(c, int) and 0 <= c <= 255 for c in value):
            return tuple(value)
        raise ConfigError(f"Invalid RGB color: {value!r}")
    if not isinstance(value, str) or not value:
        raise ConfigError(f"Invalid color: {value!r}")
    if len(value.lstrip("#")) == 6 and all(
        c in "0123456789abcdefABCDEF" for c in value.lstrip("#")
    ):
        return parse_hex_color(value)
    try:
        return ImageColor.getrgb(value)[:3]
    except ValueError:
        raise ConfigError(
            f"Unknown color: '{value}'. Not a hex value or a known color name."
        ) from None


def color_to_ffmpeg(rgb: tuple[int, int, int]) -> str:
    """Format an RGB tuple as an ffmpeg color literal (0xRRGGBB)."""
    return "0x{:02X}{:02X}{:02X}".format(*rgb)


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ConfigError(f"Unknown path variable: ${{{key}}}")
        return str(paths[key])
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Font loading ───────────────────────────────────────────────────

def load_font(
    size: int, font_path: str | Path | None = None,
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load the requested font file, or Inter (or fallback), at the given size."""
    candidates = [Path(font_path)] if font_path else []
    candidates += FONT_PATHS
    for path in candidates:
        if path.exists():
            try:
                return ImageFont.truetype(str(path), size=size, index=0)
            except (OSError, IndexError):
                continue
    # Last resort: Pillow default font, scaled when Pillow supports it.
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        return ImageFont.load_default()


# ── Text rasterization ─────────────────────────────────────────────

def render_text_image(
    text: str,
    font_size: int,
    color: tuple[int, int, int],
    output_path: str | Path,
    background: tuple[int, int, int] | None = None,
    border_width: int = 0,
    border_color: tuple[int, int, int] = (0, 0, 0),
    font_path: str | Path | None = None,
    padding: int = 8,
) -> tuple[int, int]:
    """Rasterize text onto a transparent RGBA PNG and return its (w, h).

    The optional background fills the whole patch; the border is drawn as
    a glyph stroke. Multi-line text (with '\\n') is centered.
    """
    font = load_font(font_size, font_path)
    probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    bbox = probe.multiline_textbbox(
        (0, 0), text, font=font, align="center", stroke_width=border_width,
    )
    text_w = bbox[2] - bbox[0]
    text_h = bbox[3] - bbox[1]

    # Even dimensions keep yuv420p chroma subsampling happy downstream.
    w = text_w + 2 * padding
    h = text_h + 2 * padding
    w += w % 2
    h += h % 2

    fill = (*background, 255) if background else (0, 0, 0, 0)
    img = Image.new("RGBA", (w, h), fill)
    draw = ImageDraw.Draw(img)
    draw.multiline_text(
        (padding - bbox[0], padding - bbox[1]), text,
        fill=(*color, 255), font=font, align="center",
        stroke_width=border_width, stroke_fill=(*border_color, 255),
    )

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    img.save(str(output_path), format="PNG")
    return w, h


# ── Media probing ──────────────────────────────────────────────────

def probe_media(path: str | Path) -> dict:
    """Probe a media file with moviepy's ffmpeg info parser.

    imageio_ffmpeg does not bundle ffprobe, so this reads the header
    report of the bundled ffmpeg binary instead.

    Returns:
        Dict with duration, video_size, video_fps, audio_found.

    Raises:
        ResourceNotFoundError: the file is missing or not readable media.
    """
    path = Path(path)
    if not path.is_file():
        raise ResourceNotFoundError(f"Source file not found: {path}", str(path))
    try:
        infos = ffmpeg_parse_infos(str(path))
    except (OSError, IndexError, KeyError) as exc:
        raise ResourceNotFoundError(
            f"Unreadable media file: {path} ({exc})", str(path),
        ) from exc
    return {
        "duration": infos.get("duration"),
        "video_size": infos.get("video_size"),
        "video_fps": infos.get("video_fps"),
        "audio_found": bool(infos.get("audio_found")),
    }
