"""scenecompose: declarative scene-based video composition.

Build a Composition of Scenes holding Image, Video, Text and Gif
elements, attach effects and animations, then start() a render that
drives ffmpeg through a bounded pool of cached, fingerprinted jobs and
stitches the scenes (with transitions and a global audio track) into a
single output file.
"""

from .center import RenderCenter
from .composition import Composition, CompositionState
from .config import AudioEncoding, CompositionConfig, VideoEncoding
from .effects import Animation, expand_effect
from .elements import Gif, Image, Text, Video
from .errors import (
    ConfigError,
    ExternalProcessError,
    RenderCancelled,
    ResourceNotFoundError,
    SceneComposeError,
)
from .events import Completed, Failed, Progress, RenderRun, Started
from .manifest import load_composition, validate_sources
from .scene import Scene

__all__ = [
    "Animation",
    "AudioEncoding",
    "Completed",
    "Composition",
    "CompositionConfig",
    "CompositionState",
    "ConfigError",
    "ExternalProcessError",
    "Failed",
    "Gif",
    "Image",
    "Progress",
    "RenderCancelled",
    "RenderCenter",
    "RenderRun",
    "ResourceNotFoundError",
    "Scene",
    "SceneComposeError",
    "Started",
    "Text",
    "Video",
    "VideoEncoding",
    "expand_effect",
    "load_composition",
    "validate_sources",
]
