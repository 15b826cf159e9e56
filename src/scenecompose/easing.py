"""Named easing curves.

Each curve exists twice: as a Python function (used by
effects.evaluate_transform) and as an ffmpeg expression template with a
`{p}` placeholder for the normalized progress (used by the filter graph).
Both forms map 0 → 0 and 1 → 1.

Usage:
    from scenecompose.easing import get_easing, easing_expr

    get_easing("quadOut")(0.5)         # 0.75
    easing_expr("quadOut", "clip(t/2,0,1)")
"""

import math
from typing import Callable

from .errors import ConfigError


# =============================================================================
# Easing Functions
# =============================================================================


def linear(t: float) -> float:
    return t


def quad_in(t: float) -> float:
    return t * t


def quad_out(t: float) -> float:
    return 1 - (1 - t) * (1 - t)


def quad_in_out(t: float) -> float:
    if t < 0.5:
        return 2 * t * t
    return 1 - (-2 * t + 2) ** 2 / 2


def cubic_in(t: float) -> float:
    return t * t * t


def cubic_out(t: float) -> float:
    return 1 - (1 - t) ** 3


def cubic_in_out(t: float) -> float:
    if t < 0.5:
        return 4 * t * t * t
    return 1 - (-2 * t + 2) ** 3 / 2


def sine_in(t: float) -> float:
    return 1 - math.cos((t * math.pi) / 2)


def sine_out(t: float) -> float:
    return math.sin((t * math.pi) / 2)


def sine_in_out(t: float) -> float:
    return -(math.cos(math.pi * t) - 1) / 2


def back_out(t: float) -> float:
    """Ease out with overshoot."""
    c1 = 1.70158
    c3 = c1 + 1
    return 1 + c3 * (t - 1) ** 3 + c1 * (t - 1) ** 2


# =============================================================================
# Registry
# =============================================================================

# name -> (python function, ffmpeg expression template)
EASINGS: dict[str, tuple[Callable[[float], float], str]] = {
    "linear": (linear, "{p}"),
    "quadIn": (quad_in, "({p})*({p})"),
    "quadOut": (quad_out, "1-(1-({p}))*(1-({p}))"),
    "quadInOut": (
        quad_in_out,
        "if(lt({p},0.5),2*({p})*({p}),1-pow(-2*({p})+2,2)/2)",
    ),
    "cubicIn": (cubic_in, "pow({p},3)"),
    "cubicOut": (cubic_out, "1-pow(1-({p}),3)"),
    "cubicInOut": (
        cubic_in_out,
        "if(lt({p},0.5),4*pow({p},3),1-pow(-2*({p})+2,3)/2)",
    ),
    "sineIn": (sine_in, "1-cos(({p})*PI/2)"),
    "sineOut": (sine_out, "sin(({p})*PI/2)"),
    "sineInOut": (sine_in_out, "(1-cos(PI*({p})))/2"),
    "backOut": (
        back_out,
        "1+2.70158*pow(({p})-1,3)+1.70158*pow(({p})-1,2)",
    ),
}

ALIASES = {
    "easeIn": "cubicIn",
    "easeOut": "cubicOut",
    "easeInOut": "cubicInOut",
}


def canonical_easing(name: str) -> str:
    """Resolve aliases and validate an easing name."""
    name = ALIASES.get(name, name)
    if name not in EASINGS:
        raise ConfigError(
            f"Unknown easing '{name}'. "
            f"Valid: {sorted(set(EASINGS) | set(ALIASES))}"
        )
    return name


def get_easing(name: str) -> Callable[[float], float]:
    return EASINGS[canonical_easing(name)][0]


def easing_expr(name: str, progress: str) -> str:
    """Substitute a progress expression into the named curve's template."""
    return EASINGS[canonical_easing(name)][1].format(p=progress)
