"""Effect presets and animation descriptors.

An Animation is a time-windowed transform rule attached to an element.
Named effects ("fadeIn", "moveInLeft", ...) expand to one or more
Animations through the pure builder expand_effect().

Window rules, for element-local time t and element duration D:
  - show_type "in":  active on [delay, delay + time]
  - show_type "out": active on [D - time - delay, D - delay]
Outside its window an animation holds its clamped endpoint: the `from`
state before the window, the `to` state after it.

Transform channels and how deltas compose (in insertion order):
  x, y     additive translation in pixels
  scale    multiplicative factor
  rotate   additive angle in degrees
  alpha    multiplicative opacity
"""

from dataclasses import dataclass, field, replace

from .easing import canonical_easing, easing_expr, get_easing
from .errors import ConfigError


VALID_TYPES = {"move", "fade", "zoom", "rotate", "custom"}

VALID_SHOW_TYPES = {"in", "out"}

ADDITIVE_CHANNELS = {"x", "y", "rotate"}

MULTIPLICATIVE_CHANNELS = {"scale", "alpha"}

CHANNEL_IDENTITY = {"x": 0.0, "y": 0.0, "rotate": 0.0, "scale": 1.0, "alpha": 1.0}

# Which channels each animation type may touch.
TYPE_CHANNELS = {
    "move": {"x", "y"},
    "fade": {"alpha"},
    "zoom": {"scale"},
    "rotate": {"rotate"},
    "custom": set(CHANNEL_IDENTITY),
}

# Scalar from/to values for single-channel types map onto this channel.
SCALAR_CHANNEL = {"fade": "alpha", "zoom": "scale", "rotate": "rotate"}

# Translation used by the move presets, in pixels.
MOVE_DISTANCE = 200


@dataclass(frozen=True)
class Animation:
    type: str
    show_type: str = "in"
    time: float = 1.0
    delay: float = 0.0
    easing: str = "linear"
    from_state: dict = field(default_factory=dict)
    to_state: dict = field(default_factory=dict)

    def window(self, element_duration: float) -> tuple[float, float]:
        """Element-local (start, end) of the active ramp."""
        if self.show_type == "in":
            return self.delay, self.delay + self.time
        end = element_duration - self.delay
        return end - self.time, end

    def progress(self, t: float, element_duration: float) -> float:
        """Eased progress in [0, 1] at element-local time t."""
        start, _ = self.window(element_duration)
        if self.time <= 0:
            raw = 0.0 if t < start else 1.0
        else:
            raw = min(1.0, max(0.0, (t - start) / self.time))
        return get_easing(self.easing)(raw)

    def channels(self) -> set[str]:
        return set(self.from_state) | set(self.to_state)

    def value(self, channel: str, eased: float) -> float:
        a = self.from_state.get(channel, CHANNEL_IDENTITY[channel])
        b = self.to_state.get(channel, CHANNEL_IDENTITY[channel])
        return a + (b - a) * eased


@dataclass(frozen=True)
class Transform:
    """Resolved element state at one instant."""

    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0
    rotate: float = 0.0
    alpha: float = 1.0


def apply_animation(state: Transform, anim: Animation, t: float, duration: float) -> Transform:
    """Apply one animation's delta on top of the previous state."""
    eased = anim.progress(t, duration)
    updates = {}
    for channel in anim.channels():
        v = anim.value(channel, eased)
        if channel in ADDITIVE_CHANNELS:
            updates[channel] = getattr(state, channel) + v
        else:
            updates[channel] = getattr(state, channel) * v
    return replace(state, **updates)


def evaluate_transform(
    base: Transform,
    animations: list[Animation],
    t: float,
    duration: float,
) -> Transform:
    """Compose every animation's delta at element-local time t, in list order."""
    state = base
    for anim in animations:
        state = apply_animation(state, anim, t, duration)
    return state


# ── Descriptor normalization ──────────────────────────────────────


def _number(value, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"Animation {what} must be a number, got {value!r}")
    return float(value)


def _normalize_state(anim_type: str, value, what: str) -> dict:
    """Turn a from/to value into a {channel: number} dict."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        if anim_type not in SCALAR_CHANNEL:
            raise ConfigError(
                f"Animation '{anim_type}' needs a mapping for '{what}', got {value!r}"
            )
        return {SCALAR_CHANNEL[anim_type]: _number(value, what)}

    allowed = TYPE_CHANNELS[anim_type]
    state = {}
    for key, v in value.items():
        channel = "alpha" if key == "opacity" else key
        if channel not in allowed:
            raise ConfigError(
                f"Animation '{anim_type}': unknown '{what}' key '{key}'. "
                f"Valid: {sorted(allowed)}"
            )
        state[channel] = _number(v, f"{what}.{key}")
    return state


def make_animation(
    type: str,
    show_type: str = "in",
    time: float = 1.0,
    delay: float = 0.0,
    easing: str = "linear",
    start=None,
    end=None,
) -> Animation:
    """Validate parameters and build an Animation."""
    if type not in VALID_TYPES:
        raise ConfigError(f"Unknown animation type '{type}'. Valid: {sorted(VALID_TYPES)}")
    if show_type not in VALID_SHOW_TYPES:
        raise ConfigError(
            f"Invalid show_type '{show_type}'. Valid: {sorted(VALID_SHOW_TYPES)}"
        )
    time = _number(time, "time")
    delay = _number(delay, "delay")
    if time < 0:
        raise ConfigError(f"Animation time must be >= 0, got {time}")
    if delay < 0:
        raise ConfigError(f"Animation delay must be >= 0, got {delay}")
    return Animation(
        type=type,
        show_type=show_type,
        time=time,
        delay=delay,
        easing=canonical_easing(easing),
        from_state=_normalize_state(type, start, "from"),
        to_state=_normalize_state(type, end, "to"),
    )


def animation_from_dict(descriptor: dict) -> Animation:
    """Build an Animation from a caller descriptor.

    Accepts both the snake_case keys and the camelCase forms used by
    scene scripts: type, show_type/showType, time, delay, easing/ease,
    from, to.
    """
    if isinstance(descriptor, Animation):
        return descriptor
    if not isinstance(descriptor, dict):
        raise ConfigError(f"Animation descriptor must be a mapping, got {descriptor!r}")
    known = {"type", "show_type", "showType", "time", "delay", "easing", "ease", "from", "to"}
    unknown = set(descriptor) - known
    if unknown:
        raise ConfigError(f"Unknown animation key(s) {sorted(unknown)}")
    if "type" not in descriptor:
        raise ConfigError("Animation descriptor missing required field 'type'")
    return make_animation(
        type=descriptor["type"],
        show_type=descriptor.get("show_type", descriptor.get("showType", "in")),
        time=descriptor.get("time", 1.0),
        delay=descriptor.get("delay", 0.0),
        easing=descriptor.get("easing", descriptor.get("ease", "linear")),
        start=descriptor.get("from"),
        end=descriptor.get("to"),
    )


# ── Presets ───────────────────────────────────────────────────────
# Each preset is a list of (type, show_type, from, to) parts. In-ramps
# ease out, out-ramps ease in.

_FADE_IN = ("fade", "in", 0.0, 1.0)
_FADE_OUT = ("fade", "out", 1.0, 0.0)

_OFFSETS = {
    "Left": {"x": -MOVE_DISTANCE, "y": 0},
    "Right": {"x": MOVE_DISTANCE, "y": 0},
    "Up": {"x": 0, "y": -MOVE_DISTANCE},
    "Down": {"x": 0, "y": MOVE_DISTANCE},
}

# moveInLeft enters from the left; moveOutLeft leaves towards the left.
EFFECT_PRESETS: dict[str, list[tuple]] = {
    "fadeIn": [_FADE_IN],
    "fadeOut": [_FADE_OUT],
    "zoomIn": [("zoom", "in", 0.3, 1.0), _FADE_IN],
    "zoomOut": [("zoom", "out", 1.0, 0.3), _FADE_OUT],
    "rotateIn": [("rotate", "in", -180.0, 0.0), _FADE_IN],
    "rotateOut": [("rotate", "out", 0.0, 180.0), _FADE_OUT],
    "rotateInBig": [("rotate", "in", -360.0, 0.0), ("zoom", "in", 0.2, 1.0), _FADE_IN],
    "rotateOutBig": [("rotate", "out", 0.0, 360.0), ("zoom", "out", 1.0, 0.2), _FADE_OUT],
}
for _side, _offset in _OFFSETS.items():
    EFFECT_PRESETS[f"moveIn{_side}"] = [("move", "in", _offset, {"x": 0, "y": 0}), _FADE_IN]
    EFFECT_PRESETS[f"moveOut{_side}"] = [("move", "out", {"x": 0, "y": 0}, _offset), _FADE_OUT]


def expand_effect(name: str, time: float = 1.0, delay: float = 0.0) -> list[Animation]:
    """Expand a named effect into its ordered Animation descriptors.

    Raises:
        ConfigError: unknown effect name or invalid time/delay.
    """
    if name not in EFFECT_PRESETS:
        raise ConfigError(
            f"Unknown effect '{name}'. Valid: {sorted(EFFECT_PRESETS)}"
        )
    animations = []
    for anim_type, show_type, start, end in EFFECT_PRESETS[name]:
        animations.append(make_animation(
            type=anim_type,
            show_type=show_type,
            time=time,
            delay=delay,
            easing="quadOut" if show_type == "in" else "quadIn",
            start=start,
            end=end,
        ))
    return animations


# ── ffmpeg expressions ────────────────────────────────────────────


def _num(value: float) -> str:
    return f"({value:.6g})"


def progress_expr(anim: Animation, element_duration: float, time_var: str = "t", offset: float = 0.0) -> str:
    """ffmpeg expression for the eased progress of one animation.

    `time_var` is the filter's time variable; `offset` is subtracted from
    it to get element-local time.
    """
    start, _ = anim.window(element_duration)
    local = f"({time_var}-{_num(offset)})" if offset else time_var
    if anim.time <= 0:
        raw = f"gte({local},{_num(start)})"
    else:
        raw = f"clip(({local}-{_num(start)})/{_num(anim.time)},0,1)"
    return easing_expr(anim.easing, raw)


def channel_expr(
    channel: str,
    base: float,
    animations: list[Animation],
    element_duration: float,
    time_var: str = "t",
    offset: float = 0.0,
) -> str | None:
    """ffmpeg expression for one transform channel, or None when static."""
    terms = []
    for anim in animations:
        if channel not in anim.channels():
            continue
        a = anim.from_state.get(channel, CHANNEL_IDENTITY[channel])
        b = anim.to_state.get(channel, CHANNEL_IDENTITY[channel])
        p = progress_expr(anim, element_duration, time_var, offset)
        terms.append(f"({_num(a)}+{_num(b - a)}*({p}))")
    if not terms:
        return None
    joiner = "+" if channel in ADDITIVE_CHANNELS else "*"
    return joiner.join([_num(base)] + terms)
