"""Tests for easing curves, animation descriptors and effect presets."""

import pytest

from scenecompose.easing import ALIASES, EASINGS, canonical_easing, easing_expr, get_easing
from scenecompose.effects import (
    EFFECT_PRESETS,
    MOVE_DISTANCE,
    Animation,
    Transform,
    animation_from_dict,
    channel_expr,
    evaluate_transform,
    expand_effect,
    make_animation,
    progress_expr,
)
from scenecompose.errors import ConfigError


class TestEasing:
    @pytest.mark.parametrize("name", sorted(EASINGS))
    def test_endpoints(self, name):
        f = get_easing(name)
        assert f(0.0) == pytest.approx(0.0)
        assert f(1.0) == pytest.approx(1.0)

    def test_quad_out_midpoint(self):
        assert get_easing("quadOut")(0.5) == pytest.approx(0.75)

    def test_aliases(self):
        for alias, target in ALIASES.items():
            assert canonical_easing(alias) == target

    def test_unknown_easing(self):
        with pytest.raises(ConfigError, match="Unknown easing"):
            get_easing("wobble")

    def test_expression_substitutes_progress(self):
        assert easing_expr("linear", "P") == "P"
        assert "P" in easing_expr("quadIn", "P")


class TestAnimationWindow:
    def test_in_window(self):
        anim = make_animation("fade", "in", time=1, delay=0.5, start=0, end=1)
        assert anim.window(10) == (0.5, 1.5)

    def test_out_window(self):
        anim = make_animation("fade", "out", time=1, delay=0.5, start=1, end=0)
        assert anim.window(10) == (8.5, 9.5)

    def test_holds_endpoints_outside_window(self):
        anim = make_animation("fade", "in", time=1, delay=1, start=0, end=1)
        assert anim.progress(0.0, 5) == 0.0
        assert anim.progress(4.0, 5) == 1.0

    def test_zero_time_is_a_step(self):
        anim = make_animation("fade", "in", time=0, delay=1, start=0, end=1)
        assert anim.progress(0.99, 5) == 0.0
        assert anim.progress(1.0, 5) == 1.0

    @pytest.mark.parametrize("kwargs", [
        {"type": "spin"}, {"type": "fade", "show_type": "middle"},
        {"type": "fade", "time": -1}, {"type": "fade", "delay": -0.1},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ConfigError):
            make_animation(**kwargs)


class TestDescriptors:
    def test_scalar_from_to_maps_to_channel(self):
        anim = animation_from_dict({"type": "zoom", "from": 0.5, "to": 1})
        assert anim.from_state == {"scale": 0.5}
        assert anim.to_state == {"scale": 1.0}

    def test_opacity_alias(self):
        anim = animation_from_dict({"type": "custom", "from": {"opacity": 0}, "to": {"opacity": 1}})
        assert anim.channels() == {"alpha"}

    def test_channel_not_allowed_for_type(self):
        with pytest.raises(ConfigError, match="unknown"):
            animation_from_dict({"type": "fade", "from": {"x": 1}})

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="Unknown animation key"):
            animation_from_dict({"type": "fade", "speed": 2})

    def test_missing_type(self):
        with pytest.raises(ConfigError, match="type"):
            animation_from_dict({"time": 1})

    def test_animation_passthrough(self):
        anim = make_animation("fade", start=0, end=1)
        assert animation_from_dict(anim) is anim

    def test_is_frozen(self):
        anim = make_animation("fade", start=0, end=1)
        with pytest.raises(Exception):
            anim.time = 3


class TestPresets:
    @pytest.mark.parametrize("name", sorted(EFFECT_PRESETS))
    def test_every_preset_expands(self, name):
        animations = expand_effect(name, 1.0, 0.0)
        assert len(animations) >= 1
        assert all(isinstance(a, Animation) for a in animations)

    def test_expected_names(self):
        for side in ("Left", "Right", "Up", "Down"):
            assert f"moveIn{side}" in EFFECT_PRESETS
            assert f"moveOut{side}" in EFFECT_PRESETS
        for name in ("fadeIn", "fadeOut", "zoomIn", "zoomOut", "rotateIn", "rotateOut"):
            assert name in EFFECT_PRESETS

    def test_expansion_is_pure(self):
        assert expand_effect("zoomIn", 2, 1) == expand_effect("zoomIn", 2, 1)

    def test_in_presets_ease_out(self):
        assert {a.easing for a in expand_effect("moveInLeft")} == {"quadOut"}
        assert {a.show_type for a in expand_effect("fadeOut")} == {"out"}

    def test_unknown(self):
        with pytest.raises(ConfigError):
            expand_effect("explode")


class TestEvaluateTransform:
    def test_fade_in_over_time(self):
        anims = expand_effect("fadeIn", 2, 0)
        base = Transform()
        assert evaluate_transform(base, anims, 0, 5).alpha == 0
        assert evaluate_transform(base, anims, 2, 5).alpha == 1
        assert 0 < evaluate_transform(base, anims, 1, 5).alpha < 1

    def test_move_in_left_is_a_translation_delta(self):
        anims = expand_effect("moveInLeft", 1, 0)
        base = Transform(x=300, y=200)
        start = evaluate_transform(base, anims, 0, 4)
        end = evaluate_transform(base, anims, 1, 4)
        assert start.x == 300 - MOVE_DISTANCE
        assert end.x == 300
        assert end.y == 200

    def test_deltas_compose_in_order(self):
        anims = [
            make_animation("zoom", "in", time=1, start=0.5, end=0.5),
            make_animation("zoom", "in", time=1, start=2, end=2),
            make_animation("rotate", "in", time=1, start=10, end=10),
            make_animation("rotate", "in", time=1, start=5, end=5),
        ]
        state = evaluate_transform(Transform(scale=1.5, rotate=30), anims, 0.5, 3)
        assert state.scale == pytest.approx(1.5)
        assert state.rotate == pytest.approx(45)

    def test_out_animation_ends_at_duration(self):
        anims = expand_effect("fadeOut", 1, 0)
        assert evaluate_transform(Transform(), anims, 3.0, 4).alpha == 1
        assert evaluate_transform(Transform(), anims, 4.0, 4).alpha == 0


class TestExpressions:
    def test_static_channel_is_none(self):
        anims = expand_effect("fadeIn")
        assert channel_expr("x", 100, anims, 5) is None

    def test_alpha_expression_uses_time_var(self):
        expr = channel_expr("alpha", 1.0, expand_effect("fadeIn"), 5, time_var="T")
        assert "T" in expr
        assert "clip(" in expr

    def test_offset_shifts_local_time(self):
        anim = make_animation("fade", start=0, end=1)
        assert "(t-(2.5))" in progress_expr(anim, 5, "t", offset=2.5)

    def test_additive_vs_multiplicative_join(self):
        moves = expand_effect("moveInLeft") + expand_effect("moveInRight")
        zooms = expand_effect("zoomIn") + expand_effect("zoomIn")
        assert ")+(" in channel_expr("x", 0, moves, 5)
        assert ")*(" in channel_expr("scale", 1, zooms, 5)
