"""
Tests for the avatar state machine, its steppers and the avatar painter.
Run from project root: python -m pytest tests/test_avatar.py -v
Or: python tests/test_avatar.py
"""
import sys
import os
import math

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest
from PIL import Image
from composer.avatar import AvatarEngine, AvatarMode, MAX_PARTICLES, STATE_CONFIGS, draw_avatar
from composer.avatar.states import parse_mode
from composer.avatar.steppers import Ripple
from composer.core.errors import UnknownState

DT = 1.0 / 60


# -----------------------------------------------------------------------------
# Modes
# -----------------------------------------------------------------------------

def test_initial_state():
    avatar = AvatarEngine(seed=1)
    assert avatar.get_state() == "idle"
    assert not avatar.is_speaking
    assert avatar.particles.capacity == MAX_PARTICLES == 35
    assert avatar.particles.alive_count == 0


def test_parse_mode_is_case_insensitive():
    assert parse_mode("TALKING") is AvatarMode.TALKING
    assert parse_mode(" executing ") is AvatarMode.EXECUTING
    assert parse_mode(AvatarMode.IDLE) is AvatarMode.IDLE


def test_unknown_state_keeps_mode():
    avatar = AvatarEngine(seed=1)
    avatar.set_state("talking")
    with pytest.raises(UnknownState):
        avatar.set_state("dancing")
    assert avatar.mode is AvatarMode.TALKING


def test_speaking_is_independent_of_mode():
    avatar = AvatarEngine(seed=1)
    avatar.set_speaking(True)
    avatar.set_state("executing")
    avatar.set_state("idle")
    assert avatar.is_speaking
    avatar.set_speaking(False)
    assert avatar.get_state() == "idle"


# -----------------------------------------------------------------------------
# Particles
# -----------------------------------------------------------------------------

def test_executing_activates_all_particles_on_first_update():
    avatar = AvatarEngine(seed=2)
    avatar.set_state("executing")
    avatar.update(DT)
    assert avatar.particles.alive_count == 35


def test_particle_count_follows_mode_within_arena():
    avatar = AvatarEngine(seed=2)
    for mode in ("executing", "idle", "talking", "executing", "idle"):
        avatar.set_state(mode)
        avatar.update(DT)
        assert avatar.particles.alive_count == STATE_CONFIGS[parse_mode(mode)].particle_count
        assert avatar.particles.capacity == MAX_PARTICLES


def test_particles_orbit_near_the_sphere():
    avatar = AvatarEngine(size=80, seed=3)
    avatar.set_state("talking")
    for _ in range(120):
        avatar.update(DT)
    for p in avatar.particles.active():
        assert 40 * 0.95 - 1e-6 <= p.distance <= 40 * 1.25 + 1e-6
        assert 0.0 <= p.angle < 2 * math.pi


def test_same_seed_same_motion():
    a, b = AvatarEngine(seed=9), AvatarEngine(seed=9)
    for avatar in (a, b):
        avatar.set_state("talking")
        for _ in range(90):
            avatar.update(DT)
    assert a.particles == b.particles
    assert a.ripples == b.ripples


# -----------------------------------------------------------------------------
# Motion and ripples
# -----------------------------------------------------------------------------

def test_rotation_scales_with_dt():
    avatar = AvatarEngine(seed=1)
    avatar.update(DT)
    assert avatar.motion.rotation == pytest.approx(STATE_CONFIGS[AvatarMode.IDLE].rotation_speed)
    avatar.update(2 * DT)
    assert avatar.motion.rotation == pytest.approx(3 * STATE_CONFIGS[AvatarMode.IDLE].rotation_speed)


def test_state_change_resets_pulse_only():
    avatar = AvatarEngine(seed=1)
    for _ in range(30):
        avatar.update(DT)
    time, rotation = avatar.motion.time, avatar.motion.rotation
    assert avatar.motion.pulse_phase > 0
    avatar.set_state("talking")
    assert avatar.motion.pulse_phase == 0.0
    assert avatar.motion.time == time
    assert avatar.motion.rotation == rotation


def test_pulse_period_matches_config():
    avatar = AvatarEngine(seed=1)
    avatar.set_state("executing")
    # 900 ms pulse: after 54 frames at 60 Hz the phase wraps back to ~0
    for _ in range(54):
        avatar.update(DT)
    phase = avatar.motion.pulse_phase
    assert min(phase, 2 * math.pi - phase) < 1e-6


def test_ripples_expire():
    avatar = AvatarEngine(seed=1)
    avatar.ripples = (Ripple(radius=40.0, opacity=1.0, expansion=2.0),)
    avatar.update(DT)
    assert avatar.ripples[0].radius == pytest.approx(42.0)
    assert avatar.ripples[0].opacity == pytest.approx(0.98)
    for _ in range(51):
        avatar.update(DT)
    assert avatar.ripples == ()


def test_idle_never_spawns_ripples():
    avatar = AvatarEngine(seed=4)
    for _ in range(300):
        avatar.update(DT)
    assert avatar.ripples == ()


def test_non_positive_dt_is_ignored():
    avatar = AvatarEngine(seed=1)
    avatar.update(0.0)
    avatar.update(-1.0)
    assert avatar.motion.time == 0.0


# -----------------------------------------------------------------------------
# Painter
# -----------------------------------------------------------------------------

def test_draw_avatar_paints_without_mutating():
    avatar = AvatarEngine(size=80, seed=5)
    avatar.set_state("executing")
    avatar.set_speaking(True)
    for _ in range(10):
        avatar.update(DT)
    particles, ripples, motion = avatar.particles, avatar.ripples, avatar.motion

    frame = Image.new("RGB", (200, 200), (0, 0, 0))
    draw_avatar(frame, avatar, (100, 100))
    pixels = np.asarray(frame)
    assert pixels[100, 100].sum() > 0, "sphere covers the centre"
    assert pixels[0, 0].sum() == 0, "corners stay untouched"
    assert avatar.particles == particles
    assert avatar.ripples == ripples
    assert avatar.motion == motion


def test_draw_avatar_near_edge_is_clipped():
    avatar = AvatarEngine(size=80, seed=5)
    avatar.update(DT)
    frame = Image.new("RGB", (100, 100), (0, 0, 0))
    draw_avatar(frame, avatar, (95, 5))
    assert frame.size == (100, 100)


if __name__ == "__main__":
    test_initial_state()
    test_parse_mode_is_case_insensitive()
    test_unknown_state_keeps_mode()
    test_speaking_is_independent_of_mode()
    test_executing_activates_all_particles_on_first_update()
    test_particle_count_follows_mode_within_arena()
    test_particles_orbit_near_the_sphere()
    test_same_seed_same_motion()
    test_rotation_scales_with_dt()
    test_state_change_resets_pulse_only()
    test_pulse_period_matches_config()
    test_ripples_expire()
    test_idle_never_spawns_ripples()
    test_non_positive_dt_is_ignored()
    test_draw_avatar_paints_without_mutating()
    test_draw_avatar_near_edge_is_clipped()
    print("All avatar tests passed.")
