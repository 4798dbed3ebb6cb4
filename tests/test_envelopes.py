"""
Unit tests for composer/dsp/envelopes: helpers, ADSR length and continuity.
Run from project root: python -m pytest tests/test_envelopes.py -v
Or: python tests/test_envelopes.py
"""
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
import torch
from composer.dsp.envelopes import db_to_lin, ms_to_s, clamp01, Envelope


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def test_db_to_lin():
    assert db_to_lin(0.0) == 1.0
    assert abs(db_to_lin(-6.0) - 0.5) < 0.01
    assert abs(db_to_lin(6.0) - 2.0) < 0.01


def test_ms_to_s():
    assert ms_to_s(0) == 0.0
    assert ms_to_s(1000) == 1.0
    assert ms_to_s(50) == 0.05


def test_clamp01():
    assert clamp01(0.5) == 0.5
    assert clamp01(-0.1) == 0.0
    assert clamp01(1.5) == 1.0
    torch.testing.assert_close(clamp01(torch.tensor([-1.0, 0.5, 2.0])), torch.tensor([0.0, 0.5, 1.0]))


# -----------------------------------------------------------------------------
# ADSR length
# -----------------------------------------------------------------------------

ADSR_CASES = [
    # attack, decay, sustain, release, duration, sr
    (0.01, 0.1, 0.6, 0.2, 1.0, 44100),
    (0.001, 0.02, 0.0, 0.02, 0.05, 44100),
    (0.3, 0.5, 0.7, 1.0, 4.0, 44100),
    (0.0, 0.0, 1.0, 0.0, 0.25, 48000),
    (0.1, 0.1, 0.5, 0.1, 0.35, 8000),
    (0.0033, 0.0071, 0.4, 0.0123, 0.1234, 44100),
]


@pytest.mark.parametrize("attack,decay,sustain,release,duration,sr", ADSR_CASES)
def test_adsr_length_is_exact(attack, decay, sustain, release, duration, sr):
    """Stage lengths plus sustain hold always sum to the total sample count."""
    env = Envelope.adsr(attack, decay, sustain, release, duration, sr)
    expected = int(duration * sr)
    assert env.shape[0] == expected, f"length {env.shape[0]} != {expected}"
    n_a, n_d, n_s, n_r = Envelope.stage_lengths(attack, decay, release, duration, sr)
    assert n_a + n_d + n_s + n_r == expected


@pytest.mark.parametrize("attack,decay,sustain,release,duration,sr", ADSR_CASES)
def test_adsr_continuous_at_stage_boundaries(attack, decay, sustain, release, duration, sr):
    """No jump between neighbouring samples larger than one ramp step."""
    env = Envelope.adsr(attack, decay, sustain, release, duration, sr)
    n_a, n_d, _, n_r = Envelope.stage_lengths(attack, decay, release, duration, sr)
    steps = [1.0 / n for n in (n_a, n_d, n_r) if n > 0]
    # a zero-length attack starts at the top of the decay, which is a step from silence
    if n_a == 0 and env.shape[0] > 0:
        env = torch.cat([torch.tensor([1.0]), env])
    if env.shape[0] < 2:
        return
    max_jump = float(torch.max(torch.abs(torch.diff(env))))
    allowed = max(steps) + 1e-5 if steps else 1e-5
    assert max_jump <= allowed, f"jump {max_jump} exceeds {allowed}"


def test_adsr_shape_values():
    sr = 1000
    env = Envelope.adsr(0.1, 0.1, 0.5, 0.1, 1.0, sr)
    assert float(env[0]) == 0.0
    assert abs(float(env[100]) - 1.0) < 1e-6, "decay starts at full level"
    assert abs(float(env[500]) - 0.5) < 1e-6, "sustain holds the level"
    assert float(env[-1]) < 0.5 / 100 + 1e-6, "release ends one step above zero"
    assert not torch.isnan(env).any() and not torch.isinf(env).any()


def test_adsr_rejects_stages_longer_than_duration():
    with pytest.raises(ValueError):
        Envelope.adsr(0.5, 0.5, 0.5, 0.5, 1.0, 44100)


def test_apply_scales_stages_for_short_notes():
    """apply() never fails on a note shorter than its stages and keeps the length."""
    sig = torch.ones(441)
    out = Envelope.apply(sig, 0.01, 0.05, 0.5, 0.1, 44100)
    assert out.shape == sig.shape
    assert float(out.max()) <= 1.0
    torch.testing.assert_close(sig, torch.ones(441), msg="input must not be modified")


if __name__ == "__main__":
    test_db_to_lin()
    test_ms_to_s()
    test_clamp01()
    for case in ADSR_CASES:
        test_adsr_length_is_exact(*case)
        test_adsr_continuous_at_stage_boundaries(*case)
    test_adsr_shape_values()
    test_apply_scales_stages_for_short_notes()
    print("All envelope tests passed.")
