"""
Tests for procedural music beds and music-reference resolution.
Run from project root: python -m pytest tests/test_music.py -v
Or: python tests/test_music.py
"""
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest
from composer.core.errors import DecodeError
from composer.core.io import AudioIO
from composer.core.types import AudioBuffer
from composer.music import PRESETS, list_tracks, render_track, resolve_music

# Low rate keeps the renders quick; the presets do not depend on it
SR = 8000


def test_list_tracks():
    assert list_tracks() == sorted(PRESETS)
    assert {"upbeat-tech", "corporate-focus", "lofi-chill", "cinematic-build", "minimal-tech"} <= set(list_tracks())


@pytest.mark.parametrize("name", sorted(PRESETS))
def test_preset_is_stereo_and_normalized(name):
    track = render_track(name, sample_rate=SR, seed=1, duration=3.0)
    assert track.num_channels == 2
    assert track.num_frames == 3 * SR
    for ch in range(2):
        assert float(np.max(np.abs(track.samples[ch]))) == pytest.approx(0.9, abs=1e-4)
    assert not np.isnan(track.samples).any()


def test_same_seed_renders_identically():
    a = render_track("lofi-chill", sample_rate=SR, seed=3, duration=2.0)
    b = render_track("lofi-chill", sample_rate=SR, seed=3, duration=2.0)
    c = render_track("lofi-chill", sample_rate=SR, seed=4, duration=2.0)
    assert np.array_equal(a.samples, b.samples)
    assert not np.array_equal(a.samples, c.samples)


def test_default_duration_comes_from_preset():
    track = render_track("minimal-tech", sample_rate=SR)
    assert track.duration == pytest.approx(PRESETS["minimal-tech"].duration)


def test_unknown_preset():
    with pytest.raises(KeyError):
        render_track("polka", sample_rate=SR)


# -----------------------------------------------------------------------------
# resolve_music
# -----------------------------------------------------------------------------

def test_resolve_none_and_buffer():
    assert resolve_music(None, SR) is None
    assert resolve_music("", SR) is None
    buffer = AudioBuffer(np.zeros((2, 10), dtype=np.float32), SR)
    assert resolve_music(buffer, SR) is buffer


def test_resolve_preset_is_cached():
    a = resolve_music("minimal-tech", SR, seed=2)
    b = resolve_music("minimal-tech", SR, seed=2)
    assert a is b


def test_resolve_bytes_and_path(tmp_path):
    buffer = AudioBuffer(np.full((2, SR // 2), 0.25, dtype=np.float32), SR)
    wav = AudioIO.to_wav_bytes(buffer)
    assert resolve_music(wav, SR).num_frames == SR // 2
    path = tmp_path / "bed.wav"
    path.write_bytes(wav)
    assert resolve_music(str(path), SR).num_frames == SR // 2


def test_resolve_missing_reference():
    with pytest.raises(DecodeError):
        resolve_music("no-such-preset-or-file.wav", SR)


if __name__ == "__main__":
    test_list_tracks()
    for preset in sorted(PRESETS):
        test_preset_is_stereo_and_normalized(preset)
    test_same_seed_renders_identically()
    test_default_duration_comes_from_preset()
    test_resolve_none_and_buffer()
    test_resolve_preset_is_cached()
    test_resolve_missing_reference()
    print("All music tests passed.")
