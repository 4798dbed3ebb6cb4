"""
Tests for FrameCompositor layering and the frame encoders.
Run from project root: python -m pytest tests/test_compositor.py -v
Or: python tests/test_compositor.py
"""
import sys
import os
from io import BytesIO

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import av
import numpy as np
import pytest
from composer.avatar import AvatarEngine
from composer.core.errors import RenderError
from composer.core.types import CaptionStyle, CompositionConfig
from composer.video.compositor import FrameCompositor
from composer.video.encoder import FFmpegEncoder, PyAVCapture, frame_filename, run_ffmpeg

W, H = 270, 480


def _config(**overrides):
    base = dict(
        caption_text="hello from the composition pipeline",
        background={"type": "pattern", "pattern": "grid"},
        duration_ms=1000.0,
        fps=10,
        width=W,
        height=H,
        caption_style=CaptionStyle(font_size=20, line_height=26, max_width=240, y_from_bottom=100, stroke_width=4),
        avatar_size=40,
        avatar_margin=20,
    )
    base.update(overrides)
    return CompositionConfig(**base)


def _avatar(seed=1):
    avatar = AvatarEngine(size=40, seed=seed)
    avatar.set_state("talking")
    for _ in range(5):
        avatar.update(0.1)
    return avatar


# -----------------------------------------------------------------------------
# Compositor
# -----------------------------------------------------------------------------

def test_frame_size_and_mode():
    compositor = FrameCompositor(_config(), _avatar())
    frame = compositor.render_frame(500)
    assert frame.size == (W, H)
    assert frame.mode == "RGB"
    assert compositor.render_array(500).shape == (H, W, 3)


def test_avatar_anchor_upper_right():
    compositor = FrameCompositor(_config(), _avatar())
    assert compositor.avatar_anchor == (W - 20 - 20, 20 + 20)


def test_progress_is_clamped():
    compositor = FrameCompositor(_config())
    assert compositor.progress(-10) == 0.0
    assert compositor.progress(500) == 0.5
    assert compositor.progress(5000) == 1.0


def test_rendering_is_deterministic():
    a = FrameCompositor(_config(), _avatar(seed=3)).render_array(420)
    b = FrameCompositor(_config(), _avatar(seed=3)).render_array(420)
    assert np.array_equal(a, b)


def test_layers_are_optional():
    background_only = FrameCompositor(_config(caption_text="", show_avatar=False)).render_array(300)
    with_avatar = FrameCompositor(_config(caption_text=""), _avatar()).render_array(300)
    with_caption = FrameCompositor(_config(show_avatar=False)).render_array(300)

    ax, ay = W - 40, 40
    assert not np.array_equal(background_only[ay - 20:ay + 20, ax - 20:ax + 20], with_avatar[ay - 20:ay + 20, ax - 20:ax + 20])
    assert np.array_equal(background_only[H - 150:], with_avatar[H - 150:])
    assert not np.array_equal(background_only[H - 150:], with_caption[H - 150:])
    assert np.array_equal(background_only[:100], with_caption[:100])


def test_hidden_avatar_is_not_drawn():
    hidden = FrameCompositor(_config(caption_text="", show_avatar=False), _avatar()).render_array(0)
    background_only = FrameCompositor(_config(caption_text="", show_avatar=False)).render_array(0)
    assert np.array_equal(hidden, background_only)


def test_render_does_not_advance_avatar():
    avatar = _avatar()
    motion = avatar.motion
    compositor = FrameCompositor(_config(), avatar)
    compositor.render_frame(0)
    compositor.render_frame(900)
    assert avatar.motion == motion


# -----------------------------------------------------------------------------
# Encoders
# -----------------------------------------------------------------------------

def test_frame_filename():
    assert frame_filename(0) == "frame_00000.png"
    assert frame_filename(149) == "frame_00149.png"


def test_ffmpeg_command_with_audio(tmp_path):
    encoder = FFmpegEncoder(crf=20)
    args = encoder.command(tmp_path, 30, tmp_path / "out.mp4", tmp_path / "audio.wav")
    assert args[:4] == ["-framerate", "30", "-i", str(tmp_path / "frame_%05d.png")]
    assert args[4:6] == ["-i", str(tmp_path / "audio.wav")]
    for flag, value in (("-c:v", "libx264"), ("-pix_fmt", "yuv420p"), ("-crf", "20"), ("-r", "30"), ("-c:a", "aac")):
        assert args[args.index(flag) + 1] == value
    assert args[-1] == str(tmp_path / "out.mp4")


def test_ffmpeg_command_without_audio(tmp_path):
    args = FFmpegEncoder().command(tmp_path, 24, tmp_path / "out.mp4")
    assert args.count("-i") == 1
    assert "-c:a" not in args


def test_missing_ffmpeg_is_render_error():
    with pytest.raises(RenderError):
        run_ffmpeg(["-version"], binary="definitely-not-ffmpeg-binary")


def test_capture_requires_start():
    capture = PyAVCapture(64, 48, 10)
    with pytest.raises(RenderError):
        capture.add_frame(np.zeros((48, 64, 3), dtype=np.uint8), 0.0)
    capture.stop()
    capture.stop()


def test_capture_produces_mp4():
    capture = PyAVCapture(64, 48, 10, sample_rate=44100, video_codec="mpeg4")
    capture.start()
    for i in range(5):
        capture.add_frame(np.full((48, 64, 3), i * 40, dtype=np.uint8), i / 10)
    capture.add_audio(np.zeros((2, 22050), dtype=np.float32))
    data = capture.finish()
    assert not capture.active
    assert capture.frames_written == 5
    assert data[4:8] == b"ftyp"
    with av.open(BytesIO(data)) as container:
        assert len(container.streams.video) == 1
        assert len(container.streams.audio) == 1
        frames = sum(1 for _ in container.decode(video=0))
    assert frames == 5


if __name__ == "__main__":
    test_frame_size_and_mode()
    test_avatar_anchor_upper_right()
    test_progress_is_clamped()
    test_rendering_is_deterministic()
    test_layers_are_optional()
    test_hidden_avatar_is_not_drawn()
    test_render_does_not_advance_avatar()
    test_frame_filename()
    test_missing_ffmpeg_is_render_error()
    test_capture_requires_start()
    test_capture_produces_mp4()
    print("All compositor tests passed.")
