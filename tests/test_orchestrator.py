"""
Tests for the composition orchestrator in batch and live modes.
Encoding is replaced by in-memory fakes; the live scheduler runs on a
SyntheticClock so the tests never wait in real time.
Run from project root: python -m pytest tests/test_orchestrator.py -v
Or: python tests/test_orchestrator.py
"""
import sys
import os
import asyncio
import struct
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest
from composer.audio.mixer import AudioMixer
from composer.core.clock import SyntheticClock
from composer.core.errors import Cancelled, RenderError
from composer.core.io import WAV_HEADER_SIZE
from composer.core.types import AudioBuffer, CompositionConfig
from composer.render import Orchestrator, compose, estimate_speech_duration_ms

SR = 44100


class FakeEncoder:
    media_type = "video/mp4"

    def __init__(self):
        self.calls = []

    def encode(self, frame_dir, fps, output_path, audio_path=None):
        frames = sorted(p.name for p in Path(frame_dir).glob("frame_*.png"))
        audio = Path(audio_path).read_bytes() if audio_path is not None else None
        self.calls.append({"dir": Path(frame_dir), "fps": fps, "frames": frames, "audio": audio})
        return b"fake-mp4"


class FakeCapture:
    media_type = "video/mp4"

    def __init__(self):
        self.started = False
        self.stopped = False
        self.finished = False
        self.timestamps = []
        self.audio_samples = 0

    def start(self):
        self.started = True

    def add_frame(self, frame, timestamp):
        assert frame.size == (90, 160)
        self.timestamps.append(timestamp)

    def add_audio(self, block):
        assert block.shape[0] == 2
        self.audio_samples += block.shape[1]

    def finish(self):
        self.finished = True
        return b"live-mp4"

    def stop(self):
        self.stopped = True


def _config(**overrides):
    base = dict(
        caption_text="a short caption for the tests",
        duration_ms=1000.0,
        fps=10,
        width=90,
        height=160,
        avatar_size=24,
        avatar_margin=4,
    )
    base.update(overrides)
    return CompositionConfig(**base)


def _dc_track(seconds=2.0, level=0.5):
    return AudioBuffer(np.full((2, int(seconds * SR)), level, dtype=np.float32), SR)


def _speech_mixer(speech_s=0.3):
    mixer = AudioMixer(SR)
    mixer.load_track(_dc_track())
    rng = np.random.default_rng(0)
    mixer.load_speech(AudioBuffer(rng.uniform(-0.5, 0.5, size=(2, int(speech_s * SR))).astype(np.float32), SR))
    return mixer


def test_estimate_speech_duration():
    assert estimate_speech_duration_ms("x" * 30) == pytest.approx(2000.0)
    assert estimate_speech_duration_ms("x" * 30, rate=2.0) == pytest.approx(1000.0)
    assert estimate_speech_duration_ms("") == 0.0


# -----------------------------------------------------------------------------
# Batch mode
# -----------------------------------------------------------------------------

def test_batch_frame_count_and_artifact():
    encoder = FakeEncoder()
    saved = []
    orchestrator = Orchestrator(_config(duration_ms=5000.0, fps=30), store=saved.append)
    artifact = orchestrator.render_batch(encoder=encoder)

    call = encoder.calls[0]
    assert len(call["frames"]) == 150
    assert call["frames"][0] == "frame_00000.png" and call["frames"][-1] == "frame_00149.png"
    assert call["fps"] == 30
    assert call["audio"] is None, "no music, no audio track"
    assert not call["dir"].exists(), "temporary frame directory is removed"

    assert artifact.data == b"fake-mp4"
    assert artifact.media_type == "video/mp4"
    assert (artifact.width, artifact.height) == (90, 160)
    assert artifact.frame_count == 150
    assert artifact.duration_ms == pytest.approx(5000.0)
    assert saved == [artifact]
    assert orchestrator.progress == 1.0


def test_batch_with_music_writes_audio(tmp_path):
    encoder = FakeEncoder()
    orchestrator = Orchestrator(_config(music=_dc_track()))
    orchestrator.render_batch(output_dir=tmp_path / "frames", encoder=encoder)
    audio = encoder.calls[0]["audio"]
    assert audio[:4] == b"RIFF"
    assert struct.unpack("<I", audio[40:44])[0] == SR * 4
    assert len(audio) == WAV_HEADER_SIZE + SR * 4
    assert (tmp_path / "frames" / "frame_00009.png").exists(), "explicit output dir is kept"


def test_batch_avatar_follows_speech():
    states = []
    orchestrator = Orchestrator(_config(), mixer=_speech_mixer(0.3))

    def progress(value):
        states.append((orchestrator.avatar.get_state(), orchestrator.avatar.is_speaking))

    orchestrator.render_batch(encoder=FakeEncoder(), on_progress=progress)
    assert states[:3] == [("talking", True)] * 3
    assert states[3:] == [("idle", False)] * 7


def test_batch_uses_configured_speech_duration_and_resting_state():
    states = []
    orchestrator = Orchestrator(_config(speech_duration_ms=250.0, avatar_state="executing"))
    orchestrator.render_batch(
        encoder=FakeEncoder(),
        on_progress=lambda v: states.append(orchestrator.avatar.get_state()),
    )
    assert states == ["talking"] * 3 + ["executing"] * 7


def test_batch_progress_is_monotonic():
    values = []
    Orchestrator(_config()).render_batch(encoder=FakeEncoder(), on_progress=values.append)
    assert values == sorted(values)
    assert values[-1] == 1.0


def test_batch_cancel():
    encoder = FakeEncoder()
    saved = []
    orchestrator = Orchestrator(_config(), store=saved.append)

    def progress(value):
        if value >= 0.25:
            orchestrator.stop()

    with pytest.raises(Cancelled):
        orchestrator.render_batch(encoder=encoder, on_progress=progress)
    assert encoder.calls == []
    assert saved == []
    assert orchestrator.progress == pytest.approx(0.3)


def test_encoder_failure_is_render_error():
    class Broken(FakeEncoder):
        def encode(self, frame_dir, fps, output_path, audio_path=None):
            raise RenderError("ffmpeg exited with status 1", stderr="boom")

    with pytest.raises(RenderError) as info:
        Orchestrator(_config()).render_batch(encoder=Broken())
    assert info.value.stderr == "boom"


# -----------------------------------------------------------------------------
# Live mode
# -----------------------------------------------------------------------------

def test_live_capture_timing_and_audio():
    capture = FakeCapture()
    saved = []
    orchestrator = Orchestrator(_config(), mixer=_speech_mixer(0.3), store=saved.append)
    artifact = asyncio.run(orchestrator.render_live(clock=SyntheticClock(), capture=capture))

    assert capture.started and capture.finished and not capture.stopped
    assert len(capture.timestamps) == 10
    assert capture.timestamps == sorted(capture.timestamps)
    assert len(set(capture.timestamps)) == 10
    assert capture.timestamps[0] == 0.0
    assert capture.timestamps[-1] == pytest.approx(0.9)
    assert capture.audio_samples == SR

    assert artifact.data == b"live-mp4"
    assert artifact.frame_count == 10
    assert artifact.duration_ms == 1000.0
    assert saved == [artifact]
    assert not orchestrator.mixer.is_playing


def test_live_without_music_has_no_audio():
    capture = FakeCapture()
    asyncio.run(Orchestrator(_config()).render_live(clock=SyntheticClock(), capture=capture))
    assert capture.audio_samples == 0
    assert len(capture.timestamps) == 10


def test_live_cancel():
    capture = FakeCapture()
    saved = []
    orchestrator = Orchestrator(_config(), mixer=_speech_mixer(), store=saved.append)

    def progress(value):
        if value >= 0.25:
            orchestrator.stop()

    with pytest.raises(Cancelled):
        asyncio.run(orchestrator.render_live(clock=SyntheticClock(), capture=capture, on_progress=progress))
    assert capture.stopped and not capture.finished
    assert len(capture.timestamps) == 4
    assert saved == []
    assert orchestrator.mixer.graph.released


# -----------------------------------------------------------------------------
# Lifecycle
# -----------------------------------------------------------------------------

def test_stop_and_dispose_are_idempotent():
    mixer = _speech_mixer()
    orchestrator = Orchestrator(_config(), mixer=mixer)
    orchestrator.stop()
    orchestrator.stop()
    orchestrator.dispose()
    orchestrator.dispose()
    assert mixer.track is None
    with pytest.raises(RenderError):
        orchestrator.render_batch(encoder=FakeEncoder())


def test_orchestrator_can_render_twice():
    encoder = FakeEncoder()
    orchestrator = Orchestrator(_config(duration_ms=300.0))
    orchestrator.render_batch(encoder=encoder)
    orchestrator.render_batch(encoder=encoder)
    assert [len(c["frames"]) for c in encoder.calls] == [3, 3]


# -----------------------------------------------------------------------------
# compose()
# -----------------------------------------------------------------------------

def test_compose_from_request():
    saved = []
    artifact = compose(
        {"captionText": "hi", "durationMs": 500, "fps": 10, "width": 90, "height": 160, "avatar": {"size": 24}},
        store=saved.append,
        encoder=FakeEncoder(),
    )
    assert artifact.frame_count == 5
    assert saved == [artifact]


def test_compose_speech_without_music_keeps_the_voice():
    encoder = FakeEncoder()
    rng = np.random.default_rng(3)
    speech = AudioBuffer(rng.uniform(-0.5, 0.5, size=(1, SR)).astype(np.float32), SR)
    compose(
        {"captionText": "hi there", "durationMs": 500, "fps": 10, "width": 90, "height": 160, "avatar": {"size": 24}},
        speech=speech,
        encoder=encoder,
    )
    audio = encoder.calls[0]["audio"]
    assert audio is not None, "speech must reach the encoder"
    n = int(0.5 * SR)
    assert len(audio) == WAV_HEADER_SIZE + n * 4
    pcm = np.frombuffer(audio[WAV_HEADER_SIZE:], dtype="<i2")
    assert np.abs(pcm).max() > 1000


def test_live_speech_without_music_is_captured():
    capture = FakeCapture()
    mixer = AudioMixer(SR)
    rng = np.random.default_rng(4)
    mixer.load_speech(AudioBuffer(rng.uniform(-0.5, 0.5, size=(2, int(0.3 * SR))).astype(np.float32), SR))
    asyncio.run(Orchestrator(_config(), mixer=mixer).render_live(clock=SyntheticClock(), capture=capture))
    assert capture.audio_samples == SR


def test_batch_unexpected_failure_is_render_error():
    config = _config(background={"type": "pattern", "pattern": "zigzag"})
    with pytest.raises(RenderError):
        Orchestrator(config).render_batch(encoder=FakeEncoder())


def test_live_unexpected_failure_releases_capture_and_mixer():
    class Exploding(FakeCapture):
        def add_frame(self, frame, timestamp):
            if len(self.timestamps) == 3:
                raise ValueError("frame rejected")
            super().add_frame(frame, timestamp)

    capture = Exploding()
    orchestrator = Orchestrator(_config(), mixer=_speech_mixer())
    with pytest.raises(RenderError) as info:
        asyncio.run(orchestrator.render_live(clock=SyntheticClock(), capture=capture))
    assert isinstance(info.value.__cause__, ValueError)
    assert capture.stopped and not capture.finished
    assert not orchestrator.mixer.is_playing

    bad_background = FakeCapture()
    with pytest.raises(RenderError):
        asyncio.run(
            Orchestrator(_config(background={"type": "pattern", "pattern": "zigzag"})).render_live(
                clock=SyntheticClock(), capture=bad_background
            )
        )
    assert bad_background.stopped and not bad_background.started


def test_compose_wraps_bad_requests():
    with pytest.raises(RenderError):
        compose({"textRevealMode": "bounce"}, encoder=FakeEncoder())
    with pytest.raises(RenderError):
        compose({"durationMs": 500, "width": 90, "height": 160, "background": {"type": "hologram"}}, encoder=FakeEncoder())


if __name__ == "__main__":
    test_estimate_speech_duration()
    test_batch_frame_count_and_artifact()
    test_batch_avatar_follows_speech()
    test_batch_uses_configured_speech_duration_and_resting_state()
    test_batch_progress_is_monotonic()
    test_batch_cancel()
    test_encoder_failure_is_render_error()
    test_live_capture_timing_and_audio()
    test_live_without_music_has_no_audio()
    test_live_cancel()
    test_stop_and_dispose_are_idempotent()
    test_orchestrator_can_render_twice()
    test_compose_from_request()
    test_compose_speech_without_music_keeps_the_voice()
    test_live_speech_without_music_is_captured()
    test_batch_unexpected_failure_is_render_error()
    test_live_unexpected_failure_releases_capture_and_mixer()
    test_compose_wraps_bad_requests()
    print("All orchestrator tests passed.")
