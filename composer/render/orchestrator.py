"""
Composition orchestrator: drives the compositor, avatar and mixer over a
fixed duration and emits one RenderArtifact.

Batch mode renders PNG frames on synthetic timestamps (index / fps) and hands
them to an external encoder; the output duration is exactly frame_count / fps.
Live mode runs an audio job and a frame job on a TickScheduler and feeds a
capture as it goes; with a SyntheticClock it is deterministic too.
"""
import logging
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import numpy as np

from composer.audio.mixer import DEFAULT_SAMPLE_RATE, AudioMixer
from composer.avatar import AvatarEngine, AvatarMode
from composer.avatar.states import parse_mode
from composer.core.clock import WallClock
from composer.core.errors import Cancelled, ComposerError, RenderError
from composer.core.scheduler import TickScheduler
from composer.core.types import AudioBuffer, CompositionConfig, RenderArtifact
from composer.music.library import resolve_music
from composer.params.resolve import resolve_config
from composer.video.compositor import FrameCompositor
from composer.video.encoder import FFmpegEncoder, PyAVCapture, frame_filename

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Characters of caption text per second of speech, for the coarse estimate
SPEECH_CHARS_PER_SECOND = 15.0
MIN_SILENT_BED_S = 0.1
_EPS = 1e-9


def estimate_speech_duration_ms(text: str, rate: float = 1.0) -> float:
    """
    Rough speech length from text length (15 characters per second, scaled
    by the speaking rate). Only a fallback when no real duration is known.
    """
    rate = rate if rate and rate > 0 else 1.0
    return len(text or "") / SPEECH_CHARS_PER_SECOND / rate * 1000.0


class Orchestrator:
    def __init__(
        self,
        config: CompositionConfig,
        mixer: Optional[AudioMixer] = None,
        avatar: Optional[AvatarEngine] = None,
        store: Any = None,
        font_path: Optional[str] = None,
    ):
        self.config = config
        self.mixer = mixer
        self.avatar = avatar if avatar is not None else AvatarEngine(size=config.avatar_size, seed=config.seed)
        self.store = store
        self.font_path = font_path
        self.progress = 0.0
        self._rendering = False
        self._cancelled = False
        self._disposed = False
        self._scheduler: Optional[TickScheduler] = None
        self._capture = None
        self._compositor: Optional[FrameCompositor] = None

    # -------------------------------------------------------------------------
    # Shared pieces
    # -------------------------------------------------------------------------

    def _prepare_mixer(self) -> Optional[AudioMixer]:
        """Mixer with a loaded track, or None when the composition has no audio."""
        config = self.config
        if self.mixer is None:
            if config.music is None:
                return None
            self.mixer = AudioMixer(
                sample_rate=DEFAULT_SAMPLE_RATE,
                volumes=config.volumes or None,
                ducking_settings=config.ducking or None,
            )
        if self.mixer.track is None:
            if config.music is not None:
                self.mixer.load_track(resolve_music(config.music, self.mixer.sample_rate, config.seed))
            elif self.mixer.speech is not None:
                # Speech without a bed is mixed over silence
                length = max(config.duration_s, self.mixer.speech.duration, MIN_SILENT_BED_S)
                logger.info("No music reference; mixing speech over a %.2fs silent bed", length)
                self.mixer.load_track(AudioBuffer.silence(length, self.mixer.sample_rate))
        return self.mixer if self.mixer.track is not None else None

    def speech_duration_ms(self) -> float:
        """Decoded speech length if the mixer holds speech, else the configured length, else 0."""
        if self.mixer is not None and self.mixer.speech is not None:
            return self.mixer.speech.duration * 1000.0
        if self.config.speech_duration_ms is not None:
            return float(self.config.speech_duration_ms)
        return 0.0

    def _apply_speech_timeline(self, elapsed_ms: float, speech_ms: float) -> None:
        """Talking + speaking while speech plays, then the configured resting mode."""
        talking = elapsed_ms < speech_ms
        mode = AvatarMode.TALKING if talking else parse_mode(self.config.avatar_state)
        if self.avatar.mode != mode:
            self.avatar.set_state(mode)
        self.avatar.set_speaking(talking)

    def _begin(self) -> None:
        if self._disposed:
            raise RenderError("Orchestrator has been disposed")
        if self._rendering:
            raise RenderError("A render is already in progress")
        self._rendering = True
        self._cancelled = False
        self.progress = 0.0

    def _check_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled("Render stopped before completion")

    def _report(self, on_progress: Optional[ProgressCallback], value: float) -> None:
        self.progress = value
        if on_progress is not None:
            on_progress(value)

    def _finish(self, artifact: RenderArtifact) -> RenderArtifact:
        logger.info(
            "Render finished: %s, %dx%d, %.0f ms, %d bytes",
            artifact.media_type, artifact.width, artifact.height, artifact.duration_ms, len(artifact.data),
        )
        if self.store is not None:
            save = self.store.save if hasattr(self.store, "save") else self.store
            save(artifact)
        return artifact

    # -------------------------------------------------------------------------
    # Batch mode
    # -------------------------------------------------------------------------

    def _write_audio(self, mixer: Optional[AudioMixer], work: Path, duration_s: float) -> Optional[Path]:
        if mixer is None:
            return None
        path = work / "audio.wav"
        path.write_bytes(mixer.export({"duration": duration_s}))
        return path

    def render_batch(
        self,
        output_dir: Optional[Union[str, Path]] = None,
        encoder=None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RenderArtifact:
        """
        Frames at t = i / fps for i in range(frame_count), written as
        frame_%05d.png, then encoded (with audio.wav when there is music).
        A temporary directory is used and removed when output_dir is None.
        """
        self._begin()
        config = self.config
        encoder = encoder if encoder is not None else FFmpegEncoder()
        frame_count = config.frame_count
        tmp = None
        compositor = None
        try:
            if frame_count <= 0:
                raise RenderError(f"Nothing to render: {config.duration_ms} ms at {config.fps} fps")
            if output_dir is None:
                tmp = tempfile.TemporaryDirectory(prefix="composer-")
                work = Path(tmp.name)
            else:
                work = Path(output_dir)
                work.mkdir(parents=True, exist_ok=True)

            mixer = self._prepare_mixer()
            speech_ms = self.speech_duration_ms()
            compositor = FrameCompositor(config, self.avatar, self.font_path)
            self._compositor = compositor
            dt = 1.0 / config.fps
            logger.info("Batch render: %d frames @ %d fps into %s", frame_count, config.fps, work)

            for i in range(frame_count):
                self._check_cancelled()
                elapsed_ms = i * 1000.0 / config.fps
                self._apply_speech_timeline(elapsed_ms, speech_ms)
                self.avatar.update(dt)
                compositor.render_frame(elapsed_ms).save(work / frame_filename(i))
                self._report(on_progress, (i + 1) / frame_count)

            self._check_cancelled()
            duration_s = frame_count / config.fps
            audio_path = self._write_audio(mixer, work, duration_s)
            data = encoder.encode(work, config.fps, work / "output.mp4", audio_path)
            self._check_cancelled()
        except (Cancelled, RenderError):
            raise
        except Exception as exc:
            logger.warning("Batch render failed: %s", exc)
            raise RenderError(f"Batch render failed: {exc}") from exc
        finally:
            if compositor is not None:
                compositor.close()
            self._compositor = None
            self._rendering = False
            if tmp is not None:
                tmp.cleanup()

        artifact = RenderArtifact(
            data=data,
            media_type=getattr(encoder, "media_type", "video/mp4"),
            width=config.width,
            height=config.height,
            duration_ms=frame_count * 1000.0 / config.fps,
            fps=config.fps,
            frame_count=frame_count,
        )
        return self._finish(artifact)

    # -------------------------------------------------------------------------
    # Live mode
    # -------------------------------------------------------------------------

    async def render_live(
        self,
        clock=None,
        capture=None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RenderArtifact:
        """
        Run the audio job (every 50 ms) and the frame job (every 1/fps) until
        the configured duration has elapsed, then finalize the capture.
        """
        self._begin()
        config = self.config
        clock = clock if clock is not None else WallClock()
        duration_s = config.duration_s
        frames = 0
        mixer = None
        finished = False
        try:
            mixer = self._prepare_mixer()
            sample_rate = mixer.sample_rate if mixer is not None else DEFAULT_SAMPLE_RATE
            total_samples = int(round(duration_s * sample_rate))
            audio_written = 0
            if capture is None:
                capture = PyAVCapture(config.width, config.height, config.fps, sample_rate, with_audio=mixer is not None)
            speech_ms = self.speech_duration_ms()
            compositor = FrameCompositor(config, self.avatar, self.font_path)
            scheduler = TickScheduler(clock)
            self._compositor, self._capture, self._scheduler = compositor, capture, scheduler

            def push_audio(block: np.ndarray) -> None:
                nonlocal audio_written
                block = block[:, :max(0, total_samples - audio_written)]
                if block.shape[-1] > 0:
                    capture.add_audio(block)
                    audio_written += block.shape[-1]

            capture.start()
            origin = clock.now()
            if mixer is not None:
                mixer.play(loop=True, duck=True)
                mixer.attach(scheduler, lambda block, start: push_audio(block), origin=origin)

            last = [None]

            def frame_tick(now: float) -> None:
                nonlocal frames
                elapsed = now - origin
                if elapsed >= duration_s - _EPS:
                    scheduler.stop()
                    return
                dt = elapsed - last[0] if last[0] is not None else 1.0 / config.fps
                last[0] = elapsed
                self._apply_speech_timeline(elapsed * 1000.0, speech_ms)
                self.avatar.update(dt)
                capture.add_frame(compositor.render_frame(elapsed * 1000.0), elapsed)
                frames += 1
                self._report(on_progress, min(elapsed / duration_s, 1.0))

            scheduler.every(1.0 / config.fps, frame_tick, name="frame")
            logger.info("Live render: %.0f ms @ %d fps", config.duration_ms, config.fps)
            await scheduler.run()
            self._check_cancelled()

            if mixer is not None:
                if mixer.is_playing:
                    push_audio(mixer.render(duration_s))
                mixer.stop()
            data = capture.finish()
            finished = True
            self._report(on_progress, 1.0)
        except (Cancelled, RenderError):
            raise
        except Exception as exc:
            logger.warning("Live render failed: %s", exc)
            raise RenderError(f"Live render failed: {exc}") from exc
        finally:
            if not finished:
                if capture is not None:
                    capture.stop()
                if mixer is not None:
                    mixer.stop()
            if self._compositor is not None:
                self._compositor.close()
            self._compositor = None
            self._scheduler = None
            self._capture = None
            self._rendering = False

        artifact = RenderArtifact(
            data=data,
            media_type=getattr(capture, "media_type", "video/mp4"),
            width=config.width,
            height=config.height,
            duration_ms=config.duration_ms,
            fps=config.fps,
            frame_count=frames,
        )
        return self._finish(artifact)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def stop(self) -> None:
        """
        Halt an in-flight render (it raises Cancelled), stop capture and audio,
        release the mix graph. Safe to call repeatedly.
        """
        if self._rendering and not self._cancelled:
            logger.info("Render stop requested")
            self._cancelled = True
        if self._scheduler is not None:
            self._scheduler.stop()
        if self._capture is not None:
            self._capture.stop()
        if self.mixer is not None:
            self.mixer.stop()
            if not self.mixer.graph.released:
                self.mixer.graph.release()

    def dispose(self) -> None:
        """stop() plus dropping mixer buffers. Safe to call repeatedly."""
        self.stop()
        if self._disposed:
            return
        self._disposed = True
        if self.mixer is not None:
            self.mixer.destroy()


def compose(
    request: Dict[str, Any],
    speech: Optional[Union[bytes, AudioBuffer]] = None,
    store: Any = None,
    **kwargs,
) -> RenderArtifact:
    """
    Resolve an inbound request and batch-render it. Any failure other than
    cancellation surfaces as RenderError.
    """
    try:
        config = resolve_config(request)
        mixer = None
        if speech is not None:
            mixer = AudioMixer(volumes=config.volumes or None, ducking_settings=config.ducking or None)
            mixer.load_speech(speech)
        orchestrator = Orchestrator(config, mixer=mixer, store=store)
        return orchestrator.render_batch(**kwargs)
    except (Cancelled, RenderError):
        raise
    except (ComposerError, ValueError) as exc:
        logger.warning("Composition failed: %s", exc)
        raise RenderError(f"Composition failed: {exc}") from exc
