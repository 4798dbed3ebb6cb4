"""
Background music + speech mixer with ducking.

Live mode: play() starts a session on the mixer's own timeline (seconds from
0). A cooperative tick(now) reschedules the looping bed and runs one ducking
analysis step; render(until) pulls the sample-accurate output block. Neither
uses timers of its own: a TickScheduler (or a test) drives both.

Offline mode: render_offline()/export() synthesize the whole mix in one pass
with a two-point ducking envelope derived from the speech start/end times.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

import numpy as np

from composer.audio import ducking
from composer.audio.analysis import SpectrumAnalyser
from composer.audio.graph import MixGraph
from composer.core.errors import NotReady
from composer.core.io import AudioIO
from composer.core.params import clamp_if_bounds, get_float
from composer.core.types import AudioBuffer

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_VOLUMES = {"music": 0.2, "music_idle": 0.7, "tts": 1.0}
LOOP_OVERLAP_S = 0.05
MASTER_TIME_CONSTANT_S = 0.1
OFFLINE_MASTER_GAIN = 0.9
OFFLINE_DUCK_TIME_CONSTANT_S = 0.05
OFFLINE_NORMALIZE_CEILING = 0.99

AudioInput = Union[bytes, bytearray, AudioBuffer]


@dataclass
class _LiveSession:
    loop: bool
    position: int = 0                       # samples already rendered
    voices: List[int] = field(default_factory=list)  # start sample of each bed copy
    next_loop_start: Optional[int] = None
    speech_playing: bool = False
    fade_stop_at: Optional[float] = None


class AudioMixer:
    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        volumes: Optional[dict] = None,
        ducking_settings: Optional[dict] = None,
    ):
        self.sample_rate = int(sample_rate)
        self.track: Optional[AudioBuffer] = None
        self.speech: Optional[AudioBuffer] = None
        self.volumes = dict(DEFAULT_VOLUMES)
        self.ducking = ducking.DuckingState()
        self.analyser = SpectrumAnalyser()
        self.master_volume = 1.0
        self.graph = MixGraph(track=self.volumes["music_idle"], speech=self.volumes["tts"])
        self._session: Optional[_LiveSession] = None
        self._speech_mono: Optional[np.ndarray] = None
        self._now = 0.0
        if volumes:
            self.set_volumes(volumes)
        if ducking_settings:
            self.set_ducking(ducking_settings)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _decode(self, data: AudioInput) -> AudioBuffer:
        if isinstance(data, AudioBuffer):
            buffer = data
            if buffer.sample_rate != self.sample_rate:
                buffer = AudioIO.resample(buffer, self.sample_rate)
        else:
            buffer = AudioIO.decode(data, target_rate=self.sample_rate)
        return buffer.to_stereo()

    def load_track(self, data: AudioInput) -> AudioBuffer:
        """Decode and install the background bed. DecodeError leaves the previous track in place."""
        buffer = self._decode(data)
        self.track = buffer
        logger.info("Track loaded: %.2fs @ %d Hz", buffer.duration, buffer.sample_rate)
        return buffer

    def load_speech(self, data: AudioInput) -> AudioBuffer:
        buffer = self._decode(data)
        self.speech = buffer
        self._speech_mono = np.mean(buffer.samples, axis=0)
        logger.info("Speech loaded: %.2fs", buffer.duration)
        return buffer

    def clear_speech(self) -> None:
        """Drop the speech track. A playing session releases the bed to idle from now."""
        session = self._session
        if session is not None and session.speech_playing:
            session.speech_playing = False
            if self.ducking.active:
                self.ducking, command = ducking.finish(self.ducking, self.volumes["music_idle"])
                self._apply(command)
            logger.debug("Speech cleared at %.3fs", self._now)
        self.speech = None
        self._speech_mono = None

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def set_volumes(self, volumes: dict) -> dict:
        """{"music", "music_idle", "tts"}, each clamped to [0, 1]. Missing keys keep their value."""
        volumes = {("music_idle" if k == "musicIdle" else k): v for k, v in volumes.items()}
        for key in ("music", "music_idle", "tts"):
            if key in volumes:
                self.volumes[key] = clamp_if_bounds(get_float(volumes, key, self.volumes[key]), 0.0, 1.0)
        if self._session is None:
            self.graph.track.reset(self.volumes["music_idle"])
        self.graph.speech.reset(self.volumes["tts"])
        logger.debug("Volumes set: %s", self.volumes)
        return dict(self.volumes)

    def set_ducking(self, settings: dict) -> ducking.DuckingState:
        """{"attack", "release", "threshold"}; attack/release floor at 10 ms, threshold at 0."""
        self.ducking = self.ducking.with_settings(settings)
        return self.ducking

    def set_master_volume(self, volume: float) -> None:
        self.master_volume = clamp_if_bounds(volume, 0.0, 1.0)
        if self._session is None:
            self.graph.master.reset(self.master_volume)
            return
        self.graph.master.cancel_scheduled(self._now)
        self.graph.master.set_target_at(self.master_volume, self._now, MASTER_TIME_CONSTANT_S)

    def fade_out(self, duration: float = 1.0) -> None:
        """Fade master to silence over duration seconds, then stop playback."""
        if self._session is None:
            return
        duration = max(0.0, float(duration))
        self.graph.master.cancel_scheduled(self._now)
        self.graph.master.set_target_at(0.0, self._now, duration / 3.0)
        self._session.fade_stop_at = self._now + duration

    # -------------------------------------------------------------------------
    # Live playback
    # -------------------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._session is not None

    def play(self, loop: bool = True, duck: bool = True) -> None:
        """Start the bed (and speech, if loaded) at mixer time 0."""
        if self.track is None:
            raise NotReady("No track loaded. Call load_track() first.")
        self.stop()

        self._session = _LiveSession(loop=loop, voices=[0])
        if loop:
            self._session.next_loop_start = self._loop_period()
        self._now = 0.0

        self.graph = MixGraph(
            track=self.volumes["music_idle"],
            speech=self.volumes["tts"],
            master=self.master_volume,
        )
        self.graph.track.set_value_at(self.volumes["music_idle"], 0.0)
        self.analyser.reset()
        if self.speech is not None:
            self._session.speech_playing = True
            if duck:
                self.ducking = ducking.start(self.ducking)
        logger.info(
            "Playback started (loop=%s, speech=%s, ducking=%s)",
            loop, self.speech is not None, self.ducking.active,
        )

    def stop(self) -> None:
        """Stop playback. Safe to call when already stopped."""
        if self._session is None:
            return
        self._session = None
        self.ducking = ducking.DuckingState(
            attack=self.ducking.attack,
            release=self.ducking.release,
            threshold=self.ducking.threshold,
        )
        logger.info("Playback stopped")

    def _loop_period(self) -> int:
        """Samples between bed copies: each restarts LOOP_OVERLAP_S before the previous ends."""
        length = self.track.num_frames
        overlap = int(round(LOOP_OVERLAP_S * self.sample_rate))
        return max(1, length - overlap)

    def _schedule_loops(self, until_sample: int) -> None:
        session = self._session
        if not session.loop or session.next_loop_start is None:
            return
        period = self._loop_period()
        while session.next_loop_start < until_sample:
            session.voices.append(session.next_loop_start)
            logger.debug("Loop copy scheduled at %.3fs", session.next_loop_start / self.sample_rate)
            session.next_loop_start += period

    def _speech_energy(self, now: float) -> float:
        end = min(int(round(now * self.sample_rate)), len(self._speech_mono))
        if end <= 0:
            return 0.0
        start = max(0, end - self.analyser.fft_size)
        return self.analyser.energy(self._speech_mono[start:end])

    def _apply(self, command) -> None:
        target, time_constant = command
        self.graph.track.cancel_scheduled(self._now)
        self.graph.track.set_target_at(target, self._now, time_constant)

    def tick(self, now: float) -> None:
        """
        One cooperative step at mixer time now: loop rescheduling first, then
        the ducking decision. Gain writes only take effect from now onwards.
        """
        session = self._session
        if session is None:
            return
        self._now = max(self._now, float(now))

        self._schedule_loops(int(round((self._now + ducking.TICK_S) * self.sample_rate)))

        if session.fade_stop_at is not None and self._now >= session.fade_stop_at:
            self.stop()
            self.graph.master.reset(1.0)
            self.master_volume = 1.0
            return

        if session.speech_playing and (self.speech is None or self._now >= self.speech.duration):
            session.speech_playing = False
            if self.ducking.active:
                self.ducking, command = ducking.finish(self.ducking, self.volumes["music_idle"])
                self._apply(command)
                logger.debug("Speech ended at %.3fs, releasing to idle", self._now)
            return

        if not self.ducking.active or self._speech_mono is None:
            return
        try:
            energy = self._speech_energy(self._now)
        except (RuntimeError, ValueError) as e:
            logger.debug("Ducking analysis failed at %.3fs, treating as silence: %s", self._now, e)
            energy = 0.0
        current = self.graph.track.value_at(self._now)
        self.ducking, command = ducking.step(
            self.ducking,
            energy,
            current,
            self.volumes["music"],
            self.volumes["music_idle"],
        )
        if command is not None:
            self._apply(command)

    def render(self, until: float) -> np.ndarray:
        """
        Output block (2, n) from the last rendered sample up to mixer time until.
        Raises NotReady when nothing is playing.
        """
        session = self._session
        if session is None:
            raise NotReady("Mixer is not playing")
        end = int(round(until * self.sample_rate))
        start = session.position
        n = end - start
        if n <= 0:
            return np.zeros((2, 0), dtype=np.float32)
        self._schedule_loops(end)

        music = np.zeros((2, n), dtype=np.float32)
        track = self.track.samples
        length = track.shape[1]
        for voice in session.voices:
            _overlay(music, track, voice, start, end)
        session.voices = [v for v in session.voices if v + length > end]

        speech = np.zeros((2, n), dtype=np.float32)
        if self.speech is not None:
            _overlay(speech, self.speech.samples, 0, start, end)

        out = self.graph.render(music, speech, start / self.sample_rate, self.sample_rate)
        session.position = end
        self._now = max(self._now, end / self.sample_rate)
        self.graph.compact(end / self.sample_rate)
        return out

    def attach(self, scheduler, on_block: Optional[Callable[[np.ndarray, float], None]] = None, origin: float = 0.0):
        """
        Register the audio job (tick then render) on a TickScheduler.
        on_block receives each (2, n) block and its start time in seconds.
        """
        def audio_tick(now: float) -> None:
            if self._session is None:
                return
            t = now - origin
            self.tick(t)
            if self._session is None:
                return
            block_start = self._session.position / self.sample_rate
            block = self.render(t)
            if on_block is not None and block.shape[-1] > 0:
                on_block(block, block_start)

        return scheduler.every(ducking.TICK_S, audio_tick, name="audio")

    def get_state(self) -> dict:
        return {
            "is_playing": self.is_playing,
            "is_looping": bool(self._session and self._session.loop),
            "has_track": self.track is not None,
            "track_duration": self.track.duration if self.track is not None else 0.0,
            "has_speech": self.speech is not None,
            "volumes": dict(self.volumes),
            "ducking": {
                "attack": self.ducking.attack,
                "release": self.ducking.release,
                "threshold": self.ducking.threshold,
                "active": self.ducking.active,
            },
        }

    def destroy(self) -> None:
        """Stop and drop buffers and graph. Safe to call repeatedly."""
        self.stop()
        if not self.graph.released:
            self.graph.release()
        self.track = None
        self.clear_speech()
        logger.info("Mixer destroyed")

    # -------------------------------------------------------------------------
    # Offline rendering
    # -------------------------------------------------------------------------

    def offline_duration(self, options: Optional[dict] = None) -> float:
        if self.track is None:
            raise NotReady("No track loaded. Call load_track() first.")
        duration = (options or {}).get("duration")
        if duration:
            return float(duration)
        if self.speech is not None:
            return self.speech.duration
        return self.track.duration

    def offline_graph(self, duration: float) -> MixGraph:
        """
        Gain automation for an offline mix. With speech: drop toward the speech
        level from 0, release to idle from the speech end. Without: flat idle.
        """
        idle = self.volumes["music_idle"]
        graph = MixGraph(track=idle, speech=self.volumes["tts"], master=OFFLINE_MASTER_GAIN)
        graph.track.set_value_at(idle, 0.0)
        if self.speech is not None:
            graph.track.set_target_at(self.volumes["music"], 0.0, OFFLINE_DUCK_TIME_CONSTANT_S)
            graph.track.set_target_at(idle, min(self.speech.duration, duration), self.ducking.release)
        return graph

    def render_offline(self, options: Optional[dict] = None) -> AudioBuffer:
        """
        Whole-mix render. options: duration (s), normalize (bool: rescale to
        0.99 only if the mix peaks above 1).
        """
        options = options or {}
        duration = self.offline_duration(options)
        n = int(math.ceil(duration * self.sample_rate))

        music = np.zeros((2, n), dtype=np.float32)
        length = self.track.num_frames
        for start in range(0, n, max(1, length)):
            _overlay(music, self.track.samples, start, 0, n)

        speech = np.zeros((2, n), dtype=np.float32)
        if self.speech is not None:
            _overlay(speech, self.speech.samples, 0, 0, n)

        graph = self.offline_graph(duration)
        out = graph.render(music, speech, 0.0, self.sample_rate)

        if options.get("normalize"):
            peak = float(np.max(np.abs(out))) if out.size else 0.0
            if peak > 1.0:
                out = out * (OFFLINE_NORMALIZE_CEILING / peak)
        logger.info("Offline mix rendered: %.2fs, %d frames", duration, n)
        return AudioBuffer(out, self.sample_rate)

    def export(self, options: Optional[dict] = None) -> bytes:
        """Offline mix as 16-bit stereo PCM WAV bytes."""
        return AudioIO.to_wav_bytes(self.render_offline(options))


def _overlay(dest: np.ndarray, source: np.ndarray, source_start: int, block_start: int, block_end: int) -> None:
    """Add the part of source (placed at source_start) that falls in [block_start, block_end) into dest."""
    length = source.shape[1]
    lo = max(block_start, source_start)
    hi = min(block_end, source_start + length)
    if hi <= lo:
        return
    dest[:, lo - block_start:hi - block_start] += source[:, lo - source_start:hi - source_start]
