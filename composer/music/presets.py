"""
Procedural background-music beds built only from the synth primitives.
Each preset writes notes into a TrackBuilder; render_track() normalizes both
channels to 0.9. Random detune/crackle timing comes from the builder's seeded
RNG, so a (preset, seed) pair always renders the same audio.
"""
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from composer.core.types import AudioBuffer
from composer.dsp.mixer import mix
from composer.music.builder import TrackBuilder

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 44100


@dataclass(frozen=True)
class TrackPreset:
    name: str
    bpm: float
    duration: float
    compose: Callable[[TrackBuilder, float], None]
    description: str = ""

    @property
    def beat(self) -> float:
        return 60.0 / self.bpm


# -----------------------------------------------------------------------------
# upbeat-tech: saw bass, offbeat hats, four-on-the-floor, square arpeggio
# -----------------------------------------------------------------------------

def _upbeat_tech(b: TrackBuilder, beat: float) -> None:
    num_beats = int(math.floor(b.duration / beat))

    for i in range(num_beats):
        time = i * beat
        freq = 55.0 if i % 2 == 0 else 41.25
        bass = b.env(b.saw(freq, beat * 0.8), 0.01, 0.1, 0.6, 0.2)
        b.add(bass, time, 0.3)
        harmonic = b.env(b.square(freq * 2, beat * 0.5), 0.01, 0.05, 0.4, 0.1)
        b.add(harmonic, time, 0.15)

    for i in range(num_beats * 2):
        hat = b.env(b.lowpass(b.noise(0.05), 8000), 0.001, 0.02, 0.0, 0.03)
        b.add(hat, i * beat / 2, 0.08, 0.06)

    for i in range(num_beats):
        time = i * beat
        kick = b.env(b.sine(60, 0.15), 0.005, 0.1, 0.0, 0.1)
        b.add(kick, time, 0.8)
        b.add(b.lowpass(b.noise(0.03), 200), time, 0.2)

    for i in range(1, num_beats, 2):
        time = i * beat
        snare = b.env(b.lowpass(b.noise(0.1), 3000), 0.005, 0.05, 0.3, 0.1)
        b.add(snare, time, 0.35)
        tone = b.env(b.sine(200, 0.1), 0.001, 0.05, 0.0, 0.05)
        b.add(tone, time, 0.2)

    arp_notes = [220, 277, 330, 440, 330, 277]
    for i in range(num_beats * 2):
        freq = arp_notes[i % len(arp_notes)]
        voices = [b.square(freq, beat * 0.4), b.square(freq * 1.005, beat * 0.4)]
        arp = b.env(mix(voices, [0.5, 0.5]), 0.005, 0.1, 0.3, 0.15)
        b.add(arp, i * beat / 2, 0.1, 0.08)


# -----------------------------------------------------------------------------
# corporate-focus: sine chord pads with triangle sub, soft kick and hats
# -----------------------------------------------------------------------------

_CORPORATE_CHORDS = [
    [261.63, 329.63, 392.00],
    [196.00, 246.94, 293.66],
    [220.00, 261.63, 329.63],
    [246.94, 293.66, 349.23],
]


def _corporate_focus(b: TrackBuilder, beat: float) -> None:
    num_beats = int(math.floor(b.duration / beat))

    for i in range(0, num_beats, 4):
        time = i * beat
        for freq in _CORPORATE_CHORDS[(i // 4) % len(_CORPORATE_CHORDS)]:
            b.add(b.env(b.sine(freq, beat * 4), 0.2, 0.5, 0.7, 1.0), time, 0.15)
            b.add(b.env(b.triangle(freq / 2, beat * 4), 0.3, 0.5, 0.6, 1.0), time, 0.1)

    for i in range(num_beats):
        b.add(b.env(b.sine(50, 0.2), 0.01, 0.1, 0.0, 0.15), i * beat, 0.4)

    for i in range(num_beats * 2):
        hat = b.env(b.lowpass(b.noise(0.03), 10000), 0.001, 0.01, 0.0, 0.02)
        b.add(hat, i * beat / 2, 0.05, 0.04)

    for i in range(0, num_beats, 2):
        b.add(b.env(b.sine(65, beat * 2), 0.1, 0.3, 0.7, 0.5), i * beat, 0.2)


# -----------------------------------------------------------------------------
# lofi-chill: detuned seventh chords, vinyl crackle, lazy snare
# -----------------------------------------------------------------------------

_LOFI_CHORDS = [
    [130.81, 155.56, 196.00, 233.08],
    [98.00, 116.54, 146.83, 174.61],
    [110.00, 130.81, 164.81, 196.00],
    [116.54, 146.83, 174.61, 220.00],
]


def _lofi_chill(b: TrackBuilder, beat: float) -> None:
    num_beats = int(math.floor(b.duration / beat))

    for i in range(0, num_beats, 4):
        time = i * beat
        for freq in _LOFI_CHORDS[(i // 4) % len(_LOFI_CHORDS)]:
            cents = (b.rng.random() - 0.5) * 15
            note = b.env(b.sine(freq * 2 ** (cents / 1200), beat * 4), 0.3, 0.8, 0.6, 1.5)
            b.add(note, time, 0.12, 0.1)
            b.add(b.env(b.triangle(freq, beat * 4), 0.2, 0.6, 0.5, 1.0), time, 0.06)

    for i in range(0, num_beats, 2):
        b.add(b.env(b.sine(55, 0.25), 0.01, 0.15, 0.0, 0.15), i * beat, 0.5)

    for i in range(int(b.duration * 10)):
        time = i / 10 + b.rng.random() * 0.05
        gain = 0.015 + b.rng.random() * 0.01
        b.add(b.lowpass(b.noise(0.01), 5000), time, gain, gain * 0.8)

    for i in range(1, num_beats, 2):
        snare = b.env(b.lowpass(b.noise(0.08), 2500), 0.005, 0.05, 0.2, 0.15)
        b.add(snare, i * beat, 0.18)

    bass_notes = [65, 49, 55, 58]
    for i in range(0, num_beats, 4):
        bass = b.env(b.sine(bass_notes[(i // 4) % 4], beat * 4), 0.2, 0.5, 0.7, 1.0)
        b.add(bass, i * beat, 0.2)


# -----------------------------------------------------------------------------
# cinematic-build: swelling saw pads, impacts, bells and square brass
# -----------------------------------------------------------------------------

def _cinematic_build(b: TrackBuilder, beat: float) -> None:
    duration = b.duration

    for t in range(0, int(math.ceil(duration)), 2):
        build = 0.1 + (t / duration) * 0.25
        for freq in (110, 146.83, 174.61, 220):
            b.add(b.env(b.saw(freq, 4), 0.5, 1.0, 0.8, 1.5), t, build * 0.25, build * 0.22)
            b.add(b.env(b.sine(freq / 2, 4), 0.8, 1.2, 0.9, 2.0), t, build * 0.35)

    for t in range(0, int(math.ceil(duration)), 2):
        intensity = 0.25 + (t / duration) * 0.5
        b.add(b.env(b.sine(40, 0.3), 0.01, 0.2, 0.0, 0.2), t, intensity)
        b.add(b.lowpass(b.noise(0.05), 400), t, intensity * 0.4)

    for t in range(0, int(math.ceil(duration)), 4):
        b.add(b.env(b.sine(880, 3), 0.5, 1.0, 0.6, 1.5), t, 0.1, 0.08)
        b.add(b.env(b.sine(1108.73, 2), 0.3, 0.8, 0.5, 1.0), t + 1, 0.08)

    for t in range(4, int(math.ceil(duration)), 8):
        b.add(b.env(b.square(220, 6), 1.0, 2.0, 0.7, 3.0), t, 0.12, 0.1)
        b.add(b.env(b.square(329.63, 4), 0.8, 1.5, 0.6, 2.0), t + 2, 0.1, 0.08)


# -----------------------------------------------------------------------------
# minimal-tech: drones, sparse kick, filtered texture, blips
# -----------------------------------------------------------------------------

def _minimal_tech(b: TrackBuilder, beat: float) -> None:
    num_beats = int(math.floor(b.duration / beat))

    for t in range(0, int(math.ceil(b.duration)), 4):
        b.add(b.env(b.sine(110, 6), 1.0, 2.0, 0.8, 2.0), t, 0.15)
        b.add(b.env(b.sine(164.81, 6), 1.2, 2.0, 0.75, 2.0), t, 0.12)
        b.add(b.env(b.triangle(82.41, 6), 0.8, 1.5, 0.7, 2.0), t, 0.06)

    for i in range(0, num_beats, 4):
        b.add(b.env(b.sine(45, 0.2), 0.01, 0.1, 0.0, 0.15), i * beat, 0.3)

    for i in range(int(b.duration * 4)):
        gain = 0.02 + b.rng.random() * 0.03
        b.add(b.lowpass(b.noise(0.1), 2000), i * 0.25, gain, gain * 0.9)

    for i in range(0, num_beats, 8):
        time = i * beat
        for offset in (1.0, 1.25):
            blip = b.env(b.sine(880, 0.2), 0.001, 0.1, 0.0, 0.1)
            b.add(blip, time + offset, 0.05, 0.04)


PRESETS: Dict[str, TrackPreset] = {
    p.name: p
    for p in (
        TrackPreset("upbeat-tech", 128, 20.0, _upbeat_tech, "Driving electronic bed"),
        TrackPreset("corporate-focus", 100, 25.0, _corporate_focus, "Bright pads over a steady pulse"),
        TrackPreset("lofi-chill", 85, 22.0, _lofi_chill, "Detuned chords with vinyl crackle"),
        TrackPreset("cinematic-build", 110, 30.0, _cinematic_build, "Rising pads and impacts"),
        TrackPreset("minimal-tech", 90, 18.0, _minimal_tech, "Sparse drones and blips"),
    )
}


def list_tracks() -> List[str]:
    return sorted(PRESETS)


def render_track(
    name: str,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    seed: int = 0,
    duration: Optional[float] = None,
) -> AudioBuffer:
    """Render a preset bed. Unknown names raise KeyError."""
    if name not in PRESETS:
        raise KeyError(f"Unknown music preset {name!r}; available: {', '.join(list_tracks())}")
    preset = PRESETS[name]
    builder = TrackBuilder(duration or preset.duration, sample_rate, seed=seed)
    preset.compose(builder, preset.beat)
    track = builder.build()
    logger.info("Rendered music bed %s: %.1fs @ %d Hz (seed=%d)", name, track.duration, sample_rate, seed)
    return track
