"""
Music/speech mixer with voice-activity ducking and offline export.
"""
from composer.audio.mixer import AudioMixer, DEFAULT_VOLUMES, LOOP_OVERLAP_S
from composer.audio.graph import GainNode, MixGraph
from composer.audio.ducking import DuckingState

__all__ = ["AudioMixer", "DEFAULT_VOLUMES", "LOOP_OVERLAP_S", "GainNode", "MixGraph", "DuckingState"]
