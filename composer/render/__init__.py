"""
Composition orchestration: batch (synthetic clock) and live (scheduler) renders.
"""
from composer.render.orchestrator import Orchestrator, compose, estimate_speech_duration_ms

__all__ = ["Orchestrator", "compose", "estimate_speech_duration_ms"]
