"""
Procedural music beds and music-reference resolution.
"""
from composer.music.presets import PRESETS, list_tracks, render_track
from composer.music.library import resolve_music

__all__ = ["PRESETS", "list_tracks", "render_track", "resolve_music"]
