"""
Artifact persistence and lossy post-processing.
"""
from composer.export.exporter import DirectoryStore, Exporter, transcode

__all__ = ["DirectoryStore", "Exporter", "transcode"]
