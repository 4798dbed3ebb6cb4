"""
Error taxonomy for the composition pipeline.
Control calls with out-of-range numbers clamp instead of raising; everything
below is surfaced to the caller as a typed failure.
"""


class ComposerError(Exception):
    """Base exception for composition pipeline errors."""
    pass


class NotReady(ComposerError):
    """Raised when an operation needs input that has not been loaded (e.g. export without a track)."""
    pass


class DecodeError(ComposerError):
    """Raised when input media is malformed or in an unsupported format."""
    pass


class LengthMismatch(ComposerError, ValueError):
    """Raised when mixing buffers whose sample counts differ."""

    def __init__(self, lengths):
        self.lengths = list(lengths)
        super().__init__(f"Cannot mix buffers of differing lengths: {self.lengths}")


class UnknownState(ComposerError, ValueError):
    """Raised for an avatar state name outside idle/talking/executing."""

    def __init__(self, name):
        self.name = name
        super().__init__(f"Unknown avatar state: {name!r}")


class RenderError(ComposerError):
    """Raised when the capture or encode pipeline fails."""

    def __init__(self, message: str, stderr: str = ""):
        self.message = message
        self.stderr = stderr
        if stderr:
            super().__init__(f"{message}\n{stderr}")
        else:
            super().__init__(message)


class Cancelled(ComposerError):
    """
    Raised when a render is stopped before completion.
    Not a RenderError: stopping is a terminal outcome, not a failure.
    """
    pass
