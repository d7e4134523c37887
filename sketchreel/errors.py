"""Exception hierarchy shared by the compilers and the media stages."""
from __future__ import annotations


class SketchreelError(Exception):
    pass


class ValidationError(SketchreelError, ValueError):
    """The script is malformed or empty; the unit is aborted before any stage runs."""


class CompilationError(SketchreelError):
    """Raised for requests a validated script can't satisfy, e.g. a frame past the scene end."""


class ConfigurationError(SketchreelError):
    pass


class StageFailure(SketchreelError):
    """An external tool was missing, exited non-zero, or produced no output."""

    def __init__(self, unit: str, cause: str):
        super().__init__(cause)
        self.unit = unit
        self.cause = cause


class NarrationError(SketchreelError):
    pass


class MissingCredentials(NarrationError, ConfigurationError):
    pass


class BackendUnavailable(NarrationError):
    pass


class UpstreamError(NarrationError):
    def __init__(self, status: int, message: str = ""):
        super().__init__(message or f"upstream returned HTTP {status}")
        self.status = status
