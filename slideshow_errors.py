"""
Exception types shared by the slideshow pipeline.

Non-fatal kinds (DependencyMissing, DownloadFailure, MusicResolutionError)
are logged as warnings and the run continues without the affected feature.
ValidationError and EncodeFailure end the run with exit status 1.
"""


class SlideshowError(Exception):
    """Base class for every error raised by the slideshow pipeline."""


class UsageError(SlideshowError):
    """Bad or missing command-line arguments."""


class ValidationError(SlideshowError):
    """Missing source directory or no usable images."""


class DependencyMissing(SlideshowError):
    """An optional external tool is not installed."""


class DownloadFailure(SlideshowError):
    """A single music track could not be downloaded."""


class MusicResolutionError(SlideshowError):
    """A music input could not be turned into any local audio file."""


class EncodeFailure(SlideshowError):
    """ffmpeg exited with a non-zero status."""

    def __init__(self, message: str, returncode: int = 1, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
