"""Exception types raised by gaussian_capture."""
from __future__ import annotations


class CaptureError(Exception):
    """Base class for all gaussian_capture errors."""


class InvalidConfigurationError(CaptureError, ValueError):
    """Raised when an argument or configuration cannot produce valid output.

    Covers non-positive image dimensions, non-positive focal lengths or
    fields of view, and trajectory configurations that fail validation.
    """


class PlyFormatError(CaptureError, ValueError):
    """Raised when a PLY file cannot be parsed or has an unsupported layout."""


class ColmapFormatError(CaptureError, ValueError):
    """Raised when a COLMAP sparse model file is malformed."""
