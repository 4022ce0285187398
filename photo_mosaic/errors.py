"""Exception taxonomy for mosaic generation."""

from __future__ import annotations


class MosaicError(Exception):
    """Base class for every error raised by the mosaic engine."""


class DecodeError(MosaicError, ValueError):
    """Image bytes are malformed or in an unsupported format."""


class InvalidRegionError(MosaicError, ValueError):
    """A fingerprint was requested outside the bitmap or with a bad division count."""


class EmptyCorpusError(MosaicError):
    """No tiles are registered in the corpus."""


class NoCandidateError(MosaicError):
    """The exclusion policy removed every candidate tile."""
