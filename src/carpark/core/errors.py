"""Exception types shared across layers."""

from __future__ import annotations


class CarparkError(Exception):
    """Base class for errors raised by the carpark package."""


class CatalogLoadError(CarparkError):
    """The car park information source could not be read at all."""


class AvailabilityPayloadError(CarparkError):
    """The availability feed returned a payload of an unexpected shape."""
