from __future__ import annotations


class ExporterError(Exception):
    """Base class for nfsen_exporter errors."""


class BindError(ExporterError):
    """
    The ingestion socket path cannot be bound.

    Fatal at startup, the process must not serve HTTP without a listener.
    """


class DecodeError(ExporterError):
    """A single frame could not be decoded. The frame is discarded."""


class FrameSizeError(DecodeError):
    """
    The frame header carries a size that cannot be used to skip the frame.

    The frame cannot be skipped by length, so the reader scans forward to
    the next frame header instead.
    """


class CollectorConnectionError(ExporterError, ConnectionError):
    """The collector connection was reset, truncated or failed to read."""


class RenderError(ExporterError):
    """A snapshot entry cannot be rendered as a valid sample."""
