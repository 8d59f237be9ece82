"""Structured errors raised by the processing core."""

from __future__ import annotations

from typing import Optional


class NobgError(Exception):
    """
    Base error. ``source`` names the image involved (file name or
    ``clipboard``) and ``kind`` is a stable identifier a UI can switch on.
    """

    kind = "error"

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.source}: {self.message}"
        return self.message


class UnreadableSourceError(NobgError):
    kind = "unreadable-source"


class InferenceError(NobgError):
    kind = "inference-failure"


class DimensionMismatchError(InferenceError):
    kind = "dimension-mismatch"


class EncodeError(NobgError):
    kind = "encode-failure"


class NoClipboardImageError(NobgError):
    kind = "no-clipboard-image"


class NoActiveSessionError(NobgError):
    kind = "no-active-session"


class SinkWriteError(NobgError):
    kind = "sink-write-failure"


class ModelUnavailableError(InferenceError):
    kind = "model-unavailable"
