"""Custom exceptions for request serialization."""

from __future__ import annotations


class SerializerError(Exception):
    """Base exception for serializer-related errors."""

    pass


class SerializerClosed(SerializerError):
    """Raised when a task is submitted to, or still queued in, a closed serializer."""

    pass
