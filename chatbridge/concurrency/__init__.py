"""Request serialization: one backend conversation streamed at a time.

Usage:
    serializer = RequestSerializer()
    result = await serializer.submit(lambda: run_turn(...))
"""

from __future__ import annotations

from .exceptions import SerializerClosed, SerializerError
from .serializer import QueueTask, RequestSerializer

__all__ = [
    "QueueTask",
    "RequestSerializer",
    "SerializerClosed",
    "SerializerError",
]
