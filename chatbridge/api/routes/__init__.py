"""API routes for the bridge."""

from .health import health_endpoint
from .responses import responses_endpoint

__all__ = [
    "health_endpoint",
    "responses_endpoint",
]
