"""HTTP surface of the bridge."""

from .input import parse_input

__all__ = ["parse_input"]
