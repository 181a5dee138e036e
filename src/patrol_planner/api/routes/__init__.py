"""Route group exports."""

from . import health, patrol

__all__ = ["health", "patrol"]
