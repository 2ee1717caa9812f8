"""External feature lookup services."""

from .nldi import NLDIClient

__all__ = ["NLDIClient"]
