"""Command relay for intermittently connected home-automation devices."""

from .version import __version__

__all__ = ["__version__"]
