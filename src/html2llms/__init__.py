"""Convert rendered documentation pages to simplified Markdown for LLM context."""

from .version import __version__

__all__ = ["__version__"]
