"""PATCHBAY: structured-response patch engine for code-editing model replies."""

from patchbay.identity import __version__

__all__ = ["__version__"]
