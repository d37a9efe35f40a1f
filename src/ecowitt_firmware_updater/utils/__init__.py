"""
Utility modules for the Ecowitt firmware updater.

This package groups pure helpers that are shared across core logic and the CLI.
"""

from .hexdump import hexdump

__all__ = [
    "hexdump",
]
