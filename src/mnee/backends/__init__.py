"""
Backend implementations.

Available backends:
- MneeApiBackend: token API plus ordinals indexer over HTTP
"""

from mnee.backends.api import MneeApiBackend
from mnee.backends.base import MneeBackend

__all__ = [
    "MneeApiBackend",
    "MneeBackend",
]
