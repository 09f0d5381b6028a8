"""
trialpower utilities package.
Internal utilities - not part of public API.
"""

from . import formatters, parsers, streams, validators

__all__ = [
    "formatters",
    "parsers",
    "streams",
    "validators",
]
