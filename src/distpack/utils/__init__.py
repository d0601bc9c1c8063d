"""Shared utility helpers."""

from distpack.utils.time_utils import now_utc

__all__ = [
    "now_utc",
]
