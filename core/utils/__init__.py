"""
Core Utilities Package

This package contains utility functions and helpers used throughout the client.

Modules:
    - time: Signing timestamps and ISO-8601 conversion
"""

from core.utils.time import to_utc_datetime, to_iso8601, current_utc_timestamp

__all__ = ["to_utc_datetime", "to_iso8601", "current_utc_timestamp"]
