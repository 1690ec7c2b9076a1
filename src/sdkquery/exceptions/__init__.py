"""sdkquery exception hierarchy.

All exceptions can be imported from this package:
    from sdkquery.exceptions import SdkQueryError, ConfigError
"""

from __future__ import annotations

# Base exception
from sdkquery.exceptions.base import SdkQueryError

# Configuration exceptions
from sdkquery.exceptions.config import ConfigError

__all__ = [
    "SdkQueryError",
    "ConfigError",
]
