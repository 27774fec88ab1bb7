"""Typed readers for environment variables.

Unset or malformed values fall back to the supplied default so a bad
deployment variable never prevents the service from starting.
"""

import os
from typing import List, Optional


def parse_bool_env(key: str, default: bool = False) -> bool:
    """Read a boolean flag.

    Args:
        key: Environment variable name.
        default: Value used when the variable is unset.

    Returns:
        True for "true", "1" or "yes" (case-insensitive), False for any
        other value, or the default when unset.
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def parse_int_env(key: str, default: int) -> int:
    """Read an integer, falling back to ``default`` when unset or invalid."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def parse_float_env(key: str, default: float) -> float:
    """Read a float, falling back to ``default`` when unset or invalid."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def parse_csv_env(key: str, default: Optional[List[str]] = None) -> List[str]:
    """Read a comma separated list, dropping empty entries.

    Args:
        key: Environment variable name.
        default: Value used when the variable is unset.

    Returns:
        List of stripped, non-empty items.
    """
    value = os.getenv(key)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]
