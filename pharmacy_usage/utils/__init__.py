"""Shared helpers for the usage accounting service."""

from .env_utils import parse_bool_env, parse_csv_env, parse_float_env, parse_int_env
from .time_utils import elapsed_ms, utc_now

__all__ = [
    # Environment parsing
    "parse_bool_env",
    "parse_csv_env",
    "parse_float_env",
    "parse_int_env",
    # Time
    "elapsed_ms",
    "utc_now",
]
