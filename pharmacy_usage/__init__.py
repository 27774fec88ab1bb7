"""Pharmacy AI usage accounting and quota enforcement service."""

__version__ = "1.0.0"
