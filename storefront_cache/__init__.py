"""Caching and rate limiting for the storefront API."""

__version__ = "1.0.0"
