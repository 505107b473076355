"""Versioned synchronization of a storefront settings document."""

__version__ = "0.1.0"
