"""
Configuration management for Forkoor Sentinel.

Loads settings from environment variables (and .env at the project root) and
exposes a single validated Settings object for the monitor and analyzer.
"""

from forkoor_sentinel.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
