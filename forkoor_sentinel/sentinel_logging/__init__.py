"""
structlog configuration and logger helpers for Forkoor Sentinel.

Imported first by main.py so every later module logs through the same setup.
"""

from forkoor_sentinel.sentinel_logging.logger import bind_mint, configure_structlog, get_logger

__all__ = ["bind_mint", "configure_structlog", "get_logger"]
