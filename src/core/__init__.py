"""
Core module for cross-cutting concerns.

This module provides:
- Structured logging configuration
- Request tracing middleware
- Common utilities
"""

from core.logging import configure_logging, get_logger
from core.utils import chunk_list, safe_get, to_epoch_millis

__all__ = [
    "configure_logging",
    "get_logger",
    "chunk_list",
    "safe_get",
    "to_epoch_millis",
]
