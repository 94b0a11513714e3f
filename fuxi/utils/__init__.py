"""
Utility modules for Fuxi.

Provides structured logging and time sources.
"""

from .logging import StructuredLogger, LogContext, get_logger
from .clock import Clock, ManualClock

__all__ = ['StructuredLogger', 'LogContext', 'get_logger', 'Clock', 'ManualClock']
