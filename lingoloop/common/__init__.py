"""
Shared infrastructure: logging, configuration, errors, cancellation and
retry policy.
"""

from lingoloop.common.logger import app_logger

__all__ = ['app_logger']
