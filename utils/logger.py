"""
============================================================================
UPTIME PULSE - LOGGING UTILITY
============================================================================
Loguru configuration with console, rotating file, JSON and error sinks.
Components obtain a bound logger through ``get_logger(name)``.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import sys
import time
from functools import wraps
from typing import Optional

from loguru import logger

from config.settings import LoggingSettings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"

# Records emitted through the bare logger still need extra[name] for the formats
logger.configure(extra={"name": "pulse"})


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure loguru sinks from the logging settings section.

    Args:
        settings: Logging settings; defaults are loaded from the environment
    """
    settings = settings or LoggingSettings()

    # Remove default loguru handler
    logger.remove()

    log_level = settings.level.value

    if settings.console_enabled:
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=settings.console_colored,
            backtrace=True,
            diagnose=False,
        )

    if settings.file_enabled:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=settings.file_rotation,
            retention=settings.file_retention,
            compression=settings.file_compression,
            serialize=settings.json_enabled,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    # Error log file (separate file for errors)
    if settings.error_file_enabled:
        settings.error_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.error_file_path,
            format=FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention=settings.file_retention,
            compression=settings.file_compression,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    log = get_logger("Logging")
    log.info("Logging system initialized")
    log.info(f"Log level: {log_level}")
    log.debug(f"Console logging: {settings.console_enabled} | File logging: {settings.file_enabled}")


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Component name shown in every record

    Returns:
        Logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


# ============================================================================
# LOG DECORATORS
# ============================================================================

def log_execution_time(func):
    """
    Decorator to log how long a coroutine or function took.

    Args:
        func: Function to decorate

    Returns:
        Decorated function
    """
    log = get_logger("Timing")

    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
            log.debug(f"{func.__qualname__} executed in {time.perf_counter() - start_time:.4f}s")
            return result
        except Exception as e:
            log.error(f"{func.__qualname__} failed after {time.perf_counter() - start_time:.4f}s: {e}")
            raise

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = func(*args, **kwargs)
            log.debug(f"{func.__qualname__} executed in {time.perf_counter() - start_time:.4f}s")
            return result
        except Exception as e:
            log.error(f"{func.__qualname__} failed after {time.perf_counter() - start_time:.4f}s: {e}")
            raise

    if asyncio.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper
