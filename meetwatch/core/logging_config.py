"""
Central logging configuration for meetwatch.

Keeps meetwatch's own loggers at INFO (or DEBUG on request) while quieting
chatty third-party libraries.
"""

import logging
import os
from typing import Optional

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "icalendar")


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> int:
    """
    Configure logging levels for meetwatch.

    Args:
        debug_mode: Whether to enable debug logging for meetwatch modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        MEETWATCH_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        MEETWATCH_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The root log level that was applied
    """
    env_debug = os.getenv("MEETWATCH_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("MEETWATCH_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("meetwatch").setLevel(root_level)

    if final_debug:
        root_logger.info("Debug logging enabled for meetwatch modules")
    return root_level
