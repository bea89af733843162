"""
Logging helpers for the wallet core.

``logger`` is the package logger; modules create children with
``logging.getLogger(__name__)`` so a single ``setup_logger`` call controls
the whole package. Nothing here is configured at import time, so embedding
applications keep full control of their logging tree.
"""

import logging
import sys
from typing import Optional, Union

logger = logging.getLogger("wallet_core")

_HANDLER_NAME = "wallet_core.stream"
_DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logger(level: Optional[Union[str, int]] = None, fmt: str = _DEFAULT_FORMAT) -> logging.Logger:
    """
    Attach a stderr handler to the package logger and set its level.

    Calling this more than once only updates the level and format.

    Args:
        level: Logging level name or number. When omitted, the level comes
            from ``WALLET_CORE_LOG_LEVEL`` via :func:`wallet_core.config.get_settings`.
        fmt: ``logging.Formatter`` format string.

    Returns:
        logging.Logger: The configured ``wallet_core`` logger.
    """
    if level is None:
        from .config import get_settings

        level = get_settings().log_level
    if isinstance(level, str):
        level = level.upper()

    logger.setLevel(level)

    handler = next((h for h in logger.handlers if h.get_name() == _HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_HANDLER_NAME)
        logger.addHandler(handler)
    handler.setFormatter(logging.Formatter(fmt))
    return logger
