"""
Logging setup.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_path: Optional[str], log_level: str = "INFO") -> None:
    """
    Configure the root logger once: a stream handler, plus a file handler
    when log_path is set (its directory is created if missing).
    """
    level = getattr(logging, str(log_level).upper(), None)
    unknown_level = not isinstance(level, int)
    if unknown_level:
        level = logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        log_dir = os.path.dirname(log_path)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)
        handlers.insert(0, logging.FileHandler(log_path))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)

    if unknown_level:
        logging.warning(f"Unknown log level {log_level!r}, using INFO")
