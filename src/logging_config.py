"""Shared logging configuration for bcd-update.

Call ``configure_logging()`` once at a command-line entry point. Repeated
calls do nothing once the root logger has handlers.
"""

import logging
import os
from typing import Optional


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = "logs/bcd_update.log") -> None:
    """Configure the root logger with a console handler and an optional file handler.

    Args:
        level: Root log level
        log_file: File to append to; None disables file logging
    """
    root = logging.getLogger()
    if root.handlers:
        return

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        # Skipped when the log directory cannot be created (read-only checkout)
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError:
            pass

    root.setLevel(level)
