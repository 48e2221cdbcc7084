"""Logging configuration."""
import logging
from pathlib import Path

from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level="INFO", log_file=None):
    """Configure logging with rich console and optional file handler."""
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    root = logging.getLogger("healthwatch")
    root.setLevel(numeric_level)

    if not root.handlers:
        root.addHandler(RichHandler(level=numeric_level, rich_tracebacks=True, markup=False))

        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
            root.addHandler(file_handler)

    return root
