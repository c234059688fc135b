# bankfeed/logging_setup.py
# Role: One-time logging configuration shared by the app and scripts.

import logging
import sys

from bankfeed.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure the root logger to write to stdout.

    Safe to call more than once; basicConfig is a no-op once handlers exist.
    """
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
