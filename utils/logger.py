"""
Logging configuration for the schedule intelligence engine
"""

import logging
import sys
from pathlib import Path

from config.settings import settings


def setup_logging(log_level=logging.INFO, log_file=None):
    """
    Set up logging configuration for the engine and its scripts
    """
    if log_file is None:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(exist_ok=True)
        log_file = log_dir / "schedule_intelligence.log"

    if settings.DEBUG:
        log_level = logging.DEBUG

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file, encoding="utf-8"),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Set specific log levels for noisy libraries
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
