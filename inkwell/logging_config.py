"""
Logging configuration for inkwell.

Quiet by default; --verbose (or INKWELL_VERBOSE=1) turns on debug output.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "inkwell-ops.log"


def configure_quiet_mode(quiet: bool = True):
    """
    Keep the CLI output clean.

    Args:
        quiet: If True, only warnings and errors from inkwell are shown.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        logging.getLogger("inkwell").setLevel(logging.WARNING)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("inkwell").setLevel(logging.DEBUG)


def configure_ops_log(project_root):
    """Configure a persistent operations log for a project.

    Writes to {project_root}/inkwell-ops.log using a rotating file handler
    (1MB max, 3 backups). Returns the handler so it can be removed on
    close().
    """
    log_path = Path(project_root) / OPS_LOG_FILENAME
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    inkwell_logger = logging.getLogger("inkwell")
    inkwell_logger.addHandler(handler)
    # Let INFO through even in quiet mode
    if inkwell_logger.level == logging.NOTSET or inkwell_logger.level > logging.INFO:
        inkwell_logger.setLevel(logging.INFO)

    return handler
