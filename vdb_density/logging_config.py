import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

MAX_BYTES = 5 * 1024 * 1024  # 5 MB
BACKUP_COUNT = 3


def setup_logging(level=logging.INFO, log_file=None, fmt=DEFAULT_FORMAT, debug=False):
    """
    Configure the root logger for a command line run.

    Call this once at the start of an entry point. Library code only ever
    uses the logger it is given.

    Parameters:
    level (int, optional): The log level. Default is logging.INFO.
    log_file (str, optional): Also write to this file, rotated at 5 MB.
    fmt (str, optional): The log record format.
    debug (bool, optional): Shortcut for level=logging.DEBUG.

    Returns:
    logging.Logger: The logger for the run.
    """
    if debug:
        level = logging.DEBUG

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT))
    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)

    return logging.getLogger("vdb_density")
