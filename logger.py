import logging
import os


def init_logger(level="WARNING"):
    """Configure root logging; the LOGLEVEL environment variable wins over `level`."""
    logging.basicConfig(format='%(levelname)s: %(message)s', level=os.environ.get("LOGLEVEL", level).upper())
