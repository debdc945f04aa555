"""Logging setup for the command line entry points."""

import logging
from pathlib import Path
from typing import Optional


LOG_FILE = "link.log"
LOGGER_NAME = "linkchat"


def configure_logging(log_dir: Optional[Path] = None, verbose: bool = False) -> None:
    """Send linkchat logs to a file and, when verbose, to stderr.

    Safe to call more than once; later calls only add what is missing.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    fmt_file = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    fmt_console = logging.Formatter("%(levelname)s %(message)s")

    handler_types = {type(h) for h in logger.handlers}

    if verbose and logging.StreamHandler not in handler_types:
        console = logging.StreamHandler()
        console.setLevel(logging.DEBUG)
        console.setFormatter(fmt_console)
        logger.addHandler(console)

    if log_dir and logging.FileHandler not in handler_types:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_dir / LOG_FILE, encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot open log file in %s: %s", log_dir, e)
        else:
            file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            file_handler.setFormatter(fmt_file)
            logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
