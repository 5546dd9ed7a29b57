"""
Logging setup shared by the services and the CLI.

Modules log through `logging.getLogger(__name__)`; this only installs the
handler and level on the root logger.
"""

import logging
from typing import Optional

import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_HANDLER_NAME = "lab_inventory"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a single stream handler; safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(level or config.get_log_level())

    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    return root


def reset_logging() -> None:
    """Remove the handler installed by configure_logging."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)
