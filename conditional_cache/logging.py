"""Logger lookup for the conditional cache layer.

Handlers and levels belong to the host application; this package only emits
records on ``conditional_cache.*`` loggers.
"""

from __future__ import annotations

import logging


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
