# src/swarmsync/observers/logger.py
from __future__ import annotations

import logging

from .events import BaseEvent

_SKIP = ("ts", "run_id", "context")


class LoggerObserver:
    """Mirrors events into the run log; failure events are logged as warnings."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        name = type(event).__name__
        fields = ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in _SKIP)
        level = logging.WARNING if name.endswith("Failed") else logging.DEBUG
        self.logger.log(level, "[EVENT] %s: %s", name, fields)
