"""Per-device logging.

Every meter has its own logging mode:

* ``standard`` - INFO and above go through, DEBUG follows the logger level.
* ``debug`` - DEBUG records are promoted to INFO with a ``[DEBUG]`` prefix.
* ``debugMode`` - set when the host runs in debug mode; behaves like
  ``standard`` since the host already shows DEBUG records.
* anything else (e.g. ``none``) - device logs are silenced.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any


class DeviceLogAdapter(logging.LoggerAdapter):
    """Prefix records with the device name and apply the device logging mode."""

    def __init__(self, logger: logging.Logger, display_name: str, mode: str) -> None:
        super().__init__(logger, {"device": display_name})
        self.display_name = display_name
        self.mode = mode

    @property
    def enabled(self) -> bool:
        return "debug" in self.mode or self.mode == "standard"

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"Meter Plus: {self.display_name} {msg}", kwargs

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        if not self.enabled:
            return
        if level == logging.DEBUG and self.mode == "debug":
            level = logging.INFO
            msg = f"[DEBUG] {msg}"
        super().log(level, msg, *args, **kwargs)
