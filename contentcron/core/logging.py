from __future__ import annotations

import logging
import sys

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger()
    root.setLevel(resolved)
    if not any(getattr(handler, "_contentcron", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._contentcron = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    # httpx logs every request at INFO; one line per mail batch is noise.
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))
