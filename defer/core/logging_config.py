"""
Logging setup — stdout only, one handler on the root logger.

Modules log through `logging.getLogger(__name__)`; this is called once
from the application lifespan (and by gunicorn through its own config).
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not any(getattr(h, "_defer_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._defer_handler = True
        root.addHandler(handler)
    root.setLevel(level.upper())
