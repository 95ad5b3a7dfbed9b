"""Process logging for the dashboard client.

Modules log through ``logging.getLogger(__name__)``: cache misses, retries
and sequence numbers at DEBUG, socket connects at INFO, retry exhaustion
and reconnect give-up at WARNING. ``setup_logging`` is called once by the
monitor entrypoint; library users keep their own configuration.
"""
import logging
import os


def setup_logging() -> None:
    """Attach a stderr handler to the root logger and apply ``LOG_LEVEL``."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO; websockets logs frames at DEBUG.
    for name in ("httpx", "httpcore", "websockets"):
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["setup_logging"]
