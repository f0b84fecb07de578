import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = None) -> None:
    """Install a single stream handler on the root logger.

    The level comes from ``level`` or LOG_LEVEL and falls back to INFO
    when the name is not a logging level. HTTP client internals are
    held at WARNING so search and store traffic does not flood the log.
    """
    root = logging.getLogger()
    if not root.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(stream)

    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)

    for chatty in ("httpx", "httpcore", "hpack"):
        logging.getLogger(chatty).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; configures logging on first use if nobody else has."""
    if not logging.getLogger().handlers:
        setup_logging()
    return logging.getLogger(name)
