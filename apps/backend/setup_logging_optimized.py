import logging
import os


def setup_logging(level: str = None) -> None:
    """Minimal logging setup shared by every storyline module.

    - Level comes from the argument, then LOG_LEVEL, then INFO
    - Ensures a single StreamHandler is attached to the root logger
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))


def get_logger(name: str) -> logging.Logger:
    """Return a module logger after ensuring logging is initialized."""
    if not logging.getLogger().handlers:
        setup_logging()
    return logging.getLogger(name)
