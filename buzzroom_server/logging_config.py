"""Logging configuration helpers for the BuzzRoom server."""
import logging


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Configure basic logging for the application and return the package logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("buzzroom_server")
