"""Process-wide logging configuration for the HTTP app and the CLI."""

import logging
import logging.config
from datetime import UTC, datetime

# Client libraries that log every request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "qdrant_client", "urllib3")


class UTCFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, UTC)
        return dt.strftime(datefmt) if datefmt else dt.isoformat(timespec="milliseconds")


def configure_logging(level: str = "INFO", stream: str = "ext://sys.stderr") -> None:
    level = (level or "INFO").upper()
    debug_mode = level == "DEBUG"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "()": UTCFormatter,
                    "format": "%(asctime)s %(levelname)-7s %(name)s - %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "level": level,
                    "stream": stream,
                },
            },
            "root": {"handlers": ["console"], "level": level},
        }
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug_mode else logging.WARNING)
