"""
Logging setup driven by LOG_LEVEL / LOG_FORMAT.
"""
import json
import logging
import logging.config

from portal.utils.datetime_utils import to_iso_utc, utc_now


class JSONFormatter(logging.Formatter):
    """JSON formatter for logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": to_iso_utc(utc_now()),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
            "logger": record.name,
        }

        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def configure_logging(level: str = "INFO", log_format: str = "json") -> None:
    """Install a single console handler on the root logger."""
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": JSONFormatter,
            },
            "text": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if log_format.lower() == "json" else "text",
            },
        },
        "root": {
            "handlers": ["console"],
            "level": level.upper(),
        },
    })
