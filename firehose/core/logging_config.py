import json
import logging
import logging.config
from datetime import datetime, timezone

from firehose.core.config import LOG_FORMAT, LOG_LEVEL

_RESERVED = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "exc_info", "exc_text",
    "stack_info", "taskName", "message",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extra= fields included"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "component": getattr(record, "component", "app"),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED and key not in log_entry:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = LOG_LEVEL, fmt: str = LOG_FORMAT) -> dict:
    """Configure console logging in text or json format"""
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JsonFormatter},
            "text": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json" if fmt == "json" else "text",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "firehose": {"level": level, "handlers": ["console"], "propagate": False},
            "uvicorn": {"level": level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": level, "handlers": ["console"]},
    }
    logging.config.dictConfig(config)
    return config


def log_job_event(event_type: str, message: str, level: int = logging.INFO, exc_info=None, **kwargs):
    """Log worker events with structured data"""
    logger = logging.getLogger("firehose.worker")
    logger.log(level, message, exc_info=exc_info, extra={
        "event_type": event_type,
        "component": "worker",
        **kwargs,
    })
