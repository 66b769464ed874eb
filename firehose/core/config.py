import os

from dotenv import load_dotenv

load_dotenv()


def env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./firehose.db")

# Dispatcher
WORKER_ENABLED = env_bool("WORKER_ENABLED", True)
WORKER_COUNT = int(os.getenv("WORKER_COUNT", "1"))
WORKER_POLL_INTERVAL_SECONDS = float(os.getenv("WORKER_POLL_INTERVAL_SECONDS", "1.0"))
WORKER_ERROR_BACKOFF_SECONDS = float(os.getenv("WORKER_ERROR_BACKOFF_SECONDS", "5.0"))
JOB_TIMEOUT_SECONDS = float(os.getenv("JOB_TIMEOUT_SECONDS", "60"))

# Feed fetching
FEED_FETCH_TIMEOUT_SECONDS = float(os.getenv("FEED_FETCH_TIMEOUT_SECONDS", "10"))
FEED_MAX_BYTES = int(os.getenv("FEED_MAX_BYTES", str(5 * 1024 * 1024)))
HYDRANT_REFRESH_MINUTES = int(os.getenv("HYDRANT_REFRESH_MINUTES", "60"))

# Retention
SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", "3600"))
SWEEP_RETENTION_DAYS = int(os.getenv("SWEEP_RETENTION_DAYS", "7"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")
