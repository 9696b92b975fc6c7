import logging
import logging.handlers
import os
from pathlib import Path

NOISY_LOGGERS = ["sqlalchemy.engine",
                 "sqlalchemy.dialects",
                 "sqlalchemy.pool",
                 "sqlalchemy.orm",
                 "asyncpg",
                 "apscheduler",
                 "spotipy",
                 "urllib3.connectionpool",
                 "mutagen",
                 "asyncio"]

class InfoAndAboveNoisyFilter(logging.Filter):
    def filter(self, record):
        if not any(logger in record.name for logger in NOISY_LOGGERS): return True
        return record.levelno >= logging.INFO

class WarningAndAboveNoisyFilter(logging.Filter):
    def filter(self, record):
        if not any(logger in record.name for logger in NOISY_LOGGERS): return True
        return record.levelno >= logging.WARNING

LEVELS = {"debug": logging.DEBUG, "d": logging.DEBUG,
          "info": logging.INFO, "i": logging.INFO,
          "warning": logging.WARNING, "w": logging.WARNING,
          "error": logging.ERROR, "e": logging.ERROR}

def parse_level(value: str) -> int:
    try:
        return LEVELS[value.lower()]
    except KeyError:
        raise ValueError(f"Expected one of ([d]ebug, [i]nfo, [w]arning, [e]rror) for log level, not {value}")

def setup_logging(log_path: str = None, console_level=logging.INFO):
    """
    Set up file + console logging for the process.
    Call this ONCE from the entry point.
    """
    if log_path is None:
        log_folder = "test_logs" if os.getenv("TEST_MODE") else "logs"
        log_path = f"{log_folder}/log.log"

    Path(log_path).parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=10*1024*1024, backupCount=5
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s [%(name)s-%(funcName)s:%(lineno)d] %(message)s",
        datefmt='%H:%M:%S'
    )

    file_handler.setFormatter(formatter)
    file_handler.addFilter(InfoAndAboveNoisyFilter())

    console_handler.setFormatter(formatter)
    console_handler.addFilter(WarningAndAboveNoisyFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    level_to_str = {logging.DEBUG: "debug",
                    logging.INFO: "info",
                    logging.WARNING: "warning",
                    logging.ERROR: "error",
                    }

    logging.info(f"Logging initialized (PID: {os.getpid()}) " \
                 f"(console level: {level_to_str[console_level]}, file: {log_path})")
