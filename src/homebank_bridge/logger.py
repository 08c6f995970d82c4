import logging
import logging.config
import os


class ColourizedFormatter(logging.Formatter):
    """
    Formatter that colours the level name.
    """
    GREY = "\x1b[90m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    RED = "\x1b[31m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        orig_levelname = record.levelname
        if record.levelno in self.LEVEL_COLORS:
            record.levelname = f"{self.LEVEL_COLORS[record.levelno]}{record.levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = orig_levelname


def _uvicorn_logger(handlers: list[str]) -> dict:
    return {"handlers": handlers, "level": "INFO", "propagate": False}


def get_logging_config() -> dict:
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = os.getenv("LOG_DIR")
    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "colour",
        },
    }
    root_handlers = ["console"]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        # Plain formatter: no escape codes in the log file.
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": os.path.join(log_dir, "app.log"),
            "formatter": "plain",
            "encoding": "utf-8",
        }
        root_handlers.append("file")

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "colour": {
                "()": "homebank_bridge.logger.ColourizedFormatter",
                "format": log_format,
            },
            "plain": {"format": log_format},
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": root_handlers,
                "level": log_level_name,
            },
            "uvicorn": _uvicorn_logger(root_handlers),
            "uvicorn.error": _uvicorn_logger(root_handlers),
            "uvicorn.access": _uvicorn_logger(root_handlers),
        },
    }


def setup_logging() -> None:
    logging.config.dictConfig(get_logging_config())


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
