from datetime import datetime
import logging
import logging.config
import os
from logging import Logger

from pytz import timezone

_LINE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ANSI_RESET = "\033[0m"
_COLOR_MAP: dict[str, str] = {
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "magenta": "\033[35m",
    "blue": "\033[34m",
    "white": "\033[37m",
}

# checked top-down, first threshold the level reaches wins
_LEVEL_PREFIXES: tuple[tuple[int, str], ...] = (
    (logging.ERROR, "⛔ "),
    (logging.WARNING, "⚠️ "),
)


def _get_log_level() -> int:
    return logging.DEBUG if os.getenv("LOG_LEVEL", "info").lower() == "debug" else logging.INFO


def _get_log_dir() -> str | None:
    """LOG_DIR, else $ROOT_DIR/logs, else None for console-only logging."""
    if os.getenv("LOG_DIR"):
        return os.environ["LOG_DIR"]
    if os.getenv("ROOT_DIR"):
        return os.path.join(os.environ["ROOT_DIR"], "logs")
    return None


class CustomFormatter(logging.Formatter):
    """Timezone-aware timestamps and a marker in front of warnings and errors."""

    def __init__(self, tz_name, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record):
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # mismatched %-args: keep the raw template
            message = str(record.msg)
        prefix = next((p for level, p in _LEVEL_PREFIXES if record.levelno >= level), "")

        # the same record is formatted by every handler
        rendered = logging.makeLogRecord(record.__dict__)
        rendered.msg = prefix + message
        rendered.args = ()
        return super().format(rendered)


class ColoredFormatter(CustomFormatter):
    """Console variant: wraps the line in the ANSI color named by ``record.color``."""

    def format(self, record) -> str:
        line = super().format(record)
        ansi = _COLOR_MAP.get(getattr(record, "color", None) or "")
        return f"{ansi}{line}{_ANSI_RESET}" if ansi and line else line


class ColorLogger:
    """Logger wrapper whose methods accept ``color=``, e.g.
    ``logger.info("Indexed %d chunks.", n, color="green")``.

    The color travels as a record attribute and only the console handler uses it.
    Everything else (setLevel, handlers, ...) is delegated to the wrapped logger.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def _emit(self, level: int, msg, args, color: str | None, kwargs: dict) -> None:
        if color is not None:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "color": color}
        # stacklevel points records at the caller instead of this wrapper
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self._emit(logging.DEBUG, msg, args, color, kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self._emit(logging.INFO, msg, args, color, kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self._emit(logging.WARNING, msg, args, color, kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self._emit(logging.ERROR, msg, args, color, kwargs)

    def critical(self, msg, *args, color: str | None = None, **kwargs):
        self._emit(logging.CRITICAL, msg, args, color, kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._emit(logging.ERROR, msg, args, color, kwargs)

    def log(self, level: int, msg, *args, color: str | None = None, **kwargs):
        self._emit(level, msg, args, color, kwargs)

    def __getattr__(self, name):
        return getattr(self._logger, name)


def _formatter(formatter_class: type[CustomFormatter], tz_name: str) -> dict:
    return {"()": formatter_class, "format": _LINE_FORMAT, "datefmt": _DATE_FORMAT, "tz_name": tz_name}


def setup_logging(name: str = "rag_pipeline") -> ColorLogger:
    """Configure the root logger and return the pipeline logger.

    Console output is always on. A plain-text app.log is added when LOG_DIR
    or ROOT_DIR is set. LOG_LEVEL=debug also lets httpx request logs through.

    Args:
        name (str): Name of the returned logger.

    Returns:
        ColorLogger: The logger handed to HelperConfig.
    """
    loglevel = _get_log_level()
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")

    handlers: dict = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "colored",
            "level": loglevel,
            "stream": "ext://sys.stdout",
        },
    }
    log_dir = _get_log_dir()
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "standard",
            "level": loglevel,
            "filename": os.path.join(log_dir, "app.log"),
            "encoding": "utf-8",
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": _formatter(CustomFormatter, tz_name),
            "colored": _formatter(ColoredFormatter, tz_name),
        },
        "handlers": handlers,
        "root": {"handlers": list(handlers), "level": loglevel},
    })
    logging.getLogger("httpx").setLevel(logging.DEBUG if loglevel == logging.DEBUG else logging.WARNING)

    return ColorLogger(logging.getLogger(name))
