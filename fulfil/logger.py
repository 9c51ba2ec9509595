import logging
import json
import os
from pathlib import Path
import threading


ROOT_LOGGER_NAME = "fulfil"


class SingletonLogger:
    """
    Owns the handler setup of the ``fulfil`` logger tree.

    Handlers are attached exactly once per process; module loggers obtained
    through :func:`get_logger` are children of the root and propagate to it.
    """
    _instance = None
    _lock = threading.Lock()
    _configured = False

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(SingletonLogger, cls).__new__(cls)
        return cls._instance

    def configure(self, level: str = "INFO", log_dir: str = "logs", log_to_file: bool = True,
                  force: bool = False) -> logging.Logger:
        """
        Attach console and (optionally) file handlers to the root ``fulfil`` logger.

        Args:
            level (str): Minimum level for the console and main file handlers
            log_dir (str): Directory for fulfil.log / errors.log
            log_to_file (bool): Whether to write the log files at all
            force (bool): Re-create handlers even if already configured

        Returns:
            logging.Logger: The root ``fulfil`` logger
        """
        with self._lock:
            logger = logging.getLogger(ROOT_LOGGER_NAME)
            if self._configured and not force:
                return logger

            logger.setLevel(logging.DEBUG)
            logger.propagate = False
            logger.handlers.clear()

            formatter = JsonFormatter({
                "timestamp": "asctime",
                "level": "levelname",
                "logger": "name",
                "module": "module",
                "function": "funcName",
                "line": "lineno",
                "message": "message"
            })
            handler_level = getattr(logging, str(level).upper(), logging.INFO)

            if log_to_file:
                logs_dir = Path(log_dir)
                logs_dir.mkdir(parents=True, exist_ok=True)

                file_handler = logging.FileHandler(logs_dir / "fulfil.log", encoding='utf-8')
                file_handler.setLevel(handler_level)
                file_handler.setFormatter(formatter)
                logger.addHandler(file_handler)

                error_file_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
                error_file_handler.setLevel(logging.ERROR)
                error_file_handler.setFormatter(formatter)
                logger.addHandler(error_file_handler)

            console_handler = logging.StreamHandler()
            console_handler.setLevel(handler_level)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

            self._configured = True
            return logger

    def get_logger(self, name: str = ROOT_LOGGER_NAME) -> logging.Logger:
        if not self._configured:
            self.configure(
                level=os.environ.get("LOG_LEVEL", "INFO"),
                log_dir=os.environ.get("LOG_DIR", "logs"),
                log_to_file=os.environ.get("LOG_TO_FILE", "True").lower() in ("true", "1", "yes", "on"),
            )
        if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        return logging.getLogger(name)


class JsonFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings after parsing the LogRecord.

    @param dict fmt_dict: Key: logging format attribute pairs. Defaults to {"message": "message"}.
    @param str time_format: time.strftime() format string. Default: "%Y-%m-%dT%H:%M:%S"
    @param str msec_format: Microsecond formatting. Appended at the end. Default: "%s.%03dZ"
    """
    def __init__(self, fmt_dict: dict = None, time_format: str = "%Y-%m-%dT%H:%M:%S", msec_format: str = "%s.%03dZ"):
        super().__init__()
        self.fmt_dict = fmt_dict if fmt_dict is not None else {"message": "message"}
        self.default_time_format = time_format
        self.default_msec_format = msec_format
        self.datefmt = None

    def usesTime(self) -> bool:
        return "asctime" in self.fmt_dict.values()

    def formatMessage(self, record) -> dict:
        """
        Return a dictionary of the relevant LogRecord attributes instead of a string.
        """
        return {fmt_key: record.__dict__[fmt_val] for fmt_key, fmt_val in self.fmt_dict.items()}

    def format(self, record) -> str:
        record.message = record.getMessage()

        if self.usesTime():
            record.asctime = self.formatTime(record, self.datefmt)

        message_dict = self.formatMessage(record)

        if record.exc_info:
            if not record.exc_text:
                record.exc_text = self.formatException(record.exc_info)

        if record.exc_text:
            message_dict["exc_info"] = record.exc_text

        if record.stack_info:
            message_dict["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(message_dict, default=str)


def configure_logging(level: str = "INFO", log_dir: str = "logs", log_to_file: bool = True) -> logging.Logger:
    """Configure the ``fulfil`` logger tree; later calls are no-ops."""
    return SingletonLogger().configure(level=level, log_dir=log_dir, log_to_file=log_to_file)


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger inside the ``fulfil`` tree.

    Args:
        name (str): Dotted logger name, e.g. "fulfil.business.ledger"

    Returns:
        logging.Logger: Child logger sharing the root's handlers
    """
    return SingletonLogger().get_logger(name)
