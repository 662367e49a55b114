import atexit
import json
import logging
import os
import queue
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, Optional

_listeners: Dict[str, QueueListener] = {}


class JsonFormatter(logging.Formatter):
    """Logging formatter that outputs JSON-formatted records.

    The formatter serializes key information from LogRecord into a compact
    JSON string. It includes level, message, logger name and a timestamp.
    A mapping passed as `extra={"context": {...}}` is included under the
    `context` key, and exception information under `exception`.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        context = getattr(record, "context", None)
        if isinstance(context, dict):
            log_record["context"] = context
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False, default=str)


def get_logger(
    name: str = "simple_weather", level: Optional[str] = None
) -> logging.Logger:
    """Return a logger which serializes records to JSON via a queue listener.

    On first use for `name` this sets up a background QueueListener and a
    QueueHandler so that log emission is non-blocking and the final
    serialization to JSON happens in a single consumer thread. Later calls
    with the same name return the already configured logger.

    Args:
        name (str): Logger name (defaults to "simple_weather").
        level (Optional[str]): Level name; falls back to the `LOG_LEVEL`
            environment variable, then "INFO".

    Returns:
        logging.Logger: Configured logger instance with JSON formatting.
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    if name in _listeners:
        return logger

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(-1)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(JsonFormatter())

    queue_handler = QueueHandler(log_queue)
    listener = QueueListener(log_queue, stream_handler)
    listener.start()
    atexit.register(listener.stop)
    _listeners[name] = listener

    logger.addHandler(queue_handler)
    logger.propagate = False

    return logger
