"""
Structured JSON logging configuration.

Provides centralized logging configuration with:
- JSON formatted output for machine parsing
- Request ID tracking via contextvars
- Log injection sanitizing
- File rotation for long-running deployments
"""
import logging
import logging.handlers
import os
import contextvars
import re
from datetime import datetime, timezone
from typing import Optional
from pythonjsonlogger import jsonlogger

from herald.core.config import settings

# Context variable for request ID propagation
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'request_id', default=None
)

# Default log directory: backend/data/logs
LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'data', 'logs')

# Visible prefix length when masking device tokens
TOKEN_MASK_PREFIX = 12


class RequestIdFilter(logging.Filter):
    """
    Logging filter that adds request_id to all log records.

    The id is read from the current context, so every log line emitted while
    one notification request is resolved and dispatched can be correlated.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """
    Filter that strips line breaks from log messages and string args.

    Notification titles, bodies and document data are caller controlled, so
    they must not be able to forge extra log lines.
    """

    _LINE_BREAKS = re.compile(r'\r\n|\r|\n')

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._LINE_BREAKS.sub(' ', record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._LINE_BREAKS.sub(' ', arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that adds standard fields to all log entries.

    Output format:
    {
        "timestamp": "2026-01-12T10:30:00.000000+00:00",
        "level": "INFO",
        "message": "Token batch dispatched",
        "module": "batch_dispatcher",
        "request_id": "uuid-here",
        "logger": "herald.services.push.batch_dispatcher",
        ...extra fields...
    }
    """

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).isoformat()

        log_record['level'] = record.levelname
        log_record['module'] = record.module
        log_record['logger'] = record.name
        log_record['request_id'] = getattr(record, 'request_id', '-')

        if record.funcName:
            log_record['function'] = record.funcName

        if 'message' not in log_record:
            log_record['message'] = record.getMessage()


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    json_console: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        log_level: Override log level (default from settings.LOG_LEVEL)
        log_dir: Override log directory (default from settings.LOG_DIR, then backend/data/logs)
        json_console: Emit JSON on the console (default: True unless settings.DEBUG)

    Returns:
        Root logger configured for the application
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    directory = log_dir or settings.LOG_DIR or LOG_DIR
    if json_console is None:
        json_console = not settings.DEBUG

    os.makedirs(directory, exist_ok=True)

    json_formatter = CustomJsonFormatter(
        '%(timestamp)s %(level)s %(name)s %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s',
        defaults={'request_id': '-'}
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(json_formatter if json_console else console_formatter)
    console_handler.addFilter(RequestIdFilter())
    console_handler.addFilter(SanitizingFilter())
    root_logger.addHandler(console_handler)

    # Max 50MB per file, keep 5 rotations
    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(directory, 'herald.log'),
        maxBytes=50 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(json_formatter)
    file_handler.addFilter(RequestIdFilter())
    file_handler.addFilter(SanitizingFilter())
    root_logger.addHandler(file_handler)

    # Suppress noisy third-party loggers
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('google.auth').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the application's configuration."""
    return logging.getLogger(name)


def set_request_id(request_id: Optional[str]) -> contextvars.Token:
    """
    Set the request ID for the current context.

    Returns:
        Token that can be used to reset the context
    """
    return request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_var.get()


def clear_request_id(token: contextvars.Token) -> None:
    """Reset the request ID context using the token from set_request_id."""
    request_id_var.reset(token)


def sanitize_log_value(value: str, max_length: int = 10000) -> str:
    """
    Sanitize a value for safe logging, preventing log injection.

    Args:
        value: Value to sanitize
        max_length: Longer values are truncated

    Returns:
        Sanitized string safe for logging
    """
    if not isinstance(value, str):
        value = str(value)

    sanitized = value.replace('\r\n', ' ').replace('\n', ' ').replace('\r', ' ')

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + '...[truncated]'

    return sanitized


def mask_token(token: str) -> str:
    """Shorten a device token for log output."""
    if len(token) <= TOKEN_MASK_PREFIX:
        return token
    return token[:TOKEN_MASK_PREFIX] + "..."
