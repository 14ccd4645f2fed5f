"""
Logging configuration with request ID tracking.

Provides:
- Request ID propagation via context variables
- JSON structured logging for production (STRUCTURED_LOGGING=true)
- Human-readable, optionally coloured logging for development
- Flask hooks that tag each request and log its outcome
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterable

# Context variable for request ID (thread-safe and async-safe)
request_id_var: ContextVar[str] = ContextVar('request_id', default='system')

# LogRecord attributes copied into structured output when present
EXTRA_FIELDS = (
    'duration_ms', 'status_code', 'endpoint', 'method',
    'catalog_id', 'page', 'genre', 'year', 'metas',
    'strategy', 'pool_size',
)

NOISY_LOGGERS = ("urllib3", "requests", "werkzeug")


def get_request_id() -> str:
    """Current request ID, or 'system' outside a request."""
    return request_id_var.get()


def set_request_id(request_id: str = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Request ID to set. If None, generates a new one.

    Returns:
        The request ID that was set
    """
    rid = request_id or uuid.uuid4().hex[:8]
    request_id_var.set(rid)
    return rid


class StructuredFormatter(logging.Formatter):
    """
    JSON line formatter.

    {"timestamp": "...", "level": "INFO", "logger": "catalog",
     "request_id": "abc123", "message": "...", "page": 2}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": get_request_id(),
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanFormatter(logging.Formatter):
    """
    Human-readable formatter.

    INFO     catalog: [abc123] Message here
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        request_id = get_request_id()
        prefix = f"[{request_id}] " if request_id != 'system' else ""

        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        message = f"{level} {record.name}: {prefix}{record.getMessage()}"
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


def configure_logging(
    level: str = "INFO",
    structured: bool = False,
    use_colors: bool = True,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure application logging on the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        structured: Use JSON lines instead of human format
        use_colors: Use colored output (human format on a TTY only)
        quiet: Third-party loggers to cap at WARNING
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if structured else HumanFormatter(use_colors=use_colors))
    root_logger.addHandler(handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_flask_request_id(app) -> None:
    """
    Add request ID hooks to a Flask app.

    - Takes X-Request-ID from the request or generates one
    - Logs method, path, status and duration when the request completes
    - Echoes X-Request-ID on the response

    Args:
        app: Flask application instance
    """
    from flask import request, g

    http_logger = logging.getLogger('http')

    @app.before_request
    def inject_request_id():
        g.request_id = set_request_id(request.headers.get('X-Request-ID'))
        g.request_start = time.monotonic()

    @app.after_request
    def log_request(response):
        start = getattr(g, 'request_start', None)
        duration_ms = (time.monotonic() - start) * 1000 if start else 0.0

        http_logger.info(
            f"{request.method} {request.path} -> {response.status_code} ({duration_ms:.0f}ms)",
            extra={
                'method': request.method,
                'endpoint': request.path,
                'status_code': response.status_code,
                'duration_ms': round(duration_ms, 2),
            }
        )

        response.headers['X-Request-ID'] = getattr(g, 'request_id', get_request_id())
        return response
