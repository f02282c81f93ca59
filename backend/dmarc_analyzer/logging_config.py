"""
Logging setup shared by the API, the queue consumer and the Celery worker

Each process logs to stdout. When a log directory is configured it also
writes <app_name>.log and <app_name>-error.log with size-based rotation.
"""
import json
import logging
import logging.handlers
import sys
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Attributes passed through `extra=` that are copied into JSON output
_EXTRA_FIELDS = (
    "request_id",
    "duration_ms",
    "message_id",
    "bucket",
    "state",
    "entries",
    "error",
)

_QUIET_LOGGERS = ("uvicorn.access", "botocore", "boto3", "urllib3", "s3transfer")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_data.update(
            {name: getattr(record, name) for name in _EXTRA_FIELDS if hasattr(record, name)}
        )
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def _formatter(enable_json: bool) -> logging.Formatter:
    if enable_json:
        return JSONFormatter()
    return logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    app_name: str = "dmarc-analyzer",
    enable_json: bool = False
):
    """
    Configure the root logger

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for rotating log files; None disables file logging
        app_name: Prefix for the log file names
        enable_json: Emit JSON lines instead of plain text
    """
    level = getattr(logging, log_level.upper())
    formatter = _formatter(enable_json)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_rotating_handler(log_path / f"{app_name}.log", level, formatter))
        root_logger.addHandler(_rotating_handler(log_path / f"{app_name}-error.log", logging.ERROR, formatter))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info(f"Logging configured: app={app_name}, level={log_level}, json={enable_json}, dir={log_dir or '-'}")


async def log_requests_middleware(request, call_next):
    """Log each API request with its status and duration, tagged with a short request id"""
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    logger = logging.getLogger("dmarc_analyzer.requests")

    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception:
        logger.error(
            f"{request.method} {request.url.path} raised",
            extra={"request_id": request_id, "duration_ms": round((time.time() - start_time) * 1000, 2)},
            exc_info=True
        )
        raise

    logger.info(
        f"{request.method} {request.url.path} - {response.status_code}",
        extra={"request_id": request_id, "duration_ms": round((time.time() - start_time) * 1000, 2)}
    )
    response.headers["X-Request-ID"] = request_id
    return response
