"""
Loguru setup shared by the library: JSON or coloured text on stdout, an
optional rotating JSON file, and trace ids bound through trace_context().
"""

import json
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Optional

from loguru import logger

from src.exchangehub.config import settings

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan>"
)

logger.remove()


def serialize(record: Dict[str, Any]) -> str:
    """Render a record as one JSON line; bound extras become top-level keys."""
    payload = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "service": settings.service_name,
        "message": record["message"],
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
    }
    for key, value in record["extra"].items():
        payload.setdefault(key, value)

    error = record["exception"]
    if error is not None:
        payload["exception"] = {"type": error.type.__name__, "value": str(error.value)}

    # loguru formats the returned string again
    line = json.dumps(payload, default=str)
    return line.replace("{", "{{").replace("}", "}}") + "\n"


def format_text(record: Dict[str, Any]) -> str:
    parts = [TEXT_FORMAT]
    if "trace_id" in record["extra"]:
        parts.append(" | <yellow>{extra[trace_id]}</yellow>")
    parts.append(" - <level>{message}</level>\n")
    if record["exception"] is not None:
        parts.append("{exception}\n")
    return "".join(parts)


def _is_library_record(record: Dict[str, Any]) -> bool:
    """Activity-log records go only to their own file sink."""
    return "activity_sink" not in record["extra"]


def configure_logging():
    """Install the stdout sink and, when MONITORING_LOG_FILE is set, the file sink."""
    monitoring = settings.monitoring
    common = {
        "level": monitoring.log_level,
        "filter": _is_library_record,
        "backtrace": True,
        "diagnose": False,
    }

    if monitoring.log_format == "json":
        logger.add(sys.stdout, format=serialize, **common)
    else:
        logger.add(sys.stdout, format=format_text, colorize=True, **common)

    if monitoring.log_file:
        logger.add(
            monitoring.log_file,
            format=serialize,
            rotation="100 MB",
            retention="7 days",
            compression="gz",
            **common,
        )

    logger.debug(
        "Logging configured",
        service=settings.service_name,
        environment=settings.environment,
        log_level=monitoring.log_level,
        log_format=monitoring.log_format,
    )


@contextmanager
def trace_context(trace_id: Optional[str] = None):
    """Bind trace_id (a fresh uuid4 by default) to every record logged inside the block."""
    trace_id = trace_id or str(uuid.uuid4())
    with logger.contextualize(trace_id=trace_id):
        yield trace_id


def get_logger(name: str) -> logger:
    return logger.bind(module=name)


configure_logging()


__all__ = ["logger", "get_logger", "trace_context", "configure_logging"]
