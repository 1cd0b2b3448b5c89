"""
Human-readable activity log of the simulated exchange.

One line per operation: timestamp, level, method, params, result. The log is
for diagnostics only; the ledger is the authoritative state.
"""

import json
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import BaseModel

LOG_FILENAME = "fake_exchange.log"
LINE_FORMAT = "[{time:YYYY-MM-DD HH:mm:ss}] [{level}] {message}"


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _to_json(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(_plain(value), default=str)


class ActivityLog:
    """Append-only activity log backed by a dedicated loguru file sink."""

    def __init__(self, data_path: str, rotation: Optional[str] = "10 MB"):
        self.path = Path(data_path) / LOG_FILENAME
        self.path.parent.mkdir(parents=True, exist_ok=True)

        token = uuid.uuid4().hex
        self._sink_id: Optional[int] = logger.add(
            str(self.path),
            format=LINE_FORMAT,
            level="INFO",
            filter=lambda record: record["extra"].get("activity_sink") == token,
            rotation=rotation,
            encoding="utf-8",
        )
        self._logger = logger.bind(activity_sink=token)

    def info(self, method: str, params: Optional[Dict[str, Any]] = None, result: Any = None) -> None:
        self._logger.info(
            "{} | params: {} | result: {}", method, _to_json(params or {}), _to_json(result)
        )

    def error(self, method: str, error: str, params: Optional[Dict[str, Any]] = None) -> None:
        self._logger.error(
            "{} | params: {} | result: {}", method, _to_json(params or {}), _to_json({"error": error})
        )

    def close(self) -> None:
        if self._sink_id is not None:
            logger.remove(self._sink_id)
            self._sink_id = None
