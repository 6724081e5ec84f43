"""Recent pipeline log records kept in memory for ``GET /api/logs``."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

ROOT_LOGGER = "homecourt"


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    levelno: int
    logger: str
    message: str


class BufferHandler(logging.Handler):
    def __init__(self, capacity: int = 500) -> None:
        super().__init__(level=logging.INFO)
        self._records: deque[LogEntry] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            self._records.append(
                LogEntry(
                    timestamp=created.isoformat(timespec="seconds"),
                    level=record.levelname,
                    levelno=record.levelno,
                    logger=record.name,
                    message=self.format(record),
                )
            )
        except Exception:
            self.handleError(record)

    def entries(
        self,
        limit: int = 100,
        min_level: str | None = None,
        logger_prefix: str | None = None,
    ) -> list[dict]:
        """Newest first. ``min_level`` is a level name such as ``"WARNING"``."""
        threshold = logging.NOTSET
        if min_level:
            level = logging.getLevelName(min_level.upper())
            threshold = level if isinstance(level, int) else logging.NOTSET
        selected = [
            entry
            for entry in reversed(self._records)
            if entry.levelno >= threshold
            and (not logger_prefix or entry.logger.startswith(logger_prefix))
        ]
        return [asdict(entry) for entry in selected[: max(limit, 0)]]

    def clear(self) -> None:
        self._records.clear()


_handler: BufferHandler | None = None


def get_buffer_handler() -> BufferHandler:
    global _handler
    if _handler is None:
        _handler = BufferHandler()
        _handler.setFormatter(logging.Formatter("%(message)s"))
    return _handler


def install_buffer_handler() -> BufferHandler:
    """Attach the buffer to the ``homecourt`` logger so every module feeds it."""
    handler = get_buffer_handler()
    root = logging.getLogger(ROOT_LOGGER)
    if handler not in root.handlers:
        root.addHandler(handler)
    if root.level == logging.NOTSET or root.level > logging.INFO:
        root.setLevel(logging.INFO)
    return handler
