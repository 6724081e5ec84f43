from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

KNOWN_TOPICS = ("tickets", "odds", "injuries")


@dataclass(frozen=True)
class PipelineSettings:
    database_url: str
    reference_timezone: str
    topics: tuple[str, ...]
    poll_seconds: float
    max_redeliveries: int
    stale_claim_seconds: int
    prune_interval_minutes: int
    upcoming_limit: int
    teams_file: str | None
    ingest_enabled: bool

    @property
    def reference_tz(self) -> tzinfo:
        return ZoneInfo(self.reference_timezone)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")
    return value


def parse_topics(raw: str) -> tuple[str, ...]:
    topics = [topic.strip().lower() for topic in raw.split(",") if topic.strip()]
    invalid = [topic for topic in topics if topic not in KNOWN_TOPICS]
    if invalid:
        supported = ", ".join(KNOWN_TOPICS)
        raise ValueError(f"Unsupported topics: {', '.join(invalid)}. Supported: {supported}")
    if not topics:
        raise ValueError("No topics configured.")
    # Preserve order, drop duplicates.
    return tuple(dict.fromkeys(topics))


def load_settings() -> PipelineSettings:
    reference_timezone = (os.getenv("HOMECOURT_REFERENCE_TZ") or "UTC").strip()
    try:
        ZoneInfo(reference_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown HOMECOURT_REFERENCE_TZ: {reference_timezone}") from exc

    teams_file = (os.getenv("HOMECOURT_TEAMS_FILE") or "").strip() or None

    return PipelineSettings(
        database_url=os.getenv("HOMECOURT_DATABASE_URL", "sqlite:///./homecourt.db"),
        reference_timezone=reference_timezone,
        topics=parse_topics(os.getenv("HOMECOURT_TOPICS", ",".join(KNOWN_TOPICS))),
        poll_seconds=_env_float("HOMECOURT_POLL_SECONDS", 2.0),
        max_redeliveries=_env_int("HOMECOURT_MAX_REDELIVERIES", 3),
        stale_claim_seconds=_env_int("HOMECOURT_STALE_CLAIM_SECONDS", 15 * 60, minimum=1),
        prune_interval_minutes=_env_int("HOMECOURT_PRUNE_INTERVAL_MINUTES", 15, minimum=1),
        upcoming_limit=_env_int("HOMECOURT_UPCOMING_LIMIT", 5, minimum=1),
        teams_file=teams_file,
        ingest_enabled=_env_bool("HOMECOURT_INGEST_ENABLED", True),
    )


@lru_cache
def get_settings() -> PipelineSettings:
    settings = load_settings()
    logger.debug(
        "Loaded settings: db=%s tz=%s topics=%s poll=%ss",
        settings.database_url,
        settings.reference_timezone,
        ",".join(settings.topics),
        settings.poll_seconds,
    )
    return settings
