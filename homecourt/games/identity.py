"""Canonical game identity: (home code, away code, date) -> GameKey."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo

from homecourt.errors import InvalidTimestamp

GAME_DATE_FORMAT = "%m.%d.%Y"

# Formats that carry no ISO shape. Tried before datetime.fromisoformat.
_EXTRA_FORMATS: tuple[tuple[str, bool], ...] = (
    # (format, is_utc)
    ("%Y%m%dT%H%M%SZ", True),               # iCalendar DTSTART
    ("%A, %b %d, %Y at %I:%M%p", False),     # odds feed: "Saturday, Nov 16, 2024 at 3:00am"
    ("%A, %B %d, %Y at %I:%M%p", False),
    ("%A, %b %d, %Y at %I:%M %p", False),
    ("%b %d, %Y %I:%M%p", False),
)


@dataclass(frozen=True)
class GameKey:
    home: str
    away: str
    game_date: date

    def __str__(self) -> str:
        return f"{self.home} {self.away} {self.game_date.strftime(GAME_DATE_FORMAT)}"

    @property
    def value(self) -> str:
        return str(self)

    @classmethod
    def parse(cls, raw: str) -> "GameKey":
        parts = raw.strip().split()
        if len(parts) != 3:
            raise ValueError(f"Game key must look like 'HOME AWAY MM.DD.YYYY', got {raw!r}")
        home, away, date_part = parts
        try:
            game_date = datetime.strptime(date_part, GAME_DATE_FORMAT).date()
        except ValueError as exc:
            raise ValueError(f"Invalid date in game key {raw!r}") from exc
        return cls(home=home.upper(), away=away.upper(), game_date=game_date)


def parse_start_time(value: object, tz: tzinfo = timezone.utc) -> datetime:
    """Parse a feed timestamp into an aware UTC datetime.

    Naive timestamps are read as wall-clock time in ``tz``.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        parsed = _parse_string(value.strip(), tz)
    else:
        raise InvalidTimestamp(value)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(timezone.utc)


def _parse_string(raw: str, tz: tzinfo) -> datetime:
    for fmt, is_utc in _EXTRA_FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=timezone.utc if is_utc else tz)
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidTimestamp(raw) from None


def build_game_key(
    home: str,
    away: str,
    start: datetime,
    tz: tzinfo = timezone.utc,
) -> GameKey:
    """Derive the game key from the start instant's date in ``tz``."""
    if start.tzinfo is None:
        start = start.replace(tzinfo=tz)
    local_start = start.astimezone(tz)
    return GameKey(home=home.upper(), away=away.upper(), game_date=local_start.date())


def start_epoch(start: datetime) -> int:
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    return int(start.timestamp())
