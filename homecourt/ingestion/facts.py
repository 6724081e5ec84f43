"""Message envelopes per topic and the typed facts they resolve into.

Envelopes are JSON objects published by the upstream producers, e.g.::

    tickets: {"event_name": "Atlanta Hawks vs Miami Heat",
              "start_date_time": "2025-02-25T00:30:00Z",
              "min_ticket_price": 25, "venue_name": "State Farm Arena"}
    odds:    {"away_team": "Minnesota Timberwolves", "home_team": "Sacramento Kings",
              "start_time": "2024-11-16T03:00:00Z",
              "betting_prices": {"Minnesota Timberwolves": "-105", "Sacramento Kings": "-115"}}

Decoding fails closed: any missing or mistyped field raises DecodeError.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, NoReturn, Optional, TypeVar, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from homecourt.errors import DecodeError, NotYetSupported
from homecourt.games.identity import GameKey

M = TypeVar("M", bound=BaseModel)


class TicketMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    event_name: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    start_date_time: str = Field(
        min_length=1,
        validation_alias=AliasChoices("start_date_time", "start_time"),
    )
    min_ticket_price: Optional[float] = None
    venue_name: Optional[str] = None

    @model_validator(mode="after")
    def _require_teams(self) -> "TicketMessage":
        if not self.event_name and not (self.home_team and self.away_team):
            raise ValueError("ticket message needs event_name or both home_team and away_team")
        return self


class OddsMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    home_team: str = Field(min_length=1)
    away_team: str = Field(min_length=1)
    start_time: str = Field(min_length=1, validation_alias=AliasChoices("start_time", "start"))
    betting_prices: dict[str, Union[int, float, str]]


@dataclass(frozen=True)
class TicketFact:
    game_key: GameKey
    start_time_utc: datetime
    venue: str | None
    lowest_ticket_price: float | None

    def fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "home_team": self.game_key.home,
            "away_team": self.game_key.away,
            "start_time": self.start_time_utc.isoformat(),
        }
        if self.venue:
            fields["venue"] = self.venue
        if self.lowest_ticket_price is not None:
            fields["lowest_ticket_price"] = self.lowest_ticket_price
        return fields


@dataclass(frozen=True)
class OddsFact:
    game_key: GameKey
    home_team_odds: int
    away_team_odds: int | None

    def fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"home_team_odds": self.home_team_odds}
        if self.away_team_odds is not None:
            fields["away_team_odds"] = self.away_team_odds
        return fields


def _decode(model: type[M], body: bytes | str, topic: str) -> M:
    try:
        return model.model_validate_json(body)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in exc.errors()
        )
        raise DecodeError(f"Invalid {topic} message: {problems}") from exc


def decode_ticket(body: bytes | str) -> TicketMessage:
    return _decode(TicketMessage, body, "tickets")


def decode_odds(body: bytes | str) -> OddsMessage:
    return _decode(OddsMessage, body, "odds")


def decode_injury(body: bytes | str) -> NoReturn:
    raise NotYetSupported("injuries topic has no message contract yet")


def parse_american_odds(value: object) -> int:
    """'-110' -> -110, '+155' -> 155, 'EVEN' -> 100."""
    if isinstance(value, bool):
        raise DecodeError(f"Invalid odds price: {value!r}")
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value != int(value):
            raise DecodeError(f"Invalid odds price: {value!r}")
        price = int(value)
    elif isinstance(value, str):
        cleaned = value.strip().upper()
        if cleaned in {"EVEN", "EV"}:
            return 100
        try:
            price = int(cleaned.lstrip("+"))
        except ValueError:
            raise DecodeError(f"Invalid odds price: {value!r}") from None
    else:
        raise DecodeError(f"Invalid odds price: {value!r}")

    if abs(price) < 100:
        raise DecodeError(f"American odds must be <= -100 or >= +100, got {value!r}")
    return price
