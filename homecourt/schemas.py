from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TeamOut(BaseModel):
    code: str
    name: str
    nickname: str
    aliases: list[str]


class UpcomingGamesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # The web client posts {"Team": "ATL"}.
    team: str = Field(min_length=1, alias="Team")
    limit: Optional[int] = Field(default=None, ge=1, le=50)


class UpcomingGamesResponse(BaseModel):
    team: str
    count: int
    games: list[dict[str, Any]]


class GameOut(BaseModel):
    game_key: str
    fields: dict[str, Any]


class GameExistsResponse(BaseModel):
    game_key: str
    exists: bool


class ConsumerStatusOut(BaseModel):
    topic: str
    seeds: bool
    state: str
    received: int
    applied: int
    discarded: int
    rejected: int
    requeued: int
    failed: int


class IngestionStatusResponse(BaseModel):
    enabled: bool
    running: bool
    consumers: list[ConsumerStatusOut]
    queues: dict[str, dict[str, int]] = Field(default_factory=dict)
