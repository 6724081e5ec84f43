"""Read-only pass-throughs over the game store and upcoming index."""

from __future__ import annotations

from typing import Any

from homecourt.games.store import GameStore
from homecourt.games.upcoming import UpcomingIndex
from homecourt.teams.resolver import TeamResolver


class GameQueries:
    def __init__(self, resolver: TeamResolver, store: GameStore, index: UpcomingIndex) -> None:
        self.resolver = resolver
        self.store = store
        self.index = index

    def upcoming_games(self, team: str, limit: int, now: int | None = None) -> tuple[str, list[dict[str, Any]]]:
        """Upcoming home games for ``team`` (code or any alias), with their fields.

        Index entries whose projection is gone are left out.
        """
        code = self.resolver.resolve(team)
        keys = self.index.query(code, limit, now=now)
        projections = self.store.read_many(keys)
        games = [
            {"game_key": key, **projections[key]}
            for key in keys
            if key in projections
        ]
        return code, games

    def game_exists(self, game_key: str) -> bool:
        return self.store.exists(game_key)

    def game(self, game_key: str) -> dict[str, Any]:
        return {"game_key": game_key, **self.store.read(game_key)}
