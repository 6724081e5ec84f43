"""Per-home-team index of upcoming games ordered by start time."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from homecourt.errors import StoreUnavailable
from homecourt.games.identity import GameKey
from homecourt.models import UpcomingGame

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UpcomingIndex:
    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def _now(self, now: int | None) -> int:
        return int(self._clock()) if now is None else int(now)

    def register(self, team_code: str, game_key: GameKey | str, start_epoch: int) -> None:
        """Insert the game, or move it if its start time changed."""
        key = str(game_key)

        def _register(db: Session) -> None:
            row = (
                db.query(UpcomingGame)
                .filter(UpcomingGame.team_code == team_code, UpcomingGame.game_key == key)
                .one_or_none()
            )
            if row is None:
                db.add(UpcomingGame(team_code=team_code, game_key=key, start_epoch=int(start_epoch)))
            elif row.start_epoch != int(start_epoch):
                row.start_epoch = int(start_epoch)
            db.commit()

        self._run(_register)

    # Collaborator-style name used by the store interface.
    add = register

    def query(self, team_code: str, limit: int, now: int | None = None) -> list[str]:
        """Next ``limit`` game keys starting at or after ``now``, soonest first."""
        if limit <= 0:
            return []
        cutoff = self._now(now)
        rows = self._run(
            lambda db: db.query(UpcomingGame.game_key)
            .filter(UpcomingGame.team_code == team_code, UpcomingGame.start_epoch >= cutoff)
            .order_by(UpcomingGame.start_epoch.asc(), UpcomingGame.id.asc())
            .limit(limit)
            .all()
        )
        return [game_key for (game_key,) in rows]

    def query_from(self, team_code: str, now_epoch: int, limit: int) -> list[str]:
        return self.query(team_code, limit, now=now_epoch)

    def prune(self, team_code: str, now: int | None = None) -> int:
        """Drop entries that started strictly before ``now``. Projections are untouched."""
        cutoff = self._now(now)

        def _prune(db: Session) -> int:
            removed = (
                db.query(UpcomingGame)
                .filter(UpcomingGame.team_code == team_code, UpcomingGame.start_epoch < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
            return removed

        removed = self._run(_prune)
        if removed:
            logger.info("Pruned %d past game(s) for team=%s", removed, team_code)
        return removed

    def prune_before(self, team_code: str, now_epoch: int) -> int:
        return self.prune(team_code, now=now_epoch)

    def prune_all(self, now: int | None = None) -> int:
        cutoff = self._now(now)
        teams = self._run(
            lambda db: [team for (team,) in db.query(UpcomingGame.team_code).distinct().all()]
        )
        return sum(self.prune(team, now=cutoff) for team in teams)

    def _run(self, operation: Callable[[Session], T]) -> T:
        with self._session_factory() as db:
            try:
                return operation(db)
            except SQLAlchemyError as exc:
                db.rollback()
                raise StoreUnavailable(f"Upcoming index unavailable: {exc}") from exc
