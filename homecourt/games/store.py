"""SQL-backed game store holding the per-game field projections."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from homecourt.errors import GameNotFound, StoreUnavailable
from homecourt.games.identity import GAME_DATE_FORMAT, GameKey
from homecourt.models import GameField, GameProjection

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A concurrent writer can insert the same (game_key, name) row between our
# read and our insert; the second pass then sees the row and updates it.
_WRITE_ATTEMPTS = 2


@dataclass
class FieldWrite:
    created: bool = False
    changed: list[str] = field(default_factory=list)


def _encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


class GameStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def exists(self, game_key: GameKey | str) -> bool:
        key = str(game_key)
        return self._run(
            lambda db: db.query(GameProjection.game_key)
            .filter(GameProjection.game_key == key)
            .first()
            is not None
        )

    def read(self, game_key: GameKey | str) -> dict[str, Any]:
        key = str(game_key)

        def _read(db: Session) -> dict[str, Any] | None:
            if db.get(GameProjection, key) is None:
                return None
            rows = db.query(GameField).filter(GameField.game_key == key).all()
            return {row.name: json.loads(row.value_json) for row in rows}

        fields = self._run(_read)
        if fields is None:
            raise GameNotFound(key)
        return fields

    def read_many(self, game_keys: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Fields for every key that still has a projection; missing keys are omitted."""
        keys = list(dict.fromkeys(game_keys))
        if not keys:
            return {}

        def _read(db: Session) -> dict[str, dict[str, Any]]:
            present = {
                key
                for (key,) in db.query(GameProjection.game_key)
                .filter(GameProjection.game_key.in_(keys))
                .all()
            }
            result: dict[str, dict[str, Any]] = {key: {} for key in keys if key in present}
            rows = db.query(GameField).filter(GameField.game_key.in_(sorted(present))).all()
            for row in rows:
                result[row.game_key][row.name] = json.loads(row.value_json)
            return result

        return self._run(_read)

    def seed_or_update(self, game_key: GameKey, fields: Mapping[str, Any]) -> FieldWrite:
        """Create the projection if needed, then overwrite the given fields."""
        key = str(game_key)

        def _seed(db: Session) -> FieldWrite:
            result = FieldWrite()
            if db.get(GameProjection, key) is None:
                db.add(
                    GameProjection(
                        game_key=key,
                        home_team=game_key.home,
                        away_team=game_key.away,
                        game_date=game_key.game_date.strftime(GAME_DATE_FORMAT),
                    )
                )
                db.flush()
                result.created = True
            result.changed = self._write_fields(db, key, fields)
            db.commit()
            return result

        return self._run_write(key, _seed)

    def update(self, game_key: GameKey | str, fields: Mapping[str, Any]) -> FieldWrite:
        """Overwrite fields on an existing projection; never creates one."""
        key = str(game_key)

        def _update(db: Session) -> FieldWrite | None:
            if db.get(GameProjection, key) is None:
                return None
            changed = self._write_fields(db, key, fields)
            db.commit()
            return FieldWrite(created=False, changed=changed)

        result = self._run_write(key, _update)
        if result is None:
            raise GameNotFound(key)
        return result

    def _write_fields(self, db: Session, key: str, fields: Mapping[str, Any]) -> list[str]:
        changed: list[str] = []
        for name, value in fields.items():
            encoded = _encode(value)
            row = (
                db.query(GameField)
                .filter(GameField.game_key == key, GameField.name == name)
                .one_or_none()
            )
            if row is None:
                db.add(GameField(game_key=key, name=name, value_json=encoded))
                changed.append(name)
            elif row.value_json != encoded:
                row.value_json = encoded
                changed.append(name)
        db.flush()
        return changed

    def _run_write(self, key: str, operation: Callable[[Session], T]) -> T:
        for attempt in range(_WRITE_ATTEMPTS):
            with self._session_factory() as db:
                try:
                    return operation(db)
                except IntegrityError:
                    db.rollback()
                    if attempt == _WRITE_ATTEMPTS - 1:
                        raise StoreUnavailable(f"Conflicting writes for game {key}")
                    logger.info("Concurrent write on game %s, retrying", key)
                except SQLAlchemyError as exc:
                    db.rollback()
                    raise StoreUnavailable(f"Game store write failed for {key}: {exc}") from exc
        raise StoreUnavailable(f"Game store write failed for {key}")

    def _run(self, operation: Callable[[Session], T]) -> T:
        try:
            with self._session_factory() as db:
                return operation(db)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Game store read failed: {exc}") from exc
