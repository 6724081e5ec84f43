from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from homecourt.games.gate import ExistenceGate
from homecourt.games.identity import GameKey
from homecourt.games.store import GameStore

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    game_key: str
    created: bool = False
    changed: list[str] = field(default_factory=list)

    @property
    def outcome(self) -> str:
        if self.created:
            return "seeded"
        return "updated" if self.changed else "unchanged"


class MergeCoordinator:
    """Single writer of projection fields.

    Every field write is a plain overwrite, so applying the same fact twice
    leaves the projection exactly as applying it once. ``changed`` is only
    reported for logging; writes are not skipped based on it.
    """

    def __init__(self, store: GameStore, gate: ExistenceGate) -> None:
        self._store = store
        self._gate = gate

    def apply(self, game_key: GameKey, fields: Mapping[str, Any], *, seed: bool) -> MergeResult:
        if seed:
            write = self._store.seed_or_update(game_key, fields)
        else:
            self._gate.require(game_key)
            write = self._store.update(game_key, fields)

        result = MergeResult(game_key=str(game_key), created=write.created, changed=write.changed)
        logger.debug(
            "Merged game=%s outcome=%s changed=%s",
            result.game_key,
            result.outcome,
            ",".join(result.changed) or "-",
        )
        return result
