from __future__ import annotations

import logging

from homecourt.errors import GameNotFound
from homecourt.games.identity import GameKey
from homecourt.games.store import GameStore

logger = logging.getLogger(__name__)


class ExistenceGate:
    """Keeps update-only facts (odds, injuries) off games nobody seeded.

    Only the ticket feed is authoritative for which games exist. Odds for a
    game it never seeded are usually away games at other venues.
    """

    def __init__(self, store: GameStore) -> None:
        self._store = store

    def exists(self, game_key: GameKey | str) -> bool:
        return self._store.exists(game_key)

    def require(self, game_key: GameKey | str) -> None:
        if not self._store.exists(game_key):
            logger.debug("Gate closed for game %s", game_key)
            raise GameNotFound(str(game_key))
