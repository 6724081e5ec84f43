"""Error taxonomy for the ingestion pipeline.

None of these is fatal to the process. Consumers catch them per message and
map each one to an acknowledge/reject decision on the transport.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    pass


class DecodeError(PipelineError):
    """Message envelope is malformed or missing a required field."""


class NotYetSupported(DecodeError):
    """Topic has no decoding contract yet (e.g. injuries)."""


class TeamResolutionError(PipelineError):
    def __init__(self, message: str, text: str | None = None) -> None:
        super().__init__(message)
        self.text = text


# Free-text extraction failures read better under this name at call sites.
AmbiguousOrMissingTeams = TeamResolutionError


class InvalidTimestamp(PipelineError):
    def __init__(self, value: object) -> None:
        super().__init__(f"Unrecognized start time: {value!r}")
        self.value = value


class GameNotFound(PipelineError):
    def __init__(self, game_key: str) -> None:
        super().__init__(f"Game {game_key} does not exist")
        self.game_key = game_key


class StoreUnavailable(PipelineError):
    """Game store or upcoming index could not be reached."""
