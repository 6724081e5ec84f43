"""Fixed team vocabulary: canonical codes and the names feeds use for them.

The vocabulary is built once at process start and handed to the resolver.
A JSON file can replace the built-in NBA table, shaped as::

    [{"code": "ATL", "name": "Atlanta Hawks", "nickname": "Hawks",
      "aliases": ["ATL Hawks"]}, ...]
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]+")
_WHITESPACE = re.compile(r"\s+")


def normalize_team_text(value: str) -> str:
    """Lower-case, drop punctuation and collapse whitespace.

    >>> normalize_team_text("  L.A. Clippers ")
    'la clippers'
    """
    lowered = _NON_ALNUM.sub("", value.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


@dataclass(frozen=True)
class Team:
    code: str
    name: str
    nickname: str
    aliases: tuple[str, ...] = field(default_factory=tuple)

    def name_aliases(self) -> tuple[str, ...]:
        return (self.name, self.nickname, *self.aliases)


NBA_TEAMS: tuple[Team, ...] = (
    Team("ATL", "Atlanta Hawks", "Hawks"),
    Team("BOS", "Boston Celtics", "Celtics"),
    Team("BKN", "Brooklyn Nets", "Nets"),
    Team("CHA", "Charlotte Hornets", "Hornets"),
    Team("CHI", "Chicago Bulls", "Bulls"),
    Team("CLE", "Cleveland Cavaliers", "Cavaliers", ("Cavs",)),
    Team("DAL", "Dallas Mavericks", "Mavericks", ("Mavs",)),
    Team("DEN", "Denver Nuggets", "Nuggets"),
    Team("DET", "Detroit Pistons", "Pistons"),
    Team("GSW", "Golden State Warriors", "Warriors"),
    Team("HOU", "Houston Rockets", "Rockets"),
    Team("IND", "Indiana Pacers", "Pacers"),
    Team("LAC", "Los Angeles Clippers", "Clippers", ("LA Clippers",)),
    Team("LAL", "Los Angeles Lakers", "Lakers", ("LA Lakers",)),
    Team("MEM", "Memphis Grizzlies", "Grizzlies"),
    Team("MIA", "Miami Heat", "Heat"),
    Team("MIL", "Milwaukee Bucks", "Bucks"),
    Team("MIN", "Minnesota Timberwolves", "Timberwolves"),
    Team("NOP", "New Orleans Pelicans", "Pelicans"),
    Team("NYK", "New York Knicks", "Knicks"),
    Team("OKC", "Oklahoma City Thunder", "Thunder"),
    Team("ORL", "Orlando Magic", "Magic"),
    Team("PHI", "Philadelphia 76ers", "76ers", ("Sixers",)),
    Team("PHX", "Phoenix Suns", "Suns"),
    Team("POR", "Portland Trail Blazers", "Trail Blazers", ("Blazers",)),
    Team("SAC", "Sacramento Kings", "Kings"),
    Team("SAS", "San Antonio Spurs", "Spurs"),
    Team("TOR", "Toronto Raptors", "Raptors"),
    Team("UTA", "Utah Jazz", "Jazz"),
    Team("WAS", "Washington Wizards", "Wizards"),
)


class TeamVocabulary:
    """Immutable alias -> code lookup.

    Name aliases (full names, nicknames, extra spellings) are kept apart from
    the codes themselves: codes are valid for exact lookups, but only names
    are searched for inside free text.
    """

    def __init__(self, teams: Iterable[Team]) -> None:
        teams = tuple(teams)
        by_code: dict[str, Team] = {}
        names: dict[str, str] = {}
        codes: dict[str, str] = {}

        for team in teams:
            code = team.code.strip().upper()
            if not code:
                raise ValueError(f"Team {team.name!r} has an empty code")
            if code in by_code:
                raise ValueError(f"Duplicate team code: {code}")
            by_code[code] = team
            codes[normalize_team_text(code)] = code

        for team in teams:
            code = team.code.strip().upper()
            for alias in team.name_aliases():
                normalized = normalize_team_text(alias)
                if not normalized:
                    continue
                owner = names.get(normalized) or codes.get(normalized)
                if owner is not None and owner != code:
                    raise ValueError(
                        f"Alias {alias!r} maps to both {owner} and {code}"
                    )
                names[normalized] = code

        self._teams = MappingProxyType(by_code)
        self._names = MappingProxyType(names)
        self._codes = MappingProxyType(codes)
        self.max_alias_words = max((len(alias.split()) for alias in names), default=1)

    def __len__(self) -> int:
        return len(self._teams)

    def __contains__(self, code: object) -> bool:
        return code in self._teams

    @property
    def teams(self) -> Mapping[str, Team]:
        return self._teams

    @property
    def name_aliases(self) -> Mapping[str, str]:
        return self._names

    def lookup(self, normalized: str) -> str | None:
        """Exact lookup of an already-normalized alias or code."""
        return self._names.get(normalized) or self._codes.get(normalized)

    def lookup_name(self, normalized: str) -> str | None:
        return self._names.get(normalized)

    def all_aliases(self) -> dict[str, str]:
        """Every accepted spelling (names and codes) with its code."""
        return {**self._codes, **self._names}

    @classmethod
    def from_json(cls, path: str | Path) -> "TeamVocabulary":
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"Team vocabulary file {path} must contain a list")
        teams: list[Team] = []
        for entry in raw:
            if not isinstance(entry, dict):
                raise ValueError(f"Invalid team entry in {path}: {entry!r}")
            try:
                teams.append(
                    Team(
                        code=str(entry["code"]),
                        name=str(entry["name"]),
                        nickname=str(entry.get("nickname") or ""),
                        aliases=tuple(str(alias) for alias in entry.get("aliases") or ()),
                    )
                )
            except KeyError as exc:
                raise ValueError(f"Team entry in {path} missing {exc}") from exc
        return cls(teams)


def load_vocabulary(path: str | None = None) -> TeamVocabulary:
    if path:
        vocabulary = TeamVocabulary.from_json(path)
        logger.info("Loaded %d teams from %s", len(vocabulary), path)
        return vocabulary
    return TeamVocabulary(NBA_TEAMS)
