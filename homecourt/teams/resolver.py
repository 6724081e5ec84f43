"""Map free-text team references onto canonical team codes.

Feeds name teams in different ways:
- Odds feed: isolated fields ("Sacramento Kings", "sacramento kings")
- Ticket feed: an event title ("Atlanta Hawks vs Miami Heat")
- Calendar: "Miami Heat @ Atlanta Hawks"

Exact fields go through ``resolve``. Titles go through ``extract_pair``,
which scans the words of the title for team names. A wrong mapping would
silently produce the wrong game key, so anything other than exactly two
distinct teams is a hard failure.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from homecourt.errors import AmbiguousOrMissingTeams, TeamResolutionError
from homecourt.teams.vocabulary import TeamVocabulary, normalize_team_text

# Separators meaning "first team is the visitor". Anything else ("vs", "v",
# "-", nothing at all) means the first team named is the home team.
AWAY_FIRST_SEPARATORS = frozenset({"@", "at"})

_TITLE_NON_ALNUM = re.compile(r"[^a-z0-9@\s]+")


@dataclass(frozen=True)
class TeamPair:
    home: str
    away: str


@dataclass(frozen=True)
class _Match:
    code: str
    start: int
    end: int


def _title_tokens(text: str) -> list[str]:
    lowered = text.lower().replace("@", " @ ")
    return _TITLE_NON_ALNUM.sub("", lowered).split()


class TeamResolver:
    def __init__(self, vocabulary: TeamVocabulary) -> None:
        self.vocabulary = vocabulary

    def resolve(self, name: str) -> str:
        """Resolve an isolated team field (name, lower-cased name or code)."""
        if not isinstance(name, str):
            raise TeamResolutionError(f"Team name must be a string, got {type(name).__name__}")
        code = self.vocabulary.lookup(normalize_team_text(name))
        if code is None:
            raise TeamResolutionError(f"Unknown team: {name!r}", text=name)
        return code

    def extract_pair(self, text: str) -> TeamPair:
        """Find the home and away team inside an event title."""
        tokens = _title_tokens(text)
        matches = self._scan(tokens)

        if len(matches) != 2:
            found = ", ".join(match.code for match in matches) or "none"
            raise AmbiguousOrMissingTeams(
                f"Expected exactly two teams in {text!r}, found {len(matches)} ({found})",
                text=text,
            )
        first, second = matches
        if first.code == second.code:
            raise AmbiguousOrMissingTeams(
                f"Event {text!r} names {first.code} twice",
                text=text,
            )

        between = tokens[first.end:second.start]
        if AWAY_FIRST_SEPARATORS.intersection(between):
            return TeamPair(home=second.code, away=first.code)
        return TeamPair(home=first.code, away=second.code)

    def _scan(self, tokens: list[str]) -> list[_Match]:
        # Longest candidate first at every position, then skip the consumed
        # words so "los angeles lakers" never also yields "lakers".
        matches: list[_Match] = []
        max_words = self.vocabulary.max_alias_words
        i = 0
        while i < len(tokens):
            match = None
            for j in range(min(len(tokens), i + max_words), i, -1):
                code = self.vocabulary.lookup_name(" ".join(tokens[i:j]))
                if code is not None:
                    match = _Match(code=code, start=i, end=j)
                    break
            if match is None:
                i += 1
                continue
            matches.append(match)
            i = match.end
        return matches
