from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from homecourt.errors import InvalidTimestamp
from homecourt.games.identity import GameKey, build_game_key, parse_start_time, start_epoch
from homecourt.teams.resolver import TeamResolver
from homecourt.teams.vocabulary import NBA_TEAMS, TeamVocabulary

EASTERN = ZoneInfo("America/New_York")


class GameKeyTests(unittest.TestCase):
    def test_str_formats_home_away_and_date(self) -> None:
        key = GameKey(home="ATL", away="MIA", game_date=date(2025, 2, 25))

        self.assertEqual("ATL MIA 02.25.2025", str(key))
        self.assertEqual("ATL MIA 02.25.2025", key.value)

    def test_parse_round_trips_canonical_string(self) -> None:
        key = GameKey.parse("atl mia 02.25.2025")

        self.assertEqual(GameKey(home="ATL", away="MIA", game_date=date(2025, 2, 25)), key)

    def test_parse_rejects_malformed_keys(self) -> None:
        for raw in ("ATL MIA", "ATL MIA 2025-02-25", "ATL MIA 13.45.2025 extra"):
            with self.subTest(raw=raw):
                with self.assertRaises(ValueError):
                    GameKey.parse(raw)

    def test_same_game_from_different_feeds_gets_same_key(self) -> None:
        resolver = TeamResolver(TeamVocabulary(NBA_TEAMS))
        from_tickets = resolver.extract_pair("Atlanta Hawks vs Miami Heat")
        from_odds_home = resolver.resolve("atlanta hawks")
        from_odds_away = resolver.resolve("Heat")

        ticket_key = build_game_key(
            from_tickets.home,
            from_tickets.away,
            parse_start_time("2025-02-25T00:30:00Z"),
        )
        odds_key = build_game_key(
            from_odds_home,
            from_odds_away,
            parse_start_time("20250225T003000Z"),
        )

        self.assertEqual(ticket_key, odds_key)
        self.assertEqual("ATL MIA 02.25.2025", str(ticket_key))

    def test_date_is_taken_in_reference_timezone(self) -> None:
        start = parse_start_time("2025-02-25T00:30:00Z")

        self.assertEqual("ATL MIA 02.25.2025", str(build_game_key("ATL", "MIA", start, timezone.utc)))
        self.assertEqual("ATL MIA 02.24.2025", str(build_game_key("ATL", "MIA", start, EASTERN)))

    def test_midnight_boundary_in_reference_timezone(self) -> None:
        before = parse_start_time("2025-02-25T04:59:59Z")
        after = parse_start_time("2025-02-25T05:00:00Z")

        self.assertEqual(date(2025, 2, 24), build_game_key("ATL", "MIA", before, EASTERN).game_date)
        self.assertEqual(date(2025, 2, 25), build_game_key("ATL", "MIA", after, EASTERN).game_date)


class ParseStartTimeTests(unittest.TestCase):
    def test_iso_with_offset_is_converted_to_utc(self) -> None:
        parsed = parse_start_time("2025-02-24T19:30:00-05:00")

        self.assertEqual(datetime(2025, 2, 25, 0, 30, tzinfo=timezone.utc), parsed)

    def test_naive_timestamp_is_read_in_reference_timezone(self) -> None:
        parsed = parse_start_time("2025-02-24T19:30:00", EASTERN)

        self.assertEqual(datetime(2025, 2, 25, 0, 30, tzinfo=timezone.utc), parsed)

    def test_odds_feed_long_format(self) -> None:
        parsed = parse_start_time("Saturday, Nov 16, 2024 at 3:00am")

        self.assertEqual(datetime(2024, 11, 16, 3, 0, tzinfo=timezone.utc), parsed)

    def test_calendar_utc_format(self) -> None:
        parsed = parse_start_time("20241116T030000Z", EASTERN)

        self.assertEqual(datetime(2024, 11, 16, 3, 0, tzinfo=timezone.utc), parsed)

    def test_datetime_instances_pass_through(self) -> None:
        value = datetime(2025, 2, 25, 0, 30, tzinfo=timezone.utc)

        self.assertEqual(value, parse_start_time(value))

    def test_unparseable_values_raise_invalid_timestamp(self) -> None:
        for value in ("not-a-date", "", "   ", None, 1740443400):
            with self.subTest(value=value):
                with self.assertRaises(InvalidTimestamp):
                    parse_start_time(value)

    def test_start_epoch_is_whole_seconds(self) -> None:
        value = datetime(2025, 2, 25, 0, 30, tzinfo=timezone.utc)

        self.assertEqual(1740443400, start_epoch(value))


if __name__ == "__main__":
    unittest.main()
