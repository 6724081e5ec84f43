from __future__ import annotations

import unittest
from datetime import date, datetime, timezone

from fastapi.testclient import TestClient

from homecourt.db import Base, build_engine, build_session_factory
from homecourt.games.identity import GameKey
from homecourt.games.queries import GameQueries
from homecourt.ingestion.pipeline import build_game_services
from homecourt.main import app, get_queries, get_vocabulary
from homecourt.teams.vocabulary import NBA_TEAMS, TeamVocabulary

NOW = int(datetime(2025, 2, 20, tzinfo=timezone.utc).timestamp())
ATL_MIA = GameKey("ATL", "MIA", date(2025, 2, 25))


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = build_engine("sqlite:///:memory:")
        Base.metadata.create_all(bind=self.engine)
        vocabulary = TeamVocabulary(NBA_TEAMS)
        services = build_game_services(build_session_factory(self.engine), vocabulary, clock=lambda: NOW)
        services.merger.apply(
            ATL_MIA,
            {"home_team": "ATL", "away_team": "MIA", "lowest_ticket_price": 25.0},
            seed=True,
        )
        services.index.register("ATL", ATL_MIA, NOW + 3600)

        queries = GameQueries(services.resolver, services.store, services.index)
        app.dependency_overrides[get_queries] = lambda: queries
        app.dependency_overrides[get_vocabulary] = lambda: vocabulary
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.engine.dispose()

    def test_list_teams(self) -> None:
        response = self.client.get("/api/teams")

        self.assertEqual(200, response.status_code)
        teams = response.json()
        self.assertEqual(30, len(teams))
        self.assertEqual({"code": "ATL", "name": "Atlanta Hawks", "nickname": "Hawks", "aliases": []}, teams[0])

    def test_upcoming_games_by_alias(self) -> None:
        response = self.client.get("/api/teams/Hawks/upcoming-games", params={"limit": 3})

        self.assertEqual(200, response.status_code)
        body = response.json()
        self.assertEqual("ATL", body["team"])
        self.assertEqual(1, body["count"])
        self.assertEqual("ATL MIA 02.25.2025", body["games"][0]["game_key"])
        self.assertEqual(25.0, body["games"][0]["lowest_ticket_price"])

    def test_upcoming_games_for_team_without_home_games(self) -> None:
        response = self.client.get("/api/teams/MIA/upcoming-games")

        self.assertEqual(200, response.status_code)
        self.assertEqual({"team": "MIA", "count": 0, "games": []}, response.json())

    def test_upcoming_games_unknown_team_is_404(self) -> None:
        response = self.client.get("/api/teams/Sonics/upcoming-games")

        self.assertEqual(404, response.status_code)

    def test_upcoming_games_limit_out_of_range_is_400(self) -> None:
        response = self.client.get("/api/teams/ATL/upcoming-games", params={"limit": 0})

        self.assertEqual(400, response.status_code)

    def test_legacy_get_accepts_capitalized_team_field(self) -> None:
        response = self.client.post("/get", json={"Team": "atlanta hawks"})

        self.assertEqual(200, response.status_code)
        self.assertEqual("ATL", response.json()["team"])

    def test_legacy_get_requires_team(self) -> None:
        response = self.client.post("/get", json={})

        self.assertEqual(422, response.status_code)

    def test_game_by_key(self) -> None:
        response = self.client.get("/api/games/ATL MIA 02.25.2025")

        self.assertEqual(200, response.status_code)
        self.assertEqual(
            {
                "game_key": "ATL MIA 02.25.2025",
                "fields": {"home_team": "ATL", "away_team": "MIA", "lowest_ticket_price": 25.0},
            },
            response.json(),
        )

    def test_unknown_game_is_404(self) -> None:
        response = self.client.get("/api/games/BOS NYK 02.25.2025")

        self.assertEqual(404, response.status_code)

    def test_malformed_game_key_is_400(self) -> None:
        response = self.client.get("/api/games/not-a-key")

        self.assertEqual(400, response.status_code)

    def test_game_exists(self) -> None:
        seeded = self.client.get("/api/games/atl mia 02.25.2025/exists")
        unseeded = self.client.get("/api/games/BOS NYK 02.25.2025/exists")

        self.assertEqual({"game_key": "ATL MIA 02.25.2025", "exists": True}, seeded.json())
        self.assertEqual({"game_key": "BOS NYK 02.25.2025", "exists": False}, unseeded.json())

    def test_ingestion_status_without_running_pipeline(self) -> None:
        response = self.client.get("/api/ingestion/status")

        self.assertEqual(200, response.status_code)
        self.assertFalse(response.json()["running"])
        self.assertEqual([], response.json()["consumers"])

    def test_logs_endpoint_returns_entries(self) -> None:
        response = self.client.get("/api/logs", params={"limit": 5})

        self.assertEqual(200, response.status_code)
        self.assertIsInstance(response.json()["entries"], list)


if __name__ == "__main__":
    unittest.main()
