from __future__ import annotations

import asyncio
import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from homecourt.db import Base, build_engine, build_session_factory
from homecourt.ingestion.consumers import TicketConsumer
from homecourt.ingestion.enqueue import enqueue_message
from homecourt.ingestion.pipeline import IngestionPipeline, build_game_services
from homecourt.ingestion.transport import SqlQueueTransport
from homecourt.models import InboundMessage
from homecourt.teams.vocabulary import NBA_TEAMS, TeamVocabulary

NOW = int(datetime(2025, 2, 20, tzinfo=timezone.utc).timestamp())


class SqlQueueTransportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = build_engine("sqlite:///:memory:")
        Base.metadata.create_all(bind=self.engine)
        self.session_factory = build_session_factory(self.engine)
        self.transport = SqlQueueTransport(
            self.session_factory,
            poll_seconds=0.01,
            max_redeliveries=1,
            stale_claim_seconds=60,
            lock_owner="test:1",
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_claim_one_takes_oldest_queued_message_once(self) -> None:
        first = self.transport.enqueue("tickets", "{\"n\": 1}")
        self.transport.enqueue("tickets", "{\"n\": 2}")
        self.transport.enqueue("odds", "{}")

        claimed = self.transport.claim_one("tickets")

        self.assertEqual(first, claimed.id)
        self.assertEqual("{\"n\": 1}", claimed.body)
        self.assertEqual({"queued": 1, "running": 1, "done": 0, "failed": 0}, self.transport.snapshot("tickets").counts)

    def test_claim_one_returns_none_when_topic_is_empty(self) -> None:
        self.transport.enqueue("odds", "{}")

        self.assertIsNone(self.transport.claim_one("tickets"))

    def test_mark_done_finishes_message(self) -> None:
        self.transport.enqueue("tickets", "{}")
        claimed = self.transport.claim_one("tickets")

        self.transport.mark_done(claimed.id)

        self.assertEqual(1, self.transport.snapshot("tickets").counts["done"])
        self.assertIsNone(self.transport.claim_one("tickets"))

    def test_requeue_until_redeliveries_exhausted(self) -> None:
        self.transport.enqueue("tickets", "{}")

        claimed = self.transport.claim_one("tickets")
        self.assertEqual("queued", self.transport.mark_rejected(claimed.id, "db down", requeue=True))

        claimed = self.transport.claim_one("tickets")
        self.assertEqual(1, claimed.attempts)
        self.assertEqual("failed", self.transport.mark_rejected(claimed.id, "db down", requeue=True))

        with self.session_factory() as db:
            message = db.get(InboundMessage, claimed.id)
            self.assertEqual(2, message.attempts)
            self.assertEqual("db down", message.last_error)

    def test_reject_without_requeue_fails_immediately(self) -> None:
        self.transport.enqueue("tickets", "{broken")
        claimed = self.transport.claim_one("tickets")

        self.assertEqual("failed", self.transport.mark_rejected(claimed.id, "bad json", requeue=False))

    def test_requeue_stale_recovers_abandoned_claims(self) -> None:
        message_id = self.transport.enqueue("tickets", "{}")
        self.transport.claim_one("tickets")
        with self.session_factory() as db:
            message = db.get(InboundMessage, message_id)
            message.locked_at_utc = datetime.now(timezone.utc) - timedelta(minutes=5)
            db.commit()

        recovered = self.transport.requeue_stale("tickets")

        self.assertEqual(1, recovered)
        self.assertEqual(message_id, self.transport.claim_one("tickets").id)

    def test_requeue_stale_leaves_fresh_claims_alone(self) -> None:
        self.transport.enqueue("tickets", "{}")
        self.transport.claim_one("tickets")

        self.assertEqual(0, self.transport.requeue_stale("tickets"))

    def test_enqueue_message_validates_topic_and_body(self) -> None:
        with self.assertRaises(ValueError):
            enqueue_message("weather", "{}", transport=self.transport)
        with self.assertRaises(ValueError):
            enqueue_message("odds", "   ", transport=self.transport)

        message_id = enqueue_message("odds", "{}", transport=self.transport)

        self.assertEqual(message_id, self.transport.claim_one("odds").id)


class SqlQueuePipelineTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = build_engine(f"sqlite:///{Path(self._tmp.name) / 'queue.db'}")
        Base.metadata.create_all(bind=self.engine)
        self.session_factory = build_session_factory(self.engine)

    def tearDown(self) -> None:
        self.engine.dispose()
        self._tmp.cleanup()

    async def test_queued_ticket_is_consumed_and_marked_done(self) -> None:
        transport = SqlQueueTransport(self.session_factory, poll_seconds=0.01)
        services = build_game_services(self.session_factory, TeamVocabulary(NBA_TEAMS), clock=lambda: NOW)
        consumer = TicketConsumer(services.resolver, services.merger, services.index)
        pipeline = IngestionPipeline(transport, [consumer], services.index, prune_interval_seconds=3600)
        await transport.publish(
            "tickets",
            json.dumps(
                {
                    "event_name": "Miami Heat @ Atlanta Hawks",
                    "start_date_time": "2025-02-25T00:30:00Z",
                }
            ),
        )
        await transport.publish("tickets", "{broken")

        stop = asyncio.Event()
        task = asyncio.create_task(pipeline.run(stop))
        for _ in range(300):
            counts = transport.snapshot("tickets").counts
            if counts["done"] + counts["failed"] == 2:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=5)

        self.assertEqual({"queued": 0, "running": 0, "done": 1, "failed": 1}, transport.snapshot("tickets").counts)
        self.assertTrue(services.store.exists("ATL MIA 02.25.2025"))


if __name__ == "__main__":
    unittest.main()
