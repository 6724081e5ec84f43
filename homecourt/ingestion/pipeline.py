"""Pipeline driver: one consumer task per topic plus a periodic prune task."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import sessionmaker

from homecourt.games.gate import ExistenceGate
from homecourt.games.merge import MergeCoordinator
from homecourt.games.store import GameStore
from homecourt.games.upcoming import UpcomingIndex
from homecourt.ingestion.consumers import CONSUMER_CLASSES, TopicConsumer
from homecourt.ingestion.transport import Transport
from homecourt.settings import PipelineSettings
from homecourt.teams.resolver import TeamResolver
from homecourt.teams.vocabulary import TeamVocabulary, load_vocabulary

logger = logging.getLogger(__name__)


@dataclass
class GameServices:
    resolver: TeamResolver
    store: GameStore
    gate: ExistenceGate
    merger: MergeCoordinator
    index: UpcomingIndex


def build_game_services(
    session_factory: sessionmaker,
    vocabulary: TeamVocabulary,
    clock: Callable[[], float] = time.time,
) -> GameServices:
    store = GameStore(session_factory)
    gate = ExistenceGate(store)
    return GameServices(
        resolver=TeamResolver(vocabulary),
        store=store,
        gate=gate,
        merger=MergeCoordinator(store, gate),
        index=UpcomingIndex(session_factory, clock=clock),
    )


class IngestionPipeline:
    def __init__(
        self,
        transport: Transport,
        consumers: list[TopicConsumer],
        index: UpcomingIndex,
        prune_interval_seconds: float = 15 * 60,
    ) -> None:
        self.transport = transport
        self.consumers = consumers
        self.index = index
        self.prune_interval_seconds = prune_interval_seconds
        self.running = False

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run until ``stop_event`` is set; returns once every task has exited."""
        tasks = [
            asyncio.create_task(
                consumer.run(self.transport.subscribe(consumer.topic), stop_event),
                name=f"consumer:{consumer.topic}",
            )
            for consumer in self.consumers
        ]
        tasks.append(asyncio.create_task(self._prune_loop(stop_event), name="prune"))
        self.running = True
        logger.info(
            "Pipeline started: topics=%s prune_interval=%ss",
            ",".join(consumer.topic for consumer in self.consumers),
            self.prune_interval_seconds,
        )
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for task, result in zip(tasks, results):
                if isinstance(result, Exception):
                    logger.error("Task %s exited with %r", task.get_name(), result)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self.running = False
            logger.info("Pipeline stopped.")

    async def _prune_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                removed = await asyncio.to_thread(self.index.prune_all)
                logger.debug("Prune pass removed %d entries", removed)
            except Exception:
                logger.exception("Prune pass failed.")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.prune_interval_seconds)
            except asyncio.TimeoutError:
                continue

    def status(self) -> dict:
        return {
            "running": self.running,
            "consumers": [
                {
                    "topic": consumer.topic,
                    "seeds": consumer.seeds,
                    "state": consumer.state,
                    **consumer.stats.as_dict(),
                }
                for consumer in self.consumers
            ],
        }


def build_pipeline(
    transport: Transport,
    session_factory: sessionmaker,
    settings: PipelineSettings,
    vocabulary: TeamVocabulary | None = None,
    clock: Callable[[], float] = time.time,
) -> IngestionPipeline:
    if vocabulary is None:
        vocabulary = load_vocabulary(settings.teams_file)
    services = build_game_services(session_factory, vocabulary, clock=clock)
    consumers = [
        CONSUMER_CLASSES[topic](
            services.resolver,
            services.merger,
            services.index,
            reference_tz=settings.reference_tz,
        )
        for topic in settings.topics
    ]
    return IngestionPipeline(
        transport,
        consumers,
        services.index,
        prune_interval_seconds=settings.prune_interval_minutes * 60,
    )
