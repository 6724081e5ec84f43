"""CLI entrypoint for running the ingestion pipeline outside the web app."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from dataclasses import replace

from homecourt.db import Base, SessionLocal, engine
from homecourt.ingestion.pipeline import build_pipeline
from homecourt.ingestion.transport import SqlQueueTransport
from homecourt.settings import PipelineSettings, get_settings, parse_topics

logger = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Consume tickets/odds/injuries messages into game projections.",
    )
    parser.add_argument(
        "--topics",
        type=str,
        help="Comma-separated topics to consume (default: HOMECOURT_TOPICS).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Drain queued messages, then exit.",
    )
    return parser.parse_args()


def _apply_topics(settings: PipelineSettings, raw: str | None) -> PipelineSettings:
    if not raw:
        return settings
    try:
        topics = parse_topics(raw)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    return replace(settings, topics=topics)


async def _stop_when_drained(
    transport: SqlQueueTransport,
    topics: tuple[str, ...],
    stop_event: asyncio.Event,
) -> None:
    while not stop_event.is_set():
        outstanding = 0
        for topic in topics:
            counts = (await asyncio.to_thread(transport.snapshot, topic)).counts
            outstanding += counts.get("queued", 0) + counts.get("running", 0)
        if outstanding == 0:
            logger.info("All topics drained, stopping.")
            stop_event.set()
            return
        await asyncio.sleep(transport.poll_seconds)


async def run(settings: PipelineSettings, once: bool = False) -> None:
    Base.metadata.create_all(bind=engine)
    transport = SqlQueueTransport(
        SessionLocal,
        poll_seconds=settings.poll_seconds,
        max_redeliveries=settings.max_redeliveries,
        stale_claim_seconds=settings.stale_claim_seconds,
    )
    pipeline = build_pipeline(transport, SessionLocal, settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops.
            pass

    watcher = None
    if once:
        watcher = asyncio.create_task(_stop_when_drained(transport, settings.topics, stop_event))
    try:
        await pipeline.run(stop_event)
    finally:
        if watcher is not None and not watcher.done():
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)

    for consumer in pipeline.consumers:
        stats = consumer.stats
        logger.info(
            "Done: topic=%s received=%s applied=%s discarded=%s rejected=%s requeued=%s failed=%s",
            consumer.topic,
            stats.received,
            stats.applied,
            stats.discarded,
            stats.rejected,
            stats.requeued,
            stats.failed,
        )


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    args = _parse_args()
    settings = _apply_topics(get_settings(), args.topics)

    logger.info(
        "Starting ingestion topics=%s tz=%s once=%s",
        ",".join(settings.topics),
        settings.reference_timezone,
        args.once,
    )
    asyncio.run(run(settings, once=args.once))


if __name__ == "__main__":
    main()
