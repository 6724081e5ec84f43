from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from homecourt.db import Base, SessionLocal, engine
from homecourt.ingestion.transport import SqlQueueTransport
from homecourt.settings import KNOWN_TOPICS

logger = logging.getLogger(__name__)


def enqueue_message(topic: str, body: str, transport: SqlQueueTransport | None = None) -> int:
    if topic not in KNOWN_TOPICS:
        raise ValueError(f"Unsupported topic: {topic}")
    if not body.strip():
        raise ValueError("Message body is empty.")
    transport = transport or SqlQueueTransport(SessionLocal)
    message_id = transport.enqueue(topic, body)
    logger.info("Queued message #%d on topic=%s (%d bytes)", message_id, topic, len(body))
    return message_id


def _read_body(args: argparse.Namespace) -> str:
    if args.body is not None:
        return args.body
    if args.file == "-":
        return sys.stdin.read()
    return Path(args.file).read_text(encoding="utf-8")


def main() -> None:
    parser = argparse.ArgumentParser(description="Queue one raw message for a consumer topic.")
    parser.add_argument("--topic", required=True, choices=KNOWN_TOPICS)
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", type=str, help="Path to a JSON message, or - for stdin.")
    source.add_argument("--body", type=str, help="Inline JSON message.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    Base.metadata.create_all(bind=engine)
    try:
        enqueue_message(args.topic, _read_body(args))
    except (OSError, ValueError) as exc:
        raise SystemExit(str(exc)) from exc


if __name__ == "__main__":
    main()
