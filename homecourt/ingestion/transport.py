"""Message transport: per-topic subscriptions with ack/reject per message.

Two implementations:
- MemoryTransport: asyncio queues, for single-process runs and tests.
- SqlQueueTransport: an ``inbound_messages`` table polled by claim, used by
  the service. Producers insert rows (see ``homecourt.ingestion.enqueue``).
"""

from __future__ import annotations

import abc
import asyncio
import itertools
import logging
import os
import socket
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import sessionmaker

from homecourt.models import InboundMessage

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_bytes(body: bytes | str) -> bytes:
    return body if isinstance(body, bytes) else body.encode("utf-8")


class Delivery(abc.ABC):
    topic: str
    body: bytes
    delivery_id: str
    attempts: int

    @abc.abstractmethod
    async def ack(self) -> None:
        """Message handled (or deliberately discarded); never deliver again."""

    @abc.abstractmethod
    async def reject(self, reason: str, *, requeue: bool = False) -> None:
        """Message not applied. ``requeue`` asks the transport to redeliver it."""


class Subscription(abc.ABC):
    topic: str

    @abc.abstractmethod
    async def receive(self) -> Delivery:
        """Wait for the next message. Must be safe to cancel."""

    async def close(self) -> None:
        return None


class Transport(abc.ABC):
    @abc.abstractmethod
    def subscribe(self, topic: str) -> Subscription:
        ...

    @abc.abstractmethod
    async def publish(self, topic: str, body: bytes | str) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


@dataclass
class _Envelope:
    message_id: int
    body: bytes
    attempts: int = 0


@dataclass(frozen=True)
class DeadLetter:
    topic: str
    body: bytes
    reason: str
    attempts: int


@dataclass
class TopicCounters:
    published: int = 0
    acked: int = 0
    rejected: int = 0
    requeued: int = 0


class MemoryTransport(Transport):
    def __init__(self, max_redeliveries: int = 3) -> None:
        self.max_redeliveries = max_redeliveries
        self.dead_letters: list[DeadLetter] = []
        self.counters: dict[str, TopicCounters] = {}
        self._queues: dict[str, asyncio.Queue[_Envelope]] = {}
        self._ids = itertools.count(1)

    def _queue(self, topic: str) -> asyncio.Queue[_Envelope]:
        queue = self._queues.get(topic)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[topic] = queue
            self.counters[topic] = TopicCounters()
        return queue

    async def publish(self, topic: str, body: bytes | str) -> None:
        self._queue(topic).put_nowait(_Envelope(next(self._ids), _as_bytes(body)))
        self.counters[topic].published += 1

    def subscribe(self, topic: str) -> Subscription:
        return _MemorySubscription(self, topic)

    def pending(self, topic: str) -> int:
        return self._queue(topic).qsize()

    async def join(self) -> None:
        """Wait until every published message has been acked or rejected."""
        for queue in list(self._queues.values()):
            await queue.join()


class _MemorySubscription(Subscription):
    def __init__(self, transport: MemoryTransport, topic: str) -> None:
        self._transport = transport
        self.topic = topic

    async def receive(self) -> Delivery:
        envelope = await self._transport._queue(self.topic).get()
        return _MemoryDelivery(self._transport, self.topic, envelope)


class _MemoryDelivery(Delivery):
    def __init__(self, transport: MemoryTransport, topic: str, envelope: _Envelope) -> None:
        self._transport = transport
        self._envelope = envelope
        self.topic = topic
        self.body = envelope.body
        self.delivery_id = f"{topic}:{envelope.message_id}"
        self.attempts = envelope.attempts
        self._settled = False

    def _settle(self) -> bool:
        if self._settled:
            return False
        self._settled = True
        return True

    async def ack(self) -> None:
        if not self._settle():
            return
        self._transport.counters[self.topic].acked += 1
        self._transport._queue(self.topic).task_done()

    async def reject(self, reason: str, *, requeue: bool = False) -> None:
        if not self._settle():
            return
        queue = self._transport._queue(self.topic)
        counters = self._transport.counters[self.topic]
        self._envelope.attempts += 1
        if requeue and self._envelope.attempts <= self._transport.max_redeliveries:
            counters.requeued += 1
            queue.put_nowait(self._envelope)
        else:
            counters.rejected += 1
            self._transport.dead_letters.append(
                DeadLetter(self.topic, self.body, reason, self._envelope.attempts)
            )
        queue.task_done()


# ---------------------------------------------------------------------------
# SQL queue table
# ---------------------------------------------------------------------------


@dataclass
class ClaimedMessage:
    id: int
    body: str
    attempts: int


@dataclass
class QueueSnapshot:
    topic: str
    counts: dict[str, int] = field(default_factory=dict)


class SqlQueueTransport(Transport):
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        poll_seconds: float = 2.0,
        max_redeliveries: int = 3,
        stale_claim_seconds: int = 15 * 60,
        lock_owner: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.poll_seconds = poll_seconds
        self.max_redeliveries = max_redeliveries
        self.stale_claim_seconds = stale_claim_seconds
        self.lock_owner = lock_owner or f"{socket.gethostname()}:{os.getpid()}"

    def subscribe(self, topic: str) -> Subscription:
        return _SqlSubscription(self, topic)

    async def publish(self, topic: str, body: bytes | str) -> None:
        await asyncio.to_thread(self.enqueue, topic, body)

    def enqueue(self, topic: str, body: bytes | str) -> int:
        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        now = _utcnow()
        with self._session_factory() as db:
            message = InboundMessage(
                topic=topic,
                body=text,
                status="queued",
                attempts=0,
                created_at_utc=now,
                updated_at_utc=now,
            )
            db.add(message)
            db.commit()
            db.refresh(message)
            logger.debug("Enqueued message #%d on topic=%s", message.id, topic)
            return message.id

    def claim_one(self, topic: str) -> ClaimedMessage | None:
        now = _utcnow()
        with self._session_factory() as db:
            message = (
                db.query(InboundMessage)
                .filter(InboundMessage.topic == topic, InboundMessage.status == "queued")
                .order_by(InboundMessage.id.asc())
                .with_for_update(skip_locked=True)
                .first()
            )
            if message is None:
                return None
            message.status = "running"
            message.locked_at_utc = now
            message.lock_owner = self.lock_owner
            message.updated_at_utc = now
            claimed = ClaimedMessage(id=message.id, body=message.body, attempts=message.attempts)
            db.commit()
        logger.debug("Claimed message #%d on topic=%s", claimed.id, topic)
        return claimed

    def requeue_stale(self, topic: str) -> int:
        """Put back messages a dead process left in ``running``."""
        now = _utcnow()
        stale_before = now - timedelta(seconds=self.stale_claim_seconds)
        recovered = 0
        with self._session_factory() as db:
            stale = (
                db.query(InboundMessage)
                .filter(
                    InboundMessage.topic == topic,
                    InboundMessage.status == "running",
                    InboundMessage.locked_at_utc.isnot(None),
                    InboundMessage.locked_at_utc <= stale_before,
                )
                .all()
            )
            for message in stale:
                previous_owner = message.lock_owner or "unknown"
                message.status = "queued"
                message.locked_at_utc = None
                message.lock_owner = None
                message.last_error = (
                    f"Recovered stale claim from lock_owner={previous_owner} "
                    f"by lock_owner={self.lock_owner}"
                )
                message.updated_at_utc = now
                recovered += 1
            if recovered:
                db.commit()
                logger.warning(
                    "Recovered %d stale message(s) on topic=%s older than %ds",
                    recovered,
                    topic,
                    self.stale_claim_seconds,
                )
        return recovered

    def mark_done(self, message_id: int) -> None:
        with self._session_factory() as db:
            message = db.get(InboundMessage, message_id)
            if message is None:
                return
            message.status = "done"
            message.locked_at_utc = None
            message.lock_owner = None
            message.updated_at_utc = _utcnow()
            db.commit()

    def mark_rejected(self, message_id: int, reason: str, requeue: bool) -> str:
        with self._session_factory() as db:
            message = db.get(InboundMessage, message_id)
            if message is None:
                return "missing"
            message.attempts += 1
            message.last_error = reason
            message.locked_at_utc = None
            message.lock_owner = None
            message.updated_at_utc = _utcnow()
            if requeue and message.attempts <= self.max_redeliveries:
                message.status = "queued"
                logger.warning(
                    "Message #%d re-queued (%d/%d attempts): %s",
                    message_id,
                    message.attempts,
                    self.max_redeliveries,
                    reason,
                )
            else:
                message.status = "failed"
            status = message.status
            db.commit()
        return status

    def snapshot(self, topic: str) -> QueueSnapshot:
        snapshot = QueueSnapshot(topic=topic)
        with self._session_factory() as db:
            for status in ("queued", "running", "done", "failed"):
                snapshot.counts[status] = (
                    db.query(InboundMessage)
                    .filter(InboundMessage.topic == topic, InboundMessage.status == status)
                    .count()
                )
        return snapshot


class _SqlSubscription(Subscription):
    def __init__(self, transport: SqlQueueTransport, topic: str) -> None:
        self._transport = transport
        self.topic = topic
        self._recovered = False

    async def receive(self) -> Delivery:
        if not self._recovered:
            await asyncio.to_thread(self._transport.requeue_stale, self.topic)
            self._recovered = True
        while True:
            claimed = await asyncio.to_thread(self._transport.claim_one, self.topic)
            if claimed is not None:
                return _SqlDelivery(self._transport, self.topic, claimed)
            await asyncio.sleep(self._transport.poll_seconds)


class _SqlDelivery(Delivery):
    def __init__(self, transport: SqlQueueTransport, topic: str, claimed: ClaimedMessage) -> None:
        self._transport = transport
        self._id = claimed.id
        self.topic = topic
        self.body = claimed.body.encode("utf-8")
        self.delivery_id = f"{topic}:{claimed.id}"
        self.attempts = claimed.attempts

    async def ack(self) -> None:
        await asyncio.to_thread(self._transport.mark_done, self._id)

    async def reject(self, reason: str, *, requeue: bool = False) -> None:
        await asyncio.to_thread(self._transport.mark_rejected, self._id, reason, requeue)
