"""Topic consumers: decode -> resolve -> merge -> acknowledge, one loop per topic.

A bad message never stops a loop. Each failure is logged and mapped to an
ack or reject on the transport; the next message is processed as usual.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Generic, TypeVar

from homecourt.errors import (
    DecodeError,
    GameNotFound,
    InvalidTimestamp,
    NotYetSupported,
    StoreUnavailable,
    TeamResolutionError,
)
from homecourt.games.identity import GameKey, build_game_key, parse_start_time, start_epoch
from homecourt.games.merge import MergeCoordinator, MergeResult
from homecourt.games.upcoming import UpcomingIndex
from homecourt.ingestion.facts import (
    OddsFact,
    OddsMessage,
    TicketFact,
    TicketMessage,
    decode_injury,
    decode_odds,
    decode_ticket,
    parse_american_odds,
)
from homecourt.ingestion.transport import Delivery, Subscription
from homecourt.teams.resolver import TeamPair, TeamResolver

logger = logging.getLogger(__name__)

MessageT = TypeVar("MessageT")
FactT = TypeVar("FactT")

_BODY_SNIPPET = 300


@dataclass
class ConsumerStats:
    received: int = 0
    applied: int = 0
    discarded: int = 0
    rejected: int = 0
    requeued: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class TopicConsumer(abc.ABC, Generic[MessageT, FactT]):
    topic: str
    seeds: bool = False
    receive_retry_seconds: float = 5.0
    # Zone of naive feed timestamps. None means the reference timezone.
    source_tz: tzinfo | None = None

    def __init__(
        self,
        resolver: TeamResolver,
        merger: MergeCoordinator,
        index: UpcomingIndex,
        reference_tz: tzinfo = timezone.utc,
    ) -> None:
        self.resolver = resolver
        self.merger = merger
        self.index = index
        self.reference_tz = reference_tz
        self.stats = ConsumerStats()
        self.state = "stopped"

    # -- per-topic contract ---------------------------------------------------

    @abc.abstractmethod
    def decode(self, body: bytes) -> MessageT:
        ...

    @abc.abstractmethod
    def resolve(self, message: MessageT) -> FactT:
        ...

    @abc.abstractmethod
    def merge(self, fact: FactT) -> MergeResult:
        ...

    # -- shared helpers ---------------------------------------------------------

    def _game_key(self, teams: TeamPair, start: datetime) -> GameKey:
        return build_game_key(teams.home, teams.away, start, self.reference_tz)

    def _start_time(self, raw: str) -> datetime:
        return parse_start_time(raw, self.source_tz or self.reference_tz)

    def _set_state(self, state: str) -> None:
        self.state = state
        logger.debug("Consumer %s -> %s", self.topic, state)

    def handle(self, body: bytes) -> MergeResult:
        """Run one message through decode, resolve and merge (blocking)."""
        self._set_state("decoding")
        message = self.decode(body)
        self._set_state("resolving")
        fact = self.resolve(message)
        self._set_state("merging")
        return self.merge(fact)

    # -- loop -----------------------------------------------------------------

    async def run(self, subscription: Subscription, stop_event: asyncio.Event) -> None:
        self._set_state("subscribing")
        logger.info("Consumer %s started", self.topic)
        try:
            while not stop_event.is_set():
                self._set_state("consuming")
                try:
                    delivery = await _next_delivery(subscription, stop_event)
                except Exception:
                    logger.exception(
                        "Consumer %s could not receive, retrying in %ss",
                        self.topic,
                        self.receive_retry_seconds,
                    )
                    await _wait_or_stop(stop_event, self.receive_retry_seconds)
                    continue
                if delivery is None:
                    break
                try:
                    if stop_event.is_set():
                        await delivery.reject("consumer stopping", requeue=True)
                        break
                    await self.process(delivery)
                except Exception:
                    # Only ack/reject raise here. Unsettled messages come back via the transport.
                    self.stats.failed += 1
                    logger.exception(
                        "Consumer %s could not settle %s",
                        self.topic,
                        delivery.delivery_id,
                    )
        finally:
            await subscription.close()
            self._set_state("stopped")
            logger.info(
                "Consumer %s stopped: received=%s applied=%s discarded=%s rejected=%s requeued=%s failed=%s",
                self.topic,
                self.stats.received,
                self.stats.applied,
                self.stats.discarded,
                self.stats.rejected,
                self.stats.requeued,
                self.stats.failed,
            )

    async def process(self, delivery: Delivery) -> None:
        self.stats.received += 1
        try:
            result = await asyncio.to_thread(self.handle, delivery.body)
        except NotYetSupported as exc:
            self.stats.rejected += 1
            logger.info("%s %s skipped: %s", self.topic, delivery.delivery_id, exc)
            await delivery.reject(str(exc), requeue=False)
            return
        except TeamResolutionError as exc:
            self.stats.rejected += 1
            logger.warning(
                "%s %s team resolution failed: %s | text=%r",
                self.topic,
                delivery.delivery_id,
                exc,
                exc.text,
            )
            await delivery.reject(str(exc), requeue=False)
            return
        except (DecodeError, InvalidTimestamp) as exc:
            self.stats.rejected += 1
            logger.warning(
                "%s %s rejected: %s | body=%s",
                self.topic,
                delivery.delivery_id,
                exc,
                _snippet(delivery.body),
            )
            await delivery.reject(str(exc), requeue=False)
            return
        except GameNotFound as exc:
            self.stats.discarded += 1
            logger.info("%s %s discarded: %s", self.topic, delivery.delivery_id, exc)
            await delivery.ack()
            return
        except StoreUnavailable as exc:
            self.stats.requeued += 1
            logger.error("%s %s store unavailable: %s", self.topic, delivery.delivery_id, exc)
            await delivery.reject(str(exc), requeue=True)
            return
        except Exception as exc:
            self.stats.failed += 1
            logger.exception("%s %s failed unexpectedly", self.topic, delivery.delivery_id)
            await delivery.reject(f"{type(exc).__name__}: {exc}", requeue=False)
            return

        self._set_state("acknowledging")
        self.stats.applied += 1
        logger.info(
            "%s %s applied to game=%s outcome=%s",
            self.topic,
            delivery.delivery_id,
            result.game_key,
            result.outcome,
        )
        await delivery.ack()


async def _next_delivery(subscription: Subscription, stop_event: asyncio.Event) -> Delivery | None:
    """Wait for a message or the stop signal, whichever comes first."""
    receive_task = asyncio.ensure_future(subscription.receive())
    stop_task = asyncio.ensure_future(stop_event.wait())
    try:
        await asyncio.wait({receive_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (receive_task, stop_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(receive_task, stop_task, return_exceptions=True)

    if receive_task.cancelled():
        return None
    exc = receive_task.exception()
    if exc is not None:
        raise exc
    return receive_task.result()


async def _wait_or_stop(stop_event: asyncio.Event, timeout: float) -> None:
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass


def _snippet(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    return text[:_BODY_SNIPPET]


class TicketConsumer(TopicConsumer[TicketMessage, TicketFact]):
    """Seeds projections and registers the game for its home team."""

    topic = "tickets"
    seeds = True

    def decode(self, body: bytes) -> TicketMessage:
        return decode_ticket(body)

    def resolve(self, message: TicketMessage) -> TicketFact:
        if message.home_team and message.away_team:
            teams = TeamPair(
                home=self.resolver.resolve(message.home_team),
                away=self.resolver.resolve(message.away_team),
            )
        else:
            teams = self.resolver.extract_pair(message.event_name or "")
        start = self._start_time(message.start_date_time)
        price = message.min_ticket_price
        return TicketFact(
            game_key=self._game_key(teams, start),
            start_time_utc=start,
            venue=message.venue_name or None,
            lowest_ticket_price=price if price is not None and price > 0 else None,
        )

    def merge(self, fact: TicketFact) -> MergeResult:
        result = self.merger.apply(fact.game_key, fact.fields(), seed=True)
        self.index.register(fact.game_key.home, fact.game_key, start_epoch(fact.start_time_utc))
        return result


class OddsConsumer(TopicConsumer[OddsMessage, OddsFact]):
    """Update-only: odds for a game nobody seeded are dropped."""

    topic = "odds"
    # The odds producer renders UTC instants without a zone suffix.
    source_tz = timezone.utc

    def decode(self, body: bytes) -> OddsMessage:
        return decode_odds(body)

    def resolve(self, message: OddsMessage) -> OddsFact:
        teams = TeamPair(
            home=self.resolver.resolve(message.home_team),
            away=self.resolver.resolve(message.away_team),
        )
        start = self._start_time(message.start_time)
        prices = self._prices_by_code(message)
        if teams.home not in prices:
            raise DecodeError(f"betting_prices has no price for home team {message.home_team!r}")
        return OddsFact(
            game_key=self._game_key(teams, start),
            home_team_odds=prices[teams.home],
            away_team_odds=prices.get(teams.away),
        )

    def _prices_by_code(self, message: OddsMessage) -> dict[str, int]:
        prices: dict[str, int] = {}
        for raw_name, raw_price in message.betting_prices.items():
            if raw_name == message.home_team:
                code = self.resolver.resolve(message.home_team)
            elif raw_name == message.away_team:
                code = self.resolver.resolve(message.away_team)
            else:
                try:
                    code = self.resolver.resolve(raw_name)
                except TeamResolutionError:
                    logger.debug("Ignoring price for unknown selection %r", raw_name)
                    continue
            prices[code] = parse_american_odds(raw_price)
        return prices

    def merge(self, fact: OddsFact) -> MergeResult:
        return self.merger.apply(fact.game_key, fact.fields(), seed=False)


class InjuryConsumer(TopicConsumer[Any, Any]):
    """Extension point. Every message is rejected as not yet supported."""

    topic = "injuries"

    def decode(self, body: bytes) -> Any:
        decode_injury(body)

    def resolve(self, message: Any) -> Any:
        raise NotYetSupported("injury facts cannot be resolved yet")

    def merge(self, fact: Any) -> MergeResult:
        raise NotYetSupported("injury facts cannot be merged yet")


CONSUMER_CLASSES: dict[str, type[TopicConsumer]] = {
    TicketConsumer.topic: TicketConsumer,
    OddsConsumer.topic: OddsConsumer,
    InjuryConsumer.topic: InjuryConsumer,
}
