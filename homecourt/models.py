from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from .db import Base


class GameProjection(Base):
    __tablename__ = "game_projections"

    game_key = Column(String, primary_key=True)
    home_team = Column(String, nullable=False)
    away_team = Column(String, nullable=False)
    game_date = Column(String, nullable=False)           # MM.DD.YYYY in the reference timezone
    created_at_utc = Column(DateTime(timezone=True), server_default=func.now())
    updated_at_utc = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class GameField(Base):
    __tablename__ = "game_fields"
    __table_args__ = (
        UniqueConstraint("game_key", "name", name="uq_game_fields_game_key_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    game_key = Column(String, ForeignKey("game_projections.game_key"), nullable=False, index=True)
    name = Column(String, nullable=False)
    value_json = Column(Text, nullable=False, default="null")
    updated_at_utc = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class UpcomingGame(Base):
    __tablename__ = "upcoming_games"
    __table_args__ = (
        UniqueConstraint("team_code", "game_key", name="uq_upcoming_games_team_game"),
        Index("ix_upcoming_games_team_start", "team_code", "start_epoch"),
    )

    # No foreign key to game_projections: membership tracks projections by convention.
    id = Column(Integer, primary_key=True, index=True)
    team_code = Column(String, nullable=False)
    game_key = Column(String, nullable=False)
    start_epoch = Column(Integer, nullable=False)


class InboundMessage(Base):
    __tablename__ = "inbound_messages"
    __table_args__ = (
        Index("ix_inbound_messages_topic_status", "topic", "status", "id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    topic = Column(String, nullable=False)
    body = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default="queued")   # queued | running | done | failed
    attempts = Column(Integer, nullable=False, default=0)
    locked_at_utc = Column(DateTime(timezone=True), nullable=True)
    lock_owner = Column(String, nullable=True)
    last_error = Column(Text, nullable=True)
    created_at_utc = Column(DateTime(timezone=True), server_default=func.now())
    updated_at_utc = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
