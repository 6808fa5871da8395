"""
Database models

Tables:
- poker_tables / table_members: the physical table a group meets at
- games: one session at one table (live -> ended)
- game_players: one seat per person in a game; totals are a cache of the log
- game_logs: append-only ledger events, ordered by per-game sequence
"""
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise a datetime to UTC before it is compared in SQL

    SQLite stores timestamps without their offset, so every bound must be
    expressed in UTC. Naive values are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class GameStatus(str, PyEnum):
    LIVE = "live"
    ENDED = "ended"


class LogAction(str, PyEnum):
    GAME_CREATED = "game_created"
    PLAYER_JOINED = "player_joined"
    PLAYER_ADDED = "player_added"
    REBUY = "rebuy"
    CASHOUT = "cashout"
    CASHOUT_CORRECTED = "cashout_corrected"
    GAME_ENDED = "game_ended"


class PokerTable(Base):
    __tablename__ = "poker_tables"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    currency = Column(String(8), nullable=False, default="ILS")
    currency_symbol = Column(String(8), nullable=False, default="₪")
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    games = relationship("Game", back_populates="table", lazy="dynamic")
    members = relationship("TableMember", back_populates="table")

    def __repr__(self):
        return f"<PokerTable {self.name}>"


class TableMember(Base):
    __tablename__ = "table_members"
    __table_args__ = (
        UniqueConstraint("table_id", "user_id", name="uq_table_member"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    table_id = Column(String(36), ForeignKey("poker_tables.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    table = relationship("PokerTable", back_populates="members")


class Game(Base):
    __tablename__ = "games"
    __table_args__ = (
        UniqueConstraint("table_id", "game_number", name="uq_game_number_per_table"),
        # Passcodes are recycled: only live games must not share one
        Index(
            "uq_live_passcode",
            "passcode",
            unique=True,
            sqlite_where=text("status = 'live'"),
            postgresql_where=text("status = 'live'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    table_id = Column(String(36), ForeignKey("poker_tables.id"), nullable=False, index=True)
    status = Column(
        Enum(GameStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        nullable=False,
        default=GameStatus.LIVE,
        index=True,
    )
    passcode = Column(String(8), nullable=False)
    game_number = Column(Integer, nullable=False)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    state_version = Column(Integer, nullable=False, default=0)

    table = relationship("PokerTable", back_populates="games")
    players = relationship(
        "GamePlayer",
        back_populates="game",
        order_by="GamePlayer.created_at",
    )
    logs = relationship("GameLog", back_populates="game", order_by="GameLog.sequence")

    def __repr__(self):
        return f"<Game #{self.game_number} {self.status.value if self.status else None}>"


class GamePlayer(Base):
    __tablename__ = "game_players"
    __table_args__ = (
        # NULL user_ids are distinct, so any number of guests may sit
        UniqueConstraint("game_id", "user_id", name="uq_game_player_identity"),
        CheckConstraint("total_buyin >= 0", name="ck_total_buyin_non_negative"),
        CheckConstraint(
            "is_cashed_out OR cashout_amount IS NULL",
            name="ck_cashout_only_when_settled",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    player_name = Column(String(100), nullable=False)
    total_buyin = Column(Integer, nullable=False, default=0)
    cashout_amount = Column(Integer, nullable=True)
    is_cashed_out = Column(Boolean, nullable=False, default=False)
    cashed_out_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    game = relationship("Game", back_populates="players")

    def __repr__(self):
        return f"<GamePlayer {self.player_name} buyin={self.total_buyin}>"


class GameLog(Base):
    __tablename__ = "game_logs"
    __table_args__ = (
        UniqueConstraint("game_id", "sequence", name="uq_game_log_sequence"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    actor_id = Column(String(64), nullable=True)
    action = Column(String(32), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    # Informational only; ordering comes from sequence
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    game = relationship("Game", back_populates="logs")

    def __repr__(self):
        return f"<GameLog {self.game_id}#{self.sequence} {self.action}>"
