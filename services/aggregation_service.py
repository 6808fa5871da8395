"""
Aggregation service: leaderboards and table stats

Read-only over games. Only ENDED games count towards a leaderboard, and
inside them only seats that cashed out (an unsettled seat has no net).

Grouping: by user_id; guests (no user_id) fall back to an exact
player_name match. Known limitation: two different guests called "Dan"
are merged, and one guest typing "Dan" / "dan" is split. This is kept as-is
on purpose rather than guessed at.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Game, GamePlayer, GameStatus, PokerTable, as_utc
from core.exceptions import TableNotFound, ValidationError


@dataclass
class LeaderboardEntry:
    player_name: str
    user_id: Optional[str]
    total_buyin: int = 0
    total_cashout: int = 0
    net: int = 0
    games_played: int = 0


PERIODS = ("week", "month", "year", "all")


def _group_key(user_id: Optional[str], player_name: str) -> Tuple[str, str]:
    if user_id:
        return ("user", user_id)
    return ("guest", player_name)


def aggregate_leaderboard(rows: Iterable) -> List[LeaderboardEntry]:
    """
    Sum settled seats into a ranked leaderboard (pure)

    Each row needs user_id, player_name, total_buyin and cashout_amount,
    and rows should come oldest game first: the latest name an identity
    played under is the one shown.

    Sort: net desc, then games_played desc, then name asc.
    """
    entries: Dict[Tuple[str, str], LeaderboardEntry] = {}

    for row in rows:
        cashout = row.cashout_amount or 0
        key = _group_key(row.user_id, row.player_name)
        entry = entries.get(key)
        if entry is None:
            entry = LeaderboardEntry(player_name=row.player_name, user_id=row.user_id)
            entries[key] = entry
        entry.player_name = row.player_name
        entry.total_buyin += row.total_buyin
        entry.total_cashout += cashout
        entry.net += cashout - row.total_buyin
        entry.games_played += 1

    return sorted(
        entries.values(),
        key=lambda e: (-e.net, -e.games_played, e.player_name),
    )


def period_window(period: str, now: datetime) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Translate a UI period into (window_start, window_end)

    week = last 7 days, month = since the same day last month, year = since
    the same date last year, all = no bounds.

    Raises:
        ValidationError: unknown period
    """
    if period == "all":
        return None, None
    if period == "week":
        return now - timedelta(days=7), None
    if period == "month":
        if now.month == 1:
            start = now.replace(year=now.year - 1, month=12)
        else:
            day = min(now.day, _days_in_month(now.year, now.month - 1))
            start = now.replace(month=now.month - 1, day=day)
        return start, None
    if period == "year":
        try:
            return now.replace(year=now.year - 1), None
        except ValueError:
            # Feb 29
            return now.replace(year=now.year - 1, day=28), None
    raise ValidationError(f"Unknown period {period!r}, expected one of {', '.join(PERIODS)}")


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        nxt = datetime(year + 1, 1, 1)
    else:
        nxt = datetime(year, month + 1, 1)
    return (nxt - timedelta(days=1)).day


def leaderboard(
    db: Session,
    table_id: str,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
) -> List[LeaderboardEntry]:
    """
    Ranked results of a table over a time window

    Parameters:
        table_id: the table
        window_start: games created at or after this (None = open)
        window_end: games created before this (None = open)
        Bounds in any timezone are compared in UTC; naive bounds are UTC.

    Raises:
        TableNotFound: table does not exist
    """
    if not db.query(PokerTable.id).filter(PokerTable.id == table_id).first():
        raise TableNotFound(table_id)

    window_start = as_utc(window_start)
    window_end = as_utc(window_end)

    query = (
        db.query(
            GamePlayer.user_id,
            GamePlayer.player_name,
            GamePlayer.total_buyin,
            GamePlayer.cashout_amount,
        )
        .join(Game, GamePlayer.game_id == Game.id)
        .filter(
            Game.table_id == table_id,
            Game.status == GameStatus.ENDED,
            GamePlayer.is_cashed_out.is_(True),
        )
    )
    if window_start is not None:
        query = query.filter(Game.created_at >= window_start)
    if window_end is not None:
        query = query.filter(Game.created_at < window_end)

    rows = query.order_by(Game.created_at, Game.game_number, GamePlayer.created_at).all()
    return aggregate_leaderboard(rows)


def _week_start(now: datetime) -> datetime:
    # Weeks start on Sunday
    days_since_sunday = (now.weekday() + 1) % 7
    start = now - timedelta(days=days_since_sunday)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def table_stats(db: Session, table_id: str, now: datetime) -> dict:
    """
    Headline numbers for a table page

    Returns:
        total_games, live_games, ended_games, week_cash_in (sum of buy-ins
        of games created since the start of the current week)
    """
    if not db.query(PokerTable.id).filter(PokerTable.id == table_id).first():
        raise TableNotFound(table_id)

    counts = dict(
        db.query(Game.status, func.count(Game.id))
        .filter(Game.table_id == table_id)
        .group_by(Game.status)
        .all()
    )
    live = counts.get(GameStatus.LIVE, 0)
    ended = counts.get(GameStatus.ENDED, 0)

    week_cash_in = (
        db.query(func.coalesce(func.sum(GamePlayer.total_buyin), 0))
        .join(Game, GamePlayer.game_id == Game.id)
        .filter(Game.table_id == table_id, Game.created_at >= _week_start(as_utc(now)))
        .scalar()
    )

    return {
        "total_games": live + ended,
        "live_games": live,
        "ended_games": ended,
        "week_cash_in": int(week_cash_in or 0),
    }
