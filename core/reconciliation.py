"""
Concurrency / reconciliation layer

Several devices mutate the same seats with no client-side locking. Seat money
is therefore only ever changed with guarded single-statement UPDATEs:

    UPDATE game_players
       SET total_buyin = total_buyin + :delta
     WHERE id = :player_id
       AND is_cashed_out = false
       AND game_id IN (SELECT id FROM games WHERE status = 'live')

- two rebuys on one seat: both increments apply, none is lost
  (no read-modify-write of a value the client had cached)
- a rebuy racing a cashout: whichever commits first wins; the other matches
  0 rows and is rejected, never silently orphaned

When a guard matches nothing we re-read the row to tell the caller why
(not found / already cashed out / game ended / lost a race).

The second half of this module compares the cached seat totals against a
replay of the event log and can rebuild the cache from it.
"""
from dataclasses import dataclass
from typing import Any, List
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from models import Game, GamePlayer, GameStatus, utcnow
from core.exceptions import (
    ConflictError,
    GameAlreadyEnded,
    GameNotFound,
    PlayerAlreadyCashedOut,
    PlayerNotCashedOut,
    PlayerNotFound,
)
from core.event_log import read_events, replay
from core.locks import lock_game_players

logger = logging.getLogger(__name__)


def _live_game_ids():
    return select(Game.id).where(Game.status == GameStatus.LIVE)


def _load_player(db: Session, player_id: str) -> GamePlayer:
    player = db.get(GamePlayer, player_id, populate_existing=True)
    if player is None:
        raise PlayerNotFound(player_id)
    return player


def _explain_rejection(db: Session, player_id: str, expect_cashed_out: bool = False):
    """
    A guarded UPDATE matched no row: raise the error that explains it
    """
    player = _load_player(db, player_id)

    if not expect_cashed_out and player.is_cashed_out:
        raise PlayerAlreadyCashedOut(player_id)
    if expect_cashed_out and not player.is_cashed_out:
        raise PlayerNotCashedOut(player_id)

    game = db.get(Game, player.game_id, populate_existing=True)
    if game is not None and game.status != GameStatus.LIVE and not expect_cashed_out:
        raise GameAlreadyEnded(game.id)

    raise ConflictError(f"Concurrent update on player {player_id}, please refresh")


def increment_buyin(db: Session, player_id: str, delta: int) -> GamePlayer:
    """
    Atomically add `delta` to a seat's total_buyin

    The "not cashed out" and "game is live" checks are part of the same
    statement as the increment. Does not commit.

    Returns:
        the refreshed GamePlayer

    Raises:
        PlayerNotFound, PlayerAlreadyCashedOut, GameAlreadyEnded, ConflictError
    """
    result = db.execute(
        update(GamePlayer)
        .where(
            GamePlayer.id == player_id,
            GamePlayer.is_cashed_out.is_(False),
            GamePlayer.game_id.in_(_live_game_ids()),
        )
        .values(total_buyin=GamePlayer.total_buyin + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _explain_rejection(db, player_id)

    return _load_player(db, player_id)


def settle_cashout(db: Session, player_id: str, amount: int) -> GamePlayer:
    """
    Atomically record a seat's cashout

    Only an active seat in a live game can be settled; the first cashout
    to commit wins and every later one is rejected. Does not commit.

    Raises:
        PlayerNotFound, PlayerAlreadyCashedOut, GameAlreadyEnded, ConflictError
    """
    result = db.execute(
        update(GamePlayer)
        .where(
            GamePlayer.id == player_id,
            GamePlayer.is_cashed_out.is_(False),
            GamePlayer.game_id.in_(_live_game_ids()),
        )
        .values(
            cashout_amount=amount,
            is_cashed_out=True,
            cashed_out_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _explain_rejection(db, player_id)

    return _load_player(db, player_id)


def correct_cashout(db: Session, player_id: str, amount: int, expected_previous: int) -> GamePlayer:
    """
    Administrative override of a recorded cashout (compare-and-set)

    The update only applies if the stored cashout still equals
    `expected_previous`, so two admins correcting the same seat cannot
    overwrite each other blindly. Does not commit.

    Raises:
        PlayerNotFound, PlayerNotCashedOut, ConflictError
    """
    result = db.execute(
        update(GamePlayer)
        .where(
            GamePlayer.id == player_id,
            GamePlayer.is_cashed_out.is_(True),
            GamePlayer.cashout_amount == expected_previous,
        )
        .values(cashout_amount=amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _explain_rejection(db, player_id, expect_cashed_out=True)

    return _load_player(db, player_id)


# ============ Log vs cache reconciliation ============

@dataclass(frozen=True)
class Discrepancy:
    player_id: str
    field: str
    cached: Any
    replayed: Any


_COMPARED_FIELDS = ("total_buyin", "cashout_amount", "is_cashed_out")


def verify_game(db: Session, game_id: str) -> List[Discrepancy]:
    """
    Replay the event log and compare it with the cached seat rows

    Returns:
        list of Discrepancy (empty when cache and log agree)

    Raises:
        GameNotFound: game does not exist
    """
    game = db.get(Game, game_id)
    if game is None:
        raise GameNotFound(game_id)

    state = replay(read_events(db, game_id))
    players = db.query(GamePlayer).filter(GamePlayer.game_id == game_id).all()

    discrepancies: List[Discrepancy] = []
    cached_ids = set()

    for player in players:
        cached_ids.add(player.id)
        seat = state.seats.get(player.id)
        if seat is None:
            discrepancies.append(Discrepancy(player.id, "seat", "present", None))
            continue
        for name in _COMPARED_FIELDS:
            cached_value = getattr(player, name)
            replayed_value = getattr(seat, name)
            if cached_value != replayed_value:
                discrepancies.append(Discrepancy(player.id, name, cached_value, replayed_value))

    for player_id in state.seats:
        if player_id not in cached_ids:
            discrepancies.append(Discrepancy(player_id, "seat", None, "present"))

    if state.status != game.status:
        discrepancies.append(Discrepancy("", "status", game.status.value, state.status.value))

    if discrepancies:
        logger.warning(f"Game {game_id}: {len(discrepancies)} ledger discrepancies found")
    return discrepancies


def rebuild_from_log(db: Session, game_id: str) -> int:
    """
    Overwrite the cached seat totals with the replay of the event log

    The log is the source of truth; this repairs the cache after a dispute.
    Seats that exist only as rows (no opening event) are left untouched and
    reported by verify_game. Does not commit.

    Returns:
        number of seats that were changed
    """
    game = db.get(Game, game_id)
    if game is None:
        raise GameNotFound(game_id)

    state = replay(read_events(db, game_id))
    changed = 0

    for player in lock_game_players(game_id, db).all():
        seat = state.seats.get(player.id)
        if seat is None:
            continue
        if any(getattr(player, name) != getattr(seat, name) for name in _COMPARED_FIELDS):
            logger.warning(
                f"Rebuilding seat {player.id}: buyin {player.total_buyin}->{seat.total_buyin}, "
                f"cashout {player.cashout_amount}->{seat.cashout_amount}"
            )
            player.total_buyin = seat.total_buyin
            player.cashout_amount = seat.cashout_amount
            player.is_cashed_out = seat.is_cashed_out
            if not seat.is_cashed_out:
                player.cashed_out_at = None
            changed += 1

    db.flush()
    return changed
