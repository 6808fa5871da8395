"""
Concurrency helpers

Row-level locks via SELECT ... FOR UPDATE (pessimistic locking on
PostgreSQL; SQLite ignores FOR UPDATE but serializes writers anyway).

Locks are only used where a value is derived from other rows (next
game_number, next log sequence, state transitions). Seat money never takes
a lock: it goes through the guarded UPDATEs in core.reconciliation.
"""
from sqlalchemy.orm import Session, Query

from models import Game, GamePlayer, PokerTable


def with_game_lock(game_id: str, db: Session) -> Query:
    """
    Lock one Game row

    Use cases:
    - changing the game's status
    - assigning the next event sequence for the game

    Example:
        game = with_game_lock(game_id, db).first()
        if not game:
            raise GameNotFound(game_id)

    Returns:
        Query object (call .first() / .one())

    Notes:
        - nowait=False waits for the holder instead of failing
        - populate_existing so a row already in the session is re-read
        - must run inside a transaction (commit or rollback releases it)
    """
    return db.query(Game).filter(
        Game.id == game_id
    ).populate_existing().with_for_update(nowait=False)


def with_table_lock(table_id: str, db: Session) -> Query:
    """
    Lock one PokerTable row

    Use cases:
    - computing the next game_number for the table
    """
    return db.query(PokerTable).filter(
        PokerTable.id == table_id
    ).populate_existing().with_for_update(nowait=False)


def lock_game_players(game_id: str, db: Session) -> Query:
    """Lock every seat of a game (batch reconciliation)"""
    return db.query(GamePlayer).filter(
        GamePlayer.game_id == game_id
    ).order_by(GamePlayer.created_at, GamePlayer.id).populate_existing().with_for_update(nowait=False)
