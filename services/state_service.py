"""
State version service: the change feed for polling clients

Every committed mutation of a game (or of one of its seats) bumps
games.state_version in the same transaction. Clients poll
GET /api/games/{id}/state?since_version=N and re-fetch when it moved.
The notification carries no payload.
"""
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from models import Game

logger = logging.getLogger(__name__)


def bump_state_version(db: Session, game_id: str, reason: str = "") -> None:
    """
    Atomically increment the game's state_version

    Uses an UPDATE ... SET state_version = state_version + 1 so concurrent
    writers never lose a bump. Does not commit.
    """
    db.execute(
        update(Game)
        .where(Game.id == game_id)
        .values(state_version=Game.state_version + 1)
        .execution_options(synchronize_session=False)
    )
    logger.debug(f"state_version bumped for game {game_id} ({reason})")


def get_state_version(db: Session, game_id: str):
    """Return the current state_version, or None if the game does not exist"""
    return db.query(Game.state_version).filter(Game.id == game_id).scalar()
