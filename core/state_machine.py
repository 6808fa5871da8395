"""
State machine: the single place where a game's status changes

Game lifecycle:
    LIVE ──end──> ENDED   (terminal, nothing leaves ENDED)

Ledger operations allowed per state:
    LIVE:  seat players, rebuy, cashout, end
    ENDED: read only (plus administrative cashout corrections)
"""
import logging

from sqlalchemy.orm import Session

from models import Game, GameStatus, utcnow
from core.locks import with_game_lock
from core.exceptions import GameNotFound, GameAlreadyEnded, InvalidStateTransition

logger = logging.getLogger(__name__)


class GameStateMachine:
    """Game status transitions"""

    ALLOWED_TRANSITIONS = {
        GameStatus.LIVE: {GameStatus.ENDED},
        GameStatus.ENDED: set(),
    }

    @classmethod
    def can_transition(cls, current: GameStatus, target: GameStatus) -> bool:
        return target in cls.ALLOWED_TRANSITIONS.get(current, set())

    @classmethod
    def transition(cls, game_id: str, target: GameStatus, db: Session) -> Game:
        """
        Move a game to `target`

        Flow:
        1. lock the game row
        2. check the transition is allowed
        3. apply it (ENDED also stamps ended_at)

        Does not commit and does not write an event; the caller owns the
        transaction and decides what to log.

        Raises:
            GameNotFound: game does not exist
            InvalidStateTransition: transition not in ALLOWED_TRANSITIONS
        """
        game = with_game_lock(game_id, db).first()
        if not game:
            raise GameNotFound(game_id)

        if not cls.can_transition(game.status, target):
            raise InvalidStateTransition(
                f"Cannot move game {game_id} from {game.status.value} to {target.value}"
            )

        previous = game.status
        game.status = target
        if target == GameStatus.ENDED:
            game.ended_at = utcnow()
        db.flush()

        logger.info(f"Game {game_id}: {previous.value} -> {target.value}")
        return game

    @staticmethod
    def assert_live(game: Game) -> None:
        """
        Guard for every ledger mutation

        Raises:
            GameAlreadyEnded: the game is no longer live
        """
        if game.status != GameStatus.LIVE:
            raise GameAlreadyEnded(game.id)
