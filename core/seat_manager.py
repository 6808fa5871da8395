"""
Seat Manager: money commands on a single seat

Responsibilities:
1. Rebuy (atomic increment of total_buyin)
2. Cashout (settles the seat exactly once)
3. Administrative cashout correction

Every command:
- takes the game row lock (serializes event sequences per game and keeps
  a mutation from slipping in after the game ended)
- applies the money change through a guarded UPDATE (core.reconciliation)
- re-checks the seat invariants
- appends its event and bumps state_version
all in one transaction. Nothing here is retried: retrying a rebuy could
charge a player twice, so every failure goes back to the caller.
"""
from sqlalchemy.orm import Session
from typing import Optional
import logging

from models import GamePlayer, LogAction
from core.state_machine import GameStateMachine
from core.locks import with_game_lock
from core.event_log import append_event
from core import reconciliation
from core.exceptions import GameNotFound, PlayerNotFound
from services import ledger_service
from services.ledger_service import Seat
from services.state_service import bump_state_version
from database import transactional

logger = logging.getLogger(__name__)


def _lock_game_for(db: Session, player: GamePlayer):
    game = with_game_lock(player.game_id, db).first()
    if not game:
        raise GameNotFound(player.game_id)
    return game


class SeatManager:
    """Seat money commands"""

    @staticmethod
    def get_player(db: Session, player_id: str) -> GamePlayer:
        """
        Raises:
            PlayerNotFound: seat does not exist
        """
        player = db.query(GamePlayer).filter(GamePlayer.id == player_id).first()
        if not player:
            raise PlayerNotFound(player_id)
        return player

    @staticmethod
    @transactional
    def rebuy(db: Session, player_id: str, amount: int, actor_id: Optional[str] = None) -> GamePlayer:
        """
        Add `amount` to a seat's buy-in

        Flow:
        1. validate the amount (ledger)
        2. lock the game, must be live
        3. atomic increment guarded by "not cashed out" + "game live"
        4. re-check invariants, append rebuy event, bump state_version

        Raises:
            InvalidAmountError: amount <= 0
            PlayerNotFound: seat does not exist
            GameAlreadyEnded: game is not live
            PlayerAlreadyCashedOut: seat was settled (possibly a moment ago
                by another device)
            ConflictError: lost a race the guard could not explain
        """
        ledger_service.validate_buyin_amount(amount)

        player = SeatManager.get_player(db, player_id)
        game = _lock_game_for(db, player)
        GameStateMachine.assert_live(game)

        player = reconciliation.increment_buyin(db, player_id, amount)
        ledger_service.check_seat_invariants(Seat.from_player(player))

        append_event(
            db, game.id, LogAction.REBUY,
            {
                "player_id": player.id,
                "player_name": player.player_name,
                "amount": amount,
                "new_total": player.total_buyin,
            },
            actor_id=actor_id,
        )
        bump_state_version(db, game.id, reason="rebuy")

        logger.info(f"{player.player_name} rebought +{amount} in game {game.id} (total: {player.total_buyin})")
        return player

    @staticmethod
    @transactional
    def cashout(db: Session, player_id: str, amount: int, actor_id: Optional[str] = None) -> GamePlayer:
        """
        Settle a seat with the amount the player leaves with

        Callable once per seat. A second call fails and does not touch the
        recorded amount; use correct_cashout for mistakes.

        Raises:
            InvalidAmountError: amount < 0
            PlayerNotFound: seat does not exist
            GameAlreadyEnded: game is not live
            PlayerAlreadyCashedOut: seat already settled
            ConflictError: lost a race the guard could not explain
        """
        ledger_service.validate_cashout_amount(amount)

        player = SeatManager.get_player(db, player_id)
        game = _lock_game_for(db, player)
        GameStateMachine.assert_live(game)

        player = reconciliation.settle_cashout(db, player_id, amount)
        ledger_service.check_seat_invariants(Seat.from_player(player))
        net = ledger_service.net_for(player)

        append_event(
            db, game.id, LogAction.CASHOUT,
            {
                "player_id": player.id,
                "player_name": player.player_name,
                "buyin": player.total_buyin,
                "cashout": amount,
                "net": net,
            },
            actor_id=actor_id,
        )
        bump_state_version(db, game.id, reason="cashout")

        logger.info(f"{player.player_name} cashed out {amount} in game {game.id} (net {net:+d})")
        return player

    @staticmethod
    @transactional
    def correct_cashout(
        db: Session,
        player_id: str,
        amount: int,
        expected_previous: Optional[int] = None,
        actor_id: Optional[str] = None,
    ) -> GamePlayer:
        """
        Administrative override of a recorded cashout

        This is the compensating path for a wrong cashout; it is allowed on
        ended games too. `expected_previous` is the amount the admin saw; if
        another correction landed in between, this one is rejected. When it
        is omitted the currently stored amount is used.

        Raises:
            InvalidAmountError: amount < 0
            PlayerNotFound: seat does not exist
            PlayerNotCashedOut: nothing to correct yet
            ConflictError: the stored amount is no longer expected_previous
        """
        ledger_service.validate_cashout_amount(amount)

        player = SeatManager.get_player(db, player_id)
        game = _lock_game_for(db, player)

        # Pure check first: raises PlayerNotCashedOut for an active seat
        ledger_service.override_cashout(Seat.from_player(player), amount)
        previous = player.cashout_amount if expected_previous is None else expected_previous

        player = reconciliation.correct_cashout(db, player_id, amount, previous)
        ledger_service.check_seat_invariants(Seat.from_player(player))
        net = ledger_service.net_for(player)

        append_event(
            db, game.id, LogAction.CASHOUT_CORRECTED,
            {
                "player_id": player.id,
                "player_name": player.player_name,
                "buyin": player.total_buyin,
                "previous_cashout": previous,
                "cashout": amount,
                "net": net,
            },
            actor_id=actor_id,
        )
        bump_state_version(db, game.id, reason="cashout_corrected")

        logger.info(f"Cashout of {player.player_name} in game {game.id} corrected {previous} -> {amount}")
        return player
