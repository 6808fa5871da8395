"""
Event log: the append-only history of a game's ledger

Every ledger mutation appends exactly one GameLog row in the same
transaction as the mutation itself. Order comes from the per-game
`sequence` the server assigns at write time, never from client clocks.

The log is:
- replayed (replay) to rebuild seat totals after a dispute or after a
  client was offline
- rendered (format_log_message) as the "game history" narrative
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import GameLog, GameStatus, LogAction
from core.exceptions import ConflictError, LedgerInvariantViolation
from services import ledger_service
from services.ledger_service import Seat

logger = logging.getLogger(__name__)

SEAT_OPENING_ACTIONS = {LogAction.PLAYER_JOINED.value, LogAction.PLAYER_ADDED.value}


def append_event(
    db: Session,
    game_id: str,
    action: LogAction,
    details: Dict[str, Any],
    actor_id: Optional[str] = None,
) -> GameLog:
    """
    Append one event to a game's log

    The caller must already hold the game row lock (core.locks.with_game_lock)
    so sequences are handed out one at a time per game. Does not commit.

    Raises:
        ConflictError: another writer took the same sequence
    """
    last = db.query(func.max(GameLog.sequence)).filter(
        GameLog.game_id == game_id
    ).scalar()

    sequence = (last or 0) + 1
    event = GameLog(
        game_id=game_id,
        sequence=sequence,
        actor_id=actor_id,
        action=LogAction(action).value,
        details=dict(details),
    )
    db.add(event)
    try:
        db.flush()
    except IntegrityError as e:
        raise ConflictError(
            f"Event sequence {sequence} already taken for game {game_id}"
        ) from e

    logger.debug(f"Game {game_id} event #{event.sequence}: {event.action}")
    return event


def read_events(db: Session, game_id: str, after_sequence: Optional[int] = None) -> List[GameLog]:
    """
    Events of a game in sequence order

    after_sequence lets a client that already has events 1..N fetch only
    what it missed.
    """
    query = db.query(GameLog).filter(GameLog.game_id == game_id)
    if after_sequence is not None:
        query = query.filter(GameLog.sequence > after_sequence)
    return query.order_by(GameLog.sequence).all()


@dataclass
class ReplayState:
    """Result of folding a game's events"""
    status: GameStatus = GameStatus.LIVE
    seats: Dict[str, Seat] = field(default_factory=dict)
    last_sequence: int = 0

    def pot(self) -> ledger_service.PotSummary:
        return ledger_service.pot_summary(self.seats.values())


def _action_of(event) -> str:
    return event["action"] if isinstance(event, dict) else event.action


def _details_of(event) -> Dict[str, Any]:
    details = event["details"] if isinstance(event, dict) else event.details
    return details or {}


def _sequence_of(event) -> Optional[int]:
    return event.get("sequence") if isinstance(event, dict) else event.sequence


def apply_event(state: ReplayState, event) -> ReplayState:
    """
    Fold one event into the state (mutates and returns `state`)

    Seat changes go through the ledger service, so a log that contains an
    illegal history (rebuy after cashout, second cashout, ...) fails replay
    the same way the live command would have failed.
    """
    action = _action_of(event)
    details = _details_of(event)
    sequence = _sequence_of(event)
    if sequence is not None:
        state.last_sequence = sequence

    if action == LogAction.GAME_CREATED.value:
        return state

    if action == LogAction.GAME_ENDED.value:
        state.status = GameStatus.ENDED
        return state

    player_id = details.get("player_id")
    if not player_id:
        raise LedgerInvariantViolation(f"Event {action} #{sequence} has no player_id")

    # Only corrections may follow the end of a game
    if state.status == GameStatus.ENDED and action != LogAction.CASHOUT_CORRECTED.value:
        raise LedgerInvariantViolation(f"Event {action} #{sequence} recorded after the game ended")

    if action in SEAT_OPENING_ACTIONS:
        if player_id in state.seats:
            raise LedgerInvariantViolation(f"Seat {player_id} opened twice")
        state.seats[player_id] = ledger_service.open_seat(
            player_id,
            details.get("player_name", ""),
            details.get("buyin", 0),
            user_id=details.get("user_id"),
        )
        return state

    seat = state.seats.get(player_id)
    if seat is None:
        raise LedgerInvariantViolation(f"Event {action} #{sequence} for unknown seat {player_id}")

    if action == LogAction.REBUY.value:
        state.seats[player_id] = ledger_service.apply_buyin(seat, details["amount"])
    elif action == LogAction.CASHOUT.value:
        state.seats[player_id] = ledger_service.apply_cashout(seat, details["cashout"])
    elif action == LogAction.CASHOUT_CORRECTED.value:
        state.seats[player_id] = ledger_service.override_cashout(seat, details["cashout"])
    else:
        logger.warning(f"Ignoring unknown event action {action!r} during replay")

    return state


def replay(events: Iterable) -> ReplayState:
    """Pure fold of an ordered event stream into the current game state"""
    state = ReplayState()
    for event in events:
        apply_event(state, event)
    return state


def _signed(value: int) -> str:
    return f"+{value}" if value >= 0 else str(value)


def format_log_message(event, currency_symbol: str = "") -> str:
    """
    Human-readable line for one event

    Examples:
        "Game created at Friday Night"
        "Alice joined with 100"
        "Carol added by Dan with 50"
        "Alice rebought +50 (total: 150)"
        "Bob cashed out 80 (+30)"
        "Game ended. Total pot: 200"
    """
    action = _action_of(event)
    d = _details_of(event)
    cur = currency_symbol
    name = d.get("player_name")

    if action == LogAction.GAME_CREATED.value:
        return f"Game created at {d.get('table_name') or 'table'}"
    if action == LogAction.GAME_ENDED.value:
        return f"Game ended. Total pot: {cur}{d.get('total_pot') or 0}"
    if action == LogAction.PLAYER_JOINED.value:
        return f"{name} joined with {cur}{d.get('buyin') or 0}"
    if action == LogAction.PLAYER_ADDED.value:
        return f"{name} added by {d.get('added_by') or 'host'} with {cur}{d.get('buyin') or 0}"
    if action == LogAction.REBUY.value:
        return f"{name} rebought +{cur}{d.get('amount') or 0} (total: {cur}{d.get('new_total') or 0})"
    if action == LogAction.CASHOUT.value:
        net = (d.get("cashout") or 0) - (d.get("buyin") or 0)
        return f"{name} cashed out {cur}{d.get('cashout') or 0} ({_signed(net)})"
    if action == LogAction.CASHOUT_CORRECTED.value:
        net = (d.get("cashout") or 0) - (d.get("buyin") or 0)
        return (
            f"{name} cashout corrected {cur}{d.get('previous_cashout') or 0} -> "
            f"{cur}{d.get('cashout') or 0} ({_signed(net)})"
        )
    return action
