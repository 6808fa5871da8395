"""
Game API Endpoints

Responsibilities:
1. Create / join / end games
2. Host-side seating
3. Read models: game state, pot, event narrative, summary
4. Short-polling change feed (state_version)
5. Ledger reconciliation (verify / rebuild from the event log)
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from database import get_db
from models import Game
from schemas import (
    GameCreate,
    GameCreateResponse,
    GameEnd,
    GameJoin,
    GameResponse,
    GameStateResponse,
    GameSummaryResponse,
    JoinResponse,
    LogEntryResponse,
    PlayerAdd,
    PlayerResponse,
    PotSummaryResponse,
    ReconcileResponse,
    DiscrepancyResponse,
)
from core.game_manager import GameManager
from core.event_log import read_events, format_log_message
from core.reconciliation import verify_game
from core.exceptions import (
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from services import ledger_service

router = APIRouter(prefix="/api/games", tags=["games"])
logger = logging.getLogger(__name__)


def _pot_response(pot: ledger_service.PotSummary) -> PotSummaryResponse:
    return PotSummaryResponse(**pot.as_dict())


def _game_response(db: Session, game: Game) -> GameResponse:
    players = GameManager.get_players(db, game.id)
    return GameResponse(
        id=game.id,
        table_id=game.table_id,
        status=game.status,
        passcode=game.passcode,
        game_number=game.game_number,
        created_by=game.created_by,
        created_at=game.created_at,
        ended_at=game.ended_at,
        state_version=game.state_version,
        players=[PlayerResponse.from_player(p) for p in players],
        pot=_pot_response(ledger_service.pot_summary(players)),
    )


@router.post("", response_model=GameCreateResponse)
def create_game(data: GameCreate, db: Session = Depends(get_db)):
    """
    Create a live game at a table (host endpoint)

    If host_seats_in is set, the host is seated with default_buyin.
    """
    try:
        game, host_player = GameManager.create_game(
            db,
            data.table_id,
            host_id=data.host_id,
            host_name=data.host_name,
            default_buyin=data.default_buyin,
            host_seats_in=data.host_seats_in,
        )
        return GameCreateResponse(
            game=_game_response(db, game),
            host_player=PlayerResponse.from_player(host_player) if host_player else None,
        )

    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/join", response_model=JoinResponse)
def join_game(data: GameJoin, db: Session = Depends(get_db)):
    """
    Join a live game by passcode

    Idempotent: joining again returns the existing seat with created=False.
    """
    try:
        game, player, created = GameManager.join_by_passcode(
            db,
            data.passcode,
            user_id=data.user_id,
            player_name=data.player_name,
            default_buyin=data.default_buyin,
        )
        return JoinResponse(
            game_id=game.id,
            passcode=game.passcode,
            player=PlayerResponse.from_player(player),
            created=created,
        )

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Game not found or has ended")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to join game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}", response_model=GameResponse)
def get_game(game_id: str, db: Session = Depends(get_db)):
    try:
        game = GameManager.get_game(db, game_id)
        return _game_response(db, game)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}/state", response_model=GameStateResponse)
def get_game_state(
    game_id: str,
    since_version: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db)
):
    """
    Short-polling change feed

    Clients keep the last state_version they rendered and re-fetch the
    game when `changed` is true.
    """
    try:
        game = GameManager.get_game(db, game_id)
        changed = since_version is None or game.state_version != since_version
        return GameStateResponse(
            game_id=game.id,
            status=game.status,
            state_version=game.state_version,
            changed=changed,
        )

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get game state: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{game_id}/players", response_model=PlayerResponse)
def add_player(game_id: str, data: PlayerAdd, db: Session = Depends(get_db)):
    """
    Seat a named player or guest (host endpoint)

    Preconditions:
    - game is live
    - buyin > 0
    """
    try:
        player = GameManager.add_participant(
            db,
            game_id,
            data.player_name,
            data.buyin,
            user_id=data.user_id,
            actor_id=data.actor_id,
            added_by=data.added_by,
        )
        return PlayerResponse.from_player(player)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to add player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{game_id}/end", response_model=GameResponse)
def end_game(game_id: str, data: Optional[GameEnd] = None, db: Session = Depends(get_db)):
    """
    End the game (host endpoint)

    Seats that have not cashed out stay open; their money is reported as
    "on the table" in the pot.
    """
    try:
        game = GameManager.end_game(db, game_id, actor_id=data.actor_id if data else None)
        return _game_response(db, game)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to end game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}/pot", response_model=PotSummaryResponse)
def get_pot(game_id: str, db: Session = Depends(get_db)):
    try:
        return _pot_response(GameManager.get_pot(db, game_id))

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get pot: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}/logs", response_model=List[LogEntryResponse])
def get_logs(
    game_id: str,
    after_sequence: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db)
):
    """
    Game history narrative, in sequence order

    after_sequence returns only the events a client has not seen yet.
    """
    try:
        game = GameManager.get_game(db, game_id)
        symbol = game.table.currency_symbol if game.table else ""
        return [
            LogEntryResponse(
                sequence=event.sequence,
                action=event.action,
                actor_id=event.actor_id,
                details=event.details or {},
                message=format_log_message(event, symbol),
                created_at=event.created_at,
            )
            for event in read_events(db, game_id, after_sequence)
        ]

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get logs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}/summary", response_model=GameSummaryResponse)
def get_summary(game_id: str, db: Session = Depends(get_db)):
    """Seats ranked by net (unsettled seats last) plus the pot"""
    try:
        game, ranked, pot = GameManager.get_summary(db, game_id)
        return GameSummaryResponse(
            game_id=game.id,
            status=game.status,
            game_number=game.game_number,
            results=[PlayerResponse.from_player(p) for p in ranked],
            pot=_pot_response(pot),
        )

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get summary: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}/reconcile", response_model=ReconcileResponse)
def check_ledger(game_id: str, db: Session = Depends(get_db)):
    """Replay the event log and report where the cached totals disagree"""
    try:
        discrepancies = verify_game(db, game_id)
        return ReconcileResponse(
            game_id=game_id,
            consistent=not discrepancies,
            discrepancies=[DiscrepancyResponse(**vars(d)) for d in discrepancies],
        )

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StateError as e:
        # The log itself holds an illegal history
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to verify ledger: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{game_id}/reconcile", response_model=ReconcileResponse)
def rebuild_ledger(game_id: str, db: Session = Depends(get_db)):
    """Rewrite the cached seat totals from the event log (admin endpoint)"""
    try:
        rebuilt = GameManager.rebuild_ledger(db, game_id)
        discrepancies = verify_game(db, game_id)
        return ReconcileResponse(
            game_id=game_id,
            consistent=not discrepancies,
            discrepancies=[DiscrepancyResponse(**vars(d)) for d in discrepancies],
            rebuilt_seats=rebuilt,
        )

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to rebuild ledger: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
