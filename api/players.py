"""
Player (seat) API Endpoints

Responsibilities:
1. Rebuy
2. Cashout
3. Administrative cashout correction
4. Seat lookup and net

Money endpoints are never retried server-side; a 409 means the seat changed
under the caller (e.g. it was cashed out from another device) and the
client should refresh.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    CashoutCorrection,
    CashoutSubmit,
    PlayerNetResponse,
    PlayerResponse,
    RebuySubmit,
)
from core.seat_manager import SeatManager
from core.exceptions import (
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from services.ledger_service import net_for

router = APIRouter(prefix="/api/players", tags=["players"])
logger = logging.getLogger(__name__)


@router.get("/{player_id}", response_model=PlayerResponse)
def get_player(player_id: str, db: Session = Depends(get_db)):
    try:
        return PlayerResponse.from_player(SeatManager.get_player(db, player_id))

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{player_id}/net", response_model=PlayerNetResponse)
def get_player_net(player_id: str, db: Session = Depends(get_db)):
    """
    Settled result of a seat

    net is null while the seat is still in play (not the same as 0).
    """
    try:
        player = SeatManager.get_player(db, player_id)
        return PlayerNetResponse(
            player_id=player.id,
            is_cashed_out=player.is_cashed_out,
            net=net_for(player),
        )

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get net: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{player_id}/rebuy", response_model=PlayerResponse)
def rebuy(player_id: str, data: RebuySubmit, db: Session = Depends(get_db)):
    """
    Add a rebuy to an active seat

    Preconditions:
    - amount > 0
    - game is live
    - seat has not cashed out
    """
    try:
        player = SeatManager.rebuy(db, player_id, data.amount, actor_id=data.actor_id)
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
        logger.error(f"Failed to rebuy: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{player_id}/cashout", response_model=PlayerResponse)
def cashout(player_id: str, data: CashoutSubmit, db: Session = Depends(get_db)):
    """
    Settle a seat (once)

    Preconditions:
    - amount >= 0
    - game is live
    - seat has not cashed out yet
    """
    try:
        player = SeatManager.cashout(db, player_id, data.amount, actor_id=data.actor_id)
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
        logger.error(f"Failed to cash out: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{player_id}/cashout/correction", response_model=PlayerResponse)
def correct_cashout(player_id: str, data: CashoutCorrection, db: Session = Depends(get_db)):
    """
    Administrative correction of a recorded cashout

    Send expected_previous (the amount you saw) so a concurrent correction
    is detected instead of overwritten.
    """
    try:
        player = SeatManager.correct_cashout(
            db,
            player_id,
            data.amount,
            expected_previous=data.expected_previous,
            actor_id=data.actor_id,
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
        logger.error(f"Failed to correct cashout: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
