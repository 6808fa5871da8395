"""
User API Endpoints

Per-identity history across games (profile screen).
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
import logging

from database import get_db
from models import utcnow
from schemas import HistoryEntryResponse, PlayerStatsResponse
from services.history_service import get_player_game_history, get_player_stats

router = APIRouter(prefix="/api/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.get("/{user_id}/history", response_model=List[HistoryEntryResponse])
def get_history(user_id: str, db: Session = Depends(get_db)):
    """Every seat the user held, newest game first"""
    try:
        return [HistoryEntryResponse(**entry) for entry in get_player_game_history(db, user_id)]

    except Exception as e:
        logger.error(f"Failed to get history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{user_id}/stats", response_model=PlayerStatsResponse)
def get_stats(user_id: str, db: Session = Depends(get_db)):
    try:
        return PlayerStatsResponse(user_id=user_id, **get_player_stats(db, user_id, utcnow()))

    except Exception as e:
        logger.error(f"Failed to get stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
