"""
Table API Endpoints

Responsibilities:
1. Create / look up tables
2. Leaderboard over ended games (by period or explicit window)
3. Table stats and game listing
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from database import get_db
from models import GameStatus, utcnow
from schemas import (
    GameListItem,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    TableCreate,
    TableResponse,
    TableStatsResponse,
)
from core.game_manager import GameManager
from core.exceptions import NotFoundError, ValidationError
from services.aggregation_service import leaderboard, period_window, table_stats

router = APIRouter(prefix="/api/tables", tags=["tables"])
logger = logging.getLogger(__name__)


@router.post("", response_model=TableResponse)
def create_table(data: TableCreate, db: Session = Depends(get_db)):
    try:
        table = GameManager.create_table(
            db,
            data.name,
            created_by=data.created_by,
            currency=data.currency,
            currency_symbol=data.currency_symbol,
        )
        return TableResponse.model_validate(table)

    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create table: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{table_id}", response_model=TableResponse)
def get_table(table_id: str, db: Session = Depends(get_db)):
    try:
        return TableResponse.model_validate(GameManager.get_table(db, table_id))

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get table: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{table_id}/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard(
    table_id: str,
    period: Optional[str] = Query(None, description="week | month | year | all"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: Session = Depends(get_db)
):
    """
    Ranked net results of a table

    Either pass `period` (relative to now) or an explicit `start` / `end`
    window on game creation time. Nothing = all time.
    Only ended games and cashed-out seats are counted.
    """
    try:
        if period is not None:
            if start is not None or end is not None:
                raise ValidationError("Use either period or start/end, not both")
            start, end = period_window(period, utcnow())

        entries = leaderboard(db, table_id, window_start=start, window_end=end)
        return LeaderboardResponse(
            table_id=table_id,
            window_start=start,
            window_end=end,
            entries=[
                LeaderboardEntryResponse(rank=rank, **vars(entry))
                for rank, entry in enumerate(entries, start=1)
            ],
        )

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to build leaderboard: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{table_id}/stats", response_model=TableStatsResponse)
def get_table_stats(table_id: str, db: Session = Depends(get_db)):
    try:
        stats = table_stats(db, table_id, utcnow())
        return TableStatsResponse(table_id=table_id, **stats)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get table stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{table_id}/games", response_model=List[GameListItem])
def list_table_games(
    table_id: str,
    status: Optional[GameStatus] = Query(None),
    db: Session = Depends(get_db)
):
    """Games of a table, newest first, with their current state_version"""
    try:
        GameManager.get_table(db, table_id)
        games = GameManager.list_games(db, table_id=table_id, status=status)
        return [
            GameListItem(
                game_id=game.id,
                game_number=game.game_number,
                status=game.status,
                passcode=game.passcode,
                created_at=game.created_at,
                ended_at=game.ended_at,
                state_version=game.state_version,
            )
            for game in games
        ]

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list games: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
