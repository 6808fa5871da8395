"""
Pydantic request / response models
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import GameStatus
from services.ledger_service import net_for


# ============ Tables ============

class TableCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    created_by: Optional[str] = None
    currency: str = "ILS"
    currency_symbol: str = "₪"


class TableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    currency: str
    currency_symbol: str
    created_by: Optional[str] = None
    created_at: datetime


class TableStatsResponse(BaseModel):
    table_id: str
    total_games: int
    live_games: int
    ended_games: int
    week_cash_in: int


class LeaderboardEntryResponse(BaseModel):
    rank: int
    player_name: str
    user_id: Optional[str] = None
    total_buyin: int
    total_cashout: int
    net: int
    games_played: int


class LeaderboardResponse(BaseModel):
    table_id: str
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    entries: List[LeaderboardEntryResponse]


# ============ Games ============

class GameCreate(BaseModel):
    table_id: str
    host_id: Optional[str] = None
    host_name: Optional[str] = None
    default_buyin: int = 0
    host_seats_in: bool = False


class GameJoin(BaseModel):
    passcode: str = Field(..., min_length=1, max_length=8)
    user_id: str = Field(..., min_length=1)
    player_name: str = Field(..., min_length=1, max_length=100)
    default_buyin: int = 0


class GameEnd(BaseModel):
    actor_id: Optional[str] = None


class PotSummaryResponse(BaseModel):
    total_buyin: int
    total_cashed_out: int
    on_table: int
    seat_count: int
    active_count: int
    settled_count: int
    all_settled: bool
    balanced: bool


class PlayerResponse(BaseModel):
    id: str
    game_id: str
    user_id: Optional[str] = None
    player_name: str
    total_buyin: int
    cashout_amount: Optional[int] = None
    is_cashed_out: bool
    cashed_out_at: Optional[datetime] = None
    net: Optional[int] = None

    @classmethod
    def from_player(cls, player) -> "PlayerResponse":
        return cls(
            id=player.id,
            game_id=player.game_id,
            user_id=player.user_id,
            player_name=player.player_name,
            total_buyin=player.total_buyin,
            cashout_amount=player.cashout_amount,
            is_cashed_out=player.is_cashed_out,
            cashed_out_at=player.cashed_out_at,
            net=net_for(player),
        )


class GameResponse(BaseModel):
    id: str
    table_id: str
    status: GameStatus
    passcode: str
    game_number: int
    created_by: Optional[str] = None
    created_at: datetime
    ended_at: Optional[datetime] = None
    state_version: int
    players: List[PlayerResponse] = []
    pot: PotSummaryResponse


class GameCreateResponse(BaseModel):
    game: GameResponse
    host_player: Optional[PlayerResponse] = None


class JoinResponse(BaseModel):
    game_id: str
    passcode: str
    player: PlayerResponse
    created: bool


class GameStateResponse(BaseModel):
    game_id: str
    status: GameStatus
    state_version: int
    changed: bool


class GameListItem(BaseModel):
    game_id: str
    game_number: int
    status: GameStatus
    passcode: str
    created_at: datetime
    ended_at: Optional[datetime] = None
    state_version: int


class GameSummaryResponse(BaseModel):
    game_id: str
    status: GameStatus
    game_number: int
    results: List[PlayerResponse]
    pot: PotSummaryResponse


class LogEntryResponse(BaseModel):
    sequence: int
    action: str
    actor_id: Optional[str] = None
    details: Dict[str, Any]
    message: str
    created_at: datetime


class DiscrepancyResponse(BaseModel):
    player_id: str
    field: str
    cached: Any = None
    replayed: Any = None


class ReconcileResponse(BaseModel):
    game_id: str
    consistent: bool
    discrepancies: List[DiscrepancyResponse]
    rebuilt_seats: Optional[int] = None


# ============ Seats ============

class PlayerAdd(BaseModel):
    player_name: str = Field(..., min_length=1, max_length=100)
    buyin: int
    user_id: Optional[str] = None
    actor_id: Optional[str] = None
    added_by: Optional[str] = None


class RebuySubmit(BaseModel):
    amount: int
    actor_id: Optional[str] = None


class CashoutSubmit(BaseModel):
    amount: int
    actor_id: Optional[str] = None


class CashoutCorrection(BaseModel):
    amount: int
    expected_previous: Optional[int] = None
    actor_id: Optional[str] = None


class PlayerNetResponse(BaseModel):
    player_id: str
    is_cashed_out: bool
    net: Optional[int] = None


# ============ Users ============

class HistoryEntryResponse(BaseModel):
    game_id: str
    table_id: str
    game_number: int
    status: GameStatus
    created_at: datetime
    player_id: str
    player_name: str
    total_buyin: int
    cashout_amount: Optional[int] = None
    is_cashed_out: bool
    net: Optional[int] = None


class PlayerStatsResponse(BaseModel):
    user_id: str
    games_played: int
    settled_games: int
    wins: int
    biggest_win: int
    total_net: int
    last_30_days_net: int
