"""
Player history service.

Builds a per-identity history across every game the user has sat in, so a
profile screen can render results straight from the server instead of
re-deriving them on the client.
"""
from datetime import datetime, timedelta
from typing import List, Dict, Any

from sqlalchemy.orm import Session

from models import Game, GamePlayer, as_utc
from services.ledger_service import net_for


def get_player_game_history(db: Session, user_id: str) -> List[Dict[str, Any]]:
    """
    Return one entry per seat the user held, newest game first.

    `net` stays None while the seat is not cashed out, so an unfinished
    game is never shown as a break-even.
    """
    rows = (
        db.query(GamePlayer, Game)
        .join(Game, GamePlayer.game_id == Game.id)
        .filter(GamePlayer.user_id == user_id)
        .order_by(Game.created_at.desc(), Game.game_number.desc())
        .all()
    )

    history: List[Dict[str, Any]] = []
    for player, game in rows:
        history.append({
            "game_id": game.id,
            "table_id": game.table_id,
            "game_number": game.game_number,
            "status": game.status,
            "created_at": game.created_at,
            "player_id": player.id,
            "player_name": player.player_name,
            "total_buyin": player.total_buyin,
            "cashout_amount": player.cashout_amount,
            "is_cashed_out": player.is_cashed_out,
            "net": net_for(player),
        })
    return history


def get_player_stats(db: Session, user_id: str, now: datetime) -> Dict[str, Any]:
    """
    Profile headline numbers.

    Only settled seats count towards wins, nets and the biggest win;
    games_played counts every seat.
    """
    recent_from = as_utc(now) - timedelta(days=30)

    seats = (
        db.query(GamePlayer)
        .filter(GamePlayer.user_id == user_id)
        .all()
    )
    recent_ids = {
        player_id for (player_id,) in (
            db.query(GamePlayer.id)
            .join(Game, GamePlayer.game_id == Game.id)
            .filter(GamePlayer.user_id == user_id, Game.created_at >= recent_from)
            .all()
        )
    }

    settled = 0
    wins = 0
    biggest_win = 0
    total_net = 0
    recent_net = 0

    for seat in seats:
        net = net_for(seat)
        if net is None:
            continue
        settled += 1
        total_net += net
        if seat.id in recent_ids:
            recent_net += net
        if net > 0:
            wins += 1
            biggest_win = max(biggest_win, net)

    return {
        "games_played": len(seats),
        "settled_games": settled,
        "wins": wins,
        "biggest_win": biggest_win,
        "total_net": total_net,
        "last_30_days_net": recent_net,
    }
