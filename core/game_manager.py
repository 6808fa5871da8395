"""
Game Manager: the full lifecycle of a poker session

Responsibilities:
1. Create a game (passcode, game number, optional host seat)
2. Join by passcode (idempotent per identity)
3. Host-side seating of named players / guests
4. End the game
5. Game read models (lookup, listing, end-of-game summary)

Every command is one transaction: the state change, its event log entry and
the state_version bump commit together or not at all.
"""
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
import logging

from models import Game, GamePlayer, GameStatus, LogAction, PokerTable, TableMember
from core.state_machine import GameStateMachine
from core.locks import with_game_lock, with_table_lock
from core.event_log import append_event
from core import reconciliation
from core.exceptions import (
    ConflictError,
    GameNotFound,
    InvalidTableReference,
    PasscodeNotFound,
    PasscodeSpaceExhausted,
    TableNotFound,
    ValidationError,
)
from services import ledger_service
from services.passcode_service import generate_passcode
from services.state_service import bump_state_version
from database import get_settings, transactional

logger = logging.getLogger(__name__)


def _clean_name(player_name: Optional[str]) -> str:
    name = (player_name or "").strip()
    if not name:
        raise ValidationError("Player name is required")
    return name


def _ensure_table_member(db: Session, table_id: str, user_id: Optional[str]) -> None:
    """Record that an identity plays at this table (no-op for guests)"""
    if not user_id:
        return
    exists = db.query(TableMember.id).filter(
        TableMember.table_id == table_id,
        TableMember.user_id == user_id
    ).first()
    if exists:
        return
    db.add(TableMember(table_id=table_id, user_id=user_id))
    try:
        db.flush()
    except IntegrityError as e:
        raise ConflictError(f"Membership of {user_id} at table {table_id} changed concurrently") from e


def _seat_player(
    db: Session,
    game: Game,
    player_name: str,
    buyin: int,
    user_id: Optional[str],
) -> GamePlayer:
    """Insert a GamePlayer row; the caller appends the matching event"""
    # Validate through the ledger before touching the DB
    ledger_service.open_seat("", player_name, buyin, user_id=user_id)

    # A failed flush expires `game`; keep the id for the error message
    game_id = game.id
    player = GamePlayer(
        game_id=game_id,
        user_id=user_id,
        player_name=player_name,
        total_buyin=buyin,
    )
    db.add(player)
    try:
        db.flush()
    except IntegrityError as e:
        raise ConflictError(f"{user_id} already holds a seat in game {game_id}") from e
    return player


class GameManager:
    """Game lifecycle manager"""

    @staticmethod
    def create_game(
        db: Session,
        table_id: str,
        host_id: Optional[str] = None,
        host_name: Optional[str] = None,
        default_buyin: int = 0,
        host_seats_in: bool = False,
    ) -> Tuple[Game, Optional[GamePlayer]]:
        """
        Create a new live game at a table

        Flow:
        1. pick the next game_number for the table
        2. draw passcodes until one is not used by a live game
        3. create the Game (+ game_created event)
        4. optionally seat the host with their default buy-in
           (+ player_joined event)

        Passcode races (two games created at once drawing the same code)
        lose on the live-passcode unique index; the whole transaction is
        rolled back and retried here, which is safe because nothing
        financial has happened yet.

        Returns:
            (Game, host GamePlayer or None)

        Raises:
            InvalidTableReference: the table does not exist
            ValidationError / InvalidAmountError: bad host name or buy-in
            PasscodeSpaceExhausted: no free passcode found
        """
        attempts = get_settings().conflict_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return GameManager._create_game_once(
                    db, table_id, host_id, host_name, default_buyin, host_seats_in
                )
            except PasscodeSpaceExhausted:
                raise
            except ConflictError:
                if attempt == attempts:
                    raise
                logger.warning(f"Game creation at table {table_id} hit a conflict, retrying ({attempt})")

    @staticmethod
    @transactional
    def _create_game_once(
        db: Session,
        table_id: str,
        host_id: Optional[str],
        host_name: Optional[str],
        default_buyin: int,
        host_seats_in: bool,
    ) -> Tuple[Game, Optional[GamePlayer]]:
        settings = get_settings()

        # 1. Lock the table and validate the host seat up front
        table = with_table_lock(table_id, db).first()
        if not table:
            raise InvalidTableReference(table_id)

        if host_seats_in:
            if not host_id:
                raise ValidationError("host_id is required when the host seats in")
            host_name = _clean_name(host_name)
            ledger_service.open_seat("", host_name, default_buyin, user_id=host_id)

        # 2. Next game number for this table
        last_number = db.query(func.max(Game.game_number)).filter(
            Game.table_id == table_id
        ).scalar()
        game_number = (last_number or 0) + 1

        # 3. Passcode unique among live games (ended games may reuse codes)
        passcode = None
        for attempt in range(settings.passcode_max_attempts):
            candidate = generate_passcode(settings.passcode_length)
            taken = db.query(Game.id).filter(
                Game.passcode == candidate,
                Game.status == GameStatus.LIVE
            ).first()
            if not taken:
                passcode = candidate
                break
            logger.warning(f"Passcode collision detected ({candidate}), regenerating")

        if passcode is None:
            raise PasscodeSpaceExhausted(settings.passcode_max_attempts)

        game = Game(
            table_id=table_id,
            status=GameStatus.LIVE,
            passcode=passcode,
            game_number=game_number,
            created_by=host_id,
        )
        db.add(game)
        try:
            db.flush()
        except IntegrityError as e:
            raise ConflictError(f"Passcode {passcode} or game #{game_number} taken concurrently") from e

        append_event(
            db, game.id, LogAction.GAME_CREATED,
            {"table_name": table.name, "game_number": game_number},
            actor_id=host_id,
        )

        logger.info(f"Created game {game.id} (#{game_number}) at table {table_id} with passcode {passcode}")

        # 4. Host seat
        host_player = None
        if host_seats_in:
            host_player = _seat_player(db, game, host_name, default_buyin, host_id)
            append_event(
                db, game.id, LogAction.PLAYER_JOINED,
                {
                    "player_id": host_player.id,
                    "player_name": host_name,
                    "user_id": host_id,
                    "buyin": default_buyin,
                },
                actor_id=host_id,
            )
            logger.info(f"Host {host_id} seated in game {game.id} with {default_buyin}")

        _ensure_table_member(db, table_id, host_id)
        bump_state_version(db, game.id, reason="game_created")

        return game, host_player

    @staticmethod
    def join_by_passcode(
        db: Session,
        passcode: str,
        user_id: str,
        player_name: str,
        default_buyin: int = 0,
    ) -> Tuple[Game, GamePlayer, bool]:
        """
        Join a live game by its passcode (idempotent)

        If the identity already holds a seat the existing seat is returned
        and nothing is written. Two simultaneous joins by the same identity
        collide on the (game_id, user_id) unique constraint; the loser is
        retried transparently and then finds the winner's seat.

        Returns:
            (Game, GamePlayer, created_new)

        Raises:
            PasscodeNotFound: no live game has this passcode
            ValidationError: missing identity or name, negative buy-in
        """
        attempts = get_settings().conflict_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return GameManager._join_once(db, passcode, user_id, player_name, default_buyin)
            except ConflictError:
                if attempt == attempts:
                    raise
                logger.warning(f"Join conflict for {user_id} on passcode {passcode}, retrying ({attempt})")

    @staticmethod
    @transactional
    def _join_once(
        db: Session,
        passcode: str,
        user_id: str,
        player_name: str,
        default_buyin: int,
    ) -> Tuple[Game, GamePlayer, bool]:
        if not user_id:
            raise ValidationError("user_id is required to join by passcode")
        player_name = _clean_name(player_name)

        # 1. Find the live game and lock it
        game = GameManager.get_game_by_passcode(db, passcode)
        game = with_game_lock(game.id, db).first()
        if game is None or game.status != GameStatus.LIVE:
            raise PasscodeNotFound(passcode)

        # 2. Rejoin is a no-op
        existing = db.query(GamePlayer).filter(
            GamePlayer.game_id == game.id,
            GamePlayer.user_id == user_id
        ).first()
        if existing:
            logger.info(f"User {user_id} rejoined game {game.id}; seat {existing.id} already exists")
            return game, existing, False

        # 3. New seat + event
        player = _seat_player(db, game, player_name, default_buyin, user_id)
        append_event(
            db, game.id, LogAction.PLAYER_JOINED,
            {
                "player_id": player.id,
                "player_name": player_name,
                "user_id": user_id,
                "buyin": default_buyin,
            },
            actor_id=user_id,
        )
        _ensure_table_member(db, game.table_id, user_id)
        bump_state_version(db, game.id, reason="player_joined")

        logger.info(f"User {user_id} joined game {game.id} as {player_name} with {default_buyin}")
        return game, player, True

    @staticmethod
    @transactional
    def add_participant(
        db: Session,
        game_id: str,
        player_name: str,
        buyin: int,
        user_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        added_by: Optional[str] = None,
    ) -> GamePlayer:
        """
        Host seats a named player (registered or guest)

        Preconditions:
        - name is not blank, buyin > 0
        - game is live

        Raises:
            ValidationError / InvalidAmountError: bad name or buy-in
            GameNotFound: game does not exist
            GameAlreadyEnded: game is not live
            ConflictError: that identity already holds a seat
        """
        player_name = _clean_name(player_name)
        ledger_service.validate_buyin_amount(buyin)

        game = with_game_lock(game_id, db).first()
        if not game:
            raise GameNotFound(game_id)
        GameStateMachine.assert_live(game)

        player = _seat_player(db, game, player_name, buyin, user_id)
        append_event(
            db, game.id, LogAction.PLAYER_ADDED,
            {
                "player_id": player.id,
                "player_name": player_name,
                "user_id": user_id,
                "buyin": buyin,
                "added_by": added_by,
            },
            actor_id=actor_id,
        )
        _ensure_table_member(db, game.table_id, user_id)
        bump_state_version(db, game.id, reason="player_added")

        logger.info(f"{player_name} added to game {game_id} with {buyin} by {added_by or actor_id or 'host'}")
        return player

    @staticmethod
    @transactional
    def end_game(db: Session, game_id: str, actor_id: Optional[str] = None) -> Game:
        """
        End the game (LIVE -> ENDED)

        Seats do not all have to be cashed out: ending with money still on
        the table is allowed (the host settles it offline). When everyone
        has cashed out but the pot does not balance, a warning is logged;
        it does not block the end.

        Raises:
            GameNotFound: game does not exist
            InvalidStateTransition: game already ended
        """
        # 1. Transition (locks the game)
        game = GameStateMachine.transition(game_id, GameStatus.ENDED, db)

        # 2. Final pot snapshot
        players = db.query(GamePlayer).filter(GamePlayer.game_id == game_id).all()
        pot = ledger_service.pot_summary(players)

        if pot.all_settled and not pot.balanced:
            logger.warning(
                f"Game {game_id} ended unbalanced: buy-ins {pot.total_buyin}, "
                f"cashed out {pot.total_cashed_out}"
            )

        append_event(
            db, game_id, LogAction.GAME_ENDED,
            {
                "total_pot": pot.total_buyin,
                "total_cashed_out": pot.total_cashed_out,
                "on_table": pot.on_table,
                "all_settled": pot.all_settled,
            },
            actor_id=actor_id,
        )
        bump_state_version(db, game_id, reason="game_ended")

        logger.info(f"Game {game_id} ended; pot {pot.total_buyin}, on table {pot.on_table}")
        return game

    # ============ Read models ============

    @staticmethod
    def get_game(db: Session, game_id: str) -> Game:
        """
        Raises:
            GameNotFound: game does not exist
        """
        game = db.query(Game).filter(Game.id == game_id).first()
        if not game:
            raise GameNotFound(game_id)
        return game

    @staticmethod
    def get_game_by_passcode(db: Session, passcode: str) -> Game:
        """
        Only live games are considered; ended games keep their old codes

        Raises:
            PasscodeNotFound: no live game with this passcode
        """
        game = db.query(Game).filter(
            Game.passcode == passcode,
            Game.status == GameStatus.LIVE
        ).first()
        if not game:
            raise PasscodeNotFound(passcode)
        return game

    @staticmethod
    def list_games(
        db: Session,
        table_id: Optional[str] = None,
        status: Optional[GameStatus] = None,
    ) -> List[Game]:
        """Games, newest first, optionally filtered by table and status"""
        query = db.query(Game)
        if table_id is not None:
            query = query.filter(Game.table_id == table_id)
        if status is not None:
            query = query.filter(Game.status == status)
        return query.order_by(Game.created_at.desc(), Game.game_number.desc()).all()

    @staticmethod
    def get_players(db: Session, game_id: str) -> List[GamePlayer]:
        return db.query(GamePlayer).filter(
            GamePlayer.game_id == game_id
        ).order_by(GamePlayer.created_at, GamePlayer.id).all()

    @staticmethod
    def get_pot(db: Session, game_id: str) -> ledger_service.PotSummary:
        GameManager.get_game(db, game_id)
        return ledger_service.pot_summary(GameManager.get_players(db, game_id))

    @staticmethod
    def get_summary(db: Session, game_id: str) -> Tuple[Game, List[GamePlayer], ledger_service.PotSummary]:
        """
        End-of-game view: seats ranked by net (best first), unsettled seats
        last, plus the pot summary
        """
        game = GameManager.get_game(db, game_id)
        players = GameManager.get_players(db, game_id)

        def rank_key(player):
            net = ledger_service.net_for(player)
            return (net is None, -(net or 0), player.player_name)

        ranked = sorted(players, key=rank_key)
        return game, ranked, ledger_service.pot_summary(players)

    @staticmethod
    def get_table(db: Session, table_id: str) -> PokerTable:
        table = db.query(PokerTable).filter(PokerTable.id == table_id).first()
        if not table:
            raise TableNotFound(table_id)
        return table

    @staticmethod
    @transactional
    def create_table(
        db: Session,
        name: str,
        created_by: Optional[str] = None,
        currency: str = "ILS",
        currency_symbol: str = "₪",
    ) -> PokerTable:
        """Create a table and make its creator a member"""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Table name is required")

        table = PokerTable(
            name=name,
            created_by=created_by,
            currency=currency,
            currency_symbol=currency_symbol,
        )
        db.add(table)
        db.flush()
        _ensure_table_member(db, table.id, created_by)

        logger.info(f"Created table {table.id} ({name})")
        return table

    @staticmethod
    @transactional
    def rebuild_ledger(db: Session, game_id: str) -> int:
        """
        Repair the cached seat totals of a game from its event log

        Returns:
            number of seats whose cache was rewritten

        Raises:
            GameNotFound: game does not exist
        """
        game = with_game_lock(game_id, db).first()
        if not game:
            raise GameNotFound(game_id)

        changed = reconciliation.rebuild_from_log(db, game_id)
        if changed:
            bump_state_version(db, game_id, reason="ledger_rebuilt")
            logger.warning(f"Rebuilt {changed} seat(s) of game {game_id} from the event log")
        return changed
