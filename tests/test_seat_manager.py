"""
Seat money commands and the guarded updates behind them
"""
import pytest
from sqlalchemy import update

from models import GameLog, GamePlayer
from core import reconciliation
from core.exceptions import (
    ConflictError,
    GameAlreadyEnded,
    InvalidAmountError,
    PlayerAlreadyCashedOut,
    PlayerNotCashedOut,
    PlayerNotFound,
    StateError,
)
from core.game_manager import GameManager
from core.seat_manager import SeatManager
from services.state_service import get_state_version


def _event_count(db, game_id):
    return db.query(GameLog).filter(GameLog.game_id == game_id).count()


class TestRebuy:

    def test_rebuys_accumulate(self, db, seat):
        for amount in (50, 25, 25):
            SeatManager.rebuy(db, seat.id, amount)

        assert SeatManager.get_player(db, seat.id).total_buyin == 200

    def test_total_is_sum_of_accepted_deltas(self, db, seat):
        accepted = [100]
        for amount in (40, 0, -10, 60):
            try:
                SeatManager.rebuy(db, seat.id, amount)
                accepted.append(amount)
            except InvalidAmountError:
                pass

        assert SeatManager.get_player(db, seat.id).total_buyin == sum(accepted)

    def test_rejected_rebuy_writes_nothing(self, db, game, seat):
        before = _event_count(db, game.id)
        with pytest.raises(InvalidAmountError):
            SeatManager.rebuy(db, seat.id, 0)
        assert _event_count(db, game.id) == before

    def test_rebuy_after_cashout_rejected(self, db, game, seat):
        SeatManager.cashout(db, seat.id, 0)
        events = _event_count(db, game.id)

        with pytest.raises(PlayerAlreadyCashedOut):
            SeatManager.rebuy(db, seat.id, 50)

        player = SeatManager.get_player(db, seat.id)
        assert player.total_buyin == 100
        assert _event_count(db, game.id) == events

    def test_rebuy_on_ended_game(self, db, game, seat):
        GameManager.end_game(db, game.id)
        with pytest.raises(GameAlreadyEnded):
            SeatManager.rebuy(db, seat.id, 50)

    def test_unknown_player(self, db):
        with pytest.raises(PlayerNotFound):
            SeatManager.rebuy(db, "missing", 50)

    def test_bumps_state_version(self, db, game, seat):
        version = get_state_version(db, game.id)
        SeatManager.rebuy(db, seat.id, 50)
        assert get_state_version(db, game.id) == version + 1


class TestCashout:

    def test_cashout(self, db, seat):
        player = SeatManager.cashout(db, seat.id, 130)

        assert player.is_cashed_out
        assert player.cashout_amount == 130
        assert player.cashed_out_at is not None

    def test_second_cashout_fails_and_keeps_amount(self, db, seat):
        SeatManager.cashout(db, seat.id, 80)

        with pytest.raises(StateError):
            SeatManager.cashout(db, seat.id, 500)

        assert SeatManager.get_player(db, seat.id).cashout_amount == 80

    def test_negative_cashout(self, db, seat):
        with pytest.raises(InvalidAmountError):
            SeatManager.cashout(db, seat.id, -1)
        assert not SeatManager.get_player(db, seat.id).is_cashed_out

    def test_cashout_on_ended_game(self, db, game, seat):
        GameManager.end_game(db, game.id)
        with pytest.raises(GameAlreadyEnded):
            SeatManager.cashout(db, seat.id, 100)


class TestCorrection:

    def test_correct_cashout(self, db, seat):
        SeatManager.cashout(db, seat.id, 80)
        player = SeatManager.correct_cashout(db, seat.id, 90, expected_previous=80)
        assert player.cashout_amount == 90

    def test_requires_cashout(self, db, seat):
        with pytest.raises(PlayerNotCashedOut):
            SeatManager.correct_cashout(db, seat.id, 90)

    def test_stale_expected_previous_conflicts(self, db, seat):
        SeatManager.cashout(db, seat.id, 80)
        SeatManager.correct_cashout(db, seat.id, 90, expected_previous=80)

        with pytest.raises(ConflictError):
            SeatManager.correct_cashout(db, seat.id, 70, expected_previous=80)

        assert SeatManager.get_player(db, seat.id).cashout_amount == 90

    def test_allowed_after_game_ended(self, db, game, seat):
        SeatManager.cashout(db, seat.id, 80)
        GameManager.end_game(db, game.id)

        player = SeatManager.correct_cashout(db, seat.id, 100)
        assert player.cashout_amount == 100


class TestGuardedUpdates:
    """Another device changed the seat between our read and our write"""

    def test_increment_rejected_when_cashed_out_underneath(self, db, seat):
        db.execute(
            update(GamePlayer)
            .where(GamePlayer.id == seat.id)
            .values(is_cashed_out=True, cashout_amount=0)
        )
        db.commit()

        with pytest.raises(PlayerAlreadyCashedOut):
            reconciliation.increment_buyin(db, seat.id, 50)
        db.rollback()

        assert SeatManager.get_player(db, seat.id).total_buyin == 100

    def test_increment_rejected_when_game_ended(self, db, game, seat):
        GameManager.end_game(db, game.id)

        with pytest.raises(GameAlreadyEnded):
            reconciliation.increment_buyin(db, seat.id, 50)
        db.rollback()

    def test_settle_only_once(self, db, seat):
        reconciliation.settle_cashout(db, seat.id, 10)
        db.commit()

        with pytest.raises(PlayerAlreadyCashedOut):
            reconciliation.settle_cashout(db, seat.id, 20)
        db.rollback()

        assert SeatManager.get_player(db, seat.id).cashout_amount == 10


class TestLogReconciliation:

    def test_consistent_after_normal_play(self, db, game, seat):
        SeatManager.rebuy(db, seat.id, 50)
        SeatManager.cashout(db, seat.id, 200)
        GameManager.end_game(db, game.id)

        assert reconciliation.verify_game(db, game.id) == []

    def test_tampered_cache_is_reported_and_rebuilt(self, db, game, seat):
        SeatManager.rebuy(db, seat.id, 50)
        db.execute(
            update(GamePlayer)
            .where(GamePlayer.id == seat.id)
            .values(total_buyin=999)
        )
        db.commit()

        discrepancies = reconciliation.verify_game(db, game.id)
        assert discrepancies == [
            reconciliation.Discrepancy(seat.id, "total_buyin", 999, 150)
        ]

        version = get_state_version(db, game.id)
        assert GameManager.rebuild_ledger(db, game.id) == 1
        assert SeatManager.get_player(db, seat.id).total_buyin == 150
        assert reconciliation.verify_game(db, game.id) == []
        assert get_state_version(db, game.id) == version + 1

    def test_rebuild_without_changes(self, db, game, seat):
        assert GameManager.rebuild_ledger(db, game.id) == 0
