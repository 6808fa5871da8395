"""
Several devices writing to the same game, each through its own session
"""
import threading

import pytest

from models import GamePlayer
from core import game_manager
from core.exceptions import StateError
from core.game_manager import GameManager
from core.seat_manager import SeatManager


@pytest.fixture
def host(open_session):
    return open_session()


@pytest.fixture
def live_seat(host):
    table = GameManager.create_table(host, "Friday Night", created_by="host-1")
    game, _ = GameManager.create_game(host, table.id, host_id="host-1")
    player = GameManager.add_participant(host, game.id, "Alice", 100, user_id="alice")
    return game.id, player.id


def _fresh(open_session, player_id):
    return open_session().get(GamePlayer, player_id)


class TestStaleSnapshots:

    def test_rebuys_from_two_devices_both_count(self, open_session, host, live_seat):
        _, player_id = live_seat
        phone = open_session()
        assert SeatManager.get_player(phone, player_id).total_buyin == 100

        SeatManager.rebuy(host, player_id, 50)
        player = SeatManager.rebuy(phone, player_id, 50)

        assert player.total_buyin == 200
        assert _fresh(open_session, player_id).total_buyin == 200

    def test_rebuy_after_cashout_on_another_device(self, open_session, host, live_seat):
        _, player_id = live_seat
        phone = open_session()
        assert not SeatManager.get_player(phone, player_id).is_cashed_out

        SeatManager.cashout(host, player_id, 80)

        with pytest.raises(StateError):
            SeatManager.rebuy(phone, player_id, 50)

        player = _fresh(open_session, player_id)
        assert player.total_buyin == 100
        assert player.cashout_amount == 80

    def test_parallel_rebuys(self, open_session, host, live_seat):
        _, player_id = live_seat
        errors = []

        def rebuy_many():
            session = open_session()
            for _ in range(5):
                try:
                    SeatManager.rebuy(session, player_id, 10)
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=rebuy_many) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert _fresh(open_session, player_id).total_buyin == 100 + 4 * 5 * 10


class TestJoinRace:

    def test_join_racing_a_seat_insert_returns_existing_seat(self, open_session, host, monkeypatch):
        table = GameManager.create_table(host, "Friday Night")
        game, _ = GameManager.create_game(host, table.id)
        game_id, passcode = game.id, game.passcode

        other_device = open_session()
        seated = {}
        original = game_manager._seat_player

        def seat_after_other_device(db, game, player_name, buyin, user_id):
            # The other device wins the insert between our seat check and ours
            if db is joiner and not seated:
                seated["player"] = GameManager.add_participant(
                    other_device, game_id, "U1", 50, user_id="u1"
                )
            return original(db, game, player_name, buyin, user_id)

        monkeypatch.setattr(game_manager, "_seat_player", seat_after_other_device)

        joiner = open_session()
        _, player, created = GameManager.join_by_passcode(joiner, passcode, "u1", "U1")

        assert created is False
        assert player.id == seated["player"].id
        seats = open_session().query(GamePlayer).filter(
            GamePlayer.game_id == game_id,
            GamePlayer.user_id == "u1"
        ).count()
        assert seats == 1
