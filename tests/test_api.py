"""
HTTP layer: request flows and error mapping
"""
import pytest


@pytest.fixture
def table_id(client):
    response = client.post("/api/tables", json={"name": "Friday Night", "created_by": "host-1"})
    assert response.status_code == 200
    return response.json()["id"]


@pytest.fixture
def live_game(client, table_id):
    response = client.post("/api/games", json={
        "table_id": table_id,
        "host_id": "host-1",
        "host_name": "Host",
        "default_buyin": 100,
        "host_seats_in": True,
    })
    assert response.status_code == 200
    return response.json()


def _join(client, passcode, user_id, name, buyin=0):
    return client.post("/api/games/join", json={
        "passcode": passcode,
        "user_id": user_id,
        "player_name": name,
        "default_buyin": buyin,
    })


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


class TestGames:

    def test_create_game_with_host_seat(self, live_game):
        game = live_game["game"]

        assert game["status"] == "live"
        assert game["game_number"] == 1
        assert len(game["passcode"]) == 4
        assert live_game["host_player"]["total_buyin"] == 100
        assert game["pot"]["total_buyin"] == 100
        assert game["pot"]["on_table"] == 100

    def test_create_game_unknown_table(self, client):
        response = client.post("/api/games", json={"table_id": "missing"})
        assert response.status_code == 422

    def test_join_is_idempotent(self, client, live_game):
        passcode = live_game["game"]["passcode"]

        first = _join(client, passcode, "bob", "Bob", 50)
        second = _join(client, passcode, "bob", "Bob", 50)

        assert first.status_code == 200
        assert first.json()["created"] is True
        assert second.json()["created"] is False
        assert first.json()["player"]["id"] == second.json()["player"]["id"]

        game = client.get(f"/api/games/{live_game['game']['id']}").json()
        assert len(game["players"]) == 2

    def test_join_unknown_passcode(self, client, live_game):
        response = _join(client, "0000" if live_game["game"]["passcode"] != "0000" else "9999", "bob", "Bob")
        assert response.status_code == 404
        assert response.json()["detail"] == "Game not found or has ended"

    def test_unknown_game(self, client):
        assert client.get("/api/games/missing").status_code == 404
        assert client.get("/api/games/missing/pot").status_code == 404
        assert client.post("/api/games/missing/end").status_code == 404

    def test_end_twice(self, client, live_game):
        game_id = live_game["game"]["id"]

        response = client.post(f"/api/games/{game_id}/end", json={"actor_id": "host-1"})
        assert response.status_code == 200
        assert response.json()["status"] == "ended"
        assert response.json()["pot"]["on_table"] == 100

        assert client.post(f"/api/games/{game_id}/end").status_code == 400

    def test_add_player_validation(self, client, live_game):
        game_id = live_game["game"]["id"]

        ok = client.post(f"/api/games/{game_id}/players", json={"player_name": "Guest", "buyin": 50})
        assert ok.status_code == 200
        assert ok.json()["user_id"] is None

        zero = client.post(f"/api/games/{game_id}/players", json={"player_name": "Guest", "buyin": 0})
        assert zero.status_code == 422

        dup = client.post(f"/api/games/{game_id}/players", json={
            "player_name": "Host again", "buyin": 50, "user_id": "host-1",
        })
        assert dup.status_code == 409

    def test_state_polling(self, client, live_game):
        game_id = live_game["game"]["id"]
        version = live_game["game"]["state_version"]
        host_id = live_game["host_player"]["id"]

        unchanged = client.get(f"/api/games/{game_id}/state", params={"since_version": version}).json()
        assert unchanged["changed"] is False

        client.post(f"/api/players/{host_id}/rebuy", json={"amount": 50})

        changed = client.get(f"/api/games/{game_id}/state", params={"since_version": version}).json()
        assert changed["changed"] is True
        assert changed["state_version"] == version + 1

    def test_logs_narrative(self, client, live_game):
        game_id = live_game["game"]["id"]
        host_id = live_game["host_player"]["id"]
        client.post(f"/api/players/{host_id}/rebuy", json={"amount": 50})
        client.post(f"/api/players/{host_id}/cashout", json={"amount": 180})

        logs = client.get(f"/api/games/{game_id}/logs").json()

        assert [entry["sequence"] for entry in logs] == [1, 2, 3, 4]
        assert [entry["message"] for entry in logs] == [
            "Game created at Friday Night",
            "Host joined with ₪100",
            "Host rebought +₪50 (total: ₪150)",
            "Host cashed out ₪180 (+30)",
        ]

        tail = client.get(f"/api/games/{game_id}/logs", params={"after_sequence": 3}).json()
        assert [entry["action"] for entry in tail] == ["cashout"]

    def test_summary_and_reconcile(self, client, live_game):
        game_id = live_game["game"]["id"]
        host_id = live_game["host_player"]["id"]
        client.post(f"/api/players/{host_id}/cashout", json={"amount": 100})

        summary = client.get(f"/api/games/{game_id}/summary").json()
        assert summary["results"][0]["net"] == 0
        assert summary["pot"]["balanced"] is True

        check = client.get(f"/api/games/{game_id}/reconcile").json()
        assert check["consistent"] is True
        assert check["discrepancies"] == []

        rebuilt = client.post(f"/api/games/{game_id}/reconcile").json()
        assert rebuilt["rebuilt_seats"] == 0


class TestPlayers:

    def test_rebuy_and_cashout(self, client, live_game):
        host_id = live_game["host_player"]["id"]

        rebuy = client.post(f"/api/players/{host_id}/rebuy", json={"amount": 50})
        assert rebuy.json()["total_buyin"] == 150
        assert rebuy.json()["net"] is None

        cashout = client.post(f"/api/players/{host_id}/cashout", json={"amount": 120})
        assert cashout.json()["is_cashed_out"] is True
        assert cashout.json()["net"] == -30

        net = client.get(f"/api/players/{host_id}/net").json()
        assert net == {"player_id": host_id, "is_cashed_out": True, "net": -30}

    def test_error_mapping(self, client, live_game):
        host_id = live_game["host_player"]["id"]

        assert client.post("/api/players/missing/rebuy", json={"amount": 50}).status_code == 404
        assert client.post(f"/api/players/{host_id}/rebuy", json={"amount": 0}).status_code == 422
        assert client.post(f"/api/players/{host_id}/cashout", json={"amount": -5}).status_code == 422

        assert client.post(f"/api/players/{host_id}/cashout", json={"amount": 80}).status_code == 200
        second = client.post(f"/api/players/{host_id}/cashout", json={"amount": 500})
        assert second.status_code == 400
        assert client.get(f"/api/players/{host_id}").json()["cashout_amount"] == 80

        assert client.post(f"/api/players/{host_id}/rebuy", json={"amount": 50}).status_code == 400

    def test_cashout_correction(self, client, live_game):
        host_id = live_game["host_player"]["id"]

        early = client.post(f"/api/players/{host_id}/cashout/correction", json={"amount": 90})
        assert early.status_code == 400

        client.post(f"/api/players/{host_id}/cashout", json={"amount": 80})
        fixed = client.post(f"/api/players/{host_id}/cashout/correction", json={
            "amount": 90, "expected_previous": 80,
        })
        assert fixed.status_code == 200
        assert fixed.json()["cashout_amount"] == 90

        stale = client.post(f"/api/players/{host_id}/cashout/correction", json={
            "amount": 70, "expected_previous": 80,
        })
        assert stale.status_code == 409


class TestTablesAndUsers:

    def _finish_game(self, client, table_id, buyin, cashout):
        created = client.post("/api/games", json={
            "table_id": table_id,
            "host_id": "alice",
            "host_name": "Alice",
            "default_buyin": buyin,
            "host_seats_in": True,
        }).json()
        client.post(f"/api/players/{created['host_player']['id']}/cashout", json={"amount": cashout})
        client.post(f"/api/games/{created['game']['id']}/end")
        return created["game"]["id"]

    def test_leaderboard(self, client, table_id):
        self._finish_game(client, table_id, 100, 130)
        self._finish_game(client, table_id, 100, 60)

        board = client.get(f"/api/tables/{table_id}/leaderboard", params={"period": "all"}).json()

        assert board["entries"] == [{
            "rank": 1,
            "player_name": "Alice",
            "user_id": "alice",
            "total_buyin": 200,
            "total_cashout": 190,
            "net": -10,
            "games_played": 2,
        }]

    def test_leaderboard_errors(self, client, table_id):
        assert client.get("/api/tables/missing/leaderboard").status_code == 404
        assert client.get(f"/api/tables/{table_id}/leaderboard", params={"period": "decade"}).status_code == 422
        both = client.get(f"/api/tables/{table_id}/leaderboard", params={
            "period": "week", "start": "2026-01-01T00:00:00",
        })
        assert both.status_code == 422

    def test_table_stats_and_games(self, client, table_id):
        self._finish_game(client, table_id, 100, 100)
        client.post("/api/games", json={"table_id": table_id})

        stats = client.get(f"/api/tables/{table_id}/stats").json()
        assert stats["total_games"] == 2
        assert stats["live_games"] == 1

        live = client.get(f"/api/tables/{table_id}/games", params={"status": "live"}).json()
        assert len(live) == 1
        assert live[0]["game_number"] == 2

        assert client.get("/api/tables/missing/games").status_code == 404

    def test_user_history_and_stats(self, client, table_id):
        game_id = self._finish_game(client, table_id, 100, 150)

        history = client.get("/api/users/alice/history").json()
        assert [h["game_id"] for h in history] == [game_id]
        assert history[0]["net"] == 50

        stats = client.get("/api/users/alice/stats").json()
        assert stats["wins"] == 1
        assert stats["biggest_win"] == 50
        assert stats["total_net"] == 50
