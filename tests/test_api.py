"""Tests for the weekgame HTTP API."""

import pytest
from fastapi.testclient import TestClient

from weekgame.api import WeekgameAPI, create_app
from weekgame.state import MemoryGameStore

from conftest import AUCTION_ROSTER, ISLAND_ROSTER


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def store():
    return MemoryGameStore()


@pytest.fixture
def client(store, tmp_path):
    """Test client over an in-memory store with a fixed seed."""
    app = create_app(store=store, config={"data_dir": str(tmp_path), "seed": 11})
    with TestClient(app) as client:
        yield client


@pytest.fixture
def island_id(client):
    response = client.post("/games/island", json={"roster": ISLAND_ROSTER, "name": "Isle"})
    game_id = response.json()["id"]
    for pid in ISLAND_ROSTER:
        client.post(f"/games/{game_id}/points", json={"participant_id": pid, "points": 5})
    return game_id


@pytest.fixture
def auction_id(client):
    response = client.post(
        "/games/auction",
        json={
            "roster": AUCTION_ROSTER,
            "pieces": [{"name": "Dawn"}, {"name": "Dusk", "artist": "Ada"}, {"name": "Noon"}],
            "starting_points": 10,
        },
    )
    return response.json()["id"]


# -----------------------------------------------------------------------------
# Games
# -----------------------------------------------------------------------------


class TestGames:
    """Tests for creating and listing games."""

    def test_health(self, client):
        """Health check reports ok."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "service": "weekgame-api"}

    def test_create_island(self, client):
        """Creating returns the stored state."""
        response = client.post("/games/island", json={"roster": ISLAND_ROSTER})
        assert response.status_code == 201
        data = response.json()
        assert data["game_type"] == "island"
        assert data["phase"] == "setup"
        assert set(data["participants"]) == set(ISLAND_ROSTER)

    def test_create_auction(self, client, auction_id):
        """Auction games are created with valued pieces."""
        data = client.get(f"/games/{auction_id}").json()
        assert data["game_type"] == "auction"
        assert len(data["pieces"]) == 3
        assert all(p["owner"]["kind"] == "unowned" for p in data["pieces"].values())

    def test_list(self, client, island_id, auction_id):
        """Both games are listed."""
        games = client.get("/games").json()
        assert {g["id"] for g in games} == {island_id, auction_id}

    def test_unknown_game(self, client):
        """Unknown games are 404s."""
        response = client.get("/games/nope")
        assert response.status_code == 404
        assert response.json()["code"] == "unknown_game"

    def test_bad_request_body(self, client):
        """Malformed requests are rejected by validation."""
        response = client.post("/games/island", json={"name": "no roster"})
        assert response.status_code == 422

    def test_render(self, client, auction_id):
        """Snapshots are served as SVG."""
        response = client.get(f"/games/{auction_id}/render")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("image/svg+xml")
        assert response.content.startswith(b"<svg")


# -----------------------------------------------------------------------------
# Turn lifecycle
# -----------------------------------------------------------------------------


class TestIslandTurn:
    """Tests for driving an island turn over HTTP."""

    def test_full_turn(self, client, island_id, store):
        """Begin, decide, step and end a turn."""
        begun = client.post(f"/games/{island_id}/turn/begin").json()
        assert begun["phase"] == "decision_window"
        assert begun["turn"] == 1

        decided = client.post(f"/games/{island_id}/decisions", json={"participant_id": "alice", "text": "Bob"})
        assert decided.status_code == 200
        assert "eliminate **Bob**" in decided.json()["replies"][0]

        step = client.post(f"/games/{island_id}/turn/step").json()
        assert step["payload"]["target_id"] == "bob"
        assert step["continue_processing"] is False

        ended = client.post(f"/games/{island_id}/turn/end").json()
        assert ended["phase"] == "settled"
        assert store.load(island_id).participants["bob"].eliminated

    def test_rejected_decision(self, client, island_id):
        """Rejected decisions are 422s with the reason."""
        client.post(f"/games/{island_id}/turn/begin")
        response = client.post(f"/games/{island_id}/decisions", json={"participant_id": "alice", "text": "Alice"})
        assert response.status_code == 422
        assert response.json()["code"] == "rejected"
        assert "yourself" in response.json()["error"]

    def test_wrong_phase(self, client, island_id):
        """Ending a turn that never began is a conflict."""
        response = client.post(f"/games/{island_id}/turn/end")
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_phase"

    def test_pending_blocks_end(self, client, island_id):
        """Ending with unresolved decisions is a conflict."""
        client.post(f"/games/{island_id}/turn/begin")
        client.post(f"/games/{island_id}/decisions", json={"participant_id": "alice", "text": "Bob"})
        response = client.post(f"/games/{island_id}/turn/end")
        assert response.status_code == 409

    def test_prize_grants_immunity(self, client, island_id):
        """An island prize lets the winner grant immunity."""
        client.post(f"/games/{island_id}/turn/begin")
        replies = client.post(f"/games/{island_id}/prizes", json={"participant_id": "alice"}).json()["replies"]
        assert "immunity" in replies[0]

        response = client.post(
            f"/games/{island_id}/actions",
            json={"actor_id": "alice", "kind": "text", "text": "grant Carol"},
        )
        assert "Carol" in response.json()["replies"][0]


class TestAuctionTurn:
    """Tests for driving an auction over HTTP."""

    def test_bidding(self, client, auction_id):
        """Open an auction, bid through actions and settle."""
        client.post(f"/games/{auction_id}/turn/begin")
        piece_id = client.get(f"/games/{auction_id}").json()["auctions"][0]["piece_id"]

        opened = client.post(f"/games/{auction_id}/auctions/{piece_id}/open")
        assert opened.status_code == 200
        assert "Place your bids" in opened.json()["narrative"][0]

        bid = client.post(
            f"/games/{auction_id}/actions",
            json={"actor_id": "alice", "kind": "button", "custom_id": f"game:bid:{piece_id}:0"},
        )
        assert "placed a bid" in bid.json()["replies"][0]

        stale = client.post(
            f"/games/{auction_id}/actions",
            json={"actor_id": "bob", "kind": "button", "custom_id": f"game:bid:{piece_id}:0"},
        )
        assert "already been topped" in stale.json()["replies"][0]

        closed = client.post(f"/games/{auction_id}/auctions/close").json()
        assert any("**Alice** won" in line for line in closed["narrative"])

        state = client.get(f"/games/{auction_id}").json()
        assert state["pieces"][piece_id]["owner"] == {"kind": "owned", "participant_id": "alice"}
        assert state["participants"]["alice"]["points"] == 9

    def test_fractional_points_rejected(self, client, auction_id):
        """Auction balances only take whole dollars."""
        response = client.post(f"/games/{auction_id}/points", json={"participant_id": "alice", "points": 1.5})
        assert response.status_code == 422
        assert response.json()["code"] == "bad_value"

    def test_auction_routes_need_auction(self, client, island_id):
        """Auction endpoints refuse island games."""
        response = client.post(f"/games/{island_id}/auctions/close")
        assert response.status_code == 422


class TestWeekgameAPI:
    """Tests for the API wrapper object."""

    def test_dispatcher_cached(self, store, tmp_path):
        """One dispatcher is kept per game."""
        api = WeekgameAPI(store=store, config={"data_dir": str(tmp_path)})
        runtime = api.manager.create_island_game(ISLAND_ROSTER)
        assert api.dispatcher(runtime.id) is api.dispatcher(runtime.id)
        api.shutdown()
