"""
Tests for the HTTP API
"""

import pytest

from api import create_app
from sources.sentiment import SentimentAnalyzer


@pytest.fixture
def client(controller, test_config):
    analyzer = SentimentAnalyzer(simulated_delay_sec=0)
    app = create_app(controller, analyzer=analyzer, cfg=test_config)
    app.testing = True
    return app.test_client()


class TestReadEndpoints:
    def test_state(self, client):
        resp = client.get("/api/state")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["user_id"] == "local"
        assert data["current_round"]["id"] == 1
        assert data["current_round"]["status"] == "LIVE"
        assert data["selected_asset"] == "CELO"
        assert data["balance"] == 1000.0
        assert data["accepting_stakes"] is True
        assert len(data["price_history"]) == 40

    def test_state_for_other_user(self, client):
        data = client.get("/api/state?user_id=bob").get_json()

        assert data["user_id"] == "bob"

    def test_assets(self, client):
        data = client.get("/api/assets").get_json()

        assert [a["symbol"] for a in data["assets"]][:2] == ["CELO", "BTC"]
        assert 30 in data["durations"]
        assert data["selected_asset"] == "CELO"
        assert data["selected_duration"] == 30

    def test_history_and_leaderboard(self, client, controller, clock):
        client.post("/api/bets", json={"position": "UP", "amount": 10})
        controller.update_price("0.70")
        clock.advance(30)
        controller.check_round_expiry()

        history = client.get("/api/history").get_json()["bets"]
        board = client.get("/api/leaderboard").get_json()

        assert len(history) == 1
        assert history[0]["won"] is True
        assert history[0]["claimable"] is True
        assert board["me"]["wins"] == 1
        assert board["leaders"][0]["user_id"] == "local"


class TestBetEndpoint:
    def test_place_bet(self, client):
        resp = client.post("/api/bets", json={"position": "up", "amount": 25})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        assert data["position"] == "UP"
        assert data["amount"] == 25.0
        assert data["balance"] == 975.0

    def test_rejected_bet_is_400(self, client):
        resp = client.post("/api/bets", json={"position": "DOWN", "amount": 5000})

        assert resp.status_code == 400
        data = resp.get_json()
        assert data["success"] is False
        assert data["balance"] == 1000.0

    @pytest.mark.parametrize(
        "body",
        [
            {"position": "SIDEWAYS", "amount": 10},
            {"position": "NONE", "amount": 10},
            {"position": "UP"},
            {"position": "UP", "amount": "lots"},
            {"position": "UP", "amount": 10, "extra": 1},
        ],
    )
    def test_malformed_body_is_400(self, client, body):
        resp = client.post("/api/bets", json=body)

        assert resp.status_code == 400
        data = resp.get_json()
        assert data["error"] == "Invalid request"
        assert data["details"]

    def test_missing_body_is_400(self, client):
        assert client.post("/api/bets").status_code == 400


class TestClaimEndpoint:
    def test_claim_winning_bet(self, client, controller, clock):
        client.post("/api/bets", json={"position": "UP", "amount": 10})
        controller.update_price("0.70")
        clock.advance(30)
        controller.check_round_expiry()

        resp = client.post("/api/claims/1")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["payout"] == 10.0
        assert data["balance"] == 1000.0

    def test_claim_open_round_is_400(self, client):
        resp = client.post("/api/claims/1")

        assert resp.status_code == 400
        assert "not ended" in resp.get_json()["reason"]

    def test_claim_unknown_round_is_400(self, client):
        assert client.post("/api/claims/99").status_code == 400


class TestSelectionEndpoints:
    def test_select_asset(self, client, controller):
        resp = client.post("/api/asset", json={"symbol": "btc"})

        assert resp.status_code == 200
        assert resp.get_json()["changed"] is True
        assert controller.selected_asset.symbol == "BTC"

    def test_state_and_bet_while_waiting_for_new_asset_price(self, client):
        client.post("/api/bets", json={"position": "UP", "amount": 10})
        client.post("/api/asset", json={"symbol": "BTC"})

        state = client.get("/api/state").get_json()
        bet = client.post("/api/bets", json={"position": "UP", "amount": 10})
        claim = client.post("/api/claims/1")

        assert state["current_round"] is None
        assert state["accepting_stakes"] is False
        assert bet.status_code == 400
        assert claim.status_code == 200
        assert claim.get_json()["refund"] is True
        assert claim.get_json()["balance"] == 1000.0

    def test_unknown_asset_is_400(self, client):
        assert client.post("/api/asset", json={"symbol": "NOPE"}).status_code == 400

    def test_select_duration(self, client, controller):
        resp = client.post("/api/duration", json={"seconds": 300})

        assert resp.status_code == 200
        assert controller.engine.duration_sec == 300
        # The running round keeps its own duration
        assert controller.engine.current_round.duration_sec == 30

    @pytest.mark.parametrize("seconds, status", [(45, 400), ("300", 400), (-30, 400)])
    def test_invalid_duration(self, client, seconds, status):
        assert client.post("/api/duration", json={"seconds": seconds}).status_code == status


class TestAnalysisEndpoint:
    def test_simulated_analysis(self, client):
        resp = client.post("/api/analysis")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["asset"] == "CELO"
        assert data["sentiment"] in ("BULLISH", "BEARISH")
        assert 60 <= data["confidence"] < 90

    def test_without_analyzer_is_503(self, controller, test_config):
        client = create_app(controller, cfg=test_config).test_client()

        assert client.post("/api/analysis").status_code == 503
