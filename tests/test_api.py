"""Tests for the FastAPI REST API layer.

Services run over the in-memory registry from conftest and are injected
into app_state directly; no lifespan, no database.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from tradejournal.api.app import create_app
from tradejournal.api.deps import app_state
from tradejournal.data.quotes import QuoteProvider

PREFIX = "/api/journal"


@pytest.fixture
def quotes() -> MagicMock:
    return MagicMock(spec=QuoteProvider)


@pytest.fixture
def client(memory_registry, events, book, focus, desk, quotes) -> TestClient:
    """TestClient in dev mode (no secret key) with services injected into app_state."""
    app = create_app(use_lifespan=False)

    app_state.config = None
    app_state.registry = memory_registry
    app_state.events = events
    app_state.positions = book
    app_state.focus = focus
    app_state.teams = desk
    app_state.quotes = quotes

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c

    # Cleanup
    app_state.registry = None
    app_state.events = None
    app_state.positions = None
    app_state.focus = None
    app_state.teams = None
    app_state.quotes = None


def _tcs(**overrides) -> dict:
    body = {
        "symbol": "TCS",
        "entryPrice": 3800,
        "quantity": 10,
        "entryDate": "2024-01-10",
        "status": "OPEN",
    }
    body.update(overrides)
    return body


def _as(user: str) -> dict:
    return {"X-User-Id": user}


# ------------------------------------------------------------------
# Positions
# ------------------------------------------------------------------


class TestPositions:
    def test_create_open(self, client: TestClient) -> None:
        resp = client.post(f"{PREFIX}/positions", json=_tcs())
        assert resp.status_code == 201
        data = resp.json()
        assert data["totalInvestment"] == 38000
        assert data["pnl"] == 0
        assert data["status"] == "OPEN"
        assert data["ownerId"] == "local"
        assert "votes" not in data

    def test_close_via_update(self, client: TestClient) -> None:
        pid = client.post(f"{PREFIX}/positions", json=_tcs()).json()["id"]
        resp = client.put(
            f"{PREFIX}/positions/{pid}",
            json={"status": "CLOSED", "exitPrice": 3900, "exitDate": "2024-01-20"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["pnl"] == 1000
        assert round(data["pnlPercentage"], 2) == 2.63
        assert data["currentPrice"] == 3900

    def test_closed_without_exit_price(self, client: TestClient) -> None:
        resp = client.post(f"{PREFIX}/positions", json=_tcs(status="CLOSED"))
        assert resp.status_code == 400
        data = resp.json()
        assert data["detail"] == "Validation failed"
        assert "exitPrice" in data["errors"]

    def test_wrong_type_is_a_400(self, client: TestClient) -> None:
        resp = client.post(f"{PREFIX}/positions", json=_tcs(entryPrice="lots"))
        assert resp.status_code == 400
        assert "entryPrice" in resp.json()["errors"]

    def test_close_endpoint_and_conflict(self, client: TestClient) -> None:
        pid = client.post(f"{PREFIX}/positions", json=_tcs()).json()["id"]
        body = {"exitPrice": 3700, "exitDate": "2024-02-01"}
        assert client.post(f"{PREFIX}/positions/{pid}/close", json=body).json()["pnl"] == -1000
        assert client.post(f"{PREFIX}/positions/{pid}/close", json=body).status_code == 409

    def test_not_found(self, client: TestClient) -> None:
        assert client.get(f"{PREFIX}/positions/404").status_code == 404

    def test_owner_isolation(self, client: TestClient) -> None:
        pid = client.post(f"{PREFIX}/positions", json=_tcs(), headers=_as("alice")).json()["id"]
        assert client.get(f"{PREFIX}/positions/{pid}", headers=_as("bob")).status_code == 404
        assert client.get(f"{PREFIX}/positions/{pid}", headers=_as("alice")).status_code == 200

    def test_list_and_filter(self, client: TestClient) -> None:
        client.post(f"{PREFIX}/positions", json=_tcs())
        client.post(f"{PREFIX}/positions", json=_tcs(symbol="INFY", entryDate="2024-02-01"))
        data = client.get(f"{PREFIX}/positions").json()
        assert [p["symbol"] for p in data["positions"]] == ["INFY", "TCS"]
        data = client.get(f"{PREFIX}/positions", params={"symbol": "tcs", "status": "open"}).json()
        assert data["count"] == 1

    def test_bad_status_filter(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/positions", params={"status": "PENDING"})
        assert resp.status_code == 400
        assert "status" in resp.json()["errors"]

    def test_delete(self, client: TestClient) -> None:
        pid = client.post(f"{PREFIX}/positions", json=_tcs()).json()["id"]
        assert client.delete(f"{PREFIX}/positions/{pid}").json() == {"ok": True, "id": pid}
        assert client.delete(f"{PREFIX}/positions/{pid}").status_code == 404

    def test_refresh_prices(self, client: TestClient, quotes: MagicMock) -> None:
        client.post(f"{PREFIX}/positions", json=_tcs())
        quotes.get_prices.return_value = {"TCS": Decimal("3850")}
        data = client.post(f"{PREFIX}/positions/refresh-prices").json()
        assert data["updated"] == 1
        assert data["positions"][0]["pnl"] == 500
        quotes.get_prices.assert_called_once_with(["TCS"])


# ------------------------------------------------------------------
# Focus stocks
# ------------------------------------------------------------------


class TestFocusStocks:
    def _create(self, client: TestClient, **overrides) -> dict:
        body = {"symbol": "INFY", "entryPrice": 1500, "targetPrice": 1600, "reason": "Breakout"}
        body.update(overrides)
        resp = client.post(f"{PREFIX}/focus-stocks", json=body)
        assert resp.status_code == 201
        return resp.json()

    def test_create(self, client: TestClient) -> None:
        data = self._create(client)
        assert data["potentialReturn"] == 100
        assert data["tradeTaken"] is False
        assert data["signal"] == "neutral"

    def test_take_creates_position(self, client: TestClient) -> None:
        sid = self._create(client)["id"]
        resp = client.post(
            f"{PREFIX}/focus-stocks/{sid}/take",
            json={"tradeDate": "2024-03-01", "entryPrice": 1510, "quantity": 5},
        )
        assert resp.status_code == 200
        assert resp.json()["tradeTaken"] is True
        [position] = client.get(f"{PREFIX}/positions").json()["positions"]
        assert (position["symbol"], position["entryPrice"], position["quantity"]) == ("INFY", 1510, 5)

    def test_take_merges(self, client: TestClient) -> None:
        client.post(f"{PREFIX}/positions", json=_tcs(symbol="INFY", entryPrice=1510, quantity=5))
        sid = self._create(client)["id"]
        client.post(
            f"{PREFIX}/focus-stocks/{sid}/take",
            json={"tradeDate": "2024-03-01", "entryPrice": 1530, "quantity": 5},
        )
        [position] = client.get(f"{PREFIX}/positions").json()["positions"]
        assert position["quantity"] == 10
        assert position["entryPrice"] == 1520

    def test_take_twice_conflicts(self, client: TestClient) -> None:
        sid = self._create(client)["id"]
        client.post(f"{PREFIX}/focus-stocks/{sid}/take", json={"tradeDate": "2024-03-01"})
        resp = client.post(f"{PREFIX}/focus-stocks/{sid}/take", json={"tradeDate": "2024-03-01"})
        assert resp.status_code == 409

    def test_take_needs_trade_date(self, client: TestClient) -> None:
        sid = self._create(client)["id"]
        resp = client.post(f"{PREFIX}/focus-stocks/{sid}/take", json={})
        assert resp.status_code == 400
        assert "tradeDate" in resp.json()["errors"]

    def test_failed_take_is_500_and_rolled_back(self, client: TestClient, memory_registry) -> None:
        sid = self._create(client)["id"]
        memory_registry.fail_on = "update_focus_stock"
        resp = client.post(f"{PREFIX}/focus-stocks/{sid}/take", json={"tradeDate": "2024-03-01"})
        memory_registry.fail_on = None
        assert resp.status_code == 500
        assert client.get(f"{PREFIX}/positions").json()["count"] == 0

    def test_revert(self, client: TestClient) -> None:
        sid = self._create(client)["id"]
        client.post(f"{PREFIX}/focus-stocks/{sid}/take", json={"tradeDate": "2024-03-01", "quantity": 2})
        resp = client.post(f"{PREFIX}/focus-stocks/{sid}/revert")
        assert resp.status_code == 200
        assert resp.json()["tradeTaken"] is False
        assert client.get(f"{PREFIX}/positions").json()["count"] == 0
        assert client.post(f"{PREFIX}/focus-stocks/{sid}/revert").status_code == 409

    def test_list_pending_and_taken(self, client: TestClient) -> None:
        taken = self._create(client)["id"]
        self._create(client, symbol="TCS")
        client.post(f"{PREFIX}/focus-stocks/{taken}/take", json={"tradeDate": "2024-03-01"})
        assert client.get(f"{PREFIX}/focus-stocks/pending").json()["count"] == 1
        data = client.get(f"{PREFIX}/focus-stocks", params={"tradeTaken": "true"}).json()
        assert [s["id"] for s in data["focusStocks"]] == [taken]

    def test_tag_and_price(self, client: TestClient) -> None:
        sid = self._create(client, stopLossPrice=1450)["id"]
        assert client.put(f"{PREFIX}/focus-stocks/{sid}/tag", json={"tag": "worked"}).json()["tag"] == "worked"
        assert client.put(f"{PREFIX}/focus-stocks/{sid}/tag", json={"tag": "lucky"}).status_code == 400
        data = client.put(f"{PREFIX}/focus-stocks/{sid}/price", json={"currentPrice": 1440}).json()
        assert data["signal"] == "red"

    def test_stats(self, client: TestClient) -> None:
        self._create(client)
        data = client.get(f"{PREFIX}/focus-stocks/stats").json()
        assert data["total"] == 1
        assert data["pending"] == 1
        assert data["conversionRate"] == 0


# ------------------------------------------------------------------
# Teams
# ------------------------------------------------------------------


class TestTeams:
    def _team(self, client: TestClient) -> int:
        resp = client.post(f"{PREFIX}/teams", json={"name": "Alpha"}, headers=_as("alice"))
        assert resp.status_code == 201
        team_id = resp.json()["id"]
        client.post(
            f"{PREFIX}/teams/{team_id}/members",
            json={"userId": "carol", "role": "viewer"},
            headers=_as("alice"),
        )
        return team_id

    def test_create_and_get(self, client: TestClient) -> None:
        team_id = self._team(client)
        data = client.get(f"{PREFIX}/teams/{team_id}", headers=_as("carol")).json()
        assert data["name"] == "Alpha"
        assert {m["userId"]: m["role"] for m in data["members"]} == {"alice": "admin", "carol": "viewer"}
        assert client.get(f"{PREFIX}/teams/{team_id}", headers=_as("mallory")).status_code == 404

    def test_duplicate_name(self, client: TestClient) -> None:
        self._team(client)
        resp = client.post(f"{PREFIX}/teams", json={"name": "alpha"}, headers=_as("bob"))
        assert resp.status_code == 400
        assert resp.json()["errors"] == {"name": "Team name already exists"}

    def test_team_position_and_vote(self, client: TestClient) -> None:
        team_id = self._team(client)
        resp = client.post(
            f"{PREFIX}/teams/{team_id}/positions",
            json=_tcs(strategy="Breakout", riskLevel="high"),
            headers=_as("alice"),
        )
        assert resp.status_code == 201
        pid = resp.json()["id"]
        assert resp.json()["createdBy"] == "alice"

        resp = client.post(
            f"{PREFIX}/teams/{team_id}/positions/{pid}/vote",
            json={"vote": "buy"},
            headers=_as("carol"),
        )
        assert resp.status_code == 200
        assert resp.json()["voteSummary"] == {"buy": 1, "sell": 0, "hold": 0, "total": 1}

    def test_viewer_forbidden(self, client: TestClient) -> None:
        team_id = self._team(client)
        resp = client.post(f"{PREFIX}/teams/{team_id}/positions", json=_tcs(), headers=_as("carol"))
        assert resp.status_code == 403

    def test_stats(self, client: TestClient) -> None:
        team_id = self._team(client)
        pid = client.post(
            f"{PREFIX}/teams/{team_id}/positions", json=_tcs(), headers=_as("alice"),
        ).json()["id"]
        client.post(
            f"{PREFIX}/teams/{team_id}/positions/{pid}/close",
            json={"exitPrice": 3900, "exitDate": "2024-01-20"},
            headers=_as("alice"),
        )
        data = client.get(f"{PREFIX}/teams/{team_id}/stats", headers=_as("carol")).json()
        assert data["realizedPnl"] == 1000
        team = client.get(f"{PREFIX}/teams/{team_id}", headers=_as("alice")).json()
        assert team["stats"]["totalTrades"] == 1


# ------------------------------------------------------------------
# Stats, events, system
# ------------------------------------------------------------------


class TestStats:
    def test_summary_and_monthly(self, client: TestClient) -> None:
        client.post(f"{PREFIX}/positions", json=_tcs(status="CLOSED", exitPrice=3900, exitDate="2024-01-20"))
        client.post(f"{PREFIX}/positions", json=_tcs(entryDate="2024-02-05"))
        summary = client.get(f"{PREFIX}/stats/summary").json()
        assert summary["totalPositions"] == 2
        assert summary["realizedPnl"] == 1000
        assert summary["winRate"] == 100
        months = client.get(f"{PREFIX}/stats/monthly", params={"year": 2024}).json()["months"]
        assert months == [{
            "month": "January", "year": 2024, "totalPnl": 1000.0,
            "tradeCount": 1, "avgPnlPercentage": months[0]["avgPnlPercentage"],
        }]

    def test_empty_summary(self, client: TestClient) -> None:
        assert client.get(f"{PREFIX}/stats/summary").json()["winRate"] == 0


class TestSystem:
    def test_health(self, client: TestClient) -> None:
        data = client.get(f"{PREFIX}/system/health").json()
        assert data["status"] == "healthy"
        assert data["database"] is True

    def test_health_degraded(self, client: TestClient, memory_registry) -> None:
        memory_registry.healthy = False
        data = client.get(f"{PREFIX}/system/health").json()
        assert data["status"] == "degraded"
        assert data["database"] is False

    def test_events_are_per_owner(self, client: TestClient) -> None:
        client.post(f"{PREFIX}/positions", json=_tcs(), headers=_as("alice"))
        client.post(f"{PREFIX}/positions", json=_tcs(), headers=_as("bob"))
        data = client.get(f"{PREFIX}/events", headers=_as("alice")).json()
        assert [e["type"] for e in data["events"]] == ["POSITION_CREATED"]

    def test_auth_check_dev_mode(self, client: TestClient) -> None:
        data = client.get(f"{PREFIX}/auth/check").json()
        assert data == {"authenticated": True, "userId": "local"}
