"""End-to-end API tests against an in-memory database."""

from decimal import Decimal


def _portfolio(client, owner="alice"):
    resp = client.get(f"/api/portfolio/{owner}")
    assert resp.status_code == 200, resp.text
    return resp.json()


def _money(value) -> Decimal:
    return Decimal(value)


def test_health(client):
    assert client.get("/api/system/health").json() == {"status": "ok"}


def test_trade_lifecycle_drives_the_snapshot(client):
    assert client.put("/api/portfolio/alice/baseline", json={"initial_balance": 10000}).status_code == 200

    resp = client.post(
        "/api/trades",
        json={"owner_id": "alice", "symbol": "aapl", "quantity": 10, "entry_price": 100, "stop_loss": 90},
    )
    assert resp.status_code == 201, resp.text
    trade = resp.json()
    assert trade["symbol"] == "AAPL"
    assert trade["state"] == "open"

    body = _portfolio(client)
    snap = body["snapshot"]
    assert body["stale"] is False
    assert _money(snap["current_equity"]) == 10000
    assert snap["open_count"] == 1
    assert snap["trades"][0]["price_missing"] is True

    assert client.put("/api/quotes/aapl", json={"price": 110}).status_code == 200
    snap = _portfolio(client)["snapshot"]
    assert _money(snap["unrealized_pnl"]) == 100
    assert _money(snap["current_equity"]) == 10100
    assert _money(snap["percent_change"]) == 1

    resp = client.post(f"/api/trades/{trade['id']}/close", json={"closed_price": 130})
    assert resp.status_code == 200
    assert resp.json()["state"] == "closed_profit"

    snap = _portfolio(client)["snapshot"]
    assert _money(snap["realized_profit"]) == 300
    assert _money(snap["realized_loss"]) == 0
    assert _money(snap["current_equity"]) == 10300
    assert _money(snap["average_risk_reward"]) == 3
    assert snap["has_risk_reward"] is True
    assert _money(snap["win_rate"]) == 100
    assert snap["closed_profit_count"] == 1


def test_personal_and_community_scopes_are_separate(client):
    client.put("/api/portfolio/community/baseline", json={"initial_balance": 50000})
    client.post("/api/trades", json={"owner_id": "community", "symbol": "MSFT", "quantity": 5, "entry_price": 400})
    client.post("/api/trades", json={"owner_id": "alice", "symbol": "TSLA", "quantity": 2, "entry_price": 200})

    community = _portfolio(client, "community")["snapshot"]
    mine = _portfolio(client, "alice")["snapshot"]

    assert [t["symbol"] for t in community["trades"]] == ["MSFT"]
    assert [t["symbol"] for t in mine["trades"]] == ["TSLA"]
    assert _money(mine["baseline"]) == 0
    assert _money(mine["percent_change"]) == 0

    owners = [c["owner_id"] for c in client.get("/api/system/controllers").json()]
    assert owners == ["alice", "community"]


def test_quote_set_replacement(client):
    client.post("/api/trades", json={"owner_id": "alice", "symbol": "AAPL", "quantity": 1, "entry_price": 100})
    client.post("/api/trades", json={"owner_id": "alice", "symbol": "MSFT", "quantity": 1, "entry_price": 100})

    resp = client.put("/api/quotes", json={"quotes": {"aapl": 120, "msft": 90}})
    assert resp.json() == {"status": "ok", "symbols": 2}
    assert _money(_portfolio(client)["snapshot"]["unrealized_pnl"]) == 10

    client.put("/api/quotes", json={"quotes": {"AAPL": 125}})
    snap = _portfolio(client)["snapshot"]
    assert _money(snap["unrealized_pnl"]) == 25
    assert [q["symbol"] for q in client.get("/api/quotes").json()] == ["AAPL"]


def test_losing_close_is_signed(client):
    client.put("/api/portfolio/alice/baseline", json={"initial_balance": 1000})
    trade = client.post(
        "/api/trades", json={"owner_id": "alice", "symbol": "AAPL", "quantity": 4, "entry_price": 50}
    ).json()
    client.post(f"/api/trades/{trade['id']}/close", json={"closed_price": 45})

    snap = _portfolio(client)["snapshot"]
    assert _money(snap["realized_loss"]) == -20
    assert _money(snap["current_equity"]) == 980
    assert _money(snap["win_rate"]) == 0
    assert snap["has_risk_reward"] is False


def test_validation_errors(client):
    bad_stop = {"owner_id": "alice", "symbol": "AAPL", "quantity": 1, "entry_price": 100, "stop_loss": 110}
    assert client.post("/api/trades", json=bad_stop).status_code == 422

    zero_qty = {"owner_id": "alice", "symbol": "AAPL", "quantity": 0, "entry_price": 100}
    assert client.post("/api/trades", json=zero_qty).status_code == 422

    assert client.put("/api/quotes/AAPL", json={"price": -1}).status_code == 422
    assert client.put("/api/quotes", json={"quotes": {"AAPL": 0}}).status_code == 422


def test_close_errors(client):
    trade = client.post(
        "/api/trades", json={"owner_id": "alice", "symbol": "AAPL", "quantity": 1, "entry_price": 100}
    ).json()

    assert client.post("/api/trades/999/close", json={"closed_price": 10}).status_code == 404
    assert client.post(
        f"/api/trades/{trade['id']}/close", params={"owner_id": "bob"}, json={"closed_price": 10}
    ).status_code == 404

    assert client.post(f"/api/trades/{trade['id']}/close", json={"closed_price": 110}).status_code == 200
    assert client.post(f"/api/trades/{trade['id']}/close", json={"closed_price": 120}).status_code == 409


def test_trade_listing_and_delete(client):
    first = client.post(
        "/api/trades", json={"owner_id": "alice", "symbol": "AAPL", "quantity": 1, "entry_price": 100}
    ).json()
    client.post("/api/trades", json={"owner_id": "alice", "symbol": "MSFT", "quantity": 1, "entry_price": 100})
    _portfolio(client)

    assert len(client.get("/api/trades", params={"owner_id": "alice"}).json()) == 2
    assert client.get(f"/api/trades/{first['id']}").json()["symbol"] == "AAPL"

    assert client.delete(f"/api/trades/{first['id']}").status_code == 204
    assert client.get(f"/api/trades/{first['id']}").status_code == 404
    assert client.delete(f"/api/trades/{first['id']}").status_code == 404

    snap = _portfolio(client)["snapshot"]
    assert [t["symbol"] for t in snap["trades"]] == ["MSFT"]


def test_baseline_endpoints(client):
    assert client.get("/api/portfolio/alice/baseline").status_code == 404

    resp = client.put("/api/portfolio/alice/baseline", json={"initial_balance": 2500})
    assert resp.json()["initial_balance"] == 2500
    assert client.get("/api/portfolio/alice/baseline").json()["owner_id"] == "alice"


def test_refresh_and_release(client):
    client.put("/api/portfolio/alice/baseline", json={"initial_balance": 100})
    first = _portfolio(client)

    resp = client.post("/api/portfolio/alice/refresh")
    assert resp.status_code == 200
    assert resp.json()["version"] > first["version"]

    assert client.delete("/api/portfolio/alice").status_code == 204
    assert client.delete("/api/portfolio/alice").status_code == 404
    assert client.get("/api/system/controllers").json() == []


def test_risk_assessment(client):
    resp = client.post(
        "/api/risk/assess",
        json={
            "entry_price": 100,
            "stop_loss": 110,
            "risk_amount": 100,
            "direction": "short",
            "take_profit": 80,
            "portfolio_size": 10000,
        },
    )
    body = resp.json()
    assert resp.status_code == 200
    assert body["sizable"] is True
    assert _money(body["shares"]) == 10
    assert _money(body["position_value"]) == 1000
    assert _money(body["reward_risk_ratio"]) == 2
    assert _money(body["portfolio_risk_percent"]) == 1


def test_risk_assessment_cannot_size(client):
    body = client.post(
        "/api/risk/assess", json={"entry_price": 50, "stop_loss": 50, "risk_amount": 100}
    ).json()

    assert body["sizable"] is False
    assert body["shares"] is None
    assert body["reward_risk_ratio"] is None


def test_scheduler_status_when_disabled(client):
    status = client.get("/api/system/scheduler").json()
    assert status["running"] is False


def test_refresh_recovers_a_failed_first_load(client, monkeypatch):
    from portfolio_service.services.sources import SqlTradeSource

    async def unavailable(self, owner_id):
        raise RuntimeError("database unavailable")

    client.put("/api/portfolio/alice/baseline", json={"initial_balance": 100})
    monkeypatch.setattr(SqlTradeSource, "list_trades", unavailable)

    assert client.get("/api/portfolio/alice").status_code == 503
    # Reused scope, still no view
    assert client.get("/api/portfolio/alice").status_code == 503

    monkeypatch.undo()
    resp = client.post("/api/portfolio/alice/refresh")

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["stale"] is False
    assert body["version"] == 1
    assert _money(body["snapshot"]["baseline"]) == 100
