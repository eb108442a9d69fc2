"""
End-to-end tests of the JSON API using Flask's test client against a
temporary database and a fake price source.
"""

import pytest

from onyx.app import create_app


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "api.db")


@pytest.fixture
def client(db_path, prices):
    app = create_app(db_path=db_path, price_source=prices)
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
    app.extensions["onyx"]["db"].close()


def _open_trade(client, direction="long", risk=None):
    body = {"direction": direction}
    if risk is not None:
        body["risk"] = risk
    r = client.post("/api/trades", json=body)
    assert r.status_code == 201
    return r.get_json()


class TestTradeRoutes:
    def test_partial_then_stop_loss(self, client):
        trade = _open_trade(client)
        assert trade["direction"] == "LONG"
        assert trade["risk"] == 100

        r = client.post(f"/api/trades/{trade['id']}/executions", json={"type": "PARTIAL", "percent": 50, "profit": "40"})
        assert r.status_code == 200
        assert r.get_json()["closedFull"] is False

        r = client.post(f"/api/trades/{trade['id']}/stop-loss")
        body = r.get_json()
        assert body["closedFull"] is True
        assert body["isWin"] is False
        assert body["trade"]["status"] == "LOSS"
        assert body["trade"]["realizedProfit"] == -10

        listing = client.get("/api/trades").get_json()
        assert listing["active"] == []
        assert [t["id"] for t in listing["history"]] == [trade["id"]]

    def test_bad_execution_type(self, client):
        trade = _open_trade(client)
        r = client.post(f"/api/trades/{trade['id']}/executions", json={"type": "HALF"})
        assert r.status_code == 400

    def test_unknown_trade(self, client):
        assert client.post("/api/trades/1/stop-loss").status_code == 404
        assert client.post("/api/trades/1/breakeven").status_code == 404
        assert client.post("/api/trades/1/tags", json={"tag": "Trend"}).status_code == 404

    def test_breakeven_tag_and_note(self, client):
        trade = _open_trade(client, risk=40)
        assert trade["risk"] == 40
        assert client.post(f"/api/trades/{trade['id']}/breakeven").get_json()["isBreakeven"] is True
        assert client.post(f"/api/trades/{trade['id']}/tags", json={"tag": "Trend"}).get_json()["tags"] == ["Trend"]

        client.post(f"/api/trades/{trade['id']}/stop-loss")
        r = client.put(f"/api/trades/{trade['id']}/journal/0/note", json={"text": "held the line"})
        assert r.get_json()["journal"][0]["note"] == "held the line"
        assert r.get_json()["journal"][0]["type"] == "STOP_BE"
        assert client.put(f"/api/trades/{trade['id']}/journal/5/note", json={"text": "x"}).status_code == 404

    def test_state_survives_restart(self, client, db_path, prices):
        trade = _open_trade(client)
        client.post("/api/tags", json={"tag": "News"})

        again = create_app(db_path=db_path, price_source=prices)
        ledger = again.extensions["onyx"]["ledger"]
        assert [t.id for t in ledger.active] == [trade["id"]]
        assert "News" in ledger.tags
        again.extensions["onyx"]["db"].close()


class TestStrategyRoutes:
    def test_last_strategy_is_protected(self, client):
        assert client.delete("/api/strategies/default_pa").status_code == 409

    def test_add_edit_select_delete(self, client):
        added = client.post("/api/strategies").get_json()
        assert client.get("/api/strategies").get_json()["current"] == added["id"]

        r = client.put(f"/api/strategies/{added['id']}", json={"name": "Breakouts", "risk": 50, "rules": []})
        assert r.get_json()["name"] == "Breakouts"
        assert _open_trade(client)["risk"] == 50

        assert client.post("/api/strategies/default_pa/select").get_json()["current"] == "default_pa"
        assert client.post("/api/strategies/nope/select").status_code == 404
        assert client.delete(f"/api/strategies/{added['id']}").get_json()["current"] == "default_pa"

    def test_model_promotion(self, client):
        assert client.post("/api/models/strategy", json={"tags": []}).status_code == 400
        r = client.post("/api/models/strategy", json={"tags": ["Trend", "Chop"]})
        assert r.status_code == 201
        assert r.get_json()["name"] == "Model: Trend + Chop"


class TestAnalyticsRoutes:
    def test_stat_cards_and_pages(self, client):
        win = _open_trade(client)
        client.post(f"/api/trades/{win['id']}/executions", json={"type": "FULL", "percent": 100, "profit": 50})
        loss = _open_trade(client)
        client.post(f"/api/trades/{loss['id']}/executions", json={"type": "FULL", "percent": 100, "profit": -25})

        stats = client.get("/api/analytics?period=ALL&page=1").get_json()
        assert stats["netProfit"] == 25
        assert stats["winRate"] == 50
        assert stats["avgRR"] == "2.00"
        assert stats["profitFactor"] == "2.00"
        assert stats["pages"] == 1
        assert [t["id"] for t in stats["dailyStats"]] == [loss["id"], win["id"]]

        calendar = client.get("/api/calendar").get_json()
        assert sum(d["pnl"] for d in calendar["days"]) == 25

    def test_model_stats(self, client):
        assert client.post("/api/models", json={"tags": []}).get_json() is None
        assert client.post("/api/models", json={"tags": ["Trend"]}).get_json() == {"count": 0, "winRate": 0.0, "netProfit": 0}

    def test_simulate(self, client):
        r = client.post("/api/simulate", json={"balance": "10000", "winRate": "50", "rr": "2", "trades": "0"})
        assert r.get_json() == {"final": 10000, "growth": 0, "dd": 0, "expected": 10000}

    def test_csv_export(self, client):
        trade = _open_trade(client)
        client.post(f"/api/trades/{trade['id']}/stop-loss")
        r = client.get("/export?period=ALL")
        assert r.mimetype == "text/csv"
        lines = r.get_data(as_text=True).strip().splitlines()
        assert lines[0] == "id,date,time,direction,risk,realized_profit,status,tags,notes"
        assert lines[1].startswith(str(trade["id"]))


class TestPortfolioRoutes:
    def test_merge_and_refresh(self, client, prices):
        lot = {"assetName": "Bitcoin", "ticker": "BTC", "category": "Crypto", "entryPrice": 10000, "quantity": 2, "coinloreId": "90"}
        first = client.post("/api/portfolio", json=lot).get_json()
        merged = client.post("/api/portfolio", json={**lot, "entryPrice": 20000}).get_json()
        assert merged["id"] == first["id"]
        assert merged["quantity"] == 4
        assert merged["entryPrice"] == 15000

        prices.prices = {"90": 30000.0}
        assert client.post("/api/portfolio/refresh").get_json() == {"updated": 1}

        summary = client.get("/api/portfolio").get_json()
        assert summary["currentValue"] == 120000
        assert summary["totalInvested"] == 60000
        assert len(summary["history"]) == 1

    def test_rejected_lot(self, client):
        r = client.post("/api/portfolio", json={"assetName": "X", "entryPrice": 0, "quantity": 1})
        assert r.status_code == 400
        r = client.post("/api/portfolio", json={"assetName": "X", "entryPrice": 5, "quantity": 1, "category": "Bonds"})
        assert r.status_code == 400
        assert client.get("/api/portfolio").get_json()["positions"] == []

    def test_price_images_delete(self, client):
        inv = client.post("/api/portfolio", json={"assetName": "Gold", "entryPrice": 1900, "quantity": 1}).get_json()
        assert client.put(f"/api/portfolio/{inv['id']}/price", json={"price": 2000}).get_json()["currentPrice"] == 2000
        assert client.put(f"/api/portfolio/{inv['id']}/price", json={"price": -1}).status_code == 400
        assert client.post(f"/api/portfolio/{inv['id']}/images", json={"imageUris": ["g.png"]}).get_json()["imageUris"] == ["g.png"]
        assert client.delete(f"/api/portfolio/{inv['id']}").status_code == 204
        assert client.delete(f"/api/portfolio/{inv['id']}").status_code == 404


class TestBackupRoutes:
    def test_export_and_restore(self, client):
        trade = _open_trade(client)
        client.post(f"/api/trades/{trade['id']}/stop-loss")
        backup = client.get("/api/backup").get_json()
        assert backup["version"] == "4.1"

        backup["activeTrades"] = []
        r = client.post("/api/backup", json=backup)
        assert r.get_json() == {"history": 1, "active": 0}
        assert client.post("/api/backup", json=[1, 2]).status_code == 400
