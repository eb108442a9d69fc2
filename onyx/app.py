"""
app.py
------

Flask application exposing the journal over a small JSON API. The UI
layer drives every ledger operation through these routes; each mutating
route persists the affected ledger before responding. `/export` returns
the period-filtered trades of the current strategy as CSV for the
document/export layer.

To run the application:
    1. Install the package (`pip install -e .`).
    2. Execute `python -m onyx.app`.
    3. Navigate to http://localhost:5004/api/trades.
"""

import csv
import io
import logging
from typing import Optional

from flask import Flask, Response, jsonify, request

from .analytics import PERIODS, compute_analytics, compute_daily_pnl, equity_curve, filter_trades_by_period, paginate
from .backup import export_backup, import_backup
from .coinlore import CoinloreClient
from .config import DB_PATH, LOCAL_TZ, SECRET_KEY
from .database import JournalDB, load_portfolio, load_trade_ledger, save_portfolio, save_trade_ledger
from .ledger import ExecutionRequest
from .model_builder import compute_model_stats
from .models import EXEC_FULL, EXEC_PARTIAL, EXEC_SL, Strategy, _to_int
from .portfolio import PriceLookup
from .simulator import run_simulation

logger = logging.getLogger(__name__)

EXEC_TYPES = {EXEC_PARTIAL, EXEC_FULL, EXEC_SL}


def _error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _period_arg() -> str:
    period = (request.args.get("period") or "ALL").upper()
    return period if period in PERIODS else "ALL"


def create_app(db_path: Optional[str] = None, price_source: Optional[PriceLookup] = None) -> Flask:
    app = Flask(__name__)
    app.config["SECRET_KEY"] = SECRET_KEY
    db = JournalDB(db_path or DB_PATH)
    ledger = load_trade_ledger(db, tz=LOCAL_TZ)
    portfolio = load_portfolio(db, price_source=price_source or CoinloreClient())
    app.extensions["onyx"] = {"db": db, "ledger": ledger, "portfolio": portfolio}

    def commit_trades():
        save_trade_ledger(db, ledger)

    def commit_portfolio():
        save_portfolio(db, portfolio)

    # ---------- trades ----------
    @app.route("/api/trades", methods=["GET"])
    def list_trades():
        period = _period_arg()
        return jsonify(
            {
                "active": [t.to_dict() for t in ledger.strategy_active()],
                "history": [t.to_dict() for t in filter_trades_by_period(ledger.strategy_history(), period, tz=LOCAL_TZ)],
                "period": period,
            }
        )

    @app.route("/api/trades", methods=["POST"])
    def open_trade():
        body = request.get_json(silent=True) or {}
        trade = ledger.execute(body.get("direction"), body.get("risk"))
        commit_trades()
        return jsonify(trade.to_dict()), 201

    @app.route("/api/trades/<int:trade_id>/executions", methods=["POST"])
    def submit_execution(trade_id: int):
        body = request.get_json(silent=True) or {}
        kind = str(body.get("type") or EXEC_PARTIAL).upper()
        if kind not in EXEC_TYPES:
            return _error(f"type must be one of {sorted(EXEC_TYPES)}")
        result = ledger.submit_execution(
            ExecutionRequest(
                trade_id=trade_id,
                type=kind,
                percent=body.get("percent") or 0,
                image_uris=body.get("imageUris") or [],
                note=body.get("note") or "",
            ),
            body.get("profit", ""),
        )
        if result.trade is None:
            return _error("trade is not active", 404)
        commit_trades()
        return jsonify({"closedFull": result.closed_full, "isWin": result.is_win, "trade": result.trade.to_dict()})

    @app.route("/api/trades/<int:trade_id>/stop-loss", methods=["POST"])
    def stop_loss(trade_id: int):
        result = ledger.stop_loss_hit(trade_id)
        if result.trade is None:
            return _error("trade is not active", 404)
        commit_trades()
        return jsonify({"closedFull": result.closed_full, "isWin": result.is_win, "trade": result.trade.to_dict()})

    @app.route("/api/trades/<int:trade_id>/breakeven", methods=["POST"])
    def breakeven(trade_id: int):
        trade = ledger.toggle_breakeven(trade_id)
        if trade is None:
            return _error("trade is not active", 404)
        commit_trades()
        return jsonify(trade.to_dict())

    @app.route("/api/trades/<int:trade_id>/tags", methods=["POST"])
    def toggle_tag(trade_id: int):
        body = request.get_json(silent=True) or {}
        trade = ledger.toggle_tag(trade_id, str(body.get("tag") or ""))
        if trade is None:
            return _error("unknown trade or tag", 404)
        commit_trades()
        return jsonify(trade.to_dict())

    @app.route("/api/trades/<int:trade_id>/journal/<int:index>/note", methods=["PUT"])
    def edit_note(trade_id: int, index: int):
        body = request.get_json(silent=True) or {}
        trade = ledger.save_edited_note(trade_id, index, str(body.get("text") or ""))
        if trade is None:
            return _error("unknown trade or journal entry", 404)
        commit_trades()
        return jsonify(trade.to_dict())

    # ---------- tags / strategies ----------
    @app.route("/api/tags", methods=["GET", "POST"])
    def tags():
        if request.method == "POST":
            body = request.get_json(silent=True) or {}
            if ledger.create_tag(str(body.get("tag") or "")):
                commit_trades()
        return jsonify(ledger.tags.to_list())

    @app.route("/api/strategies", methods=["GET"])
    def list_strategies():
        return jsonify(
            {
                "current": ledger.current_strategy_id,
                "strategies": [s.to_dict() for s in ledger.strategies],
            }
        )

    @app.route("/api/strategies", methods=["POST"])
    def add_strategy():
        strategy = ledger.add_strategy()
        commit_trades()
        return jsonify(strategy.to_dict()), 201

    @app.route("/api/strategies/<strategy_id>", methods=["PUT"])
    def save_strategy(strategy_id: str):
        body = request.get_json(silent=True) or {}
        strategy = Strategy.from_dict({**body, "id": strategy_id})
        if not ledger.save_strategy(strategy):
            return _error("unknown strategy", 404)
        commit_trades()
        return jsonify(strategy.to_dict())

    @app.route("/api/strategies/<strategy_id>", methods=["DELETE"])
    def delete_strategy(strategy_id: str):
        if not ledger.delete_strategy(strategy_id):
            return _error("strategy cannot be deleted", 409)
        commit_trades()
        return jsonify({"current": ledger.current_strategy_id})

    @app.route("/api/strategies/<strategy_id>/select", methods=["POST"])
    def select_strategy(strategy_id: str):
        if not ledger.select_strategy(strategy_id):
            return _error("unknown strategy", 404)
        commit_trades()
        return jsonify({"current": ledger.current_strategy_id})

    # ---------- analytics ----------
    @app.route("/api/analytics", methods=["GET"])
    def analytics():
        history = ledger.strategy_history()
        period_trades = filter_trades_by_period(history, _period_arg(), tz=LOCAL_TZ)
        stats = compute_analytics(period_trades, history, ledger.tags)
        page_trades, pages = paginate(stats.daily_stats, _to_int(request.args.get("page"), 1))
        out = stats.to_dict()
        out["dailyStats"] = [t.to_dict() for t in page_trades]
        out["pages"] = pages
        return jsonify(out)

    @app.route("/api/calendar", methods=["GET"])
    def calendar():
        history = ledger.strategy_history()
        return jsonify(
            {
                "days": [d.to_dict() for d in compute_daily_pnl(history, LOCAL_TZ)],
                "equity": [{"date": day, "equity": value} for day, value in equity_curve(history, LOCAL_TZ)],
            }
        )

    @app.route("/api/models", methods=["POST"])
    def model_stats():
        body = request.get_json(silent=True) or {}
        stats = compute_model_stats(ledger.strategy_history(), body.get("tags") or [])
        return jsonify(stats.to_dict() if stats else None)

    @app.route("/api/models/strategy", methods=["POST"])
    def model_to_strategy():
        body = request.get_json(silent=True) or {}
        strategy = ledger.create_strategy_from_model(body.get("tags") or [])
        if strategy is None:
            return _error("select at least one tag")
        commit_trades()
        return jsonify(strategy.to_dict()), 201

    @app.route("/api/simulate", methods=["POST"])
    def simulate():
        body = request.get_json(silent=True) or {}
        result = run_simulation(body.get("balance"), body.get("winRate"), body.get("rr"), body.get("trades"))
        return jsonify(result.to_dict())

    # ---------- portfolio ----------
    @app.route("/api/portfolio", methods=["GET"])
    def get_portfolio():
        return jsonify(
            {
                **portfolio.analytics().to_dict(),
                "history": [s.to_dict() for s in portfolio.snapshots],
            }
        )

    @app.route("/api/portfolio", methods=["POST"])
    def add_investment():
        body = request.get_json(silent=True) or {}
        inv = portfolio.add_investment(
            asset_name=str(body.get("assetName") or ""),
            entry_price=body.get("entryPrice"),
            quantity=body.get("quantity"),
            ticker=str(body.get("ticker") or ""),
            category=str(body.get("category") or ""),
            entry_date=str(body.get("entryDate") or ""),
            coinlore_id=body.get("coinloreId") or None,
            thesis_notes=str(body.get("thesisNotes") or ""),
            image_uris=body.get("imageUris") or [],
        )
        if inv is None:
            return _error("asset name, a known category, a positive entry price and a positive quantity are required")
        commit_portfolio()
        return jsonify(inv.to_dict()), 201

    @app.route("/api/portfolio/<int:investment_id>/price", methods=["PUT"])
    def update_price(investment_id: int):
        body = request.get_json(silent=True) or {}
        inv = portfolio.update_current_price(investment_id, body.get("price"))
        if inv is None:
            return _error("unknown investment or invalid price")
        commit_portfolio()
        return jsonify(inv.to_dict())

    @app.route("/api/portfolio/<int:investment_id>/images", methods=["POST"])
    def add_images(investment_id: int):
        body = request.get_json(silent=True) or {}
        inv = portfolio.update_investment_images(investment_id, body.get("imageUris") or [])
        if inv is None:
            return _error("unknown investment", 404)
        commit_portfolio()
        return jsonify(inv.to_dict())

    @app.route("/api/portfolio/<int:investment_id>", methods=["DELETE"])
    def delete_investment(investment_id: int):
        if not portfolio.delete_investment(investment_id):
            return _error("unknown investment", 404)
        commit_portfolio()
        return "", 204

    @app.route("/api/portfolio/refresh", methods=["POST"])
    def refresh_prices():
        updated = portfolio.refresh_live_prices()
        if updated:
            commit_portfolio()
        return jsonify({"updated": updated})

    # ---------- backup / export ----------
    @app.route("/api/backup", methods=["GET"])
    def backup():
        return jsonify(export_backup(ledger))

    @app.route("/api/backup", methods=["POST"])
    def restore():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error("backup body must be a JSON object")
        ledger.apply_imported_data(**import_backup(data, request.args.get("chartDir")))
        commit_trades()
        return jsonify({"history": len(ledger.history), "active": len(ledger.active)})

    @app.route("/export", methods=["GET"], endpoint="export")
    def export_trades():
        trades = filter_trades_by_period(ledger.strategy_history(), _period_arg(), tz=LOCAL_TZ)
        out = io.StringIO()
        w = csv.writer(out)
        w.writerow(["id", "date", "time", "direction", "risk", "realized_profit", "status", "tags", "notes"])
        for t in trades:
            notes = " | ".join(j.note for j in t.journal if j.note)
            w.writerow([
                t.id,
                t.date_str,
                t.time_str,
                t.direction,
                t.risk,
                t.realized_profit,
                t.status,
                ";".join(t.tags),
                notes.replace("\n", " ").strip(),
            ])
        out.seek(0)
        return Response(
            out.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=trades.csv"},
        )

    return app


# Run directly
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app = create_app()
    app.run(host="0.0.0.0", port=5004, debug=True, use_reloader=False)
