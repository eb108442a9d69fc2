from onyx.backup import export_backup, import_backup, referenced_images
from onyx.ledger import ExecutionRequest


def _make_legacy_backup():
    return {
        "version": "3.0",
        "history": [
            {
                "id": 1000,
                "strategyId": "default_pa",
                "direction": "LONG",
                "risk": 100,
                "realizedProfit": 40,
                "percentClosed": 100,
                "status": "WIN",
                "journal": [
                    {"timestamp": 1002, "type": "CLOSE", "percentClosed": 100, "profitBanked": 40, "imageUri": "/old/device/chart1.jpg"},
                ],
                "tags": ["Trend"],
            }
        ],
        "activeTrades": [],
        "tags": ["Trend", "Custom"],
    }


class TestReferencedImages:
    def test_collects_both_shapes_once(self):
        trades = [
            {"journal": [{"imageUris": ["a.jpg", "b.jpg"]}, {"imageUri": "c.jpg"}]},
            {"journal": [{"imageUris": ["a.jpg"]}, {"imageUris": []}]},
        ]
        assert referenced_images(trades) == ["a.jpg", "b.jpg", "c.jpg"]


class TestExport:
    def test_contains_full_state(self, ledger):
        trade = ledger.execute("long")
        ledger.submit_execution(ExecutionRequest(trade.id, "FULL", 100, ["charts/x.jpg"]), "25")
        ledger.execute("short")

        data = export_backup(ledger)
        assert data["version"] == "4.1"
        assert len(data["history"]) == 1
        assert len(data["activeTrades"]) == 1
        assert data["imagePaths"] == ["charts/x.jpg"]
        assert data["strategies"][0]["id"] == "default_pa"
        assert data["tags"] == ledger.tags.to_list()
        assert "timestamp" in data


class TestImport:
    def test_legacy_image_is_normalised(self, ledger):
        parsed = import_backup(_make_legacy_backup())
        assert set(parsed) == {"history", "active_trades", "tags"}
        assert parsed["history"][0].journal[0].image_uris == ("/old/device/chart1.jpg",)

        ledger.apply_imported_data(**parsed)
        assert [t.id for t in ledger.history] == [1000]
        assert ledger.tags.to_list() == ["Trend", "Custom"]
        assert [s.id for s in ledger.strategies] == ["default_pa"]

    def test_images_relocated_to_chart_dir(self):
        parsed = import_backup(_make_legacy_backup(), chart_dir="/data/charts")
        assert parsed["history"][0].journal[0].image_uris == ("/data/charts/chart1.jpg",)

    def test_new_ids_follow_imported_ones(self, ledger):
        data = _make_legacy_backup()
        data["history"][0]["id"] = 99999999999999
        ledger.apply_imported_data(**import_backup(data))
        assert ledger.execute("long").id > 99999999999999

    def test_export_then_import_restores_trades(self, ledger):
        trade = ledger.execute("long")
        ledger.stop_loss_hit(trade.id)
        parsed = import_backup(export_backup(ledger))
        assert parsed["history"] == ledger.history
        assert parsed["strategies"] == ledger.strategies
