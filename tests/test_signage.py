from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fetch_utils import FetchResult
from signage import (
    SIGNAGE_LAYERS,
    SignageDownloadError,
    download_layer,
    download_signage,
    layers_for,
    rail_crossing_from_attributes,
    regulatory_sign_from_attributes,
    warning_sign_from_attributes,
)


def page(count: int, start: int = 0) -> dict:
    return {
        "features": [
            {"attributes": {"ROAD": f"H{start + i:03d}", "ROAD_NAME": "Great Eastern Hwy", "START_SLK": 1.5, "SLK": 2.25}}
            for i in range(count)
        ]
    }


class ScriptedFetch:
    """Returns the scripted results in order and records each call."""

    def __init__(self, results: list[FetchResult]):
        self.results = list(results)
        self.calls: list[dict] = []

    def __call__(self, url: str, params: dict | None = None, timeout: float = 45.0) -> FetchResult:
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        return self.results.pop(0)


class FullPages:
    def __init__(self):
        self.calls = 0

    def __call__(self, url: str, params: dict | None = None, timeout: float = 45.0) -> FetchResult:
        self.calls += 1
        return FetchResult(ok=True, data=page(500))


class FlattenTests(unittest.TestCase):
    def test_rail_defaults(self) -> None:
        self.assertEqual(
            rail_crossing_from_attributes({}),
            {
                "road_id": "",
                "road_name": "",
                "slk": 0,
                "carriageway": "Single",
                "crossing_type": "Unknown",
                "crossing_no": "",
            },
        )

    def test_rail_maps_fields(self) -> None:
        attrs = {"ROAD": "H005", "ROAD_NAME": "Great Eastern Hwy", "START_SLK": 12.3, "CWY": "Left", "XING_TYPE": "Boom Gates", "XING_NO": "X42"}
        row = rail_crossing_from_attributes(attrs)
        self.assertEqual(row["slk"], 12.3)
        self.assertEqual(row["carriageway"], "Left")
        self.assertEqual(row["crossing_type"], "Boom Gates")
        self.assertEqual(row["crossing_no"], "X42")

    def test_sign_defaults_replace_nulls(self) -> None:
        attrs = {"ROAD": None, "ROAD_NAME": None, "SLK": None, "CWY": None, "REGULATORY_SIGN_TYPE": None}
        row = regulatory_sign_from_attributes(attrs)
        self.assertEqual(row["road_id"], "")
        self.assertEqual(row["slk"], 0)
        self.assertEqual(row["carriageway"], "Single")
        self.assertEqual(row["sign_type"], "Other")
        self.assertEqual(row["panel_design"], "")
        self.assertEqual(row["panel_meaning"], "")

    def test_warning_uses_warning_type(self) -> None:
        row = warning_sign_from_attributes({"WARNING_SIGN_TYPE": "Curve", "REGULATORY_SIGN_TYPE": "Stop"})
        self.assertEqual(row["sign_type"], "Curve")


class LayerSelectionTests(unittest.TestCase):
    def test_all_runs_in_fixed_order(self) -> None:
        self.assertEqual([layer_def.key for layer_def in layers_for("all")], ["rail", "regulatory", "warning"])

    def test_single_layer(self) -> None:
        self.assertEqual([layer_def.key for layer_def in layers_for("warning")], ["warning"])

    def test_unknown_layer_rejected(self) -> None:
        with self.assertRaises(ValueError):
            layers_for("speed")
        with self.assertRaises(ValueError):
            layers_for(None)

    def test_layer_names_are_case_sensitive(self) -> None:
        with self.assertRaises(ValueError):
            layers_for("RAIL")
        self.assertEqual([layer_def.key for layer_def in layers_for(" rail ")], ["rail"])


class DownloadLayerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_stops_on_short_page(self) -> None:
        fetch = ScriptedFetch([FetchResult(ok=True, data=page(500)), FetchResult(ok=True, data=page(100, start=500))])
        outcome = download_layer(SIGNAGE_LAYERS["rail"], self.data_dir, fetch=fetch)

        self.assertEqual(outcome, {"count": 600, "file": "rail-crossings.json"})
        self.assertEqual(len(fetch.calls), 2)
        self.assertEqual([c["params"]["resultOffset"] for c in fetch.calls], [0, 500])
        self.assertTrue(all(c["params"]["resultRecordCount"] == 500 for c in fetch.calls))
        self.assertTrue(all(c["timeout"] == 45 for c in fetch.calls))
        self.assertTrue(fetch.calls[0]["url"].endswith("/15/query"))

        written = json.loads((self.data_dir / "rail-crossings.json").read_text())
        self.assertEqual(list(written), ["railCrossings"])
        self.assertEqual(len(written["railCrossings"]), 600)

    def test_exact_full_page_requests_one_more(self) -> None:
        fetch = ScriptedFetch([FetchResult(ok=True, data=page(500)), FetchResult(ok=True, data={"features": []})])
        outcome = download_layer(SIGNAGE_LAYERS["regulatory"], self.data_dir, fetch=fetch)
        self.assertEqual(outcome["count"], 500)
        self.assertEqual(len(fetch.calls), 2)

    def test_missing_features_key_ends_pagination(self) -> None:
        fetch = ScriptedFetch([FetchResult(ok=True, data={})])
        outcome = download_layer(SIGNAGE_LAYERS["warning"], self.data_dir, fetch=fetch)
        self.assertEqual(outcome, {"count": 0, "file": "warning-signs.json"})
        written = json.loads((self.data_dir / "warning-signs.json").read_text())
        self.assertEqual(written, {"warningSigns": []})

    def test_rail_safety_ceiling(self) -> None:
        fetch = FullPages()
        outcome = download_layer(SIGNAGE_LAYERS["rail"], self.data_dir, fetch=fetch)
        # Offsets 0..5000 are fetched; advancing to 5500 passes the ceiling.
        self.assertEqual(fetch.calls, 11)
        self.assertEqual(outcome["count"], 5500)

    def test_failed_page_writes_nothing(self) -> None:
        fetch = ScriptedFetch([FetchResult(ok=True, data=page(500)), FetchResult(ok=False, error="HTTP 502")])
        outcome = download_layer(SIGNAGE_LAYERS["rail"], self.data_dir, fetch=fetch)
        self.assertEqual(outcome, {"error": "HTTP 502"})
        self.assertFalse((self.data_dir / "rail-crossings.json").exists())

    def test_failed_page_keeps_previous_file(self) -> None:
        previous = self.data_dir / "warning-signs.json"
        previous.write_text('{"warningSigns": [{"road_id": "M031"}]}')
        fetch = ScriptedFetch([FetchResult(ok=False, error="read timed out")])
        download_layer(SIGNAGE_LAYERS["warning"], self.data_dir, fetch=fetch)
        self.assertEqual(json.loads(previous.read_text()), {"warningSigns": [{"road_id": "M031"}]})

    def test_successful_run_overwrites(self) -> None:
        previous = self.data_dir / "regulatory-signs.json"
        previous.write_text('{"regulatorySigns": [1, 2, 3]}')
        fetch = ScriptedFetch([FetchResult(ok=True, data=page(1))])
        download_layer(SIGNAGE_LAYERS["regulatory"], self.data_dir, fetch=fetch)
        self.assertEqual(len(json.loads(previous.read_text())["regulatorySigns"]), 1)


class DownloadSignageTests(unittest.TestCase):
    def test_all_layers_report_independently(self) -> None:
        fetch = ScriptedFetch(
            [
                FetchResult(ok=True, data=page(3)),
                FetchResult(ok=False, error="HTTP 500"),
                FetchResult(ok=True, data=page(2)),
            ]
        )
        with tempfile.TemporaryDirectory() as tmp:
            data_dir = Path(tmp) / "nested" / "data"
            summary = download_signage("all", data_dir, fetch=fetch)
            self.assertTrue((data_dir / "rail-crossings.json").exists())
            self.assertFalse((data_dir / "regulatory-signs.json").exists())
            self.assertTrue((data_dir / "warning-signs.json").exists())

        self.assertTrue(summary["success"])
        self.assertEqual(summary["message"], "Signage data downloaded successfully")
        self.assertEqual(summary["results"]["railCrossings"], {"count": 3, "file": "rail-crossings.json"})
        self.assertEqual(summary["results"]["regulatorySigns"], {"error": "HTTP 500"})
        self.assertEqual(summary["results"]["warningSigns"], {"count": 2, "file": "warning-signs.json"})
        self.assertTrue(summary["timestamp"].endswith("Z"))

    def test_exception_carries_finished_categories(self) -> None:
        fetch = ScriptedFetch([FetchResult(ok=True, data=page(3))])
        real_download = download_layer

        def download(layer_def, data_dir, fetch):
            if layer_def.key == "regulatory":
                raise OSError("disk full")
            return real_download(layer_def, data_dir, fetch=fetch)

        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch("signage.download_layer", side_effect=download):
                with self.assertRaises(SignageDownloadError) as ctx:
                    download_signage("all", Path(tmp), fetch=fetch)
            self.assertTrue((Path(tmp) / "rail-crossings.json").exists())

        self.assertEqual(str(ctx.exception), "disk full")
        self.assertIsInstance(ctx.exception.__cause__, OSError)
        self.assertEqual(ctx.exception.results, {"railCrossings": {"count": 3, "file": "rail-crossings.json"}})


if __name__ == "__main__":
    unittest.main()
