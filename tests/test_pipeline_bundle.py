import unittest
import os
import json
import glob
import tempfile
import datetime
import pandas as pd
from unittest.mock import MagicMock, patch
import sys

# Ensure project root is in path
current_dir = os.path.dirname(os.path.abspath(__file__))
parent_dir = os.path.dirname(current_dir)
sys.path.insert(0, parent_dir)

import main
from modules.errors import InvalidDateError

SAMPLES = [
    {"date": "2024-05-20", "value": 0.61},
    {"date": "2024-01-10", "value": 0.22},
    {"date": "2024-02-15", "value": None},
    {"date": "2024-03-01", "value": 0.25},
    {"date": "2024-04-12", "value": 0.58},
    {"date": "2024-04-12", "value": 0.60},
]


def ready_source():
    source = MagicMock()
    source.is_ready.return_value = True
    return source


class TestRunBundle(unittest.TestCase):
    """
    Run Bundle Contract of the batch pipeline.
    Verifies:
        1. Mandatory Artifacts Existence (CSV, JSON, GeoJSON, PDF).
        2. Contract Validity (Schema, FeatureCollection, PDF Header).
        3. Manifest Reference Integrity.
    """

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.output_root = self.temp_dir.name

        patcher = patch("main.get_ndvi_timeseries")
        self.fetch = patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self.temp_dir.cleanup()

    def run_pipeline(self, **kwargs):
        kwargs.setdefault("start_date", "2024-01-01")
        kwargs.setdefault("end_date", "2024-06-30")
        return main.run_pipeline(source=ready_source(), output_root=self.output_root, **kwargs)

    def test_run_bundle_contract(self):
        """Case: Successful run writes every artifact and a consistent manifest."""
        self.fetch.return_value = SAMPLES
        manifest = self.run_pipeline()

        found_manifests = glob.glob(os.path.join(self.output_root, "runs", "*", "run_manifest.json"))
        self.assertEqual(len(found_manifests), 1, "No manifest found. Run did not produce traceability.")
        with open(found_manifests[0]) as f:
            self.assertEqual(json.load(f), manifest)

        self.assertEqual(manifest["status"], "SUCCESS")
        self.assertEqual(set(manifest["artifacts"]), {"ndvi_timeseries", "change_assessment", "aoi_assessment", "pdf_report"})
        for key, artifact in manifest["artifacts"].items():
            path = os.path.join(self.output_root, artifact["path"])
            self.assertTrue(os.path.exists(path), f"Artifact {key} missing at {path}")

        snapshot = os.path.join(self.output_root, manifest["config_snapshot_path"])
        self.assertTrue(os.path.exists(snapshot))
        self.assertEqual(len(manifest["config_snapshot_sha256"]), 64)

        self.assertEqual(manifest["evaluation"]["method"], "split_mean")
        self.assertEqual(manifest["source"]["image_count"], len(SAMPLES))
        self.assertEqual(manifest["source"]["date_range"], "2024-01-01 to 2024-06-30")

        summary = manifest["summary"]
        self.assertEqual(summary["sample_count"], 4)
        self.assertEqual(summary["excluded_count"], 1)
        self.assertEqual(summary["duplicates_merged"], 1)
        self.assertTrue(summary["change_detected"])
        self.assertEqual(summary["date_range_start"], "2024-01-10")
        self.assertEqual(summary["date_range_end"], "2024-05-20")

    def test_artifact_contents(self):
        """Case: CSV schema, GeoJSON FeatureCollection and PDF header."""
        self.fetch.return_value = SAMPLES
        manifest = self.run_pipeline()
        artifacts = {k: os.path.join(self.output_root, v["path"]) for k, v in manifest["artifacts"].items()}

        df = pd.read_csv(artifacts["ndvi_timeseries"])
        self.assertEqual(list(df.columns), ["date", "value", "status"])
        self.assertEqual(df["date"].tolist(), ["2024-01-10", "2024-02-15", "2024-03-01", "2024-04-12", "2024-05-20"])
        self.assertEqual(df["status"].tolist(), ["valid", "excluded", "valid", "valid", "valid"])
        self.assertAlmostEqual(df.loc[3, "value"], 0.59)

        with open(artifacts["aoi_assessment"]) as f:
            geojson = json.load(f)
        self.assertEqual(geojson["type"], "FeatureCollection")
        self.assertEqual(geojson["features"][0]["geometry"]["type"], "Polygon")
        self.assertIn("change_detected", geojson["features"][0]["properties"])

        with open(artifacts["change_assessment"]) as f:
            self.assertEqual(json.load(f), manifest["summary"])

        with open(artifacts["pdf_report"], "rb") as f:
            self.assertEqual(f.read(5), b"%PDF-")

    def test_no_data_run(self):
        """Case: Every acquisition masked -> NO_DATA bundle without assessment artifacts."""
        self.fetch.return_value = [{"date": "2024-01-10", "value": None}, {"date": "2024-02-10", "value": None}]
        manifest = self.run_pipeline()

        self.assertEqual(manifest["status"], "NO_DATA")
        self.assertIsNone(manifest["summary"])
        self.assertEqual(set(manifest["artifacts"]), {"ndvi_timeseries", "pdf_report"})

        df = pd.read_csv(os.path.join(self.output_root, manifest["artifacts"]["ndvi_timeseries"]["path"]))
        self.assertEqual(df["status"].tolist(), ["excluded", "excluded"])

    def test_invalid_date_writes_nothing(self):
        """Case: Unparseable provider date aborts before any artifact is written."""
        self.fetch.return_value = [{"date": "2024-01-10", "value": 0.3}, {"date": "10/02/2024", "value": 0.4}]
        with self.assertRaises(InvalidDateError):
            self.run_pipeline()
        self.assertFalse(os.path.exists(os.path.join(self.output_root, "runs")))

    def test_source_initialized_when_not_ready(self):
        """Case: A source that is not ready is initialized before fetching."""
        self.fetch.return_value = SAMPLES
        source = MagicMock()
        source.is_ready.return_value = False
        main.run_pipeline(start_date="2024-01-01", end_date="2024-06-30", source=source, output_root=self.output_root)
        source.initialize.assert_called_once()

    def test_start_date_only_keeps_start(self):
        """Case: Only start_date given -> the window runs from it to today."""
        self.fetch.return_value = SAMPLES
        main.run_pipeline(start_date="2020-01-01", source=ready_source(), output_root=self.output_root)

        _, start, end = self.fetch.call_args[0]
        self.assertEqual(start, "2020-01-01")
        self.assertEqual(end, datetime.date.today())

    def test_end_date_only_uses_lookback(self):
        """Case: Only end_date given -> the window covers the lookback before it."""
        self.fetch.return_value = SAMPLES
        main.run_pipeline(end_date="2024-06-30", source=ready_source(), output_root=self.output_root)

        _, start, end = self.fetch.call_args[0]
        self.assertEqual(start, datetime.date(2023, 6, 30))
        self.assertEqual(end, datetime.date(2024, 6, 30))

    def test_default_window(self):
        """Case: Without dates the window covers the configured lookback."""
        start, end = main.default_window(datetime.date(2024, 6, 30), months=12)
        self.assertEqual((start, end), (datetime.date(2023, 6, 30), datetime.date(2024, 6, 30)))


if __name__ == "__main__":
    unittest.main()
