# tests/test_diagnostics.py

"""Tests for diagnostic artifact capture."""

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from shopsavvy.storage.diagnostics import DiagnosticsWriter


class TestDiagnosticsWriter(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self._tmp.name) / "diagnostics"
        self.writer = DiagnosticsWriter(self.directory)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_capture_writes_record_and_artifacts(self) -> None:
        path = self.writer.capture(
            "shopee",
            "No results",
            url="https://shopee.ph/search?keyword=red",
            markup="<html></html>",
            screenshot=b"\x89PNG",
            extra={"attempt": 2},
        )
        assert path is not None
        self.assertEqual(len(list(self.directory.iterdir())), 3)
        record = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(record["source"], "shopee")
        self.assertEqual(record["reason"], "No results")
        self.assertEqual(record["attempt"], 2)
        self.assertEqual(len(record["artifacts"]), 2)
        self.assertTrue(path.name.startswith("shopee_no_results_"))

    def test_capture_without_markup_writes_only_record(self) -> None:
        path = self.writer.capture("temu", "blocked")
        assert path is not None
        self.assertEqual(list(self.directory.iterdir()), [path])

    def test_stem_sanitises_reason(self) -> None:
        stem = self.writer.stem("lazada", "!!!")
        self.assertTrue(stem.name.startswith("lazada_failure_"))

    def test_write_failure_returns_none(self) -> None:
        with patch.object(
            Path, "mkdir", side_effect=PermissionError("read-only")
        ):
            self.assertIsNone(self.writer.capture("temu", "blocked"))


if __name__ == "__main__":
    unittest.main()
