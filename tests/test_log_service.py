from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from app.core import settings
from app.services.log_service import _compress_detail, list_recent_logs, log_operation


class TestCompressDetail(unittest.TestCase):
    def test_large_detail_is_truncated(self) -> None:
        compressed = _compress_detail({"blob": "x" * 5000})
        self.assertTrue(compressed["_truncated"])
        self.assertGreater(compressed["_size"], 5000)
        self.assertEqual(4000, len(compressed["preview"]))

    def test_scalar_and_unserializable_detail(self) -> None:
        self.assertEqual({"value": 3}, _compress_detail(3))
        self.assertEqual({"value": "{'k': {1, 2}}"}, _compress_detail({"k": {1, 2}}))


class TestRecentLogs(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self._patch = patch.object(settings, "HA_LOG_PATH", Path(self._tmp.name) / "ops.jsonl")
        self._patch.start()

    def tearDown(self) -> None:
        self._patch.stop()
        self._tmp.cleanup()

    def test_newest_first_and_event_type_filter(self) -> None:
        log_operation(event_type="entity_analysis", source="api", action="analysis.entity", success=True)
        log_operation(event_type="ha_request", source="system", action="ha.request", success=False)
        log_operation(event_type="entity_analysis", source="api", action="analysis.dependencies")

        everything = list_recent_logs(limit=10)
        analysis_only = list_recent_logs(event_type="entity_analysis", limit=1)

        self.assertEqual(["analysis.dependencies", "ha.request", "analysis.entity"], [i.action for i in everything])
        self.assertEqual(["analysis.dependencies"], [i.action for i in analysis_only])

    def test_trace_id_filter(self) -> None:
        log_operation(event_type="entity_analysis", source="api", action="analysis.entity", trace_id="req-1")
        log_operation(event_type="entity_analysis", source="api", action="analysis.entity", trace_id="req-2")
        log_operation(event_type="entity_analysis", source="api", action="analysis.dependencies", trace_id="req-1")

        traced = list_recent_logs(trace_id="req-1")

        self.assertEqual(["analysis.dependencies", "analysis.entity"], [i.action for i in traced])
        self.assertTrue(all(i.trace_id == "req-1" for i in traced))

    def test_unreadable_lines_are_skipped(self) -> None:
        log_operation(event_type="entity_analysis", source="api", action="analysis.entity")
        with settings.HA_LOG_PATH.open("a", encoding="utf-8") as f:
            f.write("not json\n\n")

        self.assertEqual(["analysis.entity"], [i.action for i in list_recent_logs()])


if __name__ == "__main__":
    unittest.main()
