"""Unit tests for the QA sink."""

import json
import logging
import threading
from unittest.mock import Mock

from src.monitoring.qa_sink import QASink


def read_lines(path):
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f]


class TestQASink:

    def test_appends_one_json_object_per_failure(self, tmp_path):
        path = tmp_path / "nested" / "qa_log.jsonl"
        sink = QASink(str(path))

        sink.record("https://example.com/recipes/a", "HTTP 500")
        sink.record("https://example.com/recipes/b", "no strategy matched", {"title": "Crème Brûlée"})

        entries = read_lines(path)
        assert [e["url"] for e in entries] == [
            "https://example.com/recipes/a",
            "https://example.com/recipes/b",
        ]
        assert entries[0]["partial_data"] is None
        assert entries[1]["partial_data"] == {"title": "Crème Brûlée"}
        assert set(entries[0]) == {"timestamp", "url", "error", "partial_data"}
        assert sink.entries_written == 2

    def test_existing_file_is_appended(self, tmp_path):
        path = tmp_path / "qa_log.jsonl"
        QASink(str(path)).record("https://example.com/recipes/a", "first")
        QASink(str(path)).record("https://example.com/recipes/b", "second")

        assert len(read_lines(path)) == 2

    def test_returns_entry(self, tmp_path):
        entry = QASink(str(tmp_path / "qa.jsonl")).record("https://example.com/recipes/a", "boom")
        assert entry.url == "https://example.com/recipes/a"
        assert entry.timestamp.endswith("+00:00")

    def test_write_failure_goes_to_logger(self, tmp_path):
        logger = Mock()
        # A directory where the file should be makes open() fail
        path = tmp_path / "qa_log.jsonl"
        path.mkdir()
        sink = QASink(str(path), logger=logger)

        sink.record("https://example.com/recipes/a", "HTTP 500")

        logger.log.assert_called_once()
        assert logger.log.call_args.args[0] == "qa_write_error"
        assert logger.log.call_args.kwargs["level"] == logging.ERROR
        assert "recipes/a" in logger.log.call_args.kwargs["entry"]
        assert sink.entries_written == 0

    def test_write_failure_without_logger_goes_to_module_log(self, tmp_path, caplog):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        sink = QASink(str(blocker / "qa_log.jsonl"))

        with caplog.at_level(logging.ERROR, logger="src.monitoring.qa_sink"):
            entry = sink.record("https://example.com/recipes/a", "HTTP 500")

        assert entry.url == "https://example.com/recipes/a"
        assert sink.entries_written == 0
        assert "qa_write_error" in caplog.text
        assert "recipes/a" in caplog.text

    def test_concurrent_writers_produce_whole_lines(self, tmp_path):
        path = tmp_path / "qa_log.jsonl"
        sink = QASink(str(path))

        def write(worker):
            for i in range(20):
                sink.record(f"https://example.com/recipes/{worker}-{i}", "x" * 200)

        threads = [threading.Thread(target=write, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(read_lines(path)) == 160
