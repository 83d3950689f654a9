"""Append-only QA sink for failed extraction tasks.

Each failure becomes one newline-delimited JSON object:
{"timestamp", "url", "error", "partial_data"}.
"""

import json
import logging
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from src.models.data_models import QAEntry

log = logging.getLogger(__name__)


class QASink:
    """
    Thread-safe NDJSON writer for manual review of unparseable pages.

    Entries are flushed on every write. If the file cannot be written the
    entry is emitted through the structured logger (or the module logger
    when none is injected) instead, so no failure goes unrecorded.
    """

    def __init__(self, path: str = "out/qa_log.jsonl", logger=None):
        self.path = Path(path)
        self.logger = logger
        self._lock = threading.Lock()
        self.entries_written = 0

    def record(
        self,
        url: str,
        error: str,
        partial_data: Optional[Dict[str, Any]] = None,
    ) -> QAEntry:
        """
        Append a QA entry for a failed task.

        Args:
            url: URL of the failed task
            error: Error message
            partial_data: Partially parsed recipe fields, if any

        Returns:
            The entry that was recorded
        """
        entry = QAEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            url=url,
            error=error,
            partial_data=partial_data,
        )
        line = json.dumps(asdict(entry), ensure_ascii=False, default=str)

        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, 'a', encoding='utf-8') as f:
                    f.write(line + "\n")
                    f.flush()
                self.entries_written += 1
            except OSError as e:
                if self.logger is None:
                    log.error("qa_write_error path=%s error=%s entry=%s", self.path, e, line)
                else:
                    self.logger.log("qa_write_error", level=logging.ERROR, path=str(self.path), error=str(e), entry=line)

        return entry
