# csv_sink.py -- Flat CSV storage backend
# One header row, then one row per flow. The file is opened per insert and
# closed again, so nothing is held open between packets.

from __future__ import annotations

import csv
import logging
from pathlib import Path

from ..models import FlowRecord
from .base import COLUMNS, record_to_row, row_to_record

log = logging.getLogger(__name__)


class CSVSink:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def connect(self) -> bool:
        return self.initialize_schema()

    def initialize_schema(self) -> bool:
        if self.path.exists() and self.path.stat().st_size > 0:
            log.info("CSV file is ready: %s", self.path)
            return True
        try:
            if self.path.parent != Path():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", newline="") as f:
                csv.writer(f).writerow(COLUMNS)
        except OSError as e:
            log.error("Cannot create CSV file %s: %s", self.path, e)
            return False
        log.info("CSV file created: %s", self.path)
        return True

    def check_reachability(self) -> bool:
        try:
            with self.path.open("a", newline=""):
                pass
        except OSError as e:
            log.error("Cannot open CSV file %s: %s", self.path, e)
            return False
        log.info("CSV file is accessible: %s", self.path)
        return True

    def insert_flow(self, record: FlowRecord) -> bool:
        try:
            with self.path.open("a", newline="") as f:
                csv.writer(f).writerow(record_to_row(record))
        except (OSError, csv.Error) as e:
            log.error("Cannot append to CSV file %s: %s", self.path, e)
            return False
        return True

    def fetch_flows(self, limit: int | None = None) -> list[FlowRecord]:
        if not self.path.exists():
            return []
        with self.path.open(newline="") as f:
            rows = [row_to_record(row) for row in csv.DictReader(f)]
        return rows if limit is None else rows[:limit]

    def close(self) -> None:
        pass
