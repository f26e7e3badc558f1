from __future__ import annotations
import csv
import logging
from pathlib import Path
from typing import Iterable

from framework_inventory.application.inventory import Inventory
from framework_inventory.domain.entities import FrameworkFinding, InventoryItem, Project
from framework_inventory.domain.interfaces import IInventoryStorage
from .records import record_header, record_row

log = logging.getLogger(__name__)

PROJECTS_FILE = "projects.csv"
ITEMS_FILE    = "items.csv"
FINDINGS_FILE = "frameworks-found.csv"


class CsvInventoryStorage(IInventoryStorage):
    """
    Concrete implementation of IInventoryStorage writing three CSV files.

    Every file starts with a header row taken from the record's field
    names, so a run with no findings still produces a valid file.
    """

    def __init__(self, output_dir: Path | str = ".") -> None:
        self._output_dir = Path(output_dir)
        self._runs = 0

    def create_run(self, organization: str) -> int:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        self._runs += 1
        log.debug("Created CSV run #%d for %s in %s", self._runs, organization, self._output_dir)
        return self._runs

    def save(self, run_id: int, inventory: Inventory) -> None:
        self._write(PROJECTS_FILE, Project, inventory.projects)
        self._write(ITEMS_FILE, InventoryItem, inventory.items)
        self._write(FINDINGS_FILE, FrameworkFinding, inventory.findings)

    def finish_run(self, run_id: int, total: int, status: str, error: str | None = None) -> None:
        log.info("Finished CSV run #%d | status=%s | findings=%d | %s", run_id, status, total, self._output_dir / FINDINGS_FILE)

    def _write(self, filename: str, record_type: type, records: Iterable) -> None:
        path  = self._output_dir / filename
        count = 0
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(record_header(record_type))
            for record in records:
                writer.writerow(record_row(record))
                count += 1
        log.info("Wrote %d rows to %s", count, path)
