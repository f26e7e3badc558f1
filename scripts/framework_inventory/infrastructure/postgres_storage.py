from __future__ import annotations
import logging
from typing import Iterable

from psycopg2.extras import execute_values

from framework_inventory.application.inventory import Inventory
from framework_inventory.domain.entities import FrameworkFinding, InventoryItem, Project
from framework_inventory.domain.interfaces import IInventoryStorage
from .records import record_header, record_values

log = logging.getLogger(__name__)

# Table per record type; columns follow the dataclass field names
TABLES: dict[type, str] = {
    Project:          "projects",
    InventoryItem:    "items",
    FrameworkFinding: "framework_findings",
}


class PostgresInventoryStorage(IInventoryStorage):
    """
    Concrete implementation of IInventoryStorage using PostgreSQL.

    Receives an already-connected psycopg2 connection (injected).
    Does not create or manage the connection itself — that's the
    responsibility of the caller (main.py / dependency wiring).
    """

    def __init__(self, conn) -> None:
        self._conn = conn

    def create_run(self, organization: str) -> int:
        """
        Create an inventory_runs row when the run starts.
        Returns the new run ID; every saved row is tagged with it.
        """
        with self._conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO inventory_runs (organization, started_at, status)
                VALUES (%s, NOW(), 'running')
                RETURNING id
                """,
                (organization,),
            )
            run_id = cur.fetchone()[0]
        self._conn.commit()
        log.debug("Created inventory run #%d", run_id)
        return run_id

    def save(self, run_id: int, inventory: Inventory) -> None:
        """
        Insert the three record sequences in one transaction.

        execute_values sends all rows of a table in ONE round-trip to the
        DB instead of N separate INSERT statements.
        """
        with self._conn.cursor() as cur:
            self._insert(cur, run_id, Project, inventory.projects)
            self._insert(cur, run_id, InventoryItem, inventory.items)
            self._insert(cur, run_id, FrameworkFinding, inventory.findings)
        self._conn.commit()
        log.debug(
            "Saved run #%d | %d projects | %d items | %d findings",
            run_id, len(inventory.projects), len(inventory.items), len(inventory.findings),
        )

    def finish_run(self, run_id: int, total: int, status: str, error: str | None = None) -> None:
        """
        Update the inventory_runs row with final stats.
        Called on success, cancellation and failure.
        """
        with self._conn.cursor() as cur:
            cur.execute(
                """
                UPDATE inventory_runs
                SET finished_at    = NOW(),
                    total_findings = %s,
                    status         = %s,
                    error_msg      = %s
                WHERE id = %s
                """,
                (total, status, error, run_id),
            )
        self._conn.commit()
        log.debug("Finished inventory run #%d | status=%s | total=%d", run_id, status, total)

    @staticmethod
    def _insert(cur, run_id: int, record_type: type, records: Iterable) -> None:
        rows = [(run_id, *record_values(r)) for r in records]
        if not rows:
            return

        columns = ", ".join(["run_id", *record_header(record_type)])
        execute_values(
            cur,
            f"INSERT INTO {TABLES[record_type]} ({columns}) VALUES %s",
            rows,
        )
