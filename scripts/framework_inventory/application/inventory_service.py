from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from framework_inventory.domain.entities import InventoryRunResult, NodeStatus
from framework_inventory.domain.interfaces import IInventoryStorage
from .inventory import Inventory
from .orchestrator import InventoryOrchestrator

log = logging.getLogger(__name__)


class InventoryApplicationService:
    """
    The top-level use case: inventory every repository and persist results.

    Receives all dependencies via constructor injection.
    Knows about the sequence of operations but not the implementation details.
    """

    def __init__(self, orchestrator: InventoryOrchestrator, storage: IInventoryStorage) -> None:
        self._orchestrator = orchestrator
        self._storage      = storage

    async def execute(self, organization: str, stop_event: asyncio.Event | None = None) -> InventoryRunResult:
        """
        Run a full inventory of `organization`.

        Whatever was gathered is saved, even when the run fails or is
        stopped. Returns an InventoryRunResult describing what happened.
        """
        stop_event     = stop_event or asyncio.Event()
        started_at     = datetime.now(tz=timezone.utc)
        run_id         = self._storage.create_run(organization)
        inventory      = Inventory()
        fetch_failures = 0
        parse_failures = 0
        status         = "success"
        error_message  = None

        log.info("InventoryApplicationService | run #%d | organization: %s", run_id, organization)

        try:
            projects = await self._orchestrator.list_projects(organization)
            inventory.add_projects(projects)

            async for scan in self._orchestrator.collect(organization, projects, stop_event):
                inventory.add_scan(scan)
                fetch_failures += scan.count(NodeStatus.FETCH_FAILED)
                parse_failures += scan.count(NodeStatus.PARSE_FAILED)

            if self._orchestrator.stopped:
                status = "cancelled"
        except Exception as exc:
            log.error("Inventory failed: %s", exc, exc_info=True)
            status        = "failed"
            error_message = str(exc)

        self._storage.save(run_id, inventory)
        self._storage.finish_run(run_id, len(inventory.findings), status, error_message)

        elapsed = (datetime.now(tz=timezone.utc) - started_at).total_seconds()
        log.info(
            "Inventory %s | %d projects | %d repositories (%d skipped) | %d findings | %.0fs",
            status,
            len(inventory.projects),
            inventory.repositories,
            inventory.skipped_repositories,
            len(inventory.findings),
            elapsed,
        )
        return InventoryRunResult(
            run_id               = run_id,
            status               = status,
            projects             = len(inventory.projects),
            repositories         = inventory.repositories,
            skipped_repositories = inventory.skipped_repositories,
            findings             = len(inventory.findings),
            fetch_failures       = fetch_failures,
            parse_failures       = parse_failures,
            elapsed_secs         = elapsed,
            error_message        = error_message,
        )
