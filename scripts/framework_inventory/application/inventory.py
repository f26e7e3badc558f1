from __future__ import annotations
import logging

from framework_inventory.domain.entities import (
    FrameworkFinding,
    InventoryItem,
    Project,
    RepositoryScan,
)

log = logging.getLogger(__name__)


class Inventory:
    """
    Append-only collector for one run: projects seen, top-level items
    seen per repository, and the flattened findings.

    The run service is the only writer. Nothing is removed or replaced
    once added, and every sequence keeps insertion order.
    """

    def __init__(self) -> None:
        self._projects: list[Project]          = []
        self._items:    list[InventoryItem]    = []
        self._findings: list[FrameworkFinding] = []
        self._repositories = 0
        self._skipped      = 0

    def add_projects(self, projects: list[Project]) -> None:
        self._projects.extend(projects)

    def add_scan(self, scan: RepositoryScan) -> None:
        if scan.repository is None:
            self._skipped += 1
            return

        self._repositories += 1
        self._items.extend(InventoryItem.from_node(scan.repository, item) for item in scan.items)
        self._findings.extend(scan.findings)

    @property
    def projects(self) -> tuple[Project, ...]:
        return tuple(self._projects)

    @property
    def items(self) -> tuple[InventoryItem, ...]:
        return tuple(self._items)

    @property
    def findings(self) -> tuple[FrameworkFinding, ...]:
        return tuple(self._findings)

    @property
    def repositories(self) -> int:
        """Repositories that were fetched and walked."""
        return self._repositories

    @property
    def skipped_repositories(self) -> int:
        return self._skipped
