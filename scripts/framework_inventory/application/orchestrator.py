from __future__ import annotations
import asyncio
import logging
from typing import AsyncIterator

from framework_inventory.domain.entities import NodeStatus, Project, RepositoryScan, RepositorySummary
from framework_inventory.domain.interfaces import IDevOpsGateway
from .tree_walker import TreeWalker

log = logging.getLogger(__name__)


class InventoryOrchestrator:
    """
    Coordinates the project → repository → item loop.

    All dependencies are injected — this class creates NOTHING itself:
      - IDevOpsGateway  → how to talk to the platform (injected)
      - TreeWalker      → how to explore one item tree (injected)

    Repositories are processed one after another in listing order, so
    the output order only depends on the remote state.
    """

    def __init__(self, gateway: IDevOpsGateway, walker: TreeWalker) -> None:
        self._gateway = gateway
        self._walker  = walker
        self.stopped  = False

    async def list_projects(self, organization: str) -> list[Project]:
        """Raises FatalTransportError when the organization cannot be listed."""
        projects = await self._gateway.list_projects(organization)
        log.info("Organization %s | %d projects", organization, len(projects))
        return projects

    async def collect(self, organization: str, projects: list[Project], stop_event: asyncio.Event | None = None) -> AsyncIterator[RepositoryScan]:
        """
        Async generator — yields one RepositoryScan per listed repository.

        stop_event is checked before every repository; once it is set the
        generator returns without starting another one and `stopped` is set.
        A stop requested after the last repository leaves `stopped` False.
        """
        stop_event   = stop_event or asyncio.Event()
        self.stopped = False

        for project in projects:
            if stop_event.is_set():
                log.info("Stop requested — not listing project %s", project.name)
                self.stopped = True
                return

            log.info("Project: %s", project.name)
            repositories = await self._gateway.list_repositories(organization, project.id)

            for summary in repositories:
                if stop_event.is_set():
                    log.info("Stop requested — skipping remaining repositories of %s", project.name)
                    self.stopped = True
                    return

                yield await self._scan_repository(project, summary)

    async def _scan_repository(self, project: Project, summary: RepositorySummary) -> RepositoryScan:
        log.info("Project: %s > Repository: %s", project.name, summary.name)

        repository = await self._gateway.fetch_repository(summary.url)
        if repository is None:
            log.warning("Project: %s > Repository: %s could not be fetched, skipping", project.name, summary.name)
            return RepositoryScan(project=project, summary=summary, repository=None)

        items   = await self._gateway.list_items(repository.items_url)
        reports = [await self._walker.walk(repository, item.url) for item in items]

        scan = RepositoryScan(
            project    = project,
            summary    = summary,
            repository = repository,
            items      = tuple(items),
            reports    = tuple(reports),
        )
        log.info(
            "Repository %s | %d items | %d nodes | %d findings | %d fetch failures | %d parse failures",
            repository.name,
            len(items),
            sum(len(r.outcomes) for r in reports),
            len(scan.findings),
            scan.count(NodeStatus.FETCH_FAILED),
            scan.count(NodeStatus.PARSE_FAILED),
        )
        return scan
