from __future__ import annotations
import asyncio
import logging

from framework_inventory.domain.entities import (
    FrameworkFinding,
    GitObjectType,
    NodeOutcome,
    NodeStatus,
    Repository,
    TreeNode,
    WalkReport,
)
from framework_inventory.domain.errors import DescriptorParseError
from framework_inventory.domain.interfaces import IDescriptorParser, IDevOpsGateway

log = logging.getLogger(__name__)

MAX_CONCURRENT = 1


def join_path(prefix: str, name: str) -> str:
    if not prefix:
        return name
    return f"{prefix}/{name}"


class TreeWalker:
    """
    Walks a repository's git tree and extracts target frameworks.

    All dependencies are injected:
      - IDevOpsGateway     → how to fetch trees and blobs (injected)
      - IDescriptorParser  → which blobs to parse and how (injected)

    Traversal never recurses on the Python stack. With max_concurrent=1
    an explicit work stack visits one node at a time in depth-first
    listing order. With max_concurrent > 1 each tree level is fanned out
    under a semaphore, and outcomes are re-sorted by their position in
    the tree so the result is identical to the sequential walk.
    """

    def __init__(self, gateway: IDevOpsGateway, parser: IDescriptorParser, max_concurrent: int = MAX_CONCURRENT) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._gateway        = gateway
        self._parser         = parser
        self._max_concurrent = max_concurrent

    async def explore(self, repository: Repository, root_url: str) -> list[FrameworkFinding]:
        """Findings for every descriptor reachable from root_url, in depth-first order."""
        report = await self.walk(repository, root_url)
        return report.findings

    async def walk(self, repository: Repository, root_url: str) -> WalkReport:
        root = await self._gateway.fetch_tree_node(root_url)
        if root is None:
            log.warning("Repository %s: root %s could not be fetched", repository.name, root_url)
            return WalkReport(
                root_url = root_url,
                outcomes = (NodeOutcome(NodeStatus.FETCH_FAILED, "", url=root_url, error="root not found"),),
            )

        if self._max_concurrent == 1:
            outcomes = await self._walk_sequential(repository, root)
        else:
            outcomes = await self._walk_concurrent(repository, root)
        return WalkReport(root_url=root_url, outcomes=tuple(outcomes))

    async def _walk_sequential(self, repository: Repository, root: TreeNode) -> list[NodeOutcome]:
        outcomes: list[NodeOutcome] = []
        stack: list[tuple[TreeNode, str]] = [(root, root.name)]

        while stack:
            node, relative_path = stack.pop()
            outcome, children = await self._visit(repository, node, relative_path)
            outcomes.append(outcome)

            # Reversed so the first listed child is popped first
            for child in reversed(children):
                stack.append((child, join_path(relative_path, child.name)))

        return outcomes

    async def _walk_concurrent(self, repository: Repository, root: TreeNode) -> list[NodeOutcome]:
        semaphore = asyncio.Semaphore(self._max_concurrent)
        visited:  list[tuple[tuple[int, ...], NodeOutcome]] = []
        frontier: list[tuple[tuple[int, ...], TreeNode, str]] = [((), root, root.name)]

        async def bounded_visit(node: TreeNode, relative_path: str) -> tuple[NodeOutcome, list[TreeNode]]:
            async with semaphore:
                return await self._visit(repository, node, relative_path)

        while frontier:
            tasks = [asyncio.ensure_future(bounded_visit(node, path)) for _, node, path in frontier]
            try:
                results = await asyncio.gather(*tasks)
            except BaseException:
                # Leave no sibling visit running once one of them has failed
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

            next_frontier: list[tuple[tuple[int, ...], TreeNode, str]] = []
            for (position, _, relative_path), (outcome, children) in zip(frontier, results):
                visited.append((position, outcome))
                for index, child in enumerate(children):
                    next_frontier.append(((*position, index), child, join_path(relative_path, child.name)))
            frontier = next_frontier

        # Lexicographic order of tree positions is depth-first pre-order
        visited.sort(key=lambda entry: entry[0])
        return [outcome for _, outcome in visited]

    async def _visit(self, repository: Repository, node: TreeNode, relative_path: str) -> tuple[NodeOutcome, list[TreeNode]]:
        """Process one node. Returns its outcome and the children still to visit."""
        if node.kind is GitObjectType.TREE:
            return await self._visit_tree(repository, node, relative_path)
        elif node.kind is GitObjectType.BLOB:
            return await self._visit_blob(repository, node, relative_path), []
        elif node.kind is GitObjectType.UNKNOWN:
            return self._outcome(NodeStatus.SKIPPED, node, relative_path), []
        raise AssertionError(f"Unhandled git object type: {node.kind}")

    async def _visit_tree(self, repository: Repository, node: TreeNode, relative_path: str) -> tuple[NodeOutcome, list[TreeNode]]:
        if node.children_url is None:
            log.warning("Repository %s: tree %s has no children link", repository.name, relative_path or "/")
            return self._outcome(NodeStatus.FETCH_FAILED, node, relative_path, error="missing tree link"), []

        children = await self._gateway.list_tree_entries(node.children_url)
        if children is None:
            log.warning("Repository %s: could not list tree %s", repository.name, relative_path or "/")
            return self._outcome(NodeStatus.FETCH_FAILED, node, relative_path, error="tree listing failed"), []

        return self._outcome(NodeStatus.EXPANDED, node, relative_path), children

    async def _visit_blob(self, repository: Repository, node: TreeNode, relative_path: str) -> NodeOutcome:
        if not self._parser.matches(relative_path):
            return self._outcome(NodeStatus.SKIPPED, node, relative_path)

        content = await self._gateway.fetch_blob_content(node.url)
        if content is None:
            log.warning("Repository %s: could not download %s", repository.name, relative_path)
            return self._outcome(NodeStatus.FETCH_FAILED, node, relative_path, error="content fetch failed")

        try:
            target_framework = self._parser.parse(content)
        except DescriptorParseError as exc:
            log.debug("Repository %s: skipping %s | %s", repository.name, relative_path, exc)
            return self._outcome(NodeStatus.PARSE_FAILED, node, relative_path, error=str(exc))

        if target_framework is None:
            return self._outcome(NodeStatus.NO_VALUE, node, relative_path)

        finding = FrameworkFinding(
            project          = repository.project.name,
            repository       = repository.name,
            relative_path    = relative_path,
            target_framework = target_framework,
            object_id        = node.object_id,
            repository_url   = repository.web_url,
        )
        log.info("Found %s in %s/%s", target_framework, repository.name, relative_path)
        return self._outcome(NodeStatus.FOUND, node, relative_path, finding=finding)

    @staticmethod
    def _outcome(status: NodeStatus, node: TreeNode, relative_path: str, finding: FrameworkFinding | None = None, error: str | None = None) -> NodeOutcome:
        return NodeOutcome(
            status        = status,
            relative_path = relative_path,
            object_id     = node.object_id,
            url           = node.url,
            finding       = finding,
            error         = error,
        )
