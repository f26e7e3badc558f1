from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable
from urllib.parse import quote

import httpx

from framework_inventory.domain.entities import (
    GitObjectType,
    Project,
    Repository,
    RepositorySummary,
    TreeNode,
)
from framework_inventory.domain.errors import FatalTransportError, NotFoundError, TransportError
from framework_inventory.domain.interfaces import IDevOpsGateway

log = logging.getLogger(__name__)

MAX_RETRIES         = 5
RETRY_DELAY         = 1.0
RETRYABLE_STATUS    = (429, 500, 502, 503, 504)
CONTINUATION_HEADER = "x-ms-continuationtoken"
OCTET_STREAM        = "application/octet-stream"

# What a payload of the wrong shape raises while being translated
MALFORMED = (AttributeError, KeyError, TypeError, ValueError)


class AzureDevOpsClient(IDevOpsGateway):
    """
    Concrete implementation of IDevOpsGateway for the Azure DevOps REST API.

    The constructor receives an httpx.AsyncClient (injected) rather than
    creating one internally. Auth, api-version and caching live in that
    client's transport chain (see transport.build_http_client); this class
    only knows the resource shapes and the failure policy:

      - list_projects / list_repositories raise FatalTransportError
      - everything below the repository listing returns None or []
    """

    def __init__(self, client: httpx.AsyncClient, max_retries: int = MAX_RETRIES, retry_delay: float = RETRY_DELAY) -> None:
        self._client      = client
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    # Anti-Corruption Layer
    @staticmethod
    def _parse_datetime(value: str | None) -> datetime | None:
        """Convert the API's ISO datetime string to a Python datetime."""
        if not isinstance(value, str) or not value:
            return None
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            log.debug("Unparseable timestamp %r", value)
            return None

    def _parse_project(self, node: dict) -> Project:
        return Project(
            id               = node["id"],
            name             = node["name"],
            description      = node.get("description"),
            url              = node["url"],
            state            = node.get("state", ""),
            revision         = int(node.get("revision", 0)),
            visibility       = node.get("visibility", ""),
            last_update_time = self._parse_datetime(node.get("lastUpdateTime")),
        )

    @staticmethod
    def _parse_repository_summary(node: dict) -> RepositorySummary:
        return RepositorySummary(id=node["id"], name=node["name"], url=node["url"])

    def _parse_repository(self, node: dict) -> Repository:
        items_url = self._link(node, "items")
        if items_url is None:
            raise KeyError("_links.items.href")
        return Repository(
            id        = node["id"],
            name      = node["name"],
            url       = node["url"],
            project   = self._parse_project(node["project"]),
            web_url   = node["webUrl"],
            items_url = items_url,
        )

    @staticmethod
    def _string(node: dict, key: str) -> str:
        value = node[key]
        if not isinstance(value, str):
            raise TypeError(f"{key} is {type(value).__name__}, not a string")
        return value

    @staticmethod
    def _link(node: dict, rel: str) -> str | None:
        """_links.<rel>.href, or None when any level is missing or not an object."""
        links = node.get("_links")
        if not isinstance(links, dict):
            return None
        link = links.get(rel)
        if not isinstance(link, dict):
            return None
        href = link.get("href")
        return href if isinstance(href, str) and href else None

    @classmethod
    def _parse_tree_node(cls, node: dict, tree_url: str | None = None) -> TreeNode:
        """
        ANTI-CORRUPTION LAYER — translates an item, git object or tree entry
        into a TreeNode.

        Items and git objects describe a tree's children through
        _links.tree.href; tree entries are themselves tree URLs, so the
        caller passes their own url as tree_url.
        """
        kind = GitObjectType.from_api(node.get("gitObjectType"))
        children_url = None
        if kind is GitObjectType.TREE:
            children_url = tree_url or cls._link(node, "tree")

        relative_path = node.get("relativePath")
        path          = node.get("path")
        is_folder     = node.get("isFolder")

        return TreeNode(
            object_id     = cls._string(node, "objectId"),
            kind          = kind,
            relative_path = relative_path if isinstance(relative_path, str) else "",
            path          = path if isinstance(path, str) else "",
            is_folder     = is_folder if isinstance(is_folder, bool) else kind is GitObjectType.TREE,
            url           = cls._string(node, "url"),
            children_url  = children_url,
        )

    def _parse_listing(self, nodes: list[dict], parse: Callable[[dict], Any]) -> list:
        parsed = []
        for node in nodes:
            try:
                parsed.append(parse(node))
            except MALFORMED as exc:
                log.debug("Skipping malformed API node: %s", exc)
        return parsed

    # HTTP
    async def _get(self, url: str, params: dict[str, str] | None = None, accept: str | None = None) -> httpx.Response:
        """
        GET with retry on throttling, server errors and network errors.

        Raises NotFoundError on 404, TransportError on any other failure.
        """
        headers = {"Accept": accept} if accept else None

        for attempt in range(self._max_retries):
            wait = self._retry_delay * 2 ** attempt   # exponential backoff: 1s, 2s, 4s, 8s, 16s
            try:
                response = await self._client.get(url, params=params, headers=headers)
            except httpx.RequestError as exc:
                log.warning("HTTP error attempt %d/%d: %s — retrying in %.0fs", attempt + 1, self._max_retries, exc, wait)
                await asyncio.sleep(wait)
                continue

            if response.status_code == 404:
                raise NotFoundError(url, "Not found", 404)

            if response.status_code in RETRYABLE_STATUS:
                retry_after = response.headers.get("Retry-After", "")
                if response.status_code == 429 and retry_after.isdigit():
                    wait = float(retry_after)
                log.warning("HTTP %d attempt %d/%d: %s — retrying in %.0fs", response.status_code, attempt + 1, self._max_retries, url, wait)
                await asyncio.sleep(wait)
                continue

            if response.is_error:
                raise TransportError(url, "Request failed", response.status_code)
            return response

        raise TransportError(url, f"Exhausted {self._max_retries} retries")

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> tuple[dict, httpx.Response]:
        response = await self._get(url, params=params)
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(url, "Response is not JSON", response.status_code) from exc
        if not isinstance(payload, dict):
            raise TransportError(url, "Response is not a JSON object", response.status_code)
        return payload, response

    async def _get_paged(self, url: str) -> list[dict]:
        """Follow continuation tokens until the last page; pages are concatenated in order."""
        values: list[dict] = []
        params: dict[str, str] | None = None

        while True:
            payload, response = await self._get_json(url, params=params)
            page = payload.get("value") or []
            if not isinstance(page, list):
                raise TransportError(url, "Listing has no value array", response.status_code)
            values.extend(page)

            token = response.headers.get(CONTINUATION_HEADER)
            if not token:
                return values
            log.debug("Continuing %s from token %s", url, token)
            params = {"continuationToken": token}

    # IDevOpsGateway implementation
    async def list_projects(self, organization: str) -> list[Project]:
        url = f"{quote(organization, safe='')}/_apis/projects"
        try:
            nodes = await self._get_paged(url)
        except TransportError as exc:
            raise FatalTransportError(exc.url, f"Could not list projects of {organization}", exc.status_code) from exc
        return self._parse_listing(nodes, self._parse_project)

    async def list_repositories(self, organization: str, project_id: str) -> list[RepositorySummary]:
        url = f"{quote(organization, safe='')}/{quote(project_id, safe='')}/_apis/git/repositories"
        try:
            nodes = await self._get_paged(url)
        except TransportError as exc:
            raise FatalTransportError(exc.url, f"Could not list repositories of project {project_id}", exc.status_code) from exc
        return self._parse_listing(nodes, self._parse_repository_summary)

    async def fetch_repository(self, url: str) -> Repository | None:
        try:
            payload, _ = await self._get_json(url)
            return self._parse_repository(payload)
        except TransportError as exc:
            log.warning("Repository unavailable: %s", exc)
        except MALFORMED as exc:
            log.warning("Malformed repository %s: %s", url, exc)
        return None

    async def list_items(self, items_url: str) -> list[TreeNode]:
        try:
            nodes = await self._get_paged(items_url)
        except TransportError as exc:
            log.warning("Items unavailable: %s", exc)
            return []
        return self._parse_listing(nodes, self._parse_tree_node)

    async def fetch_tree_node(self, url: str) -> TreeNode | None:
        try:
            payload, _ = await self._get_json(url)
            return self._parse_tree_node(payload)
        except TransportError as exc:
            log.warning("Git object unavailable: %s", exc)
        except MALFORMED as exc:
            log.warning("Malformed git object %s: %s", url, exc)
        return None

    async def list_tree_entries(self, children_url: str) -> list[TreeNode] | None:
        try:
            payload, _ = await self._get_json(children_url)
        except TransportError as exc:
            log.warning("Tree unavailable: %s", exc)
            return None

        entries = payload.get("treeEntries")
        if not isinstance(entries, list):
            log.warning("Tree %s has no treeEntries", children_url)
            return None
        return self._parse_listing(entries, self._parse_tree_entry)

    def _parse_tree_entry(self, node: dict) -> TreeNode:
        return self._parse_tree_node(node, tree_url=self._string(node, "url"))

    async def fetch_blob_content(self, url: str) -> bytes | None:
        try:
            response = await self._get(url, accept=OCTET_STREAM)
        except TransportError as exc:
            log.warning("Blob unavailable: %s", exc)
            return None
        return response.content
