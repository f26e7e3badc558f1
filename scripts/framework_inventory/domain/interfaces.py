"""
Domain Layer — Interfaces (Abstract Contracts)
-----------------------------------------------
These are ABSTRACT definitions of what the infrastructure must provide.
The domain layer defines the shape; the infrastructure layer implements it.

The application layer (tree walker, orchestrator, run service) depends on
these contracts only, so tests can hand it a FakeGateway or an in-memory
storage without touching a network or a database.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .entities import Project, Repository, RepositorySummary, TreeNode

if TYPE_CHECKING:
    from framework_inventory.application.inventory import Inventory


class IDevOpsGateway(ABC):
    """
    Contract for the remote object gateway.

    Organization- and project-level listings raise FatalTransportError.
    Everything below that level absorbs failures: it returns None or an
    empty list instead of raising.
    """

    @abstractmethod
    async def list_projects(self, organization: str) -> list[Project]:
        """Every project of the organization, in listing order."""
        ...

    @abstractmethod
    async def list_repositories(self, organization: str, project_id: str) -> list[RepositorySummary]:
        """Every repository of one project, in listing order."""
        ...

    @abstractmethod
    async def fetch_repository(self, url: str) -> Repository | None:
        """Expand a listing entry. None when the repository cannot be fetched."""
        ...

    @abstractmethod
    async def list_items(self, items_url: str) -> list[TreeNode]:
        """Top-level items of a repository. Empty on any failure."""
        ...

    @abstractmethod
    async def fetch_tree_node(self, url: str) -> TreeNode | None:
        """Fetch one git object. None when it cannot be fetched."""
        ...

    @abstractmethod
    async def list_tree_entries(self, children_url: str) -> list[TreeNode] | None:
        """
        Children of a tree, in listing order.

        Returns None when the listing could not be fetched, which is
        different from [] for an empty tree.
        """
        ...

    @abstractmethod
    async def fetch_blob_content(self, url: str) -> bytes | None:
        """Raw blob bytes. None when the content cannot be fetched."""
        ...


class IDescriptorParser(ABC):
    """Contract for extracting a target framework from a project descriptor."""

    @abstractmethod
    def matches(self, relative_path: str) -> bool:
        """True when a blob at this path should be fetched and parsed."""
        ...

    @abstractmethod
    def parse(self, content: bytes) -> str | None:
        """
        Return the declared target framework, or None when the file
        declares none. Raises DescriptorParseError on malformed XML.
        """
        ...


class IInventoryStorage(ABC):
    """
    Contract that any inventory sink must fulfil.
    Swap CSV files for PostgreSQL without touching application code.
    """

    @abstractmethod
    def create_run(self, organization: str) -> int:
        """Create an inventory run audit record. Returns the run ID."""
        ...

    @abstractmethod
    def save(self, run_id: int, inventory: Inventory) -> None:
        """Persist the projects, items and findings gathered by a run."""
        ...

    @abstractmethod
    def finish_run(self, run_id: int, total: int, status: str, error: str | None = None) -> None:
        """Mark an inventory run as complete with final stats."""
        ...
