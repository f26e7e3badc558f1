from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class Project:
    """
    Immutable domain entity representing a project in the organization.

    Field names are OURS (snake_case), not the platform's (camelCase).
    The translation happens in the anti-corruption layer of the client.
    """
    id:               str
    name:             str
    description:      str | None
    url:              str
    state:            str
    revision:         int
    visibility:       str
    last_update_time: datetime | None


@dataclass(frozen=True)
class RepositorySummary:
    """Lightweight repository listing entry, expanded on demand."""
    id:   str
    name: str
    url:  str


@dataclass(frozen=True)
class Repository:
    """
    Context object threaded through every tree walk so that findings
    can be attributed back to their project, repository and web URL.
    """
    id:        str
    name:      str
    url:       str
    project:   Project
    web_url:   str
    items_url: str


class GitObjectType(Enum):
    BLOB    = "blob"
    TREE    = "tree"
    UNKNOWN = "unknown"

    @classmethod
    def from_api(cls, value: object) -> GitObjectType:
        """Commits, tags and anything unrecognised collapse to UNKNOWN."""
        if not isinstance(value, str) or not value:
            return cls.UNKNOWN
        try:
            return cls(value.lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class TreeNode:
    object_id:     str
    kind:          GitObjectType
    relative_path: str
    path:          str
    is_folder:     bool
    url:           str
    children_url:  str | None = None

    def __post_init__(self) -> None:
        # Only trees can be expanded
        if self.children_url is not None and self.kind is not GitObjectType.TREE:
            raise ValueError(
                f"{self.kind.value} node {self.object_id} cannot carry a children URL"
            )

    @property
    def name(self) -> str:
        """Path of the node relative to its parent, falling back to the absolute path."""
        return self.relative_path or self.path.strip("/")


@dataclass(frozen=True)
class FrameworkFinding:
    """One successfully extracted target framework for one descriptor file."""
    project:          str
    repository:       str
    relative_path:    str
    target_framework: str
    object_id:        str
    repository_url:   str


@dataclass(frozen=True)
class InventoryItem:
    """A top-level item listed for a repository, attributed to its owner."""
    project:         str
    repository:      str
    object_id:       str
    git_object_type: GitObjectType
    path:            str
    relative_path:   str
    is_folder:       bool
    url:             str

    @classmethod
    def from_node(cls, repository: Repository, node: TreeNode) -> InventoryItem:
        return cls(
            project         = repository.project.name,
            repository      = repository.name,
            object_id       = node.object_id,
            git_object_type = node.kind,
            path            = node.path,
            relative_path   = node.relative_path,
            is_folder       = node.is_folder,
            url             = node.url,
        )


class NodeStatus(Enum):
    EXPANDED     = "expanded"
    SKIPPED      = "skipped"
    FETCH_FAILED = "fetch_failed"
    PARSE_FAILED = "parse_failed"
    NO_VALUE     = "no_value"
    FOUND        = "found"


@dataclass(frozen=True)
class NodeOutcome:
    """
    What happened to a single node during a walk.

    Keeps "fetch failed", "parsed but declared nothing" and "not a
    descriptor" apart, so a repository summary can report them
    separately instead of collapsing everything into "no findings".
    """
    status:        NodeStatus
    relative_path: str
    object_id:     str | None = None
    url:           str | None = None
    finding:       FrameworkFinding | None = None
    error:         str | None = None


@dataclass(frozen=True)
class WalkReport:
    """Ordered result of walking one root: findings plus every node outcome."""
    root_url: str
    outcomes: tuple[NodeOutcome, ...] = ()

    @property
    def findings(self) -> list[FrameworkFinding]:
        return [o.finding for o in self.outcomes if o.finding is not None]

    def count(self, status: NodeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)


@dataclass(frozen=True)
class RepositoryScan:
    """
    Everything gathered for one listed repository.
    `repository` is None when the repository itself could not be fetched.
    """
    project:    Project
    summary:    RepositorySummary
    repository: Repository | None
    items:      tuple[TreeNode, ...] = ()
    reports:    tuple[WalkReport, ...] = ()

    @property
    def skipped(self) -> bool:
        return self.repository is None

    @property
    def findings(self) -> list[FrameworkFinding]:
        return [f for report in self.reports for f in report.findings]

    def count(self, status: NodeStatus) -> int:
        return sum(report.count(status) for report in self.reports)


@dataclass(frozen=True)
class InventoryRunResult:
    """
    Immutable value object summarising a completed inventory run.
    Returned by the application service when the run finishes.
    """
    run_id:               int
    status:               str
    projects:             int
    repositories:         int
    skipped_repositories: int
    findings:             int
    fetch_failures:       int
    parse_failures:       int
    elapsed_secs:         float
    error_message:        str | None = None
