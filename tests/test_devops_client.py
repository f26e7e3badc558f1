"""Tests for the Azure DevOps gateway against a scripted HTTP server."""

import base64
from datetime import datetime, timezone

import httpx
import pytest

from fake_server import BASE, ORGANIZATION, PROJECT_JSON, REPO, FakeDevOpsServer, path, sample_routes
from framework_inventory.domain.entities import GitObjectType
from framework_inventory.domain.errors import FatalTransportError
from framework_inventory.infrastructure.devops_client import AzureDevOpsClient
from framework_inventory.infrastructure.response_cache import ResponseCache
from framework_inventory.infrastructure.transport import build_http_client

PROJECTS = f"/{ORGANIZATION}/_apis/projects"


def make_client(server: FakeDevOpsServer, max_retries: int = 3) -> AzureDevOpsClient:
    http = build_http_client(
        username  = "",
        token     = "secret-pat",
        cache     = ResponseCache(ttl=0),
        transport = httpx.MockTransport(server),
    )
    return AzureDevOpsClient(http, max_retries=max_retries, retry_delay=0)


# ---------------------------------------------------------------------------
# Top-level listings
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_projects_translates_fields() -> None:
    server = FakeDevOpsServer(sample_routes())

    projects = await make_client(server).list_projects(ORGANIZATION)

    assert len(projects) == 1
    project = projects[0]
    assert (project.id, project.name, project.description) == ("p1", "P", "Demo project")
    assert (project.state, project.revision, project.visibility) == ("wellFormed", 11, "private")
    assert project.last_update_time == datetime(2024, 5, 1, 10, 0, 0, 123000, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_requests_carry_api_version_and_credentials() -> None:
    server = FakeDevOpsServer(sample_routes())

    await make_client(server).list_projects(ORGANIZATION)

    request = server.requests[0]
    assert request.url.params["api-version"] == "7.2-preview"
    assert request.headers["Authorization"] == "Basic " + base64.b64encode(b":secret-pat").decode()
    assert request.headers["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_listing_follows_continuation_tokens() -> None:
    second = {**PROJECT_JSON, "id": "p2", "name": "Q"}

    def projects(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("continuationToken") == "page-2":
            return httpx.Response(200, json={"count": 1, "value": [second]})
        return httpx.Response(200, json={"count": 1, "value": [PROJECT_JSON]}, headers={"x-ms-continuationtoken": "page-2"})

    server = FakeDevOpsServer({PROJECTS: projects})

    result = await make_client(server).list_projects(ORGANIZATION)

    assert [p.name for p in result] == ["P", "Q"]
    assert server.hits(PROJECTS) == 2


@pytest.mark.asyncio
async def test_malformed_listing_entries_are_skipped() -> None:
    server = FakeDevOpsServer({PROJECTS: {"value": [{"name": "no id"}, PROJECT_JSON]}})

    projects = await make_client(server).list_projects(ORGANIZATION)

    assert [p.id for p in projects] == ["p1"]


@pytest.mark.asyncio
async def test_unparseable_timestamp_keeps_the_project() -> None:
    server = FakeDevOpsServer({PROJECTS: {"value": [{**PROJECT_JSON, "lastUpdateTime": "yesterday"}]}})

    projects = await make_client(server).list_projects(ORGANIZATION)

    assert projects[0].last_update_time is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403, 404])
async def test_project_listing_errors_are_fatal(status: int) -> None:
    server = FakeDevOpsServer({PROJECTS: status})

    with pytest.raises(FatalTransportError) as info:
        await make_client(server).list_projects(ORGANIZATION)

    assert info.value.status_code == status
    assert server.hits(PROJECTS) == 1


@pytest.mark.asyncio
async def test_repository_listing_failure_is_fatal() -> None:
    routes = sample_routes()
    routes[path(f"{BASE}/p1/_apis/git/repositories")] = 500
    server = FakeDevOpsServer(routes)

    with pytest.raises(FatalTransportError):
        await make_client(server, max_retries=2).list_repositories(ORGANIZATION, "p1")

    assert server.hits(path(f"{BASE}/p1/_apis/git/repositories")) == 2


@pytest.mark.asyncio
async def test_server_errors_are_retried() -> None:
    routes = sample_routes()
    routes[PROJECTS] = [503, 502, {"value": [PROJECT_JSON]}]
    server = FakeDevOpsServer(routes)

    projects = await make_client(server).list_projects(ORGANIZATION)

    assert [p.name for p in projects] == ["P"]
    assert server.hits(PROJECTS) == 3


@pytest.mark.asyncio
async def test_throttling_honours_retry_after() -> None:
    throttled = httpx.Response(429, headers={"Retry-After": "0"})
    server = FakeDevOpsServer({PROJECTS: [lambda request: throttled, {"value": [PROJECT_JSON]}]})

    projects = await make_client(server).list_projects(ORGANIZATION)

    assert len(projects) == 1


@pytest.mark.asyncio
async def test_network_errors_are_retried() -> None:
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    server = FakeDevOpsServer({PROJECTS: [unreachable, {"value": [PROJECT_JSON]}]})

    projects = await make_client(server).list_projects(ORGANIZATION)

    assert len(projects) == 1


@pytest.mark.asyncio
async def test_exhausted_retries_are_fatal_for_listings() -> None:
    server = FakeDevOpsServer({PROJECTS: 503})

    with pytest.raises(FatalTransportError, match="Could not list projects"):
        await make_client(server, max_retries=3).list_projects(ORGANIZATION)

    assert server.hits(PROJECTS) == 3


# ---------------------------------------------------------------------------
# Absorbed lookups
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fetch_repository_builds_context() -> None:
    server = FakeDevOpsServer(sample_routes())

    repository = await make_client(server).fetch_repository(REPO)

    assert repository is not None
    assert (repository.id, repository.name) == ("r1", "R")
    assert repository.project.name == "P"
    assert repository.web_url == f"{BASE}/P/_git/R"
    assert repository.items_url == f"{REPO}/items"


@pytest.mark.asyncio
async def test_missing_repository_is_not_retried() -> None:
    server = FakeDevOpsServer({})

    assert await make_client(server).fetch_repository(REPO) is None
    assert server.hits(path(REPO)) == 1


@pytest.mark.asyncio
async def test_malformed_repository_is_absorbed() -> None:
    server = FakeDevOpsServer({path(REPO): {"id": "r1", "name": "R"}})

    assert await make_client(server).fetch_repository(REPO) is None


@pytest.mark.asyncio
async def test_non_json_repository_is_absorbed() -> None:
    server = FakeDevOpsServer({path(REPO): lambda request: httpx.Response(200, text="<html>login</html>")})

    assert await make_client(server).fetch_repository(REPO) is None


@pytest.mark.asyncio
async def test_list_items_returns_top_level_nodes() -> None:
    server = FakeDevOpsServer(sample_routes())

    items = await make_client(server).list_items(f"{REPO}/items")

    assert [(i.object_id, i.kind, i.path, i.is_folder) for i in items] == [
        ("a1", GitObjectType.BLOB, "/a.csproj", False),
        ("s1", GitObjectType.TREE, "/sub", True),
    ]
    # Items carry no tree link; the walker fetches the git object first
    assert items[1].children_url is None


@pytest.mark.asyncio
async def test_list_items_failure_is_empty() -> None:
    server = FakeDevOpsServer({path(f"{REPO}/items"): 500})

    assert await make_client(server, max_retries=1).list_items(f"{REPO}/items") == []


@pytest.mark.asyncio
async def test_fetch_tree_node_reads_tree_link() -> None:
    server = FakeDevOpsServer(sample_routes())

    node = await make_client(server).fetch_tree_node(f"{REPO}/objects/s1")

    assert node is not None
    assert node.kind is GitObjectType.TREE
    assert node.children_url == f"{REPO}/trees/s1"
    assert node.name == "sub"


@pytest.mark.asyncio
async def test_fetch_tree_node_failure_is_none() -> None:
    server = FakeDevOpsServer({})

    assert await make_client(server).fetch_tree_node(f"{REPO}/objects/zz") is None


@pytest.mark.asyncio
async def test_tree_entries_use_their_own_url_as_tree_link() -> None:
    routes = {
        path(f"{REPO}/trees/t"): {
            "treeEntries": [
                {"objectId": "d", "relativePath": "src", "gitObjectType": "tree", "url": f"{REPO}/trees/d"},
                {"objectId": "f", "relativePath": "App.csproj", "gitObjectType": "blob", "url": f"{REPO}/blobs/f"},
                {"objectId": "m", "relativePath": "vendor", "gitObjectType": "commit", "url": f"{REPO}/commits/m"},
            ]
        }
    }
    server = FakeDevOpsServer(routes)

    entries = await make_client(server).list_tree_entries(f"{REPO}/trees/t")

    assert [(e.relative_path, e.kind, e.children_url) for e in entries] == [
        ("src", GitObjectType.TREE, f"{REPO}/trees/d"),
        ("App.csproj", GitObjectType.BLOB, None),
        ("vendor", GitObjectType.UNKNOWN, None),
    ]


@pytest.mark.asyncio
async def test_tree_listing_failure_is_none_not_empty() -> None:
    server = FakeDevOpsServer({path(f"{REPO}/trees/empty"): {"treeEntries": []}, path(f"{REPO}/trees/bad"): {"count": 0}})
    client = make_client(server)

    assert await client.list_tree_entries(f"{REPO}/trees/empty") == []
    assert await client.list_tree_entries(f"{REPO}/trees/bad") is None
    assert await client.list_tree_entries(f"{REPO}/trees/missing") is None


@pytest.mark.asyncio
async def test_blob_content_is_requested_as_octet_stream() -> None:
    server = FakeDevOpsServer(sample_routes())

    content = await make_client(server).fetch_blob_content(f"{REPO}/blobs/c1")

    assert b"<TargetFramework>net6.0</TargetFramework>" in content
    assert server.requests[-1].headers["Accept"] == "application/octet-stream"


@pytest.mark.asyncio
async def test_missing_blob_is_none() -> None:
    server = FakeDevOpsServer({})

    assert await make_client(server).fetch_blob_content(f"{REPO}/blobs/gone") is None


# ---------------------------------------------------------------------------
# Payloads of the wrong shape
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_non_string_object_type_is_unknown() -> None:
    routes = {
        path(f"{REPO}/trees/t"): {
            "treeEntries": [
                {"objectId": "x", "relativePath": "odd", "gitObjectType": 1, "url": f"{REPO}/blobs/x"},
                {"objectId": "f", "relativePath": "App.csproj", "gitObjectType": "blob", "url": f"{REPO}/blobs/f"},
            ]
        }
    }

    entries = await make_client(FakeDevOpsServer(routes)).list_tree_entries(f"{REPO}/trees/t")

    assert [(e.relative_path, e.kind) for e in entries] == [
        ("odd", GitObjectType.UNKNOWN),
        ("App.csproj", GitObjectType.BLOB),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("links", [{"tree": None}, {"tree": "trees/s1"}, {"tree": {"href": 7}}, None, []])
async def test_unusable_tree_link_leaves_tree_without_children(links) -> None:
    routes = sample_routes()
    routes[path(f"{REPO}/objects/s1")] = {**routes[path(f"{REPO}/objects/s1")], "_links": links}

    node = await make_client(FakeDevOpsServer(routes)).fetch_tree_node(f"{REPO}/objects/s1")

    assert node is not None
    assert node.kind is GitObjectType.TREE
    assert node.children_url is None


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [5, "a1", {"objectId": "a1"}])
async def test_item_listing_without_value_array_is_empty(value) -> None:
    server = FakeDevOpsServer({path(f"{REPO}/items"): {"count": 1, "value": value}})

    assert await make_client(server).list_items(f"{REPO}/items") == []


@pytest.mark.asyncio
async def test_project_listing_without_value_array_is_fatal() -> None:
    server = FakeDevOpsServer({PROJECTS: {"value": 5}})

    with pytest.raises(FatalTransportError, match="Could not list projects"):
        await make_client(server).list_projects(ORGANIZATION)


@pytest.mark.asyncio
async def test_listing_entries_of_the_wrong_type_are_skipped() -> None:
    good = {"objectId": "a1", "gitObjectType": "blob", "path": "/a.csproj", "url": f"{REPO}/objects/a1"}
    server = FakeDevOpsServer({
        path(f"{REPO}/items"): {
            "value": [
                7,
                "a1",
                None,
                {"objectId": 3, "gitObjectType": "blob", "url": f"{REPO}/objects/x"},
                {"objectId": "u", "gitObjectType": "blob", "url": None},
                {**good, "relativePath": 4, "isFolder": "no"},
            ]
        }
    })

    items = await make_client(server).list_items(f"{REPO}/items")

    assert [(i.object_id, i.relative_path, i.name, i.is_folder) for i in items] == [("a1", "", "a.csproj", False)]


@pytest.mark.asyncio
async def test_repository_with_unusable_items_link_is_absorbed() -> None:
    routes = sample_routes()
    routes[path(REPO)] = {**routes[path(REPO)], "_links": {"items": None}}

    assert await make_client(FakeDevOpsServer(routes)).fetch_repository(REPO) is None
