"""
main.py — Dependency Wiring (Composition Root)
------------------------------------------------
This file has ONE job: wire all the pieces together and run the inventory.

It does NOT contain any business logic. It just:
  1. Reads configuration from environment variables and flags
  2. Creates concrete implementations of each interface
  3. Injects them into the classes that need them
  4. Calls the top-level use case (InventoryApplicationService.execute)
  5. Reports the result and exits

Dependency graph (what depends on what):
                         main.py  (wires everything)
                            │
              ┌─────────────┼───────────────────┐
              ▼             ▼                   ▼
  InventoryApplicationService │    CsvInventoryStorage | PostgresInventoryStorage
              │             │
              ▼             ▼
  InventoryOrchestrator  AzureDevOpsClient ── httpx.AsyncClient
              │                                  (api-version + cache transports)
              ▼
         TreeWalker
       ┌──────┴───────┐
       ▼              ▼
 IDevOpsGateway  MsBuildDescriptorParser
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass

import psycopg2

# Domain layer
from framework_inventory.domain.entities import InventoryRunResult

# Application layer
from framework_inventory.application.descriptor_parser import MsBuildDescriptorParser
from framework_inventory.application.inventory_service import InventoryApplicationService
from framework_inventory.application.orchestrator import InventoryOrchestrator
from framework_inventory.application.tree_walker import TreeWalker

# Infrastructure layer
from framework_inventory.infrastructure.csv_storage import CsvInventoryStorage
from framework_inventory.infrastructure.devops_client import AzureDevOpsClient
from framework_inventory.infrastructure.postgres_storage import PostgresInventoryStorage
from framework_inventory.infrastructure.response_cache import DEFAULT_TTL, ResponseCache
from framework_inventory.infrastructure.transport import build_http_client

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONCURRENCY = 1


@dataclass(frozen=True)
class Settings:
    organization: str
    username:     str
    token:        str
    database_url: str | None


def _read_env() -> Settings:
    """
    Read required environment variables.
    Fails fast with a clear error if any is missing.
    """
    organization = os.environ.get("AZURE_DEVOPS_ORGANIZATION")
    token        = os.environ.get("AZURE_DEVOPS_PAT")

    if not organization:
        log.error("AZURE_DEVOPS_ORGANIZATION environment variable is required")
        sys.exit(1)

    if not token:
        log.error("AZURE_DEVOPS_PAT environment variable is required")
        sys.exit(1)

    return Settings(
        organization = organization,
        username     = os.environ.get("AZURE_DEVOPS_USERNAME", ""),
        token        = token,
        database_url = os.environ.get("DATABASE_URL") or None,
    )


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM ask the run to stop between repositories."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            log.debug("Cannot install handler for %s", sig.name)


# ---------------------------------------------------------------------------
# Dependency wiring
# ---------------------------------------------------------------------------

async def build_and_run(settings: Settings, output_dir: str, concurrency: int, cache_ttl: float) -> InventoryRunResult:
    """
    Wires all dependencies together and executes the inventory use case.

    This is the Composition Root — the only place that knows which
    concrete class implements each interface.
    """

    # Infrastructure: create the HTTP client and, if configured, the DB connection
    client = build_http_client(
        username = settings.username,
        token    = settings.token,
        cache    = ResponseCache(ttl=cache_ttl),
    )
    conn = psycopg2.connect(settings.database_url) if settings.database_url else None

    stop_event = asyncio.Event()
    _install_stop_handlers(stop_event)

    try:
        # --- Wire the dependency graph bottom-up ---

        # Infrastructure implementations
        gateway = AzureDevOpsClient(
            client = client,       # injected — AzureDevOpsClient doesn't create this
        )
        if conn is not None:
            storage = PostgresInventoryStorage(conn=conn)
        else:
            storage = CsvInventoryStorage(output_dir=output_dir)

        # Application services (receive infrastructure via injection)
        walker = TreeWalker(
            gateway        = gateway,                    # injected IDevOpsGateway
            parser         = MsBuildDescriptorParser(),  # injected IDescriptorParser
            max_concurrent = concurrency,
        )
        orchestrator = InventoryOrchestrator(
            gateway = gateway,
            walker  = walker,
        )

        # Top-level use case (receives application services via injection)
        service = InventoryApplicationService(
            orchestrator = orchestrator,  # injected
            storage      = storage,       # injected IInventoryStorage
        )

        # --- Execute ---
        result = await service.execute(settings.organization, stop_event)

        # --- Report ---
        if result.status == "failed":
            log.error(
                "❌ Failed | %d findings collected before failure | error: %s",
                result.findings,
                result.error_message,
            )
        else:
            log.info(
                "✅ %s | %d repos | %d findings | %d fetch failures | %d parse failures | %.0fs | run_id=%d",
                result.status.capitalize(),
                result.repositories,
                result.findings,
                result.fetch_failures,
                result.parse_failures,
                result.elapsed_secs,
                result.run_id,
            )
        return result

    finally:
        # Always clean up connections, even if an exception occurred
        await client.aclose()
        if conn is not None:
            conn.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inventory the .NET target frameworks declared across an Azure DevOps organization"
    )
    parser.add_argument(
        "--output-dir",
        default = ".",
        help    = "Directory for the CSV files when DATABASE_URL is not set (default: .)",
    )
    parser.add_argument(
        "--concurrency",
        type    = int,
        default = DEFAULT_CONCURRENCY,
        help    = f"Maximum in-flight tree fetches per item (default: {DEFAULT_CONCURRENCY})",
    )
    parser.add_argument(
        "--cache-ttl",
        type    = float,
        default = DEFAULT_TTL,
        help    = f"Seconds a fetched response stays cached (default: {DEFAULT_TTL})",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.concurrency < 1:
        log.error("--concurrency must be at least 1")
        return 1

    settings = _read_env()
    result = asyncio.run(build_and_run(settings, args.output_dir, args.concurrency, args.cache_ttl))
    return 1 if result.status == "failed" else 0


if __name__ == "__main__":
    sys.exit(main())
