"""Dependency wiring for fx-sync.

``create_container`` builds the HTTP client, the ledger factory and both
command services from one ``Settings`` object.  Nothing here is global; the
CLI builds one container per invocation.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from fxsync.application.commands.pull_artifact import PullService
from fxsync.application.commands.push_artifact import ReconciliationEngine
from fxsync.config.settings import Settings
from fxsync.domain.ports import Ledger
from fxsync.infrastructure.ledger.json_ledger import JsonLedger, locate_ledger
from fxsync.infrastructure.remote.http_client import HttpRemoteArtifactClient


@dataclass
class Container:
    settings: Settings
    client: HttpRemoteArtifactClient
    engine: ReconciliationEngine
    puller: PullService

    async def aclose(self) -> None:
        await self.client.aclose()


def ledger_factory(settings: Settings) -> Callable[[Path], Ledger]:
    """Ledger lookup bound to the project root and search depth in *settings*."""

    def ledger_for(start_dir: Path) -> Ledger:
        return JsonLedger(
            locate_ledger(
                start_dir,
                settings.project_root,
                settings.ledger_filename,
                settings.ledger_search_depth,
            )
        )

    return ledger_for


def create_container(settings: Settings, http_client: httpx.AsyncClient | None = None) -> Container:
    client = HttpRemoteArtifactClient(settings, http_client)
    ledger_for = ledger_factory(settings)
    engine = ReconciliationEngine(
        client,
        ledger_for,
        settings.project_root,
        commit_message=settings.commit_message,
        tenant_id=settings.tenant_id,
    )
    puller = PullService(client, ledger_for, settings.project_root)
    return Container(settings=settings, client=client, engine=engine, puller=puller)
