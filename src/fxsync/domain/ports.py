"""Port definitions (hexagonal architecture).

The application layer depends only on these Protocols.  The HTTP client and
the JSON ledger in ``fxsync.infrastructure`` satisfy them, and so do the
fakes used in tests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from fxsync.domain.entities import (
    AnalysisReport,
    ArtifactRecord,
    CompileReport,
    RemoteArtifactDescriptor,
    UploadResult,
)
from fxsync.domain.enums import ArtifactType


# ---------------------------------------------------------------------------
# Remote platform
# ---------------------------------------------------------------------------


@runtime_checkable
class RemoteArtifactClient(Protocol):
    """Typed access to the platform endpoints.

    Every method raises ``RemoteError`` carrying a ``RemoteErrorCode`` on
    failure.  ``upload`` raises the typed conflicts instead when the failure
    is a stale-version or duplicate-name rejection.
    """

    async def list_artifacts(self, artifact_type: ArtifactType) -> list[RemoteArtifactDescriptor]: ...

    async def fetch_by_name(
        self,
        artifact_type: ArtifactType,
        api_name: str,
        binding: str = "NONE",
        *,
        exact: bool = True,
    ) -> RemoteArtifactDescriptor: ...

    async def download_file(self, file_path: str) -> bytes: ...

    async def upload_file(self, path: Path) -> str: ...

    async def analyze(self, payload: dict[str, Any]) -> AnalysisReport: ...

    async def compile_check(self, payload: dict[str, Any]) -> CompileReport: ...

    async def upload(self, artifact_type: ArtifactType, payload: dict[str, Any]) -> UploadResult: ...


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@runtime_checkable
class Ledger(Protocol):
    """Key/value store of last-known artifact metadata."""

    def get(self, key: str) -> ArtifactRecord | None: ...
    def put(self, key: str, record: ArtifactRecord) -> None: ...
    def find(self, artifact_type: ArtifactType, name: str, api_name: str | None = None) -> ArtifactRecord | None: ...
    def patch_update_time(self, key: str, value: int) -> None: ...
