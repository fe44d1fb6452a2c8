"""Shared fakes for the fx-sync test-suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from fxsync.core.exceptions import LedgerError, RemoteError, UploadRejected
from fxsync.domain.entities import (
    AnalysisReport,
    ArtifactRecord,
    CompileReport,
    RemoteArtifactDescriptor,
    UploadResult,
)
from fxsync.domain.enums import ArtifactType, RemoteErrorCode
from fxsync.domain.rules import ledger_key


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRemoteClient:
    """In-memory RemoteArtifactClient that records every call.

    ``upload_errors`` are raised by successive uploads before any succeeds;
    ``always_fail`` is raised by every upload.
    """

    def __init__(self, remote: dict[str, RemoteArtifactDescriptor] | None = None):
        self.remote: dict[str, RemoteArtifactDescriptor] = dict(remote or {})
        self.calls: list[tuple[Any, ...]] = []
        self.uploads: list[dict[str, Any]] = []
        self.upload_errors: list[Exception] = []
        self.always_fail: Exception | None = None
        self.upload_result = UploadResult(id="665f1c2e9b1d4a0012345678")
        self.analysis = AnalysisReport()
        self.compile = CompileReport()
        self.fetch_error: Exception | None = None
        self.files: dict[str, bytes] = {}
        self.temp_failures: set[str] = set()
        self.rejected: set[str] = set()
        self.exact_lookups: list[bool] = []

    async def list_artifacts(self, artifact_type: ArtifactType) -> list[RemoteArtifactDescriptor]:
        self.calls.append(("list", artifact_type.value))
        return list(self.remote.values())

    async def fetch_by_name(self, artifact_type, api_name, binding="NONE", *, exact=True):
        self.calls.append(("fetch", api_name))
        self.exact_lookups.append(exact)
        if self.fetch_error is not None:
            raise self.fetch_error
        if api_name not in self.remote:
            raise RemoteError("未查询到该自定义函数", code=RemoteErrorCode.NOT_FOUND)
        return self.remote[api_name]

    async def download_file(self, file_path: str) -> bytes:
        self.calls.append(("download", file_path))
        return self.files[file_path]

    async def upload_file(self, path: Path) -> str:
        self.calls.append(("upload_file", Path(path).name))
        if Path(path).name in self.temp_failures:
            raise RemoteError("temp upload failed")
        return f"tmp_{Path(path).name}"

    async def analyze(self, payload):
        self.calls.append(("analyze", payload["api_name"]))
        return self.analysis

    async def compile_check(self, payload):
        self.calls.append(("compile", payload["api_name"]))
        return self.compile

    async def upload(self, artifact_type, payload):
        self.calls.append(("upload", payload["updateTime"]))
        self.uploads.append(payload)
        if payload.get("apiName") in self.rejected:
            raise UploadRejected("语法错误")
        if self.always_fail is not None:
            raise self.always_fail
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        return self.upload_result

    @property
    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


class InMemoryLedger:
    """Dict-backed Ledger; ``fail=True`` makes every operation raise."""

    def __init__(self, records: dict[str, ArtifactRecord] | None = None, *, fail: bool = False):
        self.records: dict[str, ArtifactRecord] = dict(records or {})
        self._fail = fail

    def _check(self) -> None:
        if self._fail:
            raise LedgerError("disk full")

    def get(self, key):
        self._check()
        return self.records.get(key)

    def put(self, key, record):
        self._check()
        self.records[key] = record

    def find(self, artifact_type, name, api_name=None):
        record = self.get(ledger_key(artifact_type, name))
        if record is None and api_name:
            record = self.get(api_name)
        return record

    def patch_update_time(self, key, value):
        self._check()
        if key not in self.records:
            raise LedgerError(f"No ledger record for {key}")
        self.records[key] = self.records[key].model_copy(update={"update_time": value})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_client() -> FakeRemoteClient:
    return FakeRemoteClient()


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def failing_ledger() -> InMemoryLedger:
    return InMemoryLedger(fail=True)
