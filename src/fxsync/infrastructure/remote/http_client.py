"""httpx implementation of the ``RemoteArtifactClient`` port.

All platform endpoints are JSON POSTs answering with the envelope
``{Result: {StatusCode, FailureMessage}, Value, Error: {Message}}``.  This
module turns envelopes into typed results and every failure into a
``RemoteError`` whose ``code`` the reconciliation engine can branch on.
"""

from __future__ import annotations

import base64
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from fxsync.config.settings import Settings
from fxsync.core.exceptions import (
    DuplicateNameConflict,
    RemoteError,
    StaleVersionConflict,
    UploadRejected,
)
from fxsync.domain.entities import (
    AnalysisReport,
    CompileReport,
    RemoteArtifactDescriptor,
    ResponseEnvelope,
    UploadResult,
)
from fxsync.domain.enums import ArtifactType, RemoteErrorCode
from fxsync.domain.rules import classify_failure

logger = structlog.get_logger(__name__)

# Function / class endpoints
FUNCTION_LIST_PATH = "/FHH/EMDHFUNC/biz/download"
FUNCTION_FIND_PATH = "/FHH/EMDHFUNC/biz/find"
ANALYZE_PATH = "/FHH/EMDHFUNC/runtime/analyze"
COMPILE_CHECK_PATH = "/FHH/EMDHFUNC/runtime/compileCheck"
FUNCTION_UPLOAD_PATH = "/FHH/EMDHFUNC/biz/upload"

# Component / plugin endpoints
COMPONENT_DOWNLOAD_PATH = "/FHH/EMDHCompBuild/VscodeExtension/downloadCode"
FILE_DOWNLOAD_PATH = "/FHH/EMDHCompBuild/VscodeExtension/downloadFile"
FILE_UPLOAD_PATH = "/FHH/EMDHCompBuild/VscodeExtension/uploadFile"
COMPONENT_UPLOAD_PATH = "/FHH/EMDHCompBuild/VscodeExtension/uploadCode"

LIST_PAGE_SIZE = 2000

T = TypeVar("T")


class HttpRemoteArtifactClient:
    """Remote artifact client backed by a shared ``httpx.AsyncClient``.

    Pass *client* to inject a preconfigured client (tests use
    ``httpx.MockTransport``); otherwise one is created and owned here.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(settings.request_timeout))

    async def __aenter__(self) -> HttpRemoteArtifactClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(self, path: str, body: dict[str, Any]) -> ResponseEnvelope:
        self._settings.require_auth()
        url = f"{self._settings.base_url}{path}"
        log = logger.bind(path=path)
        try:
            response = await self._client.post(
                url,
                json=body,
                params={"traceId": f"fx-cli-{int(time.time() * 1000)}"},
                headers={
                    "Content-Type": "application/json",
                    "Authorization": self._settings.certificate,
                },
            )
        except httpx.TransportError as e:
            log.error("remote.transport_error", error=str(e))
            raise RemoteError(f"Request to {path} failed: {e}", code=RemoteErrorCode.TRANSPORT) from e

        if response.status_code >= 400:
            text = response.text[:500]
            log.warning("remote.http_error", status=response.status_code)
            raise RemoteError(
                f"HTTP {response.status_code} from {path}: {text}",
                code=classify_failure(text, response.status_code),
                status_code=response.status_code,
            )

        try:
            return ResponseEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RemoteError(
                f"Malformed response from {path}: {e}",
                status_code=response.status_code,
            ) from e

    def _require_ok(self, envelope: ResponseEnvelope, path: str) -> ResponseEnvelope:
        if not envelope.ok:
            message = envelope.result.failure_message or envelope.notice or "unknown error"
            raise RemoteError(
                message,
                code=classify_failure(message),
                details={"path": path, "status_code": envelope.result.status_code},
            )
        if envelope.notice:
            logger.info("remote.notice", path=path, notice=envelope.notice)
        return envelope

    async def _call(self, path: str, body: dict[str, Any]) -> ResponseEnvelope:
        return self._require_ok(await self._post(path, body), path)

    @staticmethod
    def _build(path: str, factory: Callable[[], T]) -> T:
        """Run *factory* over server data, turning bad shapes into ``RemoteError``."""
        try:
            return factory()
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning("remote.malformed_value", path=path, error=str(e))
            raise RemoteError(
                f"Malformed value from {path}: {e}",
                code=RemoteErrorCode.REJECTED,
                details={"path": path},
            ) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_artifacts(self, artifact_type: ArtifactType) -> list[RemoteArtifactDescriptor]:
        if artifact_type.is_code:
            envelope = await self._call(
                FUNCTION_LIST_PATH,
                {
                    "bindingObjectApiName": "NONE",
                    "pageNumber": 1,
                    "pageSize": LIST_PAGE_SIZE,
                    "type": artifact_type.value,
                },
            )
            items = envelope.value_dict().get("list") or []
        else:
            envelope = await self._call(COMPONENT_DOWNLOAD_PATH, {"type": artifact_type.value})
            items = envelope.value_dict().get("components") or []
        path = FUNCTION_LIST_PATH if artifact_type.is_code else COMPONENT_DOWNLOAD_PATH
        return self._build(path, lambda: [RemoteArtifactDescriptor.model_validate(item) for item in items])

    async def fetch_by_name(
        self,
        artifact_type: ArtifactType,
        api_name: str,
        binding: str = "NONE",
        *,
        exact: bool = True,
    ) -> RemoteArtifactDescriptor:
        """Fetch one artifact; raises ``RemoteError(NOT_FOUND)`` if absent.

        Component lookups only accept an entry whose ``apiName`` matches,
        unless *exact* is false, in which case the first entry is taken as
        a fallback.
        """
        if artifact_type.is_code:
            path = FUNCTION_FIND_PATH
            envelope = await self._call(
                path,
                {
                    "api_name": api_name,
                    "binding_object_api_name": binding or "NONE",
                    "type": artifact_type.value,
                },
            )
            item = envelope.value_dict().get("function")
        else:
            path = COMPONENT_DOWNLOAD_PATH
            envelope = await self._call(
                path,
                {"type": artifact_type.value, "apiName": api_name},
            )
            components = [c for c in envelope.value_dict().get("components") or [] if isinstance(c, dict)]
            fallback = components[0] if components and not exact else None
            item = next((c for c in components if c.get("apiName") == api_name), fallback)
        if not item:
            raise RemoteError(
                f"{artifact_type.value} {api_name} not found",
                code=RemoteErrorCode.NOT_FOUND,
            )
        return self._build(path, lambda: RemoteArtifactDescriptor.model_validate(item))

    async def download_file(self, file_path: str) -> bytes:
        envelope = await self._call(FILE_DOWNLOAD_PATH, {"nPath": file_path})
        encoded = envelope.value_dict().get("base64String")
        if encoded is None:
            raise RemoteError(f"No content returned for {file_path}")
        return self._build(FILE_DOWNLOAD_PATH, lambda: base64.b64decode(encoded))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upload_file(self, path: Path) -> str:
        """Upload one file to temporary storage and return its temp name."""
        data = Path(path).read_bytes()
        envelope = await self._call(
            FILE_UPLOAD_PATH,
            {"fileName": Path(path).name, "base64String": base64.b64encode(data).decode("ascii")},
        )
        value = envelope.value_dict()
        temp_name = value.get("TempFileName") or value.get("nPath")
        if not temp_name:
            raise RemoteError(f"No temp file name returned for {Path(path).name}")
        return temp_name

    async def analyze(self, payload: dict[str, Any]) -> AnalysisReport:
        envelope = await self._post(ANALYZE_PATH, {"function": payload})
        if envelope.result.failure_message or not envelope.ok:
            return AnalysisReport(
                success=False,
                failure_message=envelope.result.failure_message or "analysis failed",
            )
        value = envelope.value_dict()
        return self._build(
            ANALYZE_PATH,
            lambda: AnalysisReport(
                success=value.get("success", True) is not False,
                violations=value.get("violations") or [],
            ),
        )

    async def compile_check(self, payload: dict[str, Any]) -> CompileReport:
        envelope = await self._post(COMPILE_CHECK_PATH, {"function": payload})
        if envelope.result.failure_message or not envelope.ok:
            return CompileReport(failure_message=envelope.result.failure_message or "compile check failed")
        return CompileReport()

    async def upload(self, artifact_type: ArtifactType, payload: dict[str, Any]) -> UploadResult:
        """Submit an artifact.

        Stale-version and duplicate-name rejections surface as
        ``StaleVersionConflict`` / ``DuplicateNameConflict``; any other
        rejection is an ``UploadRejected``.
        """
        if artifact_type.is_code:
            path, body = FUNCTION_UPLOAD_PATH, payload
        else:
            path, body = COMPONENT_UPLOAD_PATH, {"component": payload}

        envelope = await self._post(path, body)
        update_time = int(payload.get("updateTime") or 0)
        if not envelope.ok:
            message = envelope.result.failure_message or envelope.notice or "unknown error"
            code = classify_failure(message)
            details = {"code": code.value, "status_code": envelope.result.status_code}
            if code is RemoteErrorCode.STALE_VERSION:
                raise StaleVersionConflict(message, update_time, details)
            if code is RemoteErrorCode.DUPLICATE_NAME:
                raise DuplicateNameConflict(message, update_time, details)
            raise UploadRejected(message, details)

        if envelope.notice:
            logger.warning("remote.upload.notice", path=path, notice=envelope.notice)
        value = envelope.value_dict()
        server_time = value.get("updateTime")
        return self._build(
            path,
            lambda: UploadResult(
                id=str(value["id"]) if value.get("id") else None,
                update_time=int(server_time) if server_time else None,
                notice=envelope.notice,
            ),
        )
