"""Push command: reconcile local artifacts with the remote platform.

Per artifact the engine walks::

    RESOLVING_METADATA → CHECKING_EXISTENCE → CREATING | UPDATING
        → PERSISTING_LEDGER → DONE

with ``FAILED`` reachable from any state.  A version conflict on upload
re-queries the authoritative update time, patches the ledger and retries the
upload exactly once, so no artifact is ever uploaded more than twice.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from fxsync.application.metadata import resolve_metadata
from fxsync.core.exceptions import (
    AnalysisRejected,
    CompileRejected,
    DuplicateNameConflict,
    FxSyncError,
    LedgerError,
    RemoteError,
    StaleVersionConflict,
    UploadRejected,
    VersionConflict,
)
from fxsync.domain.entities import (
    ArtifactRecord,
    BatchPushOutcome,
    LocalArtifact,
    LocalFile,
    PushOutcome,
    RemoteArtifactDescriptor,
    RemoteFile,
    UploadResult,
)
from fxsync.domain.enums import ArtifactType, PushState, RemoteErrorCode
from fxsync.domain.ports import Ledger, RemoteArtifactClient
from fxsync.domain.rules import (
    build_analysis_payload,
    build_component_payload,
    build_upload_payload,
    default_api_name,
    default_directory,
    is_remote_id,
    ledger_key,
    parse_annotations,
    replace_class_placeholder,
)
from fxsync.infrastructure.source.reader import (
    detect_lang,
    infer_artifact_type,
    iter_artifact_paths,
    read_code_file,
    read_component,
)

logger = structlog.get_logger(__name__)

PUSH_ORDER = (ArtifactType.COMPONENT, ArtifactType.PLUGIN, ArtifactType.FUNCTION, ArtifactType.CLASS)


class ReconciliationEngine:
    """Runs the push state machine against a remote client and a ledger.

    Args:
        client: Remote platform port.
        ledger_for: Returns the ledger governing a given artifact directory.
        project_root: Root used for content pushes and ``push_everything``.
        commit_message: Commit text sent with function/class uploads.
        tenant_id: Written into ledger records.
    """

    def __init__(
        self,
        client: RemoteArtifactClient,
        ledger_for: Callable[[Path], Ledger],
        project_root: Path,
        *,
        commit_message: str = "fx-cli upload",
        tenant_id: str = "",
    ) -> None:
        self._client = client
        self._ledger_for = ledger_for
        self._project_root = Path(project_root)
        self._commit_message = commit_message
        self._tenant_id = tenant_id

    # ------------------------------------------------------------------
    # Existence
    # ------------------------------------------------------------------

    async def exists(
        self,
        artifact_type: ArtifactType,
        api_name: str,
        binding: str = "NONE",
    ) -> RemoteArtifactDescriptor | None:
        """Return the remote descriptor, or ``None`` when absent.

        A raw 24-char hex id is taken as proof of existence without a call.
        """
        if is_remote_id(api_name):
            return RemoteArtifactDescriptor(id=api_name, api_name=api_name, binding_object_api_name=binding)
        try:
            return await self._client.fetch_by_name(artifact_type, api_name, binding)
        except RemoteError as e:
            if e.code is RemoteErrorCode.NOT_FOUND:
                return None
            raise

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    async def create(self, artifact: LocalArtifact, ledger: Ledger | None = None) -> PushOutcome:
        """Create a new artifact: analyze, compile-check, upload with ``updateTime=0``."""
        log = logger.bind(artifact_type=artifact.type.value, name=artifact.name)
        if artifact.type.is_code:
            await self._validate(artifact, log)

        try:
            result = await self._client.upload(artifact.type, self._payload(artifact, 0))
        except DuplicateNameConflict as e:
            result, update_time = await self._recover_conflict(artifact, e, ledger, log)
            self._persist(artifact, ledger, result.update_time or update_time, log)
            return PushOutcome(
                success=True,
                name=artifact.name,
                id=result.id or artifact.api_name,
                is_new=False,
                message=f"Updated existing {artifact.type.value} {artifact.name}",
            )

        self._persist(artifact, ledger, result.update_time or 0, log)
        return PushOutcome(
            success=True,
            name=artifact.name,
            id=result.id or artifact.api_name,
            is_new=True,
            message=f"Created {artifact.type.value} {artifact.name}",
        )

    async def update(
        self,
        artifact: LocalArtifact,
        update_time_hint: int,
        ledger: Ledger | None = None,
    ) -> PushOutcome:
        """Upload over an existing artifact, recovering once from a version conflict."""
        log = logger.bind(artifact_type=artifact.type.value, name=artifact.name)
        update_time = update_time_hint
        try:
            result = await self._client.upload(artifact.type, self._payload(artifact, update_time_hint))
        except VersionConflict as e:
            if not _is_recoverable(e, update_time_hint):
                log.error("push.upload.rejected", error=e.message, update_time=update_time_hint)
                raise
            result, update_time = await self._recover_conflict(artifact, e, ledger, log)

        if artifact.type.is_code:
            await self._advisory_checks(artifact, log)

        self._persist(artifact, ledger, result.update_time or update_time, log)
        return PushOutcome(
            success=True,
            name=artifact.name,
            id=result.id or artifact.api_name,
            is_new=False,
            message=f"Updated {artifact.type.value} {artifact.name}",
        )

    async def _recover_conflict(
        self,
        artifact: LocalArtifact,
        conflict: VersionConflict,
        ledger: Ledger | None,
        log: Any,
    ) -> tuple[UploadResult, int]:
        log.warning(
            "push.upload.conflict",
            kind=type(conflict).__name__,
            submitted=conflict.update_time,
            error=conflict.message,
        )
        remote = await self.exists(artifact.type, artifact.api_name, artifact.binding_object_api_name)
        if remote is None or remote.update_time <= 0:
            log.error("push.conflict.unresolved", error=conflict.message)
            raise UploadRejected(
                f"{conflict.message} (authoritative version not found)",
                details={"api_name": artifact.api_name},
            ) from conflict

        authoritative = remote.update_time
        self._patch_ledger(artifact, ledger, authoritative, log)
        log.info("push.upload.retry", update_time=authoritative)
        try:
            result = await self._client.upload(artifact.type, self._payload(artifact, authoritative))
        except UploadRejected as e:
            log.error("push.retry.failed", error=e.message, update_time=authoritative)
            raise
        return result, authoritative

    # ------------------------------------------------------------------
    # Server-side checks
    # ------------------------------------------------------------------

    async def _validate(self, artifact: LocalArtifact, log: Any) -> None:
        payload = build_analysis_payload(artifact)

        report = await self._client.analyze(payload)
        if report.failure_message:
            raise AnalysisRejected(f"Analysis failed: {report.failure_message}")
        serious = report.serious_violation
        if serious is not None:
            raise AnalysisRejected(
                f"Analysis found a serious violation: {serious.message or 'unknown error'}",
                details={"priority": serious.priority},
            )
        if not report.success or report.violations:
            log.warning("push.analyze.warnings", count=len(report.violations))

        compiled = await self._client.compile_check(payload)
        if not compiled.ok:
            raise CompileRejected(f"Compile check failed: {compiled.failure_message}")

    async def _advisory_checks(self, artifact: LocalArtifact, log: Any) -> None:
        try:
            await self._validate(artifact, log)
        except FxSyncError as e:
            log.warning("push.post_check.failed", error=e.message)

    # ------------------------------------------------------------------
    # Ledger (best effort)
    # ------------------------------------------------------------------

    def _persist(self, artifact: LocalArtifact, ledger: Ledger | None, update_time: int, log: Any) -> None:
        if ledger is None:
            return
        log.info("push.state", state=PushState.PERSISTING_LEDGER.value)
        try:
            ledger.put(ledger_key(artifact.type, artifact.name), artifact.to_record(update_time, self._tenant_id))
        except LedgerError as e:
            log.warning("push.ledger.write_failed", error=e.message)

    def _patch_ledger(self, artifact: LocalArtifact, ledger: Ledger | None, update_time: int, log: Any) -> None:
        if ledger is None:
            return
        key = ledger_key(artifact.type, artifact.name)
        try:
            if ledger.get(key) is None:
                ledger.put(key, artifact.to_record(update_time, self._tenant_id))
            else:
                ledger.patch_update_time(key, update_time)
        except LedgerError as e:
            log.warning("push.ledger.patch_failed", error=e.message)

    def _find_record(
        self,
        ledger: Ledger,
        artifact_type: ArtifactType,
        name: str,
        api_name: str,
    ) -> ArtifactRecord | None:
        try:
            return ledger.find(artifact_type, name, api_name)
        except LedgerError as e:
            logger.warning("push.ledger.read_failed", name=name, error=e.message)
            return None

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    def _payload(self, artifact: LocalArtifact, update_time: int) -> dict[str, Any]:
        if artifact.type.is_code:
            return build_upload_payload(artifact, update_time, self._commit_message)
        return build_component_payload(artifact, update_time)

    async def _stage_files(self, files: list[LocalFile], tree_mode: bool, log: Any) -> list[RemoteFile]:
        """Upload files to temp storage; the temp name replaces the local path."""
        staged: list[RemoteFile] = []
        for local in files:
            relative = f"{local.path}/{local.file_name}" if local.path else local.file_name
            try:
                file_path = await self._client.upload_file(local.full_path)
            except RemoteError as e:
                log.warning("push.temp_upload.failed", file=relative, error=e.message)
                file_path = relative
            staged.append(
                RemoteFile(
                    file_name=local.file_name,
                    file_path=file_path,
                    file_size=local.file_size,
                    path=local.path if tree_mode else None,
                )
            )
        return staged

    # ------------------------------------------------------------------
    # Artifact preparation
    # ------------------------------------------------------------------

    def _prepare_code(
        self,
        artifact_type: ArtifactType,
        name: str,
        content: str,
        ledger: Ledger,
        *,
        lang: int = 0,
        source_path: Path | None = None,
        explicit: dict[str, Any] | None = None,
    ) -> tuple[LocalArtifact, ArtifactRecord | None]:
        if artifact_type is ArtifactType.CLASS:
            content = replace_class_placeholder(content, name)
        hinted = (explicit or {}).get("api_name") or parse_annotations(content).get("apiName")
        record = self._find_record(ledger, artifact_type, name, hinted or default_api_name(name))
        meta = resolve_metadata(content, name, record, explicit)
        artifact = LocalArtifact(
            type=artifact_type,
            name=name,
            content=content,
            api_name=meta.api_name,
            binding_object_api_name=meta.binding_object_api_name,
            name_space=meta.name_space,
            return_type=meta.return_type,
            lang=lang,
            description=(explicit or {}).get("description") or "",
            source_path=source_path,
        )
        return artifact, record

    async def _prepare_bundle(
        self,
        artifact_type: ArtifactType,
        directory: Path,
        ledger: Ledger,
        log: Any,
    ) -> tuple[LocalArtifact, ArtifactRecord | None]:
        source = read_component(directory, artifact_type)
        record = self._find_record(ledger, artifact_type, source.name, default_api_name(source.name))
        meta = resolve_metadata("", source.name, record)
        return (
            LocalArtifact(
                type=artifact_type,
                name=source.name,
                api_name=meta.api_name,
                meta_xml=source.meta_xml,
                source_path=directory,
                files=await self._stage_files(source.files, source.tree_mode, log),
                images=await self._stage_files(source.images, False, log),
                tree_mode=source.tree_mode,
            ),
            record,
        )

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def _reconcile(
        self,
        artifact: LocalArtifact,
        record: ArtifactRecord | None,
        ledger: Ledger,
        log: Any,
    ) -> PushOutcome:
        state = PushState.CHECKING_EXISTENCE
        log.info("push.state", state=state.value, api_name=artifact.api_name)
        try:
            remote = await self.exists(artifact.type, artifact.api_name, artifact.binding_object_api_name)
            if remote is None:
                state = PushState.CREATING
                log.info("push.state", state=state.value)
                outcome = await self.create(artifact, ledger)
            else:
                hint = record.update_time if record and record.update_time else remote.update_time
                state = PushState.UPDATING
                log.info("push.state", state=state.value, update_time=hint)
                outcome = await self.update(artifact, hint, ledger)
        except FxSyncError as e:
            return _failed(artifact.name, e, state, log)
        log.info("push.state", state=PushState.DONE.value, id=outcome.id, is_new=outcome.is_new)
        return outcome

    async def push_file(self, path: str | Path, artifact_type: ArtifactType | None = None) -> PushOutcome:
        """Push one function/class file or one component/plugin directory."""
        path = Path(path)
        artifact_type = artifact_type or infer_artifact_type(path)
        name = path.name if artifact_type.is_bundle else path.stem
        log = logger.bind(artifact_type=artifact_type.value, name=name)
        log.info("push.state", state=PushState.RESOLVING_METADATA.value, path=str(path))
        try:
            if not path.exists():
                raise FxSyncError(f"Path does not exist: {path}")
            ledger = self._ledger_for(path if artifact_type.is_bundle else path.parent)
            if artifact_type.is_code:
                artifact, record = self._prepare_code(
                    artifact_type,
                    name,
                    read_code_file(path),
                    ledger,
                    lang=detect_lang(path),
                    source_path=path,
                )
            else:
                artifact, record = await self._prepare_bundle(artifact_type, path, ledger, log)
        except (FxSyncError, OSError) as e:
            return _failed(name, e, PushState.RESOLVING_METADATA, log)
        return await self._reconcile(artifact, record, ledger, log)

    async def push_content(
        self,
        name: str,
        content: str,
        artifact_type: ArtifactType = ArtifactType.FUNCTION,
        **explicit: Any,
    ) -> PushOutcome:
        """Push source text that has no file behind it.

        Keyword arguments (``api_name``, ``binding_object_api_name``,
        ``name_space``, ``return_type``, ``description``, ``lang``) override
        annotations and the ledger.
        """
        log = logger.bind(artifact_type=artifact_type.value, name=name)
        log.info("push.state", state=PushState.RESOLVING_METADATA.value)
        if not artifact_type.is_code:
            error = FxSyncError(f"Content push is not supported for {artifact_type.value}")
            return _failed(name, error, PushState.RESOLVING_METADATA, log)
        ledger = self._ledger_for(self._project_root)
        artifact, record = self._prepare_code(
            artifact_type,
            name,
            content,
            ledger,
            lang=int(explicit.pop("lang", 0) or 0),
            explicit=explicit,
        )
        return await self._reconcile(artifact, record, ledger, log)

    async def push_directory(self, directory: str | Path, artifact_type: ArtifactType) -> BatchPushOutcome:
        """Push every artifact under *directory* sequentially, continuing past failures."""
        directory = Path(directory)
        paths = iter_artifact_paths(directory, artifact_type)
        if not paths:
            return BatchPushOutcome(success=False, message=f"No {artifact_type.folder} found in {directory}")

        results: list[PushOutcome] = []
        failed: list[str] = []
        for path in paths:
            outcome = await self.push_file(path, artifact_type)
            results.append(outcome)
            if not outcome.success:
                failed.append(path.name)
        return _aggregate(results, failed)

    async def push_everything(self, project_root: str | Path | None = None) -> BatchPushOutcome:
        """Push every type from its default directory under the project root."""
        root = Path(project_root) if project_root is not None else self._project_root
        results: list[PushOutcome] = []
        failed: list[str] = []
        for artifact_type in PUSH_ORDER:
            directory = default_directory(root, artifact_type)
            if not directory.is_dir():
                continue
            batch = await self.push_directory(directory, artifact_type)
            results.extend(batch.results)
            failed.extend(batch.failed_functions)
        if not results:
            return BatchPushOutcome(success=False, message=f"No artifacts found under {root}")
        return _aggregate(results, failed)


def _is_recoverable(conflict: VersionConflict, hint: int) -> bool:
    if isinstance(conflict, StaleVersionConflict):
        return hint != 0
    if isinstance(conflict, DuplicateNameConflict):
        return hint == 0
    return False


def _failed(name: str, error: Exception, state: PushState, log: Any) -> PushOutcome:
    message = error.message if isinstance(error, FxSyncError) else str(error)
    log.error("push.state", state=PushState.FAILED.value, failed_in=state.value, error=message)
    return PushOutcome(success=False, name=name, message=message, state=PushState.FAILED)


def _aggregate(results: list[PushOutcome], failed: list[str]) -> BatchPushOutcome:
    success_count = sum(1 for r in results if r.success)
    fail_count = len(results) - success_count
    return BatchPushOutcome(
        success=success_count > 0,
        message=f"{success_count} succeeded, {fail_count} failed",
        results=results,
        success_count=success_count,
        fail_count=fail_count,
        failed_functions=failed,
    )
