"""Pull command: download remote artifacts into the local project tree.

Functions and classes land as single source files; components and plugins
as directory trees whose files are fetched concurrently.  Every successful
pull refreshes the artifact's ledger record.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import structlog

from fxsync.core.exceptions import FxSyncError, IncompleteArtifact, LedgerError, RemoteError
from fxsync.domain.entities import PullOutcome, RemoteArtifactDescriptor, RemoteFile
from fxsync.domain.enums import ArtifactType, RemoteErrorCode
from fxsync.domain.ports import Ledger, RemoteArtifactClient
from fxsync.domain.rules import default_api_name, default_directory, ledger_key, strip_suffix
from fxsync.infrastructure.source.writer import (
    bundle_file_path,
    finalize_bundle,
    write_bytes,
    write_code_file,
)

logger = structlog.get_logger(__name__)

PULL_ORDER = (ArtifactType.COMPONENT, ArtifactType.PLUGIN, ArtifactType.FUNCTION, ArtifactType.CLASS)


class PullService:
    """Fetch artifacts from the remote client and write them to disk."""

    def __init__(
        self,
        client: RemoteArtifactClient,
        ledger_for: Callable[[Path], Ledger],
        project_root: Path,
    ) -> None:
        self._client = client
        self._ledger_for = ledger_for
        self._project_root = Path(project_root)

    def _output_dir(self, artifact_type: ArtifactType, output_dir: str | Path | None) -> Path:
        if output_dir is not None:
            return Path(output_dir)
        return default_directory(self._project_root, artifact_type)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def pull_by_name(
        self,
        artifact_type: ArtifactType,
        name: str,
        output_dir: str | Path | None = None,
    ) -> PullOutcome:
        """Pull a single artifact by name or apiName."""
        out = self._output_dir(artifact_type, output_dir)
        log = logger.bind(artifact_type=artifact_type.value, name=name)
        api_name = default_api_name(name)
        try:
            descriptor = await self._client.fetch_by_name(artifact_type, api_name, exact=False)
        except RemoteError as e:
            if e.code is RemoteErrorCode.NOT_FOUND:
                log.warning("pull.not_found")
                return PullOutcome(success=False, name=name, message=f"{artifact_type.value} {name} not found")
            log.error("pull.failed", error=e.message)
            return PullOutcome(success=False, name=name, message=e.message)
        return await self._pull_one(artifact_type, descriptor, out)

    async def pull_type(
        self,
        artifact_type: ArtifactType,
        output_dir: str | Path | None = None,
    ) -> list[PullOutcome]:
        """Pull every remote artifact of *artifact_type*."""
        out = self._output_dir(artifact_type, output_dir)
        try:
            descriptors = await self._client.list_artifacts(artifact_type)
        except RemoteError as e:
            logger.error("pull.list_failed", artifact_type=artifact_type.value, error=e.message)
            return [PullOutcome(success=False, name=artifact_type.value, message=e.message)]

        logger.info("pull.listed", artifact_type=artifact_type.value, count=len(descriptors))
        return [await self._pull_one(artifact_type, d, out) for d in descriptors]

    async def pull_everything(self, project_root: str | Path | None = None) -> list[PullOutcome]:
        """Pull all four types into the default layout under *project_root*."""
        root = Path(project_root) if project_root is not None else self._project_root
        outcomes: list[PullOutcome] = []
        for artifact_type in PULL_ORDER:
            outcomes.extend(await self.pull_type(artifact_type, default_directory(root, artifact_type)))
        return outcomes

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _pull_one(
        self,
        artifact_type: ArtifactType,
        descriptor: RemoteArtifactDescriptor,
        out: Path,
    ) -> PullOutcome:
        log = logger.bind(artifact_type=artifact_type.value, api_name=descriptor.api_name)
        local_name = descriptor.api_name or descriptor.id
        try:
            local_name = _local_name(artifact_type, descriptor)
            log = log.bind(name=local_name)
            if artifact_type.is_code:
                path = write_code_file(out, descriptor)
            else:
                path = await self._write_bundle(artifact_type, descriptor, out / local_name)
        except (FxSyncError, OSError) as e:
            message = e.message if isinstance(e, FxSyncError) else str(e)
            log.error("pull.failed", error=message)
            return PullOutcome(success=False, name=local_name, message=message)

        self._record(artifact_type, local_name, descriptor, path, log)
        log.info("pull.saved", path=str(path))
        return PullOutcome(success=True, name=local_name, path=str(path), message=f"Pulled {local_name}")

    async def _write_bundle(
        self,
        artifact_type: ArtifactType,
        descriptor: RemoteArtifactDescriptor,
        component_dir: Path,
    ) -> Path:
        source_dir = component_dir / "sourceFiles"
        static_dir = component_dir / "static"

        targets: list[tuple[RemoteFile, Path]] = [
            (f, bundle_file_path(source_dir, f)) for f in (descriptor.file_tree or descriptor.source_files)
        ]
        targets += [(image, bundle_file_path(static_dir, image)) for image in descriptor.images]
        source_dir.mkdir(parents=True, exist_ok=True)

        contents = await asyncio.gather(*(self._client.download_file(f.file_path) for f, _ in targets))
        for (_, path), data in zip(targets, contents):
            write_bytes(path, data)

        finalize_bundle(component_dir, artifact_type, descriptor.meta_xml)
        return component_dir

    def _record(
        self,
        artifact_type: ArtifactType,
        local_name: str,
        descriptor: RemoteArtifactDescriptor,
        path: Path,
        log,
    ) -> None:
        try:
            ledger = self._ledger_for(path if artifact_type.is_bundle else path.parent)
            ledger.put(ledger_key(artifact_type, local_name), descriptor.to_record(artifact_type))
        except LedgerError as e:
            log.warning("pull.ledger.write_failed", error=e.message)


def _local_name(artifact_type: ArtifactType, descriptor: RemoteArtifactDescriptor) -> str:
    if artifact_type.is_code:
        name = strip_suffix(descriptor.api_name or descriptor.name)
    else:
        name = descriptor.name or strip_suffix(descriptor.api_name)
    if not name:
        raise IncompleteArtifact(
            f"Remote {artifact_type.value} {descriptor.id or '?'} has no name or apiName",
        )
    return name
