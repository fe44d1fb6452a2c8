"""Write pulled artifacts into the local project tree."""

from __future__ import annotations

from pathlib import Path

from fxsync.core.exceptions import IncompleteArtifact
from fxsync.domain.entities import RemoteArtifactDescriptor, RemoteFile
from fxsync.domain.enums import ArtifactType, SourceLang
from fxsync.domain.rules import strip_suffix
from fxsync.infrastructure.source.reader import meta_xml_filename


def code_file_path(output_dir: Path, descriptor: RemoteArtifactDescriptor) -> Path:
    lang = SourceLang.JAVA if descriptor.lang == SourceLang.JAVA.value else SourceLang.GROOVY
    return Path(output_dir) / f"{strip_suffix(descriptor.api_name or descriptor.name)}{lang.extension}"


def write_code_file(output_dir: Path, descriptor: RemoteArtifactDescriptor) -> Path:
    """Save a function/class as ``<apiName without __c>.<ext>``.

    Raises ``IncompleteArtifact`` when the record has no name or no content.
    """
    if not (descriptor.name or descriptor.api_name) or not descriptor.content:
        raise IncompleteArtifact(
            f"Remote record {descriptor.api_name or descriptor.id or '?'} lacks name or content",
        )
    path = code_file_path(output_dir, descriptor)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(descriptor.content, encoding="utf-8")
    return path


def bundle_file_path(base_dir: Path, remote_file: RemoteFile) -> Path:
    """Local target of a remote file, honouring its tree sub-directory.

    Raises ``IncompleteArtifact`` when the remote path or file name would
    place the file outside *base_dir*.
    """
    base_dir = Path(base_dir)
    target = base_dir / remote_file.path if remote_file.path else base_dir
    target = target / remote_file.file_name
    if not remote_file.file_name or not target.resolve().is_relative_to(base_dir.resolve()):
        raise IncompleteArtifact(
            f"Remote file {remote_file.file_name or '?'} escapes {base_dir.name}/",
            details={"path": remote_file.path, "file_name": remote_file.file_name},
        )
    return target


def write_bytes(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def finalize_bundle(component_dir: Path, artifact_type: ArtifactType, meta_xml: str) -> None:
    """Drop the platform's default entry file and save the metadata XML."""
    entry = "entry.js" if artifact_type is ArtifactType.PLUGIN else "entry.vue"
    entry_path = Path(component_dir) / "sourceFiles" / entry
    if entry_path.is_file():
        entry_path.unlink()
    if meta_xml:
        (Path(component_dir) / meta_xml_filename(artifact_type)).write_text(meta_xml, encoding="utf-8")
