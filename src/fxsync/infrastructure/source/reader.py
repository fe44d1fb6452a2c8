"""Read artifact sources from the local project tree.

Functions and classes are single ``.groovy``/``.java`` files.  Components and
plugins are directories laid out as::

    <name>/
    ├── sourceFiles/...   (or fileTree/... for tree-mode bundles)
    ├── static/...        (binary assets, sent as images)
    └── component.xml     (plugin.xml for plugins, optional)
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterator
from pathlib import Path

from fxsync.core.exceptions import IncompleteArtifact
from fxsync.domain.entities import ComponentSource, LocalFile
from fxsync.domain.enums import ArtifactType, SourceLang

CODE_EXTENSIONS = (".groovy", ".java")

IGNORED_NAMES = (
    ".git",
    ".svn",
    ".DS_Store",
    "node_modules",
    "dist",
    "build",
    ".vscode",
    ".idea",
    "*.log",
    "*.tmp",
    "*.temp",
)


def should_ignore(name: str) -> bool:
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in IGNORED_NAMES)


def detect_lang(path: Path) -> int:
    """Platform language code for a source file (``.java`` → 1, else 0)."""
    return SourceLang.JAVA.value if path.suffix == ".java" else SourceLang.GROOVY.value


def infer_artifact_type(path: Path) -> ArtifactType:
    """Guess the artifact type of *path* from its shape and parent folder."""
    path = Path(path)
    parent = path.parent.name
    if path.is_dir():
        return ArtifactType.PLUGIN if parent == ArtifactType.PLUGIN.folder else ArtifactType.COMPONENT
    return ArtifactType.CLASS if parent == ArtifactType.CLASS.folder else ArtifactType.FUNCTION


def read_text(path: Path) -> str:
    """Read a UTF-8 source file; undecodable bytes raise ``IncompleteArtifact``."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise IncompleteArtifact(
            f"{Path(path).name} is not valid UTF-8: {e.reason}",
            details={"path": str(path), "position": e.start},
        ) from e


def read_code_file(path: Path) -> str:
    return read_text(path)


def meta_xml_filename(artifact_type: ArtifactType) -> str:
    return "plugin.xml" if artifact_type is ArtifactType.PLUGIN else "component.xml"


def _walk(root: Path, subdir: str = "") -> Iterator[LocalFile]:
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if should_ignore(entry.name):
            continue
        if entry.is_dir():
            yield from _walk(entry, f"{subdir}/{entry.name}" if subdir else entry.name)
        else:
            yield LocalFile(
                file_name=entry.name,
                full_path=entry,
                path=subdir,
                file_size=entry.stat().st_size,
            )


def read_component(directory: Path, artifact_type: ArtifactType = ArtifactType.COMPONENT) -> ComponentSource:
    """Collect every file of a component/plugin directory.

    Raises ``IncompleteArtifact`` when neither ``sourceFiles/`` nor
    ``fileTree/`` exists.
    """
    directory = Path(directory)
    source_dir = directory / "sourceFiles"
    tree_dir = directory / "fileTree"
    if source_dir.is_dir():
        files, tree_mode = list(_walk(source_dir)), False
    elif tree_dir.is_dir():
        files, tree_mode = list(_walk(tree_dir)), True
    else:
        raise IncompleteArtifact(
            f"{directory.name}: no sourceFiles or fileTree directory",
            details={"path": str(directory)},
        )

    static_dir = directory / "static"
    images = list(_walk(static_dir)) if static_dir.is_dir() else []

    xml_path = directory / meta_xml_filename(artifact_type)
    meta_xml = read_text(xml_path) if xml_path.is_file() else ""

    return ComponentSource(
        name=directory.name,
        meta_xml=meta_xml,
        files=files,
        images=images,
        tree_mode=tree_mode,
    )


def iter_artifact_paths(directory: Path, artifact_type: ArtifactType) -> list[Path]:
    """Artifacts under *directory*: source files for code, sub-directories for bundles."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    entries = sorted(p for p in directory.iterdir() if not should_ignore(p.name))
    if artifact_type.is_code:
        return [p for p in entries if p.is_file() and p.suffix in CODE_EXTENSIONS]
    return [p for p in entries if p.is_dir()]
