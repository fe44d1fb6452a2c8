"""Domain enumerations for fx-sync."""

from __future__ import annotations

from enum import Enum


class ArtifactType(str, Enum):
    """The four kinds of platform artifact the tool moves around."""

    COMPONENT = "component"
    PLUGIN = "plugin"
    FUNCTION = "function"
    CLASS = "class"

    @property
    def is_code(self) -> bool:
        """Functions and classes are single source files checked server-side."""
        return self in (ArtifactType.FUNCTION, ArtifactType.CLASS)

    @property
    def is_bundle(self) -> bool:
        """Components and plugins are directory trees of files."""
        return not self.is_code

    @property
    def folder(self) -> str:
        """Default directory name under the project layout."""
        return {
            ArtifactType.COMPONENT: "components",
            ArtifactType.PLUGIN: "plugins",
            ArtifactType.FUNCTION: "functions",
            ArtifactType.CLASS: "classes",
        }[self]


class SourceLang(int, Enum):
    """Language codes used by the platform for functions and classes."""

    GROOVY = 0
    JAVA = 1

    @property
    def extension(self) -> str:
        return ".java" if self is SourceLang.JAVA else ".groovy"


class RemoteErrorCode(str, Enum):
    """Stable classification of remote failures.

    The engine branches on these codes only; see ``rules.classify_failure``
    for how server prose is mapped onto them.
    """

    NOT_FOUND = "not_found"
    STALE_VERSION = "stale_version"
    DUPLICATE_NAME = "duplicate_name"
    HTTP = "http"
    TRANSPORT = "transport"
    REJECTED = "rejected"


class PushState(str, Enum):
    """States of the per-artifact push state machine."""

    RESOLVING_METADATA = "resolving_metadata"
    CHECKING_EXISTENCE = "checking_existence"
    CREATING = "creating"
    UPDATING = "updating"
    PERSISTING_LEDGER = "persisting_ledger"
    DONE = "done"
    FAILED = "failed"
