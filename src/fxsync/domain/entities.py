"""Domain entities for fx-sync.

All entities are Pydantic BaseModels.  Models that are persisted or shown to
users serialise with camelCase keys so the ledger file stays compatible with
the platform's own tooling.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from fxsync.domain.enums import ArtifactType, PushState

SERIOUS_PRIORITY = 9


class CamelModel(BaseModel):
    """Base for models serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class ArtifactRecord(CamelModel):
    """Last-known metadata for one artifact, as stored in the ledger."""

    type: ArtifactType
    name: str = ""
    api_name: str = ""
    content: str = ""
    binding_object_api_name: str = "NONE"
    name_space: str = ""
    return_type: str = ""
    update_time: int = 0
    tenant_id: str = ""
    lang: int = 0


# ---------------------------------------------------------------------------
# Remote views
# ---------------------------------------------------------------------------


class RemoteFile(CamelModel):
    """A file entry of a component/plugin as the server describes it.

    ``file_path`` is the server-side storage path (a temp name on upload);
    ``path`` is the sub-directory inside the component tree, if any.
    """

    file_name: str
    file_path: str = ""
    file_size: int | None = None
    path: str | None = None


class RemoteArtifactDescriptor(BaseModel):
    """The server's view of an artifact.

    The function ``find`` endpoint answers in snake_case while list endpoints
    answer in camelCase; each field accepts both spellings.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "funcId"))
    api_name: str = Field(default="", validation_alias=AliasChoices("apiName", "api_name"))
    name: str = Field(
        default="",
        validation_alias=AliasChoices("name", "function_name", "funcName"),
    )
    content: str = Field(default="", validation_alias=AliasChoices("content", "body"))
    binding_object_api_name: str = Field(
        default="NONE",
        validation_alias=AliasChoices("bindingObjectApiName", "binding_object_api_name"),
    )
    update_time: int = Field(default=0, validation_alias=AliasChoices("updateTime", "update_time"))
    name_space: str = Field(default="", validation_alias=AliasChoices("nameSpace", "name_space"))
    return_type: str = Field(default="", validation_alias=AliasChoices("returnType", "return_type"))
    tenant_id: str = Field(default="", validation_alias=AliasChoices("tenantId", "tenant_id"))
    lang: int = 0

    # Component / plugin payload
    source_files: list[RemoteFile] = Field(
        default_factory=list, validation_alias=AliasChoices("sourceFiles", "source_files")
    )
    file_tree: list[RemoteFile] = Field(
        default_factory=list, validation_alias=AliasChoices("fileTree", "file_tree")
    )
    images: list[RemoteFile] = Field(default_factory=list)
    meta_xml: str = Field(default="", validation_alias=AliasChoices("mateXml", "metaXml", "meta_xml"))

    @field_validator(
        "api_name", "name", "content", "name_space", "return_type", "tenant_id", "meta_xml",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("binding_object_api_name", mode="before")
    @classmethod
    def _binding_default(cls, v: Any) -> Any:
        return v or "NONE"

    @field_validator("update_time", "lang", mode="before")
    @classmethod
    def _none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        return None if v in (None, "") else str(v)

    @field_validator("source_files", "file_tree", "images", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_record(self, artifact_type: ArtifactType, *, update_time: int | None = None) -> ArtifactRecord:
        return ArtifactRecord(
            type=artifact_type,
            name=self.name,
            api_name=self.api_name,
            content=self.content,
            binding_object_api_name=self.binding_object_api_name,
            name_space=self.name_space,
            return_type=self.return_type,
            update_time=self.update_time if update_time is None else update_time,
            tenant_id=self.tenant_id,
            lang=self.lang,
        )


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------


class ResultInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(default=0, alias="StatusCode")
    failure_message: str = Field(default="", alias="FailureMessage")

    @field_validator("failure_message", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class ErrorInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(default="", alias="Message")

    @field_validator("message", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class ResponseEnvelope(BaseModel):
    """Uniform response wrapper of every platform endpoint.

    ``StatusCode != 0`` is failure.  ``Error.Message`` alongside a zero status
    is an advisory notice only.
    """

    model_config = ConfigDict(populate_by_name=True)

    result: ResultInfo = Field(default_factory=ResultInfo, alias="Result")
    value: Any = Field(default=None, alias="Value")
    error: ErrorInfo | None = Field(default=None, alias="Error")

    @property
    def ok(self) -> bool:
        return self.result.status_code == 0

    @property
    def notice(self) -> str:
        return self.error.message if self.error else ""

    def value_dict(self) -> dict[str, Any]:
        return self.value if isinstance(self.value, dict) else {}


class Violation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    priority: int = 0
    message: str = ""


class AnalysisReport(BaseModel):
    """Outcome of the server-side static analysis."""

    success: bool = True
    violations: list[Violation] = Field(default_factory=list)
    failure_message: str = ""

    @property
    def serious_violation(self) -> Violation | None:
        return next((v for v in self.violations if v.priority >= SERIOUS_PRIORITY), None)


class CompileReport(BaseModel):
    failure_message: str = ""

    @property
    def ok(self) -> bool:
        return not self.failure_message


class UploadResult(BaseModel):
    """A successful upload.  ``notice`` carries any advisory server message."""

    id: str | None = None
    update_time: int | None = None
    notice: str = ""


# ---------------------------------------------------------------------------
# Local views
# ---------------------------------------------------------------------------


class ResolvedMetadata(BaseModel):
    """The four metadata fields a push needs beyond the source text."""

    model_config = ConfigDict(frozen=True)

    api_name: str
    binding_object_api_name: str = "NONE"
    name_space: str = ""
    return_type: str = ""


class LocalFile(BaseModel):
    """A file of a local component/plugin tree."""

    file_name: str
    full_path: Path
    path: str = ""
    file_size: int = 0


class ComponentSource(BaseModel):
    """A component or plugin directory read from disk."""

    name: str
    meta_xml: str = ""
    files: list[LocalFile] = Field(default_factory=list)
    images: list[LocalFile] = Field(default_factory=list)
    tree_mode: bool = False


class LocalArtifact(BaseModel):
    """Everything the engine submits for one artifact."""

    type: ArtifactType
    name: str
    content: str = ""
    api_name: str
    binding_object_api_name: str = "NONE"
    name_space: str = ""
    return_type: str = ""
    lang: int = 0
    description: str = ""
    meta_xml: str = ""
    source_path: Path | None = None

    # Component / plugin payload, with file paths already swapped for temp names
    files: list[RemoteFile] = Field(default_factory=list)
    images: list[RemoteFile] = Field(default_factory=list)
    tree_mode: bool = False

    def to_record(self, update_time: int, tenant_id: str = "") -> ArtifactRecord:
        return ArtifactRecord(
            type=self.type,
            name=self.name,
            api_name=self.api_name,
            content=self.content,
            binding_object_api_name=self.binding_object_api_name,
            name_space=self.name_space,
            return_type=self.return_type,
            update_time=update_time,
            tenant_id=tenant_id,
            lang=self.lang,
        )


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class PushOutcome(CamelModel):
    """Result contract of a single push."""

    success: bool
    name: str = ""
    id: str | None = None
    is_new: bool = False
    message: str = ""
    state: PushState = PushState.DONE


class BatchPushOutcome(CamelModel):
    """Aggregate of a directory push.  ``failed_functions`` lists file names
    of every failed item, whatever the artifact type."""

    success: bool
    message: str = ""
    results: list[PushOutcome] = Field(default_factory=list)
    success_count: int = 0
    fail_count: int = 0
    failed_functions: list[str] = Field(default_factory=list)


class PullOutcome(CamelModel):
    success: bool
    name: str = ""
    path: str | None = None
    message: str = ""
