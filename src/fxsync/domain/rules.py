"""Business rules as pure functions.

Everything here is deterministic: no I/O and no logging, so the push and
pull services can be tested against fakes without touching the network.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from fxsync.domain.entities import LocalArtifact, ResolvedMetadata
from fxsync.domain.enums import ArtifactType, RemoteErrorCode

API_NAME_SUFFIX = "__c"
CLASS_PLACEHOLDER = "#demo#"

_REMOTE_ID_RE = re.compile(r"^[0-9a-f]{24}$")
_ANNOTATION_RE = re.compile(r"@(apiName|bindingObjectApiName|nameSpace|returnType)\s+(\S+)")


# ---------------------------------------------------------------------------
# Identifiers and keys
# ---------------------------------------------------------------------------


def is_remote_id(value: str) -> bool:
    """True when *value* is an opaque 24-char lowercase hex remote id."""
    return bool(_REMOTE_ID_RE.match(value or ""))


def strip_suffix(name: str) -> str:
    """Drop a trailing ``__c`` from *name*."""
    if name.endswith(API_NAME_SUFFIX):
        return name[: -len(API_NAME_SUFFIX)]
    return name


def default_api_name(stem: str) -> str:
    return stem if stem.endswith(API_NAME_SUFFIX) else f"{stem}{API_NAME_SUFFIX}"


def ledger_key(artifact_type: ArtifactType | str, name: str) -> str:
    """Ledger key ``"{type}:{name}"`` with the ``__c`` suffix removed."""
    type_value = artifact_type.value if isinstance(artifact_type, ArtifactType) else artifact_type
    return f"{type_value}:{strip_suffix(name)}"


def default_directory(project_root: Path, artifact_type: ArtifactType) -> Path:
    """Default home of *artifact_type* under the project layout.

    ``fx-app/main/PWC/{components,plugins}`` and
    ``fx-app/main/APL/{functions,classes}``.
    """
    group = "APL" if artifact_type.is_code else "PWC"
    return Path(project_root) / "fx-app" / "main" / group / artifact_type.folder


def replace_class_placeholder(content: str, class_name: str) -> str:
    """Substitute every ``#demo#`` placeholder with *class_name*."""
    return content.replace(CLASS_PLACEHOLDER, class_name)


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------


def parse_annotations(content: str) -> dict[str, str]:
    """Extract ``@<field> <token>`` annotations from source text.

    Keys are case-sensitive; the first occurrence of each field wins.
    """
    found: dict[str, str] = {}
    for match in _ANNOTATION_RE.finditer(content or ""):
        found.setdefault(match.group(1), match.group(2))
    return found


# ---------------------------------------------------------------------------
# Failure classification
# ---------------------------------------------------------------------------

# Server prose → stable code.  Checked in order; first hit wins.
NOT_FOUND_MARKERS = ("未查询到该自定义函数", "未查询到该自定义类", "未找到", "不存在", "not found")
STALE_VERSION_MARKERS = ("当前代码在线上有更高版本",)
DUPLICATE_NAME_MARKERS = ("已存在相同的apiName", "函数API名称已经存在")


def classify_failure(message: str, status_code: int | None = None) -> RemoteErrorCode:
    """Map a failure message (and optional HTTP status) onto a ``RemoteErrorCode``.

    This is the only place where server wording is interpreted.
    """
    if status_code == 404:
        return RemoteErrorCode.NOT_FOUND
    text = message or ""
    if any(marker in text for marker in STALE_VERSION_MARKERS):
        return RemoteErrorCode.STALE_VERSION
    if any(marker in text for marker in DUPLICATE_NAME_MARKERS):
        return RemoteErrorCode.DUPLICATE_NAME
    if any(marker in text for marker in NOT_FOUND_MARKERS):
        return RemoteErrorCode.NOT_FOUND
    if status_code is not None and status_code >= 400:
        return RemoteErrorCode.HTTP
    return RemoteErrorCode.REJECTED


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def build_analysis_payload(artifact: LocalArtifact) -> dict[str, Any]:
    """Snake-case function object sent to analyze and compileCheck."""
    return {
        "api_name": artifact.api_name,
        "application": "",
        "binding_object_api_name": artifact.binding_object_api_name or "NONE",
        "body": artifact.content,
        "commit_log": "",
        "data_source": "",
        "function_name": artifact.name,
        "is_active": False,
        "lang": artifact.lang,
        "name_space": artifact.name_space,
        "parameters": [],
        "remark": artifact.description,
        "return_type": artifact.return_type,
        "status": "not_used",
        "type": artifact.type.value,
        "version": 1,
    }


def build_upload_payload(artifact: LocalArtifact, update_time: int, commit: str) -> dict[str, Any]:
    """Camel-case body of the function/class upload endpoint."""
    return {
        "type": artifact.type.value,
        "lang": artifact.lang,
        "commit": commit,
        "apiName": artifact.api_name,
        "nameSpace": artifact.name_space,
        "description": artifact.description,
        "name": artifact.name,
        "bindingObjectApiName": artifact.binding_object_api_name or "NONE",
        "returnType": artifact.return_type,
        "metaXml": artifact.meta_xml,
        "content": artifact.content,
        "updateTime": update_time,
    }


def build_component_payload(artifact: LocalArtifact, update_time: int) -> dict[str, Any]:
    """Inner ``component`` object of the component/plugin upload.

    ``sourceFiles`` is omitted whenever a non-empty ``fileTree`` is sent.
    """
    files = [f.model_dump(by_alias=True, exclude_none=True) for f in artifact.files]
    payload: dict[str, Any] = {
        "name": artifact.name,
        "mateXml": artifact.meta_xml,
        "apiName": artifact.api_name,
        "images": [f.model_dump(by_alias=True, exclude_none=True) for f in artifact.images],
        "type": artifact.type.value,
        "updateTime": update_time,
    }
    if artifact.tree_mode and files:
        payload["fileTree"] = files
    else:
        payload["sourceFiles"] = files
        payload["fileTree"] = []
    return payload


def merge_metadata(*layers: dict[str, str | None], stem: str) -> ResolvedMetadata:
    """Resolve each field from the first layer holding a non-empty value."""

    def pick(field: str, default: str) -> str:
        for layer in layers:
            value = layer.get(field)
            if value:
                return value
        return default

    return ResolvedMetadata(
        api_name=pick("apiName", default_api_name(stem)),
        binding_object_api_name=pick("bindingObjectApiName", "NONE"),
        name_space=pick("nameSpace", ""),
        return_type=pick("returnType", ""),
    )
