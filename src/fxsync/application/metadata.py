"""Metadata resolution for a push.

Each of ``apiName``, ``bindingObjectApiName``, ``nameSpace`` and
``returnType`` is resolved independently, first non-empty value wins:

1. explicit caller parameter (content-based pushes only)
2. in-source annotation ``@<field> <token>``
3. ledger record
4. default: ``<stem>__c`` / ``"NONE"`` / ``""`` / ``""``
"""

from __future__ import annotations

from typing import Any

from fxsync.domain.entities import ArtifactRecord, ResolvedMetadata
from fxsync.domain.rules import merge_metadata, parse_annotations

_EXPLICIT_FIELDS = {
    "api_name": "apiName",
    "binding_object_api_name": "bindingObjectApiName",
    "name_space": "nameSpace",
    "return_type": "returnType",
}


def _explicit_layer(explicit: dict[str, Any] | None) -> dict[str, str | None]:
    if not explicit:
        return {}
    layer: dict[str, str | None] = {}
    for key, value in explicit.items():
        field = _EXPLICIT_FIELDS.get(key, key)
        if field in _EXPLICIT_FIELDS.values():
            layer[field] = value
    return layer


def _record_layer(record: ArtifactRecord | None) -> dict[str, str | None]:
    if record is None:
        return {}
    return {
        "apiName": record.api_name,
        "bindingObjectApiName": record.binding_object_api_name,
        "nameSpace": record.name_space,
        "returnType": record.return_type,
    }


def resolve_metadata(
    content: str,
    file_stem: str,
    record: ArtifactRecord | None = None,
    explicit: dict[str, Any] | None = None,
) -> ResolvedMetadata:
    """Resolve push metadata for one artifact.  Never raises."""
    return merge_metadata(
        _explicit_layer(explicit),
        parse_annotations(content),
        _record_layer(record),
        stem=file_stem,
    )
