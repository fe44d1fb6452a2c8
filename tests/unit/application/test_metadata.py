"""Tests for metadata resolution precedence."""

from fxsync.application.metadata import resolve_metadata
from fxsync.domain.entities import ArtifactRecord, ResolvedMetadata
from fxsync.domain.enums import ArtifactType

ANNOTATED = """
// @apiName annotated__c
// @nameSpace annotatedNs
def x = 1
"""


def _record(**kw) -> ArtifactRecord:
    values = dict(
        type=ArtifactType.FUNCTION,
        api_name="ledger__c",
        binding_object_api_name="LedgerObj",
        name_space="ledgerNs",
        return_type="LedgerType",
    )
    values.update(kw)
    return ArtifactRecord(**values)


class TestDefaults:
    def test_nothing_known(self):
        assert resolve_metadata("def x = 1", "calcTax") == ResolvedMetadata(
            api_name="calcTax__c",
            binding_object_api_name="NONE",
            name_space="",
            return_type="",
        )


class TestPrecedence:
    def test_ledger_beats_default(self):
        meta = resolve_metadata("def x = 1", "calcTax", _record())
        assert meta.api_name == "ledger__c"
        assert meta.binding_object_api_name == "LedgerObj"
        assert meta.name_space == "ledgerNs"
        assert meta.return_type == "LedgerType"

    def test_annotation_beats_ledger_per_field(self):
        meta = resolve_metadata(ANNOTATED, "calcTax", _record())
        assert meta.api_name == "annotated__c"
        assert meta.name_space == "annotatedNs"
        # fields without annotation still come from the ledger
        assert meta.binding_object_api_name == "LedgerObj"
        assert meta.return_type == "LedgerType"

    def test_explicit_beats_annotation(self):
        meta = resolve_metadata(
            ANNOTATED,
            "calcTax",
            _record(),
            explicit={"name_space": "explicitNs", "return_type": None},
        )
        assert meta.name_space == "explicitNs"
        assert meta.return_type == "LedgerType"
        assert meta.api_name == "annotated__c"

    def test_empty_ledger_values_fall_through(self):
        meta = resolve_metadata("", "calcTax", _record(name_space="", api_name=""))
        assert meta.name_space == ""
        assert meta.api_name == "calcTax__c"

    def test_unknown_explicit_keys_ignored(self):
        meta = resolve_metadata("", "calcTax", explicit={"description": "x"})
        assert meta.api_name == "calcTax__c"


class TestIdempotence:
    def test_same_inputs_same_output(self):
        record = _record()
        first = resolve_metadata(ANNOTATED, "calcTax", record)
        second = resolve_metadata(ANNOTATED, "calcTax", record)
        assert first == second
