from docflow.services.extraction.schemas import FieldKind
from docflow.services.models import DocumentType


def test_every_type_has_a_schema(schema_store):
    assert set(schema_store.get_supported_types()) == set(DocumentType)
    for doc_type in DocumentType.known():
        assert schema_store.get_type_keywords(doc_type)


def test_lookup_by_value_or_member(schema_store):
    assert schema_store.get_field_names("W-9") == schema_store.get_field_names(DocumentType.W9)
    assert schema_store.has_field("W-9", "ein_or_ssn")
    assert not schema_store.has_field("W-9", "ending_balance")
    assert schema_store.get_schema("Lease") is None
    assert schema_store.get_field_names("Lease") == []
    assert schema_store.get_field_keywords("Lease") is None


def test_field_specs(schema_store):
    spec = schema_store.get_field_spec(DocumentType.BANK_STATEMENT, "ending_balance")
    assert spec.kind is FieldKind.NUMBER
    assert spec.required

    masked = schema_store.get_field_spec(DocumentType.BANK_STATEMENT, "account_number_masked")
    assert masked.matches_pattern("****1234")
    assert not masked.matches_pattern("1234")


def test_list_schemas(schema_store):
    listing = {entry["document_type"]: entry for entry in schema_store.list_schemas()}
    assert listing["Certificate of Insurance"]["field_count"] == 5
    coverage = [f for f in listing["Certificate of Insurance"]["fields"] if f["name"] == "coverage_types"][0]
    assert coverage["kind"] == "array"
    assert listing["Unknown"]["fields"][0]["required"] is False
