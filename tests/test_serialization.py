"""
Tests for JSON and YAML serialization of binprop documents.

These tests ensure lossless JSON/YAML round trips through the explicit
serialization functions in `binprop.serialization`, and that malformed
input is reported with a path to the offending value.
"""

import json
import math

import pytest

from binprop.errors import (
    DuplicateFieldName,
    DuplicateMapKey,
    SchemaViolation,
    UnsupportedVersion,
)
from binprop.examples import (
    build_example_document,
    build_example_patch_document,
    example_dictionary,
)
from binprop.hashing import fnv1a, xxh64
from binprop.model import Document, Entry
from binprop.serialization import (
    _VALUE_DECODERS,
    _VALUE_ENCODERS,
    decode_json,
    decode_yaml,
    document_from_dict,
    document_to_dict,
    encode_json,
    encode_yaml,
    value_from_json,
    value_to_json,
)
from binprop.unhash import HashDictionary
from binprop.values import (
    I32,
    MAX_DEPTH,
    U8,
    F32,
    Field,
    Hash,
    Link,
    List,
    Map,
    Mat4x4,
    Option,
    Pointer,
    String,
    Tag,
    Vec3,
)


def minimal_dict() -> dict:
    return {
        "type": "PROP",
        "version": 3,
        "linked": [],
        "entries": [
            {"class": "0x1a2b3c4d", "fields": [{"name": "0x11223344", "type": "i32", "value": 42}]},
        ],
    }


def nested_embeds_json(depth: int) -> dict:
    value = {"type": "embed", "value": {"class": "0x00000005", "fields": []}}
    for _ in range(depth - 1):
        field = dict(name="0x00000002", **value)
        value = {"type": "embed", "value": {"class": "0x00000005", "fields": [field]}}
    return value


def nested_embeds_json_text(depth: int) -> str:
    """Document text built by string joins, so building it never recurses."""
    value = '{"type": "embed", "value": {"class": "0x00000005", "fields": []}}'
    head = '{"type": "embed", "value": {"class": "0x00000005", "fields": [{"name": "0x00000002", '
    for _ in range(depth - 1):
        value = head + value[1:] + "]}}"
    return (
        '{"type": "PROP", "version": 3, "linked": [], "entries": ['
        '{"class": "0x00000001", "fields": [{"name": "0x00000002", ' + value[1:] + "]}]}"
    )


class TestValueShapes:
    """Test the tagged-object form of individual values."""

    def test_scalar(self):
        assert value_to_json(I32(42)) == {"type": "i32", "value": 42}

    def test_list_carries_element_type(self):
        data = value_to_json(List(Tag.STRING, [String("a")]))
        assert data == {
            "type": "list",
            "elementType": "string",
            "value": [{"type": "string", "value": "a"}],
        }

    def test_map_carries_key_and_value_types(self):
        data = value_to_json(Map(Tag.U8, Tag.STRING, [(U8(1), String("a"))]))
        assert data["keyType"] == "u8"
        assert data["valueType"] == "string"
        assert data["value"] == [{"key": {"type": "u8", "value": 1}, "value": {"type": "string", "value": "a"}}]

    def test_matrix_is_four_rows(self):
        data = value_to_json(Mat4x4(range(16)))
        assert data["value"][1] == [4.0, 5.0, 6.0, 7.0]

    def test_f32_is_shortest_decimal(self):
        assert value_to_json(F32(0.1))["value"] == 0.1

    def test_non_finite_f32_are_strings(self):
        assert value_to_json(F32(math.inf))["value"] == "inf"
        assert value_to_json(F32(-math.inf))["value"] == "-inf"
        assert value_to_json(F32(math.nan))["value"] == "nan"
        assert math.isnan(value_from_json({"type": "f32", "value": "nan"}).value)

    def test_hash_names(self):
        dictionary = HashDictionary.from_names(["mRange"], ["data/a.bin"])
        assert value_to_json(Hash(fnv1a("mRange")), dictionary)["value"] == "mRange"
        assert value_to_json(Hash(5))["value"] == "0x00000005"
        assert value_to_json(Link(xxh64("data/a.bin")), dictionary)["value"] == "data/a.bin"
        assert value_to_json(Link(5))["value"] == "0x0000000000000005"

    def test_hex_looking_name_falls_back_to_literal(self):
        dictionary = HashDictionary.from_names(["0x00000005"])
        value = fnv1a("0x00000005")
        assert value_to_json(Hash(value), dictionary)["value"] == f"0x{value:08x}"

    def test_hash_accepts_name_literal_or_int(self):
        assert value_from_json({"type": "hash", "value": "mRange"}) == Hash(fnv1a("mRange"))
        assert value_from_json({"type": "hash", "value": "0x00000005"}) == Hash(5)
        assert value_from_json({"type": "hash", "value": 5}) == Hash(5)

    def test_null_pointer(self):
        assert value_to_json(Pointer(0))["value"] is None
        assert value_from_json({"type": "pointer", "value": None}) == Pointer(0)

    def test_null_pointer_fields_dropped_with_warning(self):
        with pytest.warns(UserWarning, match="null pointer"):
            data = value_to_json(Pointer(0, [Field(1, I32(1))]))
        assert data["value"] is None

    def test_empty_option(self):
        assert value_to_json(Option(Tag.I32))["value"] is None
        assert value_from_json({"type": "option", "elementType": "i32", "value": None}) == Option(Tag.I32)


class TestValueErrors:
    """Test that shape errors point at the offending value."""

    def test_vector_arity(self):
        with pytest.raises(SchemaViolation) as excinfo:
            value_from_json({"type": "vec3", "value": [1, 2]})
        assert excinfo.value.location == "$.value"

    def test_unknown_discriminator(self):
        with pytest.raises(SchemaViolation) as excinfo:
            value_from_json({"type": "int", "value": 1})
        assert excinfo.value.location == "$.type"

    def test_missing_element_type(self):
        with pytest.raises(SchemaViolation):
            value_from_json({"type": "list", "value": []})

    def test_unexpected_key(self):
        with pytest.raises(SchemaViolation):
            value_from_json({"type": "i32", "value": 1, "extra": True})

    def test_bool_is_not_an_integer(self):
        with pytest.raises(SchemaViolation):
            value_from_json({"type": "i32", "value": True})

    def test_integer_out_of_range(self):
        with pytest.raises(SchemaViolation) as excinfo:
            value_from_json({"type": "u8", "value": 256})
        assert excinfo.value.location == "$.value"

    def test_nested_container_element(self):
        with pytest.raises(SchemaViolation) as excinfo:
            value_from_json({"type": "list", "elementType": "map", "value": []})
        assert excinfo.value.location == "$.elementType"

    def test_map_key_must_be_primitive(self):
        with pytest.raises(SchemaViolation):
            value_from_json({"type": "map", "keyType": "embed", "valueType": "i32", "value": []})

    def test_element_type_mismatch(self):
        data = {"type": "list", "elementType": "i32", "value": [{"type": "string", "value": "x"}]}
        with pytest.raises(SchemaViolation):
            value_from_json(data)

    def test_duplicate_map_key(self):
        pair = {"key": {"type": "u8", "value": 1}, "value": {"type": "string", "value": "a"}}
        data = {"type": "map", "keyType": "u8", "valueType": "string", "value": [pair, pair]}
        with pytest.raises(DuplicateMapKey) as excinfo:
            value_from_json(data)
        assert excinfo.value.location == "$.value[1].key"

    def test_bad_hex_bytes(self):
        with pytest.raises(SchemaViolation):
            value_from_json({"type": "bytes", "value": "zz"})

    def test_nesting_at_the_limit(self):
        value = value_from_json(nested_embeds_json(MAX_DEPTH))
        assert value_to_json(value) == nested_embeds_json(MAX_DEPTH)

    def test_nesting_past_the_limit(self):
        with pytest.raises(SchemaViolation, match="nested deeper") as excinfo:
            value_from_json(nested_embeds_json(MAX_DEPTH + 1))
        assert excinfo.value.location.startswith("$.value.fields[0]")

    @pytest.mark.parametrize("depth", [MAX_DEPTH + 1, 2000])
    def test_deep_json_document(self, depth):
        with pytest.raises(SchemaViolation):
            decode_json(nested_embeds_json_text(depth))


class TestDocuments:
    """Test document-level serialization."""

    def test_minimal_document(self):
        document = document_from_dict(minimal_dict())
        assert document == Document([Entry(0x1A2B3C4D, [Field(0x11223344, I32(42))])])
        assert document_to_dict(document) == minimal_dict()

    def test_patches_only_for_patch_documents(self):
        assert "patches" not in document_to_dict(build_example_document())
        data = document_to_dict(build_example_patch_document(), example_dictionary())
        assert data["type"] == "PTCH"
        assert data["patches"] == [{
            "entry": "Characters/Annie/Spells/Fireball",
            "path": "mData.mRange",
            "type": "f32",
            "value": 600.0,
        }]

    def test_patches_rejected_in_property_document(self):
        data = minimal_dict()
        data["patches"] = [{"entry": "x", "path": "a", "type": "i32", "value": 1}]
        with pytest.raises(SchemaViolation) as excinfo:
            document_from_dict(data)
        assert excinfo.value.location == "$.patches"

    def test_unsupported_version(self):
        data = minimal_dict()
        data["version"] = 7
        with pytest.raises(UnsupportedVersion) as excinfo:
            document_from_dict(data)
        assert excinfo.value.location == "$.version"

    def test_unknown_document_type(self):
        data = minimal_dict()
        data["type"] = "NOPE"
        with pytest.raises(SchemaViolation):
            document_from_dict(data)

    def test_field_path_in_error(self):
        data = minimal_dict()
        data["entries"][0]["fields"][0]["type"] = "vec3"
        data["entries"][0]["fields"][0]["value"] = [1, 2]
        with pytest.raises(SchemaViolation) as excinfo:
            document_from_dict(data)
        assert excinfo.value.location == "$.entries[0].fields[0].value"

    def test_duplicate_field_name(self):
        data = minimal_dict()
        fields = data["entries"][0]["fields"]
        fields.append(dict(fields[0]))
        with pytest.raises(DuplicateFieldName) as excinfo:
            document_from_dict(data)
        assert excinfo.value.location == "$.entries[0].fields[1]"

    def test_linked_defaults_to_empty(self):
        data = minimal_dict()
        del data["linked"]
        assert document_from_dict(data).linked == []


class TestJsonRoundTrip:
    """Test decode_json(encode_json(d)) == d."""

    def test_example_without_dictionary(self):
        document = build_example_document()
        assert decode_json(encode_json(document)) == document

    def test_example_with_dictionary(self):
        document = build_example_document()
        assert decode_json(encode_json(document, example_dictionary())) == document

    def test_patch_document(self):
        document = build_example_patch_document()
        assert decode_json(encode_json(document, example_dictionary())) == document

    def test_nan_and_signed_zero(self):
        document = Document([Entry(1, [
            Field(2, F32(math.nan)),
            Field(3, Vec3((-0.0, math.nan, 1.0))),
        ])])
        assert decode_json(encode_json(document)) == document

    def test_output_is_strict_json(self):
        document = Document([Entry(1, [Field(2, Vec3((math.inf, -math.inf, 0.0)))])])
        text = encode_json(document)
        json.loads(text, parse_constant=lambda name: pytest.fail(f"non-standard constant {name}"))
        assert decode_json(text) == document

    def test_non_ascii_is_kept(self):
        document = Document([Entry(1, [Field(2, String("héllo"))])])
        assert "héllo" in encode_json(document)

    def test_malformed_json(self):
        with pytest.raises(SchemaViolation) as excinfo:
            decode_json('{"type": "PROP",\n  "version": }')
        assert excinfo.value.location.startswith("line 2, column ")


class TestYamlRoundTrip:
    """Test decode_yaml(encode_yaml(d)) == d."""

    def test_example_with_dictionary(self):
        document = build_example_document()
        assert decode_yaml(encode_yaml(document, example_dictionary())) == document

    def test_example_without_dictionary(self):
        document = build_example_document()
        assert decode_yaml(encode_yaml(document)) == document

    def test_key_order_is_kept(self):
        text = encode_yaml(Document())
        assert text.index("type:") < text.index("version:") < text.index("entries:")

    def test_malformed_yaml(self):
        with pytest.raises(SchemaViolation):
            decode_yaml("type: [PROP\n")

    def test_top_level_must_be_mapping(self):
        with pytest.raises(SchemaViolation):
            decode_yaml("- 1\n- 2\n")


class TestDispatchTables:
    """Every tag must have an encoder and a decoder."""

    def test_encoders_cover_every_tag(self):
        assert set(_VALUE_ENCODERS) == set(Tag)

    def test_decoders_cover_every_tag(self):
        assert set(_VALUE_DECODERS) == set(Tag)
