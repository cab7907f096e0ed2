"""
Serialization helpers for binprop documents (JSON and YAML).

Every value is written as a tagged object:

    {"type": "i32", "value": 42}
    {"type": "list", "elementType": "string", "value": [{"type": "string", "value": "a"}]}
    {"type": "map", "keyType": "hash", "valueType": "f32",
     "value": [{"key": {...}, "value": {...}}]}

Fields are tagged values with an extra "name"; patches add "entry" and
"path". Hash-like payloads (names, classes, hash/reference/link values)
are a name string or a "0x..." literal. Non-finite f32 values are the
strings "inf", "-inf" and "nan" so the output stays strict JSON.

Lossless round trip goes through an intermediate dict representation,
shared by the JSON and YAML renderings. Shape errors raise
SchemaViolation carrying a JSON path such as "$.entries[0].fields[1]".
"""
from __future__ import annotations

import json
import math
import warnings
from typing import Any, Callable, Dict, Iterable, List, Optional

import yaml

from binprop.backends.text_generator import format_f32
from binprop.errors import (
    BinPropError,
    DuplicateFieldName,
    DuplicateMapKey,
    SchemaViolation,
    UnsupportedVersion,
)
from binprop.hashing import fnv1a, format_link_hash, format_name_hash, parse_hash_literal, xxh64
from binprop.model import MAX_VERSION, MIN_VERSION, Document, Entry, Patch
from binprop.unhash import NameLookup, display_link, display_name
from binprop.values import (
    MAX_DEPTH,
    SCALAR_CLASSES,
    TAGS_BY_NAME,
    Bool,
    ByteArray,
    Embedded,
    F32,
    Field,
    LegacyList,
    List as ListValue,
    Map,
    NoneValue,
    Option,
    Pointer,
    String,
    Tag,
    Value,
)

_NON_FINITE = {"inf": math.inf, "-inf": -math.inf, "nan": math.nan}


# =============================================================================
# NAMES
# =============================================================================


def name_to_json(value: int, dictionary: Optional[NameLookup] = None) -> str:
    name = display_name(dictionary, value)
    # A name spelled like a hash literal would read back as that literal
    if name is None or parse_hash_literal(name, 32) is not None:
        return format_name_hash(value)
    return name


def link_to_json(value: int, dictionary: Optional[NameLookup] = None) -> str:
    path = display_link(dictionary, value)
    if path is None or parse_hash_literal(path, 64) is not None:
        return format_link_hash(value)
    return path


def name_from_json(data: Any, path: str, bits: int = 32) -> int:
    if isinstance(data, str):
        value = parse_hash_literal(data, bits)
        if value is not None:
            return value
        return xxh64(data) if bits == 64 else fnv1a(data)
    if isinstance(data, int) and not isinstance(data, bool) and 0 <= data < (1 << bits):
        return data
    raise SchemaViolation(f"expected a name or {bits}-bit hash literal, got {data!r}", path)


# =============================================================================
# VALUES: model -> dict
# =============================================================================


def _f32_to_json(value: float) -> Any:
    text = format_f32(value)
    return float(text) if math.isfinite(value) else text


def _type_fields(value: Value) -> Dict[str, Any]:
    d = {"type": value.tag.type_name}
    if value.tag in (Tag.LIST, Tag.LIST2, Tag.OPTION):
        d["elementType"] = value.element_tag.type_name
    elif value.tag == Tag.MAP:
        d["keyType"] = value.key_tag.type_name
        d["valueType"] = value.value_tag.type_name
    return d


def value_to_json(value: Value, dictionary: Optional[NameLookup] = None) -> Dict[str, Any]:
    """Tagged-object form of a single value."""
    d = _type_fields(value)
    d["value"] = _VALUE_ENCODERS[value.tag](value, dictionary)
    return d


def fields_to_json(fields: Iterable[Field], dictionary: Optional[NameLookup] = None) -> List[Dict[str, Any]]:
    result = []
    for item in fields:
        d = {"name": name_to_json(item.name_hash, dictionary)}
        d.update(value_to_json(item.value, dictionary))
        result.append(d)
    return result


def _structure_to_json(value, dictionary) -> Dict[str, Any]:
    return {
        "class": name_to_json(value.class_hash, dictionary),
        "fields": fields_to_json(value.fields, dictionary),
    }


def _pointer_to_json(value, dictionary) -> Any:
    if value.is_null:
        if value.fields:
            warnings.warn(
                f"dropping {len(value.fields)} field(s) attached to a null pointer",
                UserWarning,
                stacklevel=3,
            )
        return None
    return _structure_to_json(value, dictionary)


_VALUE_ENCODERS: Dict[Tag, Callable[[Any, Optional[NameLookup]], Any]] = {
    Tag.NONE: lambda v, d: None,
    Tag.BOOL: lambda v, d: v.value,
    Tag.I8: lambda v, d: v.value,
    Tag.U8: lambda v, d: v.value,
    Tag.I16: lambda v, d: v.value,
    Tag.U16: lambda v, d: v.value,
    Tag.I32: lambda v, d: v.value,
    Tag.U32: lambda v, d: v.value,
    Tag.I64: lambda v, d: v.value,
    Tag.U64: lambda v, d: v.value,
    Tag.F32: lambda v, d: _f32_to_json(v.value),
    Tag.VEC2: lambda v, d: [_f32_to_json(c) for c in v.values],
    Tag.VEC3: lambda v, d: [_f32_to_json(c) for c in v.values],
    Tag.VEC4: lambda v, d: [_f32_to_json(c) for c in v.values],
    Tag.MTX44: lambda v, d: [[_f32_to_json(c) for c in v.row(i)] for i in range(4)],
    Tag.RGBA: lambda v, d: list(v.values),
    Tag.STRING: lambda v, d: v.value,
    Tag.HASH: lambda v, d: name_to_json(v.value, d),
    Tag.LINK: lambda v, d: link_to_json(v.value, d),
    Tag.BYTES: lambda v, d: v.value.hex(),
    Tag.LIST: lambda v, d: [value_to_json(item, d) for item in v.items],
    Tag.LIST2: lambda v, d: [value_to_json(item, d) for item in v.items],
    Tag.POINTER: _pointer_to_json,
    Tag.EMBED: _structure_to_json,
    Tag.REFERENCE: lambda v, d: name_to_json(v.value, d),
    Tag.OPTION: lambda v, d: None if v.item is None else value_to_json(v.item, d),
    Tag.MAP: lambda v, d: [
        {"key": value_to_json(key, d), "value": value_to_json(item, d)} for key, item in v.items
    ],
    Tag.FLAG: lambda v, d: v.value,
}


# =============================================================================
# VALUES: dict -> model
# =============================================================================


def _object(data: Any, path: str, required: Iterable[str], optional: Iterable[str] = ()) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise SchemaViolation(f"expected an object, got {type(data).__name__}", path)
    required = tuple(required)
    for key in required:
        if key not in data:
            raise SchemaViolation(f"missing key {key!r}", path)
    allowed = set(required) | set(optional)
    for key in data:
        if key not in allowed:
            raise SchemaViolation(f"unexpected key {key!r}", path)
    return data


def _array(data: Any, path: str) -> list:
    if not isinstance(data, list):
        raise SchemaViolation(f"expected an array, got {type(data).__name__}", path)
    return data


def _tag(data: Any, path: str, element: bool = False) -> Tag:
    tag = TAGS_BY_NAME.get(data) if isinstance(data, str) else None
    if tag is None:
        raise SchemaViolation(f"unknown type discriminator {data!r}", path)
    if element and tag.is_container:
        raise SchemaViolation(f"container element type cannot be {data}", path)
    return tag


def _build(path: str, cls, *args) -> Value:
    try:
        return cls(*args)
    except SchemaViolation:
        raise
    except (DuplicateFieldName, DuplicateMapKey) as exc:
        raise exc.at(path)
    except BinPropError as exc:
        raise SchemaViolation(exc.message, path) from None


def _int(data: Any, path: str) -> int:
    if isinstance(data, bool) or not isinstance(data, int):
        raise SchemaViolation(f"expected an integer, got {data!r}", path)
    return data


def _float(data: Any, path: str) -> float:
    if isinstance(data, str) and data in _NON_FINITE:
        return _NON_FINITE[data]
    if isinstance(data, bool) or not isinstance(data, (int, float)):
        raise SchemaViolation(f"expected a number, got {data!r}", path)
    return data


def _components(data: Any, path: str, count: int, what: str) -> list:
    items = _array(data, path)
    if len(items) != count:
        raise SchemaViolation(f"{what} needs {count} components, got {len(items)}", path)
    return items


def value_from_json(data: Any, path: str = "$", depth: int = 0) -> Value:
    """
    Rebuild a single value from its tagged-object form.

    Raises:
        SchemaViolation: If the object shape is wrong (path points at it)
    """
    if not isinstance(data, dict):
        raise SchemaViolation(f"expected a tagged value object, got {type(data).__name__}", path)
    tag = _tag(data.get("type"), f"{path}.type")
    if tag in (Tag.LIST, Tag.LIST2, Tag.OPTION):
        obj = _object(data, path, ("type", "elementType", "value"))
    elif tag == Tag.MAP:
        obj = _object(data, path, ("type", "keyType", "valueType", "value"))
    else:
        obj = _object(data, path, ("type", "value"))
    if not tag.nests:
        return _VALUE_DECODERS[tag](obj, path)
    if depth >= MAX_DEPTH:
        raise SchemaViolation(f"values nested deeper than {MAX_DEPTH} levels", path)
    return _VALUE_DECODERS[tag](obj, path, depth + 1)


def _scalar(obj, path) -> Value:
    tag = TAGS_BY_NAME[obj["type"]]
    return _build(f"{path}.value", SCALAR_CLASSES[tag], _int(obj["value"], f"{path}.value"))


def _none(obj, path) -> Value:
    if obj["value"] is not None:
        raise SchemaViolation("none value must be null", f"{path}.value")
    return NoneValue()


def _bool(obj, path) -> Value:
    if not isinstance(obj["value"], bool):
        raise SchemaViolation(f"expected true or false, got {obj['value']!r}", f"{path}.value")
    return Bool(obj["value"])


def _f32(obj, path) -> Value:
    return _build(f"{path}.value", F32, _float(obj["value"], f"{path}.value"))


def _vector(obj, path) -> Value:
    cls = SCALAR_CLASSES[TAGS_BY_NAME[obj["type"]]]
    items = _components(obj["value"], f"{path}.value", cls.arity, obj["type"])
    values = [_float(c, f"{path}.value[{i}]") for i, c in enumerate(items)]
    return _build(f"{path}.value", cls, values)


def _matrix(obj, path) -> Value:
    rows = _components(obj["value"], f"{path}.value", 4, "mtx44")
    values = []
    for r, row in enumerate(rows):
        row_path = f"{path}.value[{r}]"
        for c, component in enumerate(_components(row, row_path, 4, "mtx44 row")):
            values.append(_float(component, f"{row_path}[{c}]"))
    return _build(f"{path}.value", SCALAR_CLASSES[Tag.MTX44], values)


def _rgba(obj, path) -> Value:
    items = _components(obj["value"], f"{path}.value", 4, "rgba")
    values = [_int(c, f"{path}.value[{i}]") for i, c in enumerate(items)]
    return _build(f"{path}.value", SCALAR_CLASSES[Tag.RGBA], values)


def _string(obj, path) -> Value:
    if not isinstance(obj["value"], str):
        raise SchemaViolation(f"expected a string, got {obj['value']!r}", f"{path}.value")
    return String(obj["value"])


def _hash(obj, path) -> Value:
    tag = TAGS_BY_NAME[obj["type"]]
    bits = 64 if tag == Tag.LINK else 32
    return SCALAR_CLASSES[tag](name_from_json(obj["value"], f"{path}.value", bits))


def _bytes(obj, path) -> Value:
    data = obj["value"]
    try:
        if not isinstance(data, str):
            raise ValueError
        return ByteArray(bytes.fromhex(data))
    except ValueError:
        raise SchemaViolation(f"expected a hex string, got {data!r}", f"{path}.value") from None


def _list(obj, path, depth) -> Value:
    tag = TAGS_BY_NAME[obj["type"]]
    element = _tag(obj["elementType"], f"{path}.elementType", element=True)
    items = []
    for i, item in enumerate(_array(obj["value"], f"{path}.value")):
        items.append(value_from_json(item, f"{path}.value[{i}]", depth))
    cls = LegacyList if tag == Tag.LIST2 else ListValue
    return _build(path, cls, element, items)


def _option(obj, path, depth) -> Value:
    element = _tag(obj["elementType"], f"{path}.elementType", element=True)
    item = obj["value"]
    if item is not None:
        item = value_from_json(item, f"{path}.value", depth)
    return _build(path, Option, element, item)


def _map(obj, path, depth) -> Value:
    key_tag = _tag(obj["keyType"], f"{path}.keyType")
    if not key_tag.is_primitive:
        raise SchemaViolation(f"map key type must be primitive, got {key_tag.type_name}", f"{path}.keyType")
    value_tag = _tag(obj["valueType"], f"{path}.valueType", element=True)
    items = []
    seen = set()
    for i, pair in enumerate(_array(obj["value"], f"{path}.value")):
        pair_path = f"{path}.value[{i}]"
        pair = _object(pair, pair_path, ("key", "value"))
        key = value_from_json(pair["key"], f"{pair_path}.key", depth)
        if key in seen:
            raise DuplicateMapKey(key, f"{pair_path}.key")
        seen.add(key)
        items.append((key, value_from_json(pair["value"], f"{pair_path}.value", depth)))
    return _build(path, Map, key_tag, value_tag, items)


def fields_from_json(data: Any, path: str, depth: int = 0) -> List[Field]:
    fields = []
    seen = set()
    for i, item in enumerate(_array(data, path)):
        item_path = f"{path}[{i}]"
        if not isinstance(item, dict) or "name" not in item:
            raise SchemaViolation("field needs a 'name'", item_path)
        name_hash = name_from_json(item["name"], f"{item_path}.name")
        if name_hash in seen:
            raise DuplicateFieldName(name_hash, item_path)
        seen.add(name_hash)
        tagged = {k: v for k, v in item.items() if k != "name"}
        fields.append(Field(name_hash, value_from_json(tagged, item_path, depth)))
    return fields


def _structure(obj, path, depth):
    data = _object(obj["value"], f"{path}.value", ("class", "fields"))
    class_hash = name_from_json(data["class"], f"{path}.value.class")
    fields = fields_from_json(data["fields"], f"{path}.value.fields", depth)
    return class_hash, fields


def _pointer(obj, path, depth) -> Value:
    if obj["value"] is None:
        return Pointer(0)
    return _build(path, Pointer, *_structure(obj, path, depth))


def _embed(obj, path, depth) -> Value:
    return _build(path, Embedded, *_structure(obj, path, depth))


# Decoders for nesting tags also take the depth of the value they decode
_VALUE_DECODERS: Dict[Tag, Callable[..., Value]] = {
    Tag.NONE: _none,
    Tag.BOOL: _bool,
    Tag.I8: _scalar,
    Tag.U8: _scalar,
    Tag.I16: _scalar,
    Tag.U16: _scalar,
    Tag.I32: _scalar,
    Tag.U32: _scalar,
    Tag.I64: _scalar,
    Tag.U64: _scalar,
    Tag.F32: _f32,
    Tag.VEC2: _vector,
    Tag.VEC3: _vector,
    Tag.VEC4: _vector,
    Tag.MTX44: _matrix,
    Tag.RGBA: _rgba,
    Tag.STRING: _string,
    Tag.HASH: _hash,
    Tag.LINK: _hash,
    Tag.BYTES: _bytes,
    Tag.LIST: _list,
    Tag.LIST2: _list,
    Tag.POINTER: _pointer,
    Tag.EMBED: _embed,
    Tag.REFERENCE: _hash,
    Tag.OPTION: _option,
    Tag.MAP: _map,
    Tag.FLAG: _scalar,
}


# =============================================================================
# DOCUMENTS
# =============================================================================


def entry_to_dict(entry: Entry, dictionary: Optional[NameLookup] = None) -> Dict[str, Any]:
    return {
        "class": name_to_json(entry.class_hash, dictionary),
        "fields": fields_to_json(entry.fields, dictionary),
    }


def entry_from_dict(d: Any, path: str) -> Entry:
    d = _object(d, path, ("class", "fields"))
    class_hash = name_from_json(d["class"], f"{path}.class")
    return Entry(class_hash, fields_from_json(d["fields"], f"{path}.fields"))


def patch_to_dict(item: Patch, dictionary: Optional[NameLookup] = None) -> Dict[str, Any]:
    d = {"entry": name_to_json(item.entry_hash, dictionary), "path": item.path}
    d.update(value_to_json(item.value, dictionary))
    return d


def patch_from_dict(d: Any, path: str) -> Patch:
    if not isinstance(d, dict) or "entry" not in d or "path" not in d:
        raise SchemaViolation("patch needs 'entry' and 'path'", path)
    if not isinstance(d["path"], str):
        raise SchemaViolation(f"expected a string, got {d['path']!r}", f"{path}.path")
    entry_hash = name_from_json(d["entry"], f"{path}.entry")
    tagged = {k: v for k, v in d.items() if k not in ("entry", "path")}
    return Patch(entry_hash, d["path"], value_from_json(tagged, path))


def document_to_dict(document: Document, dictionary: Optional[NameLookup] = None) -> Dict[str, Any]:
    document.validate()
    d = {
        "type": document.magic.decode("ascii"),
        "version": document.version,
        "linked": list(document.linked),
        "entries": [entry_to_dict(e, dictionary) for e in document.entries],
    }
    if document.patch:
        d["patches"] = [patch_to_dict(p, dictionary) for p in document.patches]
    return d


def document_from_dict(d: Any) -> Document:
    d = _object(d, "$", ("type", "version", "entries"), ("linked", "patches"))
    kind = d["type"]
    if kind not in ("PROP", "PTCH"):
        raise SchemaViolation(f"type must be 'PROP' or 'PTCH', got {kind!r}", "$.type")
    version = _int(d["version"], "$.version")
    if not MIN_VERSION <= version <= MAX_VERSION:
        raise UnsupportedVersion(version, "$.version")

    linked = _array(d.get("linked", []), "$.linked")
    for i, item in enumerate(linked):
        if not isinstance(item, str):
            raise SchemaViolation(f"expected a string, got {item!r}", f"$.linked[{i}]")

    entries = [entry_from_dict(e, f"$.entries[{i}]") for i, e in enumerate(_array(d["entries"], "$.entries"))]

    patches = _array(d.get("patches", []), "$.patches")
    if patches and kind != "PTCH":
        raise SchemaViolation("only PTCH documents can carry patches", "$.patches")
    patches = [patch_from_dict(p, f"$.patches[{i}]") for i, p in enumerate(patches)]

    return Document(
        entries=entries,
        version=version,
        linked=linked,
        patch=kind == "PTCH",
        patches=patches,
    )


def encode_json(document: Document, dictionary: Optional[NameLookup] = None, indent: Optional[int] = 2) -> str:
    return json.dumps(document_to_dict(document, dictionary), indent=indent, ensure_ascii=False) + "\n"


def decode_json(text: str) -> Document:
    try:
        d = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaViolation(f"malformed JSON: {exc.msg}", f"line {exc.lineno}, column {exc.colno}") from None
    except RecursionError:
        raise SchemaViolation("input nested too deeply to parse", "$") from None
    return document_from_dict(d)


def encode_yaml(document: Document, dictionary: Optional[NameLookup] = None) -> str:
    return yaml.safe_dump(document_to_dict(document, dictionary), sort_keys=False, allow_unicode=True)


def decode_yaml(text: str) -> Document:
    try:
        d = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        location = None if mark is None else f"line {mark.line + 1}, column {mark.column + 1}"
        raise SchemaViolation(f"malformed YAML: {exc}", location) from None
    except RecursionError:
        raise SchemaViolation("input nested too deeply to parse", "$") from None
    return document_from_dict(d)


__all__ = [
    "value_to_json",
    "value_from_json",
    "fields_to_json",
    "fields_from_json",
    "entry_to_dict",
    "entry_from_dict",
    "patch_to_dict",
    "patch_from_dict",
    "document_to_dict",
    "document_from_dict",
    "encode_json",
    "decode_json",
    "encode_yaml",
    "decode_yaml",
]
