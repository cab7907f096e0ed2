"""
Value System for binprop

Every property in a document is a Value: a node of a closed tagged union.
The tag of a value is a class attribute, so it can never change after
construction. Codecs dispatch on ``value.tag`` and never on Python types
of payloads.

Two families of values exist:

    Primitives (tag < 0x80):
        Immutable (frozen) dataclasses. They are hashable, which is what
        allows them to be Map keys.

    Containers and structures (tag >= 0x80, plus FLAG/REFERENCE which
    are primitive on the wire but live in the high range):
        Mutable dataclasses owning their children directly. There is no
        sharing: a child belongs to exactly one parent.

ARCHITECTURAL RULE:
    Values know nothing about any encoding. No byte layout, text syntax
    or JSON shape appears here. Construction validates payload ranges and
    container element tags, and ``validate()`` re-checks a tree after it
    has been edited in place.
"""

from __future__ import annotations

import struct
from abc import ABC
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, Dict, Iterable, Iterator, Optional, Tuple

from binprop.errors import DuplicateFieldName, DuplicateMapKey, TypeMismatch, UnknownTypeTag


class Tag(IntEnum):
    """
    Type tags, numbered as they appear on the wire.

    Tags below 0x80 are primitives. LIST, LIST2, OPTION and MAP are
    containers of typed elements; POINTER and EMBED hold field lists.
    """

    NONE = 0
    BOOL = 1
    I8 = 2
    U8 = 3
    I16 = 4
    U16 = 5
    I32 = 6
    U32 = 7
    I64 = 8
    U64 = 9
    F32 = 10
    VEC2 = 11
    VEC3 = 12
    VEC4 = 13
    MTX44 = 14
    RGBA = 15
    STRING = 16
    HASH = 17
    LINK = 18
    BYTES = 19
    LIST = 0x80
    LIST2 = 0x81
    POINTER = 0x82
    EMBED = 0x83
    REFERENCE = 0x84
    OPTION = 0x85
    MAP = 0x86
    FLAG = 0x87

    @property
    def is_primitive(self) -> bool:
        return self < 0x80

    @property
    def is_container(self) -> bool:
        return self in _CONTAINER_TAGS

    @property
    def nests(self) -> bool:
        """True for values that hold other values (containers and structures)."""
        return self in _NESTING_TAGS

    @property
    def type_name(self) -> str:
        return TYPE_NAMES[self]


_CONTAINER_TAGS = frozenset({Tag.LIST, Tag.LIST2, Tag.OPTION, Tag.MAP})
_NESTING_TAGS = _CONTAINER_TAGS | {Tag.POINTER, Tag.EMBED}

# Deepest chain of nested containers and structures any codec accepts
MAX_DEPTH = 100

TYPE_NAMES: Dict[Tag, str] = {
    Tag.NONE: "none",
    Tag.BOOL: "bool",
    Tag.I8: "i8",
    Tag.U8: "u8",
    Tag.I16: "i16",
    Tag.U16: "u16",
    Tag.I32: "i32",
    Tag.U32: "u32",
    Tag.I64: "i64",
    Tag.U64: "u64",
    Tag.F32: "f32",
    Tag.VEC2: "vec2",
    Tag.VEC3: "vec3",
    Tag.VEC4: "vec4",
    Tag.MTX44: "mtx44",
    Tag.RGBA: "rgba",
    Tag.STRING: "string",
    Tag.HASH: "hash",
    Tag.LINK: "link",
    Tag.BYTES: "bytes",
    Tag.LIST: "list",
    Tag.LIST2: "list2",
    Tag.POINTER: "pointer",
    Tag.EMBED: "embed",
    Tag.REFERENCE: "reference",
    Tag.OPTION: "option",
    Tag.MAP: "map",
    Tag.FLAG: "flag",
}

TAGS_BY_NAME: Dict[str, Tag] = {name: tag for tag, name in TYPE_NAMES.items()}

# (minimum, maximum) for every integer-valued tag
INT_RANGES: Dict[Tag, Tuple[int, int]] = {
    Tag.I8: (-(1 << 7), (1 << 7) - 1),
    Tag.U8: (0, (1 << 8) - 1),
    Tag.I16: (-(1 << 15), (1 << 15) - 1),
    Tag.U16: (0, (1 << 16) - 1),
    Tag.I32: (-(1 << 31), (1 << 31) - 1),
    Tag.U32: (0, (1 << 32) - 1),
    Tag.I64: (-(1 << 63), (1 << 63) - 1),
    Tag.U64: (0, (1 << 64) - 1),
    Tag.HASH: (0, (1 << 32) - 1),
    Tag.REFERENCE: (0, (1 << 32) - 1),
    Tag.LINK: (0, (1 << 64) - 1),
    Tag.FLAG: (0, (1 << 8) - 1),
}


def tag_from_name(name: str) -> Tag:
    """Look up a tag by its lowercase type name ("i32", "map", ...)."""
    try:
        return TAGS_BY_NAME[name]
    except KeyError:
        raise UnknownTypeTag(name) from None


def coerce_tag(tag) -> Tag:
    """Accept a Tag, its wire number, or its type name."""
    if isinstance(tag, Tag):
        return tag
    if isinstance(tag, str):
        return tag_from_name(tag)
    try:
        return Tag(tag)
    except ValueError:
        raise UnknownTypeTag(tag) from None


def check_int(value, tag: Tag, what: str = "value") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeMismatch(f"{what} for {tag.type_name} must be an int, got {type(value).__name__}")
    low, high = INT_RANGES[tag]
    if not low <= value <= high:
        raise TypeMismatch(f"{what} {value} does not fit {tag.type_name}")
    return value


def check_name_hash(value, what: str = "name hash") -> int:
    return check_int(value, Tag.HASH, what)


def to_f32(value) -> float:
    """Round a Python float to the nearest binary32 value."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeMismatch(f"f32 component must be a number, got {type(value).__name__}")
    try:
        return struct.unpack("<f", struct.pack("<f", float(value)))[0]
    except OverflowError:
        raise TypeMismatch(f"{value!r} is out of range for f32") from None


class Value(ABC):
    """
    Base class for all values.

    Subclasses set the ``tag`` class attribute. ``validate()`` re-checks
    invariants that in-place edits could have broken; primitives are
    immutable and validated once, at construction.
    """

    tag: ClassVar[Tag]

    def validate(self) -> None:
        pass

    def children(self) -> Iterator["Value"]:
        return iter(())


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoneValue(Value):
    tag: ClassVar[Tag] = Tag.NONE


@dataclass(frozen=True)
class Bool(Value):
    value: bool
    tag: ClassVar[Tag] = Tag.BOOL

    def __post_init__(self):
        if not isinstance(self.value, bool):
            raise TypeMismatch(f"bool value must be True or False, got {self.value!r}")


@dataclass(frozen=True)
class _Integer(Value):
    value: int

    def __post_init__(self):
        check_int(self.value, self.tag)


@dataclass(frozen=True)
class I8(_Integer):
    tag: ClassVar[Tag] = Tag.I8


@dataclass(frozen=True)
class U8(_Integer):
    tag: ClassVar[Tag] = Tag.U8


@dataclass(frozen=True)
class I16(_Integer):
    tag: ClassVar[Tag] = Tag.I16


@dataclass(frozen=True)
class U16(_Integer):
    tag: ClassVar[Tag] = Tag.U16


@dataclass(frozen=True)
class I32(_Integer):
    tag: ClassVar[Tag] = Tag.I32


@dataclass(frozen=True)
class U32(_Integer):
    tag: ClassVar[Tag] = Tag.U32


@dataclass(frozen=True)
class I64(_Integer):
    tag: ClassVar[Tag] = Tag.I64


@dataclass(frozen=True)
class U64(_Integer):
    tag: ClassVar[Tag] = Tag.U64


@dataclass(frozen=True)
class F32(Value):
    """A binary32 float. The stored value is rounded to f32 precision."""

    value: float
    tag: ClassVar[Tag] = Tag.F32

    def __post_init__(self):
        object.__setattr__(self, "value", to_f32(self.value))

    # Equality follows the stored bits, so NaN equals itself and -0.0 differs from 0.0.
    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return struct.pack("<f", self.value) == struct.pack("<f", other.value)

    def __hash__(self):
        return hash(struct.pack("<f", self.value))


@dataclass(frozen=True)
class _FloatVector(Value):
    values: Tuple[float, ...]
    arity: ClassVar[int] = 0

    def __post_init__(self):
        try:
            values = tuple(self.values)
        except TypeError:
            raise TypeMismatch(f"{self.tag.type_name} needs a sequence of {self.arity} numbers") from None
        if len(values) != self.arity:
            raise TypeMismatch(
                f"{self.tag.type_name} needs {self.arity} components, got {len(values)}"
            )
        object.__setattr__(self, "values", tuple(to_f32(v) for v in values))

    def _packed(self) -> bytes:
        return struct.pack(f"<{self.arity}f", *self.values)

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._packed() == other._packed()

    def __hash__(self):
        return hash(self._packed())


@dataclass(frozen=True, eq=False)
class Vec2(_FloatVector):
    tag: ClassVar[Tag] = Tag.VEC2
    arity: ClassVar[int] = 2


@dataclass(frozen=True, eq=False)
class Vec3(_FloatVector):
    tag: ClassVar[Tag] = Tag.VEC3
    arity: ClassVar[int] = 3


@dataclass(frozen=True, eq=False)
class Vec4(_FloatVector):
    tag: ClassVar[Tag] = Tag.VEC4
    arity: ClassVar[int] = 4


@dataclass(frozen=True, eq=False)
class Mat4x4(_FloatVector):
    """4x4 matrix, 16 components in row-major order."""

    tag: ClassVar[Tag] = Tag.MTX44
    arity: ClassVar[int] = 16

    def row(self, index: int) -> Tuple[float, ...]:
        return self.values[index * 4:index * 4 + 4]


@dataclass(frozen=True)
class RGBA(Value):
    values: Tuple[int, int, int, int]
    tag: ClassVar[Tag] = Tag.RGBA

    def __post_init__(self):
        try:
            values = tuple(self.values)
        except TypeError:
            raise TypeMismatch("rgba needs a sequence of 4 bytes") from None
        if len(values) != 4:
            raise TypeMismatch(f"rgba needs 4 components, got {len(values)}")
        for component in values:
            check_int(component, Tag.U8, "rgba component")
        object.__setattr__(self, "values", values)


@dataclass(frozen=True)
class String(Value):
    value: str
    tag: ClassVar[Tag] = Tag.STRING

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise TypeMismatch(f"string value must be str, got {type(self.value).__name__}")


@dataclass(frozen=True)
class Hash(Value):
    """32-bit name hash (FNV-1a of a name). Forward-only reference."""

    value: int
    tag: ClassVar[Tag] = Tag.HASH

    def __post_init__(self):
        check_int(self.value, self.tag)


@dataclass(frozen=True)
class Link(Value):
    """64-bit content hash (XXH64) of an external resource path."""

    value: int
    tag: ClassVar[Tag] = Tag.LINK

    def __post_init__(self):
        check_int(self.value, self.tag)


@dataclass(frozen=True)
class ByteArray(Value):
    value: bytes
    tag: ClassVar[Tag] = Tag.BYTES

    def __post_init__(self):
        if not isinstance(self.value, (bytes, bytearray, memoryview)):
            raise TypeMismatch(f"bytes value must be bytes, got {type(self.value).__name__}")
        object.__setattr__(self, "value", bytes(self.value))


@dataclass(frozen=True)
class Reference(Value):
    """32-bit name hash of another entry in the same or a linked file."""

    value: int
    tag: ClassVar[Tag] = Tag.REFERENCE

    def __post_init__(self):
        check_int(self.value, self.tag)


@dataclass(frozen=True)
class Flag(Value):
    """A single byte read as eight booleans; bit 0 is the lowest bit."""

    value: int
    tag: ClassVar[Tag] = Tag.FLAG

    def __post_init__(self):
        check_int(self.value, self.tag)

    def is_set(self, bit: int) -> bool:
        if not 0 <= bit < 8:
            raise IndexError(f"flag bit {bit} out of range")
        return bool(self.value >> bit & 1)

    @property
    def bits(self) -> Tuple[bool, ...]:
        return tuple(self.is_set(bit) for bit in range(8))

    @classmethod
    def from_bits(cls, bits: Iterable[bool]) -> "Flag":
        value = 0
        for index, bit in enumerate(bits):
            if index >= 8:
                raise TypeMismatch("flag holds at most 8 bits")
            if bit:
                value |= 1 << index
        return cls(value)


# ---------------------------------------------------------------------------
# Fields and field lists
# ---------------------------------------------------------------------------


@dataclass
class Field:
    """A (name hash, value) pair inside an Entry, Pointer or Embedded."""

    name_hash: int
    value: Value

    def __post_init__(self):
        check_name_hash(self.name_hash, "field name hash")
        if not isinstance(self.value, Value):
            raise TypeMismatch(f"field value must be a Value, got {type(self.value).__name__}")


def check_unique_fields(fields: Iterable[Field]) -> None:
    """Raise DuplicateFieldName if two fields share a name hash."""
    seen = set()
    for item in fields:
        if not isinstance(item, Field):
            raise TypeMismatch(f"expected Field, got {type(item).__name__}")
        if item.name_hash in seen:
            raise DuplicateFieldName(item.name_hash)
        seen.add(item.name_hash)


class FieldListMixin:
    """
    Shared helpers for anything owning an ordered list of fields.

    Implementers provide a ``fields`` list attribute. Field order is
    preserved; replacing a field keeps its position.
    """

    fields: list

    def get_field(self, name_hash: int) -> Optional[Field]:
        for item in self.fields:
            if item.name_hash == name_hash:
                return item
        return None

    def get_value(self, name_hash: int) -> Optional[Value]:
        item = self.get_field(name_hash)
        return item.value if item is not None else None

    def add_field(self, item: Field) -> None:
        if self.get_field(item.name_hash) is not None:
            raise DuplicateFieldName(item.name_hash)
        self.fields.append(item)

    def set_field(self, name_hash: int, value: Value) -> None:
        """Replace the value of an existing field, or append a new field."""
        new_field = Field(name_hash, value)
        for index, item in enumerate(self.fields):
            if item.name_hash == name_hash:
                self.fields[index] = new_field
                return
        self.fields.append(new_field)

    def remove_field(self, name_hash: int) -> Field:
        for index, item in enumerate(self.fields):
            if item.name_hash == name_hash:
                return self.fields.pop(index)
        raise KeyError(f"no field 0x{name_hash:08x}")

    def _validate_fields(self) -> None:
        check_unique_fields(self.fields)
        for item in self.fields:
            check_name_hash(item.name_hash, "field name hash")
            if not isinstance(item.value, Value):
                raise TypeMismatch(f"field value must be a Value, got {type(item.value).__name__}")
            item.value.validate()


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


def _check_element(item, expected: Tag, what: str) -> None:
    if not isinstance(item, Value):
        raise TypeMismatch(f"{what} must be a Value, got {type(item).__name__}")
    if item.tag != expected:
        raise TypeMismatch(
            f"{what} has type {item.tag.type_name}, container declares {expected.type_name}"
        )


def _check_element_tag(tag: Tag, owner: Tag, what: str = "element") -> None:
    if tag.is_container:
        raise TypeMismatch(f"{owner.type_name} {what} type cannot be {tag.type_name}")


@dataclass
class List(Value):
    """Ordered sequence of values sharing one element tag."""

    element_tag: Tag
    items: list = field(default_factory=list)
    tag: ClassVar[Tag] = Tag.LIST

    def __post_init__(self):
        self.element_tag = coerce_tag(self.element_tag)
        self.items = list(self.items)
        self.validate()

    def validate(self) -> None:
        _check_element_tag(self.element_tag, self.tag)
        for item in self.items:
            _check_element(item, self.element_tag, f"{self.tag.type_name} item")
            item.validate()

    def append(self, item: Value) -> None:
        _check_element(item, self.element_tag, f"{self.tag.type_name} item")
        self.items.append(item)

    def children(self) -> Iterator[Value]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class LegacyList(List):
    """Same semantics as List, kept distinct for its own wire tag."""

    tag: ClassVar[Tag] = Tag.LIST2


@dataclass
class Option(Value):
    """Zero or one value of a declared element tag."""

    element_tag: Tag
    item: Optional[Value] = None
    tag: ClassVar[Tag] = Tag.OPTION

    def __post_init__(self):
        self.element_tag = coerce_tag(self.element_tag)
        self.validate()

    @property
    def present(self) -> bool:
        return self.item is not None

    def validate(self) -> None:
        _check_element_tag(self.element_tag, self.tag)
        if self.item is not None:
            _check_element(self.item, self.element_tag, "option item")
            self.item.validate()

    def children(self) -> Iterator[Value]:
        return iter(() if self.item is None else (self.item,))


@dataclass
class Map(Value):
    """
    Ordered key/value pairs.

    Keys must be primitive values and unique within the map. Insertion
    order is preserved; it is part of the canonical encoding.
    """

    key_tag: Tag
    value_tag: Tag
    items: list = field(default_factory=list)
    tag: ClassVar[Tag] = Tag.MAP

    def __post_init__(self):
        self.key_tag = coerce_tag(self.key_tag)
        self.value_tag = coerce_tag(self.value_tag)
        self.items = [tuple(pair) for pair in self.items]
        self.validate()

    def validate(self) -> None:
        if not self.key_tag.is_primitive:
            raise TypeMismatch(f"map key type must be primitive, got {self.key_tag.type_name}")
        _check_element_tag(self.value_tag, self.tag, "value")
        seen = set()
        for pair in self.items:
            if len(pair) != 2:
                raise TypeMismatch("map items must be (key, value) pairs")
            key, value = pair
            _check_element(key, self.key_tag, "map key")
            _check_element(value, self.value_tag, "map value")
            if key in seen:
                raise DuplicateMapKey(key)
            seen.add(key)
            value.validate()

    def get(self, key: Value) -> Optional[Value]:
        for existing, value in self.items:
            if existing == key:
                return value
        return None

    def put(self, key: Value, value: Value) -> None:
        """Replace the value for ``key`` in place, or append a new pair."""
        _check_element(key, self.key_tag, "map key")
        _check_element(value, self.value_tag, "map value")
        for index, (existing, _) in enumerate(self.items):
            if existing == key:
                self.items[index] = (key, value)
                return
        self.items.append((key, value))

    def children(self) -> Iterator[Value]:
        for key, value in self.items:
            yield key
            yield value

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class Pointer(FieldListMixin, Value):
    """
    Possibly-null class instance.

    class_hash == 0 is the null pointer. A null pointer has no payload on
    the wire; fields attached to it are dropped by writers.
    """

    class_hash: int = 0
    fields: list = field(default_factory=list)
    tag: ClassVar[Tag] = Tag.POINTER

    def __post_init__(self):
        self.fields = list(self.fields)
        self.validate()

    @property
    def is_null(self) -> bool:
        return self.class_hash == 0

    def validate(self) -> None:
        check_name_hash(self.class_hash, "class hash")
        self._validate_fields()

    def children(self) -> Iterator[Value]:
        return (item.value for item in self.fields)


@dataclass
class Embedded(FieldListMixin, Value):
    """Always-materialized class instance."""

    class_hash: int
    fields: list = field(default_factory=list)
    tag: ClassVar[Tag] = Tag.EMBED

    def __post_init__(self):
        self.fields = list(self.fields)
        self.validate()

    def validate(self) -> None:
        check_name_hash(self.class_hash, "class hash")
        self._validate_fields()

    def children(self) -> Iterator[Value]:
        return (item.value for item in self.fields)


# ---------------------------------------------------------------------------
# Dispatch helpers
# ---------------------------------------------------------------------------

SCALAR_CLASSES: Dict[Tag, type] = {
    Tag.NONE: NoneValue,
    Tag.BOOL: Bool,
    Tag.I8: I8,
    Tag.U8: U8,
    Tag.I16: I16,
    Tag.U16: U16,
    Tag.I32: I32,
    Tag.U32: U32,
    Tag.I64: I64,
    Tag.U64: U64,
    Tag.F32: F32,
    Tag.VEC2: Vec2,
    Tag.VEC3: Vec3,
    Tag.VEC4: Vec4,
    Tag.MTX44: Mat4x4,
    Tag.RGBA: RGBA,
    Tag.STRING: String,
    Tag.HASH: Hash,
    Tag.LINK: Link,
    Tag.BYTES: ByteArray,
    Tag.REFERENCE: Reference,
    Tag.FLAG: Flag,
}

VALUE_CLASSES: Dict[Tag, type] = {
    **SCALAR_CLASSES,
    Tag.LIST: List,
    Tag.LIST2: LegacyList,
    Tag.OPTION: Option,
    Tag.MAP: Map,
    Tag.POINTER: Pointer,
    Tag.EMBED: Embedded,
}


def type_tag_of(value: Value) -> Tag:
    if not isinstance(value, Value):
        raise TypeMismatch(f"not a Value: {type(value).__name__}")
    return value.tag


def walk_values(value: Value, depth: int = 0) -> Iterator[Tuple[Value, int]]:
    """Pre-order traversal yielding (value, depth) for a value and all descendants."""
    yield value, depth
    for child in value.children():
        yield from walk_values(child, depth + 1)
