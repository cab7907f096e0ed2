"""
Binary codec: bytes <-> Document.

Layout (little-endian throughout):

    [PTCH magic, u64 reserved]          patch files only
    PROP magic
    u32 version                         1..3
    u32 linked count + u16 strings      version >= 2
    u32 entry count
    per entry:
        u32 size                        bytes following this word
        u32 class hash
        u16 field count
        per field: u32 name hash, u8 tag, payload
    u32 patch count + patches           patch files only

Sized containers (LIST, LIST2, MAP, POINTER, EMBED) and entries are read
inside their declared size; unread bytes left inside a size are skipped.
The writer always recomputes every size from what it actually emitted.

Every decode error carries the absolute byte offset where it happened.
"""

from __future__ import annotations

import logging
import struct
import warnings
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List as TList

from binprop.errors import (
    DuplicateFieldName,
    DuplicateMapKey,
    EncodingError,
    TruncatedInput,
    TypeMismatch,
    UnknownMagic,
    UnknownTypeTag,
    UnsupportedVersion,
)
from binprop.model import (
    LINKED_FILES_VERSION,
    MAGIC_PATCH,
    MAGIC_PROP,
    MAX_VERSION,
    MIN_VERSION,
    Document,
    Entry,
    Patch,
)
from binprop.values import (
    MAX_DEPTH,
    SCALAR_CLASSES,
    Bool,
    ByteArray,
    Embedded,
    Field,
    LegacyList,
    List,
    Map,
    NoneValue,
    Option,
    Pointer,
    String,
    Tag,
    Value,
)

logger = logging.getLogger(__name__)

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

# Fixed-size payloads, one struct per tag
_FIXED_STRUCTS: Dict[Tag, struct.Struct] = {
    Tag.BOOL: _U8,
    Tag.I8: struct.Struct("<b"),
    Tag.U8: _U8,
    Tag.I16: struct.Struct("<h"),
    Tag.U16: _U16,
    Tag.I32: struct.Struct("<i"),
    Tag.U32: _U32,
    Tag.I64: struct.Struct("<q"),
    Tag.U64: _U64,
    Tag.F32: struct.Struct("<f"),
    Tag.VEC2: struct.Struct("<2f"),
    Tag.VEC3: struct.Struct("<3f"),
    Tag.VEC4: struct.Struct("<4f"),
    Tag.MTX44: struct.Struct("<16f"),
    Tag.RGBA: struct.Struct("<4B"),
    Tag.HASH: _U32,
    Tag.LINK: _U64,
    Tag.REFERENCE: _U32,
    Tag.FLAG: _U8,
}

MAX_STRING_BYTES = 0xFFFF
MAX_FIELDS = 0xFFFF


# =============================================================================
# READER
# =============================================================================


class BinaryReader:
    """
    Cursor over an immutable buffer with a movable end bound.

    ``section(size)`` narrows the end bound to a declared size, so a
    payload can never read past its own container.
    """

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.pos = 0
        self.end = len(self.data)
        self.depth = 0

    def remaining(self) -> int:
        return self.end - self.pos

    def take(self, size: int) -> bytes:
        if size > self.end - self.pos:
            raise TruncatedInput(size, self.end - self.pos, self.pos)
        chunk = self.data[self.pos:self.pos + size]
        self.pos += size
        return chunk

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self.take(fmt.size))

    def u8(self) -> int:
        return self.unpack(_U8)[0]

    def u16(self) -> int:
        return self.unpack(_U16)[0]

    def u32(self) -> int:
        return self.unpack(_U32)[0]

    def u64(self) -> int:
        return self.unpack(_U64)[0]

    @contextmanager
    def section(self, size: int) -> Iterator[None]:
        if size > self.end - self.pos:
            raise TruncatedInput(size, self.end - self.pos, self.pos)
        outer_end = self.end
        self.end = self.pos + size
        try:
            yield
            if self.pos < self.end:
                logger.debug("skipping %d unread byte(s) at 0x%x", self.end - self.pos, self.pos)
            self.pos = self.end
        finally:
            self.end = outer_end

    def read_tag(self) -> Tag:
        offset = self.pos
        raw = self.u8()
        try:
            return Tag(raw)
        except ValueError:
            raise UnknownTypeTag(raw, offset) from None

    def read_element_tag(self, owner: Tag, what: str = "element") -> Tag:
        offset = self.pos
        tag = self.read_tag()
        if tag.is_container:
            raise TypeMismatch(f"{owner.type_name} {what} type cannot be {tag.type_name}", offset)
        return tag

    def read_string(self) -> str:
        length = self.u16()
        offset = self.pos
        raw = self.take(length)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EncodingError(f"invalid UTF-8 in string: {exc.reason}", offset + exc.start) from None

    def read_value(self, tag: Tag) -> Value:
        if not tag.nests:
            return _VALUE_READERS[tag](self, tag)
        if self.depth >= MAX_DEPTH:
            raise TypeMismatch(f"values nested deeper than {MAX_DEPTH} levels", self.pos)
        self.depth += 1
        try:
            return _VALUE_READERS[tag](self, tag)
        finally:
            self.depth -= 1

    def read_count(self) -> int:
        """Read an item count; every item needs at least one byte of the section."""
        offset = self.pos
        count = self.u32()
        if count > self.remaining():
            raise TruncatedInput(count, self.remaining(), offset)
        return count

    def read_fields(self) -> TList[Field]:
        count = self.u16()
        fields = []
        seen = set()
        for _ in range(count):
            offset = self.pos
            name_hash = self.u32()
            if name_hash in seen:
                raise DuplicateFieldName(name_hash, offset)
            seen.add(name_hash)
            tag = self.read_tag()
            fields.append(Field(name_hash, self.read_value(tag)))
        return fields

    def read_entry(self) -> Entry:
        size = self.u32()
        with self.section(size):
            class_hash = self.u32()
            fields = self.read_fields()
        return Entry(class_hash, fields)

    def read_patch(self) -> Patch:
        entry_hash = self.u32()
        size = self.u32()
        with self.section(size):
            tag = self.read_tag()
            path = self.read_string()
            value = self.read_value(tag)
        return Patch(entry_hash, path, value)

    # -------------------------------------------------------------------------
    # Per-tag payload readers
    # -------------------------------------------------------------------------

    def _read_none(self, tag: Tag) -> Value:
        return NoneValue()

    def _read_bool(self, tag: Tag) -> Value:
        return Bool(self.u8() != 0)

    def _read_scalar(self, tag: Tag) -> Value:
        (value,) = self.unpack(_FIXED_STRUCTS[tag])
        return SCALAR_CLASSES[tag](value)

    def _read_components(self, tag: Tag) -> Value:
        return SCALAR_CLASSES[tag](self.unpack(_FIXED_STRUCTS[tag]))

    def _read_string(self, tag: Tag) -> Value:
        return String(self.read_string())

    def _read_bytes(self, tag: Tag) -> Value:
        length = self.u32()
        return ByteArray(self.take(length))

    def _read_list(self, tag: Tag) -> Value:
        element_tag = self.read_element_tag(tag)
        size = self.u32()
        with self.section(size):
            count = self.read_count()
            items = [self.read_value(element_tag) for _ in range(count)]
        cls = LegacyList if tag == Tag.LIST2 else List
        return cls(element_tag, items)

    def _read_option(self, tag: Tag) -> Value:
        element_tag = self.read_element_tag(tag)
        offset = self.pos
        count = self.u8()
        if count > 1:
            raise TypeMismatch(f"option count must be 0 or 1, got {count}", offset)
        item = self.read_value(element_tag) if count else None
        return Option(element_tag, item)

    def _read_map(self, tag: Tag) -> Value:
        offset = self.pos
        key_tag = self.read_tag()
        if not key_tag.is_primitive:
            raise TypeMismatch(f"map key type must be primitive, got {key_tag.type_name}", offset)
        value_tag = self.read_element_tag(tag, "value")
        size = self.u32()
        items = []
        with self.section(size):
            count = self.read_count()
            seen = set()
            for _ in range(count):
                key_offset = self.pos
                key = self.read_value(key_tag)
                if key in seen:
                    raise DuplicateMapKey(key, key_offset)
                seen.add(key)
                items.append((key, self.read_value(value_tag)))
        return Map(key_tag, value_tag, items)

    def _read_pointer(self, tag: Tag) -> Value:
        class_hash = self.u32()
        if class_hash == 0:
            return Pointer(0)
        size = self.u32()
        with self.section(size):
            fields = self.read_fields()
        return Pointer(class_hash, fields)

    def _read_embed(self, tag: Tag) -> Value:
        class_hash = self.u32()
        size = self.u32()
        with self.section(size):
            fields = self.read_fields()
        return Embedded(class_hash, fields)


_VALUE_READERS: Dict[Tag, Callable[[BinaryReader, Tag], Value]] = {
    Tag.NONE: BinaryReader._read_none,
    Tag.BOOL: BinaryReader._read_bool,
    Tag.I8: BinaryReader._read_scalar,
    Tag.U8: BinaryReader._read_scalar,
    Tag.I16: BinaryReader._read_scalar,
    Tag.U16: BinaryReader._read_scalar,
    Tag.I32: BinaryReader._read_scalar,
    Tag.U32: BinaryReader._read_scalar,
    Tag.I64: BinaryReader._read_scalar,
    Tag.U64: BinaryReader._read_scalar,
    Tag.F32: BinaryReader._read_scalar,
    Tag.VEC2: BinaryReader._read_components,
    Tag.VEC3: BinaryReader._read_components,
    Tag.VEC4: BinaryReader._read_components,
    Tag.MTX44: BinaryReader._read_components,
    Tag.RGBA: BinaryReader._read_components,
    Tag.STRING: BinaryReader._read_string,
    Tag.HASH: BinaryReader._read_scalar,
    Tag.LINK: BinaryReader._read_scalar,
    Tag.BYTES: BinaryReader._read_bytes,
    Tag.LIST: BinaryReader._read_list,
    Tag.LIST2: BinaryReader._read_list,
    Tag.POINTER: BinaryReader._read_pointer,
    Tag.EMBED: BinaryReader._read_embed,
    Tag.REFERENCE: BinaryReader._read_scalar,
    Tag.OPTION: BinaryReader._read_option,
    Tag.MAP: BinaryReader._read_map,
    Tag.FLAG: BinaryReader._read_scalar,
}


def decode_binary(data: bytes) -> Document:
    """
    Decode a property or patch file.

    Args:
        data: Whole file contents

    Returns:
        Fully materialized Document

    Raises:
        TruncatedInput, UnknownMagic, UnsupportedVersion, UnknownTypeTag,
        TypeMismatch, DuplicateFieldName, DuplicateMapKey, EncodingError
    """
    reader = BinaryReader(data)

    patch = False
    magic = reader.take(4)
    if magic == MAGIC_PATCH:
        patch = True
        reader.u64()
        offset = reader.pos
        magic = reader.take(4)
        if magic != MAGIC_PROP:
            raise UnknownMagic(magic, offset)
    elif magic != MAGIC_PROP:
        raise UnknownMagic(magic, 0)

    offset = reader.pos
    version = reader.u32()
    if not MIN_VERSION <= version <= MAX_VERSION:
        raise UnsupportedVersion(version, offset)

    linked = []
    if version >= LINKED_FILES_VERSION:
        count = reader.u32()
        linked = [reader.read_string() for _ in range(count)]

    entry_count = reader.u32()
    entries = [reader.read_entry() for _ in range(entry_count)]

    patches = []
    if patch:
        patch_count = reader.u32()
        patches = [reader.read_patch() for _ in range(patch_count)]

    if reader.remaining():
        logger.debug("ignoring %d trailing byte(s)", reader.remaining())
    logger.debug(
        "decoded %s v%d: %d linked, %d entries, %d patches",
        "PTCH" if patch else "PROP", version, len(linked), len(entries), len(patches),
    )
    return Document(entries=entries, version=version, linked=linked, patch=patch, patches=patches)


def validate(data: bytes) -> None:
    """Decode ``data`` and discard the result; raises on the first error."""
    decode_binary(data)


# =============================================================================
# WRITER
# =============================================================================


class BinaryWriter:
    """Append-only buffer with back-patched size words."""

    def __init__(self):
        self.buffer = bytearray()

    def raw(self, data: bytes) -> None:
        self.buffer += data

    def pack(self, fmt: struct.Struct, *values) -> None:
        self.buffer += fmt.pack(*values)

    def u8(self, value: int) -> None:
        self.pack(_U8, value)

    def u16(self, value: int) -> None:
        self.pack(_U16, value)

    def u32(self, value: int) -> None:
        self.pack(_U32, value)

    def u64(self, value: int) -> None:
        self.pack(_U64, value)

    @contextmanager
    def sized(self) -> Iterator[None]:
        """Emit a u32 size word covering everything written inside the block."""
        size_pos = len(self.buffer)
        self.u32(0)
        start = len(self.buffer)
        yield
        _U32.pack_into(self.buffer, size_pos, len(self.buffer) - start)

    def write_string(self, text: str, what: str = "string") -> None:
        try:
            raw = text.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise EncodingError(f"{what} cannot be encoded as UTF-8: {exc.reason}") from None
        if len(raw) > MAX_STRING_BYTES:
            raise EncodingError(f"{what} is {len(raw)} bytes, the length prefix allows {MAX_STRING_BYTES}")
        self.u16(len(raw))
        self.raw(raw)

    def write_value(self, value: Value) -> None:
        _VALUE_WRITERS[value.tag](self, value)

    def write_fields(self, fields) -> None:
        if len(fields) > MAX_FIELDS:
            raise TypeMismatch(f"{len(fields)} fields exceed the limit of {MAX_FIELDS}")
        self.u16(len(fields))
        for item in fields:
            self.u32(item.name_hash)
            self.u8(item.value.tag)
            self.write_value(item.value)

    def write_entry(self, entry: Entry) -> None:
        with self.sized():
            self.u32(entry.class_hash)
            self.write_fields(entry.fields)

    def write_patch(self, item: Patch) -> None:
        self.u32(item.entry_hash)
        with self.sized():
            self.u8(item.value.tag)
            self.write_string(item.path, "patch path")
            self.write_value(item.value)

    # -------------------------------------------------------------------------
    # Per-tag payload writers
    # -------------------------------------------------------------------------

    def _write_none(self, value) -> None:
        pass

    def _write_bool(self, value) -> None:
        self.u8(1 if value.value else 0)

    def _write_scalar(self, value) -> None:
        self.pack(_FIXED_STRUCTS[value.tag], value.value)

    def _write_components(self, value) -> None:
        self.pack(_FIXED_STRUCTS[value.tag], *value.values)

    def _write_string(self, value) -> None:
        self.write_string(value.value)

    def _write_bytes(self, value) -> None:
        self.u32(len(value.value))
        self.raw(value.value)

    def _write_list(self, value) -> None:
        if value.element_tag == Tag.NONE and value.items:
            raise EncodingError("a list of none cannot hold items in binary form")
        self.u8(value.element_tag)
        with self.sized():
            self.u32(len(value.items))
            for item in value.items:
                self.write_value(item)

    def _write_option(self, value) -> None:
        self.u8(value.element_tag)
        if value.item is None:
            self.u8(0)
        else:
            self.u8(1)
            self.write_value(value.item)

    def _write_map(self, value) -> None:
        if value.key_tag == value.value_tag == Tag.NONE and value.items:
            raise EncodingError("a map of none to none cannot hold items in binary form")
        self.u8(value.key_tag)
        self.u8(value.value_tag)
        with self.sized():
            self.u32(len(value.items))
            for key, item in value.items:
                self.write_value(key)
                self.write_value(item)

    def _write_pointer(self, value) -> None:
        self.u32(value.class_hash)
        if value.is_null:
            if value.fields:
                warnings.warn(
                    f"dropping {len(value.fields)} field(s) attached to a null pointer",
                    UserWarning,
                    stacklevel=2,
                )
            return
        with self.sized():
            self.write_fields(value.fields)

    def _write_embed(self, value) -> None:
        self.u32(value.class_hash)
        with self.sized():
            self.write_fields(value.fields)


_VALUE_WRITERS: Dict[Tag, Callable[[BinaryWriter, Value], None]] = {
    Tag.NONE: BinaryWriter._write_none,
    Tag.BOOL: BinaryWriter._write_bool,
    Tag.I8: BinaryWriter._write_scalar,
    Tag.U8: BinaryWriter._write_scalar,
    Tag.I16: BinaryWriter._write_scalar,
    Tag.U16: BinaryWriter._write_scalar,
    Tag.I32: BinaryWriter._write_scalar,
    Tag.U32: BinaryWriter._write_scalar,
    Tag.I64: BinaryWriter._write_scalar,
    Tag.U64: BinaryWriter._write_scalar,
    Tag.F32: BinaryWriter._write_scalar,
    Tag.VEC2: BinaryWriter._write_components,
    Tag.VEC3: BinaryWriter._write_components,
    Tag.VEC4: BinaryWriter._write_components,
    Tag.MTX44: BinaryWriter._write_components,
    Tag.RGBA: BinaryWriter._write_components,
    Tag.STRING: BinaryWriter._write_string,
    Tag.HASH: BinaryWriter._write_scalar,
    Tag.LINK: BinaryWriter._write_scalar,
    Tag.BYTES: BinaryWriter._write_bytes,
    Tag.LIST: BinaryWriter._write_list,
    Tag.LIST2: BinaryWriter._write_list,
    Tag.POINTER: BinaryWriter._write_pointer,
    Tag.EMBED: BinaryWriter._write_embed,
    Tag.REFERENCE: BinaryWriter._write_scalar,
    Tag.OPTION: BinaryWriter._write_option,
    Tag.MAP: BinaryWriter._write_map,
    Tag.FLAG: BinaryWriter._write_scalar,
}


def encode_binary(document: Document) -> bytes:
    """
    Encode a Document canonically.

    The tree is validated first. Size words are recomputed, never copied
    from a previous decode.
    """
    document.validate()
    writer = BinaryWriter()

    if document.patch:
        writer.raw(MAGIC_PATCH)
        writer.u64(1)
    writer.raw(MAGIC_PROP)
    writer.u32(document.version)

    if document.version >= LINKED_FILES_VERSION:
        writer.u32(len(document.linked))
        for path in document.linked:
            writer.write_string(path, "linked path")
    elif document.linked:
        logger.warning("version %d has no linked file table; dropping %d path(s)",
                       document.version, len(document.linked))

    writer.u32(len(document.entries))
    for entry in document.entries:
        writer.write_entry(entry)

    if document.patch:
        writer.u32(len(document.patches))
        for item in document.patches:
            writer.write_patch(item)

    return bytes(writer.buffer)


__all__ = [
    "BinaryReader",
    "BinaryWriter",
    "decode_binary",
    "encode_binary",
    "validate",
]
