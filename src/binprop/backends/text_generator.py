"""
Text generator for binprop documents.

Converts a Document into the human-readable text format:

    #PROP_text
    type = "PROP"
    version = 3
    linked = { "DATA/Shared.bin" }
    SpellObject: {
      mName = string: "Fireball"
      mData = pointer: SpellData { mRange = f32: 550.0 }
    }

Layout rules:
    - A block holding at most one single-line item is printed inline
    - Any other block prints one item per line, indented
    - Names come from the dictionary only if they hash back to the same
      value; otherwise the hash literal is printed

Output is deterministic: the same document, dictionary and indent always
produce the same text.
"""

import math
import re
import warnings
from typing import Callable, Dict, List, Optional

from binprop.hashing import format_link_hash, format_name_hash
from binprop.model import LINKED_FILES_VERSION, Document
from binprop.unhash import NameLookup, display_link, display_name
from binprop.values import Tag, Value, to_f32

HEADER_COMMENT = "#PROP_text"

# Words that must be quoted when used as names
RESERVED_WORDS = frozenset({"null", "true", "false", "inf", "nan"})

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")

_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def quote_string(text: str) -> str:
    """Quote a string, escaping quotes, backslashes and control characters."""
    out = ['"']
    for ch in text:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def format_f32(value: float) -> str:
    """
    Shortest decimal that reads back as the same binary32 value.

    Plain decimal for exponents in [-4, 16), scientific otherwise. Always
    contains a '.', an exponent, or is one of inf/-inf/nan, so it can't be
    mistaken for an integer.
    """
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    for precision in range(1, 10):
        text = f"{value:.{precision - 1}e}"
        if to_f32(float(text)) == value:
            break
    exponent = int(text.split("e")[1])
    if -4 <= exponent < 16:
        text = f"{value:.{max(precision - 1 - exponent, 0)}f}"
    if not any(c in text for c in ".e"):
        text += ".0"
    return text


def is_bare_name(name: str) -> bool:
    return bool(_IDENTIFIER.match(name)) and name not in RESERVED_WORDS


def _prefixed(prefix: str, lines: List[str]) -> List[str]:
    return [prefix + lines[0]] + lines[1:]


def _joined(left: List[str], separator: str, right: List[str]) -> List[str]:
    return left[:-1] + [left[-1] + separator + right[0]] + right[1:]


def type_annotation(value: Value) -> str:
    """``i32``, ``list[string]``, ``map[hash,embed]``..."""
    tag = value.tag
    if tag in (Tag.LIST, Tag.LIST2, Tag.OPTION):
        return f"{tag.type_name}[{value.element_tag.type_name}]"
    if tag == Tag.MAP:
        return f"map[{value.key_tag.type_name},{value.value_tag.type_name}]"
    return tag.type_name


class TextWriter:
    """Renders values as lists of lines; callers splice them into blocks."""

    def __init__(self, dictionary: Optional[NameLookup] = None, indent: int = 2):
        if indent < 0:
            raise ValueError(f"indent must be >= 0, got {indent}")
        self.dictionary = dictionary
        self.pad = " " * indent

    # =========================================================================
    # NAMES
    # =========================================================================

    def name(self, value: int) -> str:
        """Field or class name: bare identifier, quoted name or hash literal."""
        name = display_name(self.dictionary, value)
        if name is None:
            return format_name_hash(value)
        return name if is_bare_name(name) else quote_string(name)

    def hash_value(self, value: int) -> str:
        name = display_name(self.dictionary, value)
        return format_name_hash(value) if name is None else quote_string(name)

    def link_value(self, value: int) -> str:
        path = display_link(self.dictionary, value)
        return format_link_hash(value) if path is None else quote_string(path)

    # =========================================================================
    # BLOCKS
    # =========================================================================

    def block(self, prefix: str, items: List[List[str]]) -> List[str]:
        if not items:
            return [prefix + "{}"]
        if len(items) == 1 and len(items[0]) == 1:
            return [f"{prefix}{{ {items[0][0]} }}"]
        lines = [prefix + "{"]
        for item in items:
            lines.extend(self.pad + line for line in item)
        lines.append("}")
        return lines

    def typed(self, prefix: str, value: Value) -> List[str]:
        return _prefixed(f"{prefix}{type_annotation(value)}: ", self.value(value))

    def fields(self, fields) -> List[List[str]]:
        return [self.typed(f"{self.name(item.name_hash)} = ", item.value) for item in fields]

    def value(self, value: Value) -> List[str]:
        return _VALUE_RENDERERS[value.tag](self, value)

    # =========================================================================
    # VALUES
    # =========================================================================

    def _none(self, value) -> List[str]:
        return ["null"]

    def _bool(self, value) -> List[str]:
        return ["true" if value.value else "false"]

    def _integer(self, value) -> List[str]:
        return [str(value.value)]

    def _f32(self, value) -> List[str]:
        return [format_f32(value.value)]

    def _vector(self, value) -> List[str]:
        return ["{ " + ", ".join(format_f32(v) for v in value.values) + " }"]

    def _matrix(self, value) -> List[str]:
        rows = [", ".join(format_f32(v) for v in value.row(i)) for i in range(4)]
        return ["{"] + [self.pad + row for row in rows] + ["}"]

    def _rgba(self, value) -> List[str]:
        return ["{ " + ", ".join(str(v) for v in value.values) + " }"]

    def _string(self, value) -> List[str]:
        return [quote_string(value.value)]

    def _hash(self, value) -> List[str]:
        return [self.hash_value(value.value)]

    def _link(self, value) -> List[str]:
        return [self.link_value(value.value)]

    def _bytes(self, value) -> List[str]:
        return [quote_string(value.value.hex())]

    def _flag(self, value) -> List[str]:
        return [f"0b{value.value:08b}"]

    def _list(self, value) -> List[str]:
        return self.block("", [self.value(item) for item in value.items])

    def _option(self, value) -> List[str]:
        items = [] if value.item is None else [self.value(value.item)]
        return self.block("", items)

    def _map(self, value) -> List[str]:
        items = [_joined(self.value(key), " = ", self.value(item)) for key, item in value.items]
        return self.block("", items)

    def _pointer(self, value) -> List[str]:
        if value.is_null:
            if value.fields:
                warnings.warn(
                    f"dropping {len(value.fields)} field(s) attached to a null pointer",
                    UserWarning,
                    stacklevel=2,
                )
            return ["null"]
        return self.block(f"{self.name(value.class_hash)} ", self.fields(value.fields))

    def _embed(self, value) -> List[str]:
        return self.block(f"{self.name(value.class_hash)} ", self.fields(value.fields))

    # =========================================================================
    # DOCUMENT
    # =========================================================================

    def document(self, document: Document) -> List[str]:
        lines = [HEADER_COMMENT]
        lines.append(f"type = {quote_string(document.magic.decode('ascii'))}")
        lines.append(f"version = {document.version}")
        if document.version >= LINKED_FILES_VERSION:
            lines.extend(self.block("linked = ", [[quote_string(path)] for path in document.linked]))

        for entry in document.entries:
            lines.extend(self.block(f"{self.name(entry.class_hash)}: ", self.fields(entry.fields)))

        for item in document.patches:
            head = f"patch {self.name(item.entry_hash)} {quote_string(item.path)} = "
            lines.extend(self.typed(head, item.value))

        return lines


_VALUE_RENDERERS: Dict[Tag, Callable[[TextWriter, Value], List[str]]] = {
    Tag.NONE: TextWriter._none,
    Tag.BOOL: TextWriter._bool,
    Tag.I8: TextWriter._integer,
    Tag.U8: TextWriter._integer,
    Tag.I16: TextWriter._integer,
    Tag.U16: TextWriter._integer,
    Tag.I32: TextWriter._integer,
    Tag.U32: TextWriter._integer,
    Tag.I64: TextWriter._integer,
    Tag.U64: TextWriter._integer,
    Tag.F32: TextWriter._f32,
    Tag.VEC2: TextWriter._vector,
    Tag.VEC3: TextWriter._vector,
    Tag.VEC4: TextWriter._vector,
    Tag.MTX44: TextWriter._matrix,
    Tag.RGBA: TextWriter._rgba,
    Tag.STRING: TextWriter._string,
    Tag.HASH: TextWriter._hash,
    Tag.LINK: TextWriter._link,
    Tag.BYTES: TextWriter._bytes,
    Tag.LIST: TextWriter._list,
    Tag.LIST2: TextWriter._list,
    Tag.POINTER: TextWriter._pointer,
    Tag.EMBED: TextWriter._embed,
    Tag.REFERENCE: TextWriter._hash,
    Tag.OPTION: TextWriter._option,
    Tag.MAP: TextWriter._map,
    Tag.FLAG: TextWriter._flag,
}


def encode_text(document: Document, dictionary: Optional[NameLookup] = None, indent: int = 2) -> str:
    """
    Generate the text form of a document.

    Args:
        document: Document to render (validated first)
        dictionary: Optional name lookup for readable names
        indent: Spaces per nesting level

    Returns:
        Text ending in a newline
    """
    document.validate()
    writer = TextWriter(dictionary, indent)
    return "\n".join(writer.document(document)) + "\n"


def save_text_file(
    document: Document,
    filename: str,
    dictionary: Optional[NameLookup] = None,
    indent: int = 2,
) -> None:
    """
    Generate text and save to file.

    Args:
        document: Document to render
        filename: Output file path (.py is the conventional extension)
        dictionary: Optional name lookup
        indent: Spaces per nesting level
    """
    text = encode_text(document, dictionary=dictionary, indent=indent)
    with open(filename, "w", encoding="utf-8") as f:
        f.write(text)


__all__ = [
    "TextWriter",
    "encode_text",
    "save_text_file",
    "format_f32",
    "quote_string",
    "type_annotation",
]
