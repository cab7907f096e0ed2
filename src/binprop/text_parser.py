"""
Text Parser for binprop (text -> Document).

Reads the brace-nested text format produced by
``binprop.backends.text_generator``:

    #PROP_text
    type = "PROP"
    version = 3
    linked = { "DATA/Shared.bin" }
    SpellObject: {
      mName = string: "Fireball"
    }
    patch 0x0badf00d "mData.mRange" = f32: 600.0

Syntax Notes:
    - '#' starts a comment that runs to the end of the line
    - Commas between items are optional
    - Names are identifiers, quoted strings or 0x hash literals
    - Textual names are forward-hashed (FNV-1a, XXH64 for links)

Every error is a TextSyntaxError (or a model error) carrying the line and
column of the offending token.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from binprop.errors import (
    BinPropError,
    DuplicateFieldName,
    DuplicateMapKey,
    TextSyntaxError,
    TypeMismatch,
    UnsupportedVersion,
)
from binprop.hashing import fnv1a, parse_hash_literal, xxh64
from binprop.model import (
    DEFAULT_VERSION,
    MAX_VERSION,
    MIN_VERSION,
    Document,
    Entry,
    Patch,
)
from binprop.unhash import HashDictionary
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

logger = logging.getLogger(__name__)

HEADER_KEYS = ("type", "version", "linked")

_TOKEN_PATTERN = re.compile(
    r"""
      (?P<ws>[ \t\r\f]+)
    | (?P<newline>\n)
    | (?P<comment>\#[^\n]*)
    | (?P<string>"(?:[^"\\\n]|\\.)*")
    | (?P<number>
          [+-]?(?:inf|nan)\b
        | 0[xX][0-9a-fA-F]+
        | 0[bB][01]+
        | [+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?
      )
    | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<punct>[{}\[\],:=])
    """,
    re.VERBOSE,
)

_UNESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


@dataclass(frozen=True)
class Token:
    kind: str  # string, number, ident, punct, eof
    text: str
    line: int
    column: int

    def describe(self) -> str:
        if self.kind == "eof":
            return "end of input"
        return repr(self.text)


def tokenize(text: str) -> List[Token]:
    """
    Split text into tokens, dropping whitespace and comments.

    Raises:
        TextSyntaxError: On a character no token can start with
    """
    tokens = []
    line = 1
    line_start = 0
    pos = 0
    while pos < len(text):
        match = _TOKEN_PATTERN.match(text, pos)
        column = pos - line_start + 1
        if match is None:
            found = text[pos]
            if found == '"':
                raise TextSyntaxError(line, column, "closing quote", "unterminated string")
            raise TextSyntaxError(line, column, "a token", repr(found))
        kind = match.lastgroup
        if kind == "newline":
            line += 1
            line_start = match.end()
        elif kind not in ("ws", "comment"):
            tokens.append(Token(kind, match.group(), line, column))
        pos = match.end()
    tokens.append(Token("eof", "", line, pos - line_start + 1))
    return tokens


def unescape_string(token: Token) -> str:
    body = token.text[1:-1]
    if "\\" not in body:
        return body
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        code = body[i + 1]
        if code in _UNESCAPES:
            out.append(_UNESCAPES[code])
            i += 2
        elif code == "u":
            digits = body[i + 2:i + 6]
            if len(digits) != 4 or parse_hash_literal("0x" + digits, 16) is None:
                raise TextSyntaxError(token.line, token.column + i + 1, "4 hex digits after \\u", repr(digits))
            out.append(chr(int(digits, 16)))
            i += 6
        else:
            raise TextSyntaxError(token.line, token.column + i + 1, "escape sequence", repr("\\" + code))
    return "".join(out)


# (tag, element tags) as written in a type annotation
TypeSpec = Tuple[Tag, Tuple[Tag, ...]]


class TextParser:
    """Recursive descent parser over a token list."""

    def __init__(self, text: str, dictionary: Optional[HashDictionary] = None, strict: bool = False):
        self.tokens = tokenize(text)
        self.pos = 0
        self.dictionary = dictionary
        self.strict = strict
        self.depth = 0

    # =========================================================================
    # TOKEN HELPERS
    # =========================================================================

    def peek(self, offset: int = 0) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != "eof":
            self.pos += 1
        return token

    def error(self, token: Token, expected: str) -> TextSyntaxError:
        return TextSyntaxError(token.line, token.column, expected, token.describe())

    def expect(self, text: str) -> Token:
        token = self.advance()
        if token.kind != "punct" or token.text != text:
            raise self.error(token, repr(text))
        return token

    def accept(self, text: str) -> bool:
        token = self.peek()
        if token.kind == "punct" and token.text == text:
            self.pos += 1
            return True
        return False

    def expect_kind(self, kind: str, expected: str) -> Token:
        token = self.advance()
        if token.kind != kind:
            raise self.error(token, expected)
        return token

    def expect_word(self, *words: str) -> Token:
        token = self.advance()
        if token.kind != "ident" or token.text not in words:
            raise self.error(token, " or ".join(repr(w) for w in words))
        return token

    def block_items(self, parse_item: Callable[[], None]) -> None:
        """Parse '{' item [,] item ... '}'."""
        self.expect("{")
        while not self.accept("}"):
            if self.peek().kind == "eof":
                raise self.error(self.peek(), "'}'")
            parse_item()
            self.accept(",")

    @staticmethod
    def located(token: Token, exc: BinPropError) -> BinPropError:
        return exc.at(f"line {token.line}, column {token.column}")

    # =========================================================================
    # NAMES
    # =========================================================================

    def _known(self, token: Token, name: str, link: bool = False) -> None:
        if not self.strict:
            return
        known = self.dictionary is not None and (
            self.dictionary.knows_link(name) if link else self.dictionary.knows_name(name)
        )
        if not known:
            raise TextSyntaxError(token.line, token.column, "a name known to the hash dictionary", repr(name))

    def name_hash(self, what: str = "name") -> int:
        """Identifier, quoted name or 32-bit hash literal."""
        token = self.advance()
        if token.kind == "ident":
            self._known(token, token.text)
            return fnv1a(token.text)
        if token.kind == "string":
            name = unescape_string(token)
            self._known(token, name)
            return fnv1a(name)
        if token.kind == "number":
            value = parse_hash_literal(token.text, 32)
            if value is not None:
                return value
        raise self.error(token, what)

    def hash_value(self, bits: int = 32) -> int:
        """Quoted name or hash literal, as used by hash, reference and link values."""
        token = self.advance()
        if token.kind == "string":
            name = unescape_string(token)
            if bits == 64:
                self._known(token, name, link=True)
                return xxh64(name)
            self._known(token, name)
            return fnv1a(name)
        if token.kind == "number":
            value = parse_hash_literal(token.text, bits)
            if value is not None:
                return value
        raise self.error(token, f"quoted name or {bits}-bit hash literal")

    # =========================================================================
    # TYPES
    # =========================================================================

    def type_name(self, element: bool = False) -> Tag:
        token = self.expect_kind("ident", "type name")
        tag = TAGS_BY_NAME.get(token.text)
        if tag is None:
            raise self.error(token, "type name")
        if element and tag.is_container:
            raise self.error(token, "non-container element type")
        return tag

    def type_spec(self) -> TypeSpec:
        tag = self.type_name()
        if tag in (Tag.LIST, Tag.LIST2, Tag.OPTION):
            self.expect("[")
            element = self.type_name(element=True)
            self.expect("]")
            return tag, (element,)
        if tag == Tag.MAP:
            self.expect("[")
            key_token = self.peek()
            key = self.type_name()
            if not key.is_primitive:
                raise self.error(key_token, "primitive map key type")
            self.expect(",")
            value = self.type_name(element=True)
            self.expect("]")
            return tag, (key, value)
        return tag, ()

    def typed_value(self) -> Value:
        """``<type>: <value>``"""
        spec = self.type_spec()
        self.expect(":")
        return self.value(spec)

    def value(self, spec: TypeSpec) -> Value:
        tag = spec[0]
        if not tag.nests:
            return _VALUE_PARSERS[tag](self, spec)
        if self.depth >= MAX_DEPTH:
            raise self.located(self.peek(), TypeMismatch(f"values nested deeper than {MAX_DEPTH} levels"))
        self.depth += 1
        try:
            return _VALUE_PARSERS[tag](self, spec)
        finally:
            self.depth -= 1

    # =========================================================================
    # SCALARS
    # =========================================================================

    def integer(self) -> Tuple[Token, int]:
        token = self.expect_kind("number", "integer")
        text = token.text
        try:
            if text[:2] in ("0x", "0X"):
                return token, int(text[2:], 16)
            if text[:2] in ("0b", "0B"):
                return token, int(text[2:], 2)
            return token, int(text, 10)
        except ValueError:
            raise self.error(token, "integer") from None

    def number(self) -> float:
        token = self.expect_kind("number", "number")
        if token.text[:2] in ("0x", "0X", "0b", "0B"):
            raise self.error(token, "decimal number")
        return float(token.text)

    def numbers(self, count: int) -> Tuple[float, ...]:
        start = self.peek()
        values = []
        self.block_items(lambda: values.append(self.number()))
        if len(values) != count:
            raise TextSyntaxError(start.line, start.column, f"{count} components", str(len(values)))
        return tuple(values)

    def build(self, token: Token, cls, *args) -> Value:
        try:
            return cls(*args)
        except BinPropError as exc:
            raise self.located(token, exc)

    def _none(self, spec: TypeSpec) -> Value:
        self.expect_word("null")
        return NoneValue()

    def _bool(self, spec: TypeSpec) -> Value:
        return Bool(self.expect_word("true", "false").text == "true")

    def _integer(self, spec: TypeSpec) -> Value:
        token, value = self.integer()
        return self.build(token, SCALAR_CLASSES[spec[0]], value)

    def _f32(self, spec: TypeSpec) -> Value:
        token = self.peek()
        return self.build(token, F32, self.number())

    def _vector(self, spec: TypeSpec) -> Value:
        cls = SCALAR_CLASSES[spec[0]]
        start = self.peek()
        return self.build(start, cls, self.numbers(cls.arity))

    def _rgba(self, spec: TypeSpec) -> Value:
        start = self.peek()
        values = []

        def component():
            token, value = self.integer()
            values.append((token, value))

        self.block_items(component)
        if len(values) != 4:
            raise TextSyntaxError(start.line, start.column, "4 components", str(len(values)))
        return self.build(values[0][0], SCALAR_CLASSES[Tag.RGBA], tuple(v for _, v in values))

    def _string(self, spec: TypeSpec) -> Value:
        return String(unescape_string(self.expect_kind("string", "quoted string")))

    def _hash(self, spec: TypeSpec) -> Value:
        return SCALAR_CLASSES[spec[0]](self.hash_value(32))

    def _link(self, spec: TypeSpec) -> Value:
        return SCALAR_CLASSES[Tag.LINK](self.hash_value(64))

    def _bytes(self, spec: TypeSpec) -> Value:
        token = self.expect_kind("string", "quoted hex string")
        try:
            return ByteArray(bytes.fromhex(unescape_string(token)))
        except ValueError:
            raise self.error(token, "quoted hex string") from None

    def _flag(self, spec: TypeSpec) -> Value:
        token, value = self.integer()
        return self.build(token, SCALAR_CLASSES[Tag.FLAG], value)

    # =========================================================================
    # CONTAINERS
    # =========================================================================

    def _list(self, spec: TypeSpec) -> Value:
        tag, (element,) = spec
        items = []
        self.block_items(lambda: items.append(self.value((element, ()))))
        cls = LegacyList if tag == Tag.LIST2 else ListValue
        return cls(element, items)

    def _option(self, spec: TypeSpec) -> Value:
        _, (element,) = spec
        items = []
        starts = []

        def item():
            starts.append(self.peek())
            items.append(self.value((element, ())))

        self.block_items(item)
        if len(items) > 1:
            raise self.error(starts[1], "'}' (an option holds at most one item)")
        return Option(element, items[0] if items else None)

    def _map(self, spec: TypeSpec) -> Value:
        _, (key_tag, value_tag) = spec
        items = []
        seen = set()

        def pair():
            token = self.peek()
            key = self.value((key_tag, ()))
            if key in seen:
                raise self.located(token, DuplicateMapKey(key))
            seen.add(key)
            self.expect("=")
            items.append((key, self.value((value_tag, ()))))

        self.block_items(pair)
        return Map(key_tag, value_tag, items)

    def fields(self) -> List[Field]:
        fields = []
        seen = set()

        def field():
            token = self.peek()
            name_hash = self.name_hash("field name")
            if name_hash in seen:
                raise self.located(token, DuplicateFieldName(name_hash))
            seen.add(name_hash)
            self.expect("=")
            fields.append(Field(name_hash, self.typed_value()))

        self.block_items(field)
        return fields

    def _pointer(self, spec: TypeSpec) -> Value:
        token = self.peek()
        if token.kind == "ident" and token.text == "null":
            self.advance()
            return Pointer(0)
        class_hash = self.name_hash("class name or null")
        return Pointer(class_hash, self.fields())

    def _embed(self, spec: TypeSpec) -> Value:
        class_hash = self.name_hash("class name")
        return Embedded(class_hash, self.fields())

    # =========================================================================
    # DOCUMENT
    # =========================================================================

    def document(self) -> Document:
        kind = "PROP"
        version = DEFAULT_VERSION
        linked: List[str] = []
        entries = []
        patches = []

        while self.peek().kind != "eof":
            token = self.peek()
            following = self.peek(1)
            if token.kind == "ident" and token.text in HEADER_KEYS and following.text == "=":
                self.advance()
                self.advance()
                if token.text == "type":
                    kind_token = self.expect_kind("string", '"PROP" or "PTCH"')
                    kind = unescape_string(kind_token)
                    if kind not in ("PROP", "PTCH"):
                        raise self.error(kind_token, '"PROP" or "PTCH"')
                elif token.text == "version":
                    version_token, version = self.integer()
                    if not MIN_VERSION <= version <= MAX_VERSION:
                        raise self.located(version_token, UnsupportedVersion(version))
                else:
                    linked = []
                    self.block_items(
                        lambda: linked.append(unescape_string(self.expect_kind("string", "quoted path")))
                    )
            elif token.kind == "ident" and token.text == "patch" and following.text != ":":
                self.advance()
                if kind != "PTCH":
                    raise self.error(token, 'an entry (patches need type = "PTCH")')
                entry_hash = self.name_hash("patch entry name")
                path = unescape_string(self.expect_kind("string", "quoted field path"))
                self.expect("=")
                patches.append(Patch(entry_hash, path, self.typed_value()))
            else:
                class_hash = self.name_hash("entry class name")
                self.expect(":")
                entries.append(Entry(class_hash, self.fields()))

        logger.debug("parsed %s text: %d entries, %d patches", kind, len(entries), len(patches))
        return Document(
            entries=entries,
            version=version,
            linked=linked,
            patch=kind == "PTCH",
            patches=patches,
        )


_VALUE_PARSERS: Dict[Tag, Callable[[TextParser, TypeSpec], Value]] = {
    Tag.NONE: TextParser._none,
    Tag.BOOL: TextParser._bool,
    Tag.I8: TextParser._integer,
    Tag.U8: TextParser._integer,
    Tag.I16: TextParser._integer,
    Tag.U16: TextParser._integer,
    Tag.I32: TextParser._integer,
    Tag.U32: TextParser._integer,
    Tag.I64: TextParser._integer,
    Tag.U64: TextParser._integer,
    Tag.F32: TextParser._f32,
    Tag.VEC2: TextParser._vector,
    Tag.VEC3: TextParser._vector,
    Tag.VEC4: TextParser._vector,
    Tag.MTX44: TextParser._vector,
    Tag.RGBA: TextParser._rgba,
    Tag.STRING: TextParser._string,
    Tag.HASH: TextParser._hash,
    Tag.LINK: TextParser._link,
    Tag.BYTES: TextParser._bytes,
    Tag.LIST: TextParser._list,
    Tag.LIST2: TextParser._list,
    Tag.POINTER: TextParser._pointer,
    Tag.EMBED: TextParser._embed,
    Tag.REFERENCE: TextParser._hash,
    Tag.OPTION: TextParser._option,
    Tag.MAP: TextParser._map,
    Tag.FLAG: TextParser._flag,
}


def decode_text(text: str, dictionary: Optional[HashDictionary] = None, strict: bool = False) -> Document:
    """
    Parse the text format into a Document.

    Args:
        text: Source text
        dictionary: Hash dictionary, only consulted when ``strict`` is set
        strict: Require every textual name to be registered in ``dictionary``

    Returns:
        Document

    Raises:
        TextSyntaxError: If the text is malformed
        UnsupportedVersion, DuplicateFieldName, DuplicateMapKey, TypeMismatch:
            For well-formed text describing an invalid document
    """
    return TextParser(text, dictionary=dictionary, strict=strict).document()


__all__ = ["Token", "tokenize", "TextParser", "decode_text"]
