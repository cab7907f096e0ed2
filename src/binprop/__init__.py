"""
binprop: property-bag asset files in binary, text and JSON form.

This package reads and writes the hash-identified, recursively typed
property format used by game asset files, and converts it losslessly
between three representations:

    - binary (PROP/PTCH files as shipped)
    - text (brace-nested, human-editable)
    - JSON (tagged values; YAML renders the same tree)

ARCHITECTURAL GUARANTEE:
------------------------
The model contains ZERO knowledge of:
    - Any encoding (each codec is an independent leaf over the model)
    - The meaning of any class or field
    - Where hash dictionaries come from

Every codec reads into a Document and writes from a Document.
"""

__version__ = "0.1.0"

from binprop.binary import decode_binary, encode_binary, validate
from binprop.backends.text_generator import encode_text
from binprop.errors import (
    BinPropError,
    DuplicateFieldName,
    DuplicateMapKey,
    EncodingError,
    SchemaViolation,
    TextSyntaxError,
    TruncatedInput,
    TypeMismatch,
    UnknownMagic,
    UnknownTypeTag,
    UnsupportedVersion,
)
from binprop.hashing import fnv1a, xxh64
from binprop.model import Document, Entry, Patch
from binprop.serialization import (
    decode_json,
    decode_yaml,
    encode_json,
    encode_yaml,
    value_from_json,
    value_to_json,
)
from binprop.text_parser import decode_text
from binprop.unhash import HashDictionary, NameLookup, load_hash_file
from binprop.values import Field, Tag, Value

__all__ = [
    "__version__",
    "decode_binary",
    "encode_binary",
    "validate",
    "decode_text",
    "encode_text",
    "decode_json",
    "encode_json",
    "decode_yaml",
    "encode_yaml",
    "value_to_json",
    "value_from_json",
    "fnv1a",
    "xxh64",
    "HashDictionary",
    "NameLookup",
    "load_hash_file",
    "Document",
    "Entry",
    "Patch",
    "Field",
    "Tag",
    "Value",
    "BinPropError",
    "TruncatedInput",
    "UnknownMagic",
    "UnsupportedVersion",
    "UnknownTypeTag",
    "TypeMismatch",
    "DuplicateFieldName",
    "DuplicateMapKey",
    "TextSyntaxError",
    "SchemaViolation",
    "EncodingError",
]
