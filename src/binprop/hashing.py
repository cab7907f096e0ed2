"""
Forward hash functions used by property files.

    fnv1a  - 32-bit FNV-1a over the UTF-8 bytes of a class or field name
    xxh64  - 64-bit XXH64 over the UTF-8 bytes of a resource path

Both fold ASCII upper case to lower case before hashing, so
``fnv1a("MName") == fnv1a("mname")``. Non-ASCII bytes are hashed as-is.
Both functions are pure.
"""

import xxhash

MASK32 = 0xFFFFFFFF

FNV1A_OFFSET = 0x811C9DC5
FNV1A_PRIME = 0x01000193


def _folded(text) -> bytes:
    if isinstance(text, str):
        text = text.encode("utf-8")
    # bytes.lower() only touches A-Z
    return bytes(text).lower()


def fnv1a(name) -> int:
    """32-bit case-folding FNV-1a of a name."""
    h = FNV1A_OFFSET
    for byte in _folded(name):
        h = ((h ^ byte) * FNV1A_PRIME) & MASK32
    return h


def xxh64(path, seed: int = 0) -> int:
    """64-bit case-folding XXH64 of a path."""
    return xxhash.xxh64_intdigest(_folded(path), seed=seed)


def format_name_hash(value: int) -> str:
    """Fixed-width hash literal for a 32-bit name hash: 0x0000abcd."""
    return f"0x{value:08x}"


def format_link_hash(value: int) -> str:
    """Fixed-width hash literal for a 64-bit link hash."""
    return f"0x{value:016x}"


def parse_hash_literal(text: str, bits: int):
    """
    Parse a "0x..." literal of at most ``bits`` bits.

    Returns the integer, or None if ``text`` is not a hash literal.
    """
    if len(text) < 3 or text[:2] not in ("0x", "0X"):
        return None
    digits = text[2:]
    if len(digits) > bits // 4 or any(c not in _HEX_DIGITS for c in digits):
        return None
    return int(digits, 16)


_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


__all__ = [
    "fnv1a",
    "xxh64",
    "format_name_hash",
    "format_link_hash",
    "parse_hash_literal",
]
