"""
Tests for the forward hash functions and hash literals.
"""

import pytest
import xxhash

from binprop.hashing import (
    fnv1a,
    format_link_hash,
    format_name_hash,
    parse_hash_literal,
    xxh64,
)


class TestFnv1a:
    """Test 32-bit FNV-1a."""

    def test_known_values(self):
        assert fnv1a("") == 0x811C9DC5
        assert fnv1a("a") == 0xE40C292C

    def test_case_insensitive(self):
        assert fnv1a("MName") == fnv1a("mname") == fnv1a("MNAME")

    def test_bytes_and_str_agree(self):
        assert fnv1a(b"SpellObject") == fnv1a("SpellObject")

    def test_non_ascii_is_not_folded(self):
        assert fnv1a("É") != fnv1a("é")

    def test_fits_32_bits(self):
        assert 0 <= fnv1a("x" * 1000) < (1 << 32)


class TestXxh64:
    """Test 64-bit XXH64."""

    def test_known_values(self):
        assert xxh64("") == 0xEF46DB3751D8E999
        assert xxh64("abc") == 0x44BC2CF5AD770999

    def test_case_insensitive(self):
        assert xxh64("ASSETS/Foo.DDS") == xxh64("assets/foo.dds")

    def test_hashes_the_lowercased_path(self):
        """Link hashes are taken over the lower-cased path, as in published hash lists."""
        assert xxh64("Data/Shared.bin") == xxhash.xxh64_intdigest(b"data/shared.bin")
        assert xxh64("Data/Shared.bin") != xxhash.xxh64_intdigest(b"Data/Shared.bin")

    def test_long_input_uses_all_lanes(self):
        path = "assets/characters/annie/skins/base/particles/fireball.troy"
        assert len(path) > 32
        assert xxh64(path) != xxh64(path[:-1])
        assert 0 <= xxh64(path) < (1 << 64)

    def test_seed_changes_result(self):
        assert xxh64("abc", seed=1) != xxh64("abc")


class TestHashLiterals:
    """Test formatting and parsing of 0x literals."""

    def test_format(self):
        assert format_name_hash(0x1A) == "0x0000001a"
        assert format_link_hash(0x1A) == "0x000000000000001a"

    def test_parse(self):
        assert parse_hash_literal("0x1a2b3c4d", 32) == 0x1A2B3C4D
        assert parse_hash_literal("0X1A", 32) == 0x1A
        assert parse_hash_literal("0x0123456789abcdef", 64) == 0x0123456789ABCDEF

    @pytest.mark.parametrize("text", ["", "0x", "1a2b", "0x123456789", "0x_1", "0xzz", "mName"])
    def test_parse_rejects(self, text):
        assert parse_hash_literal(text, 32) is None
