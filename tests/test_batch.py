"""
Tests for file-level helpers and batch validation.
"""

import struct

import pytest

import binprop.batch
from binprop.backends.text_generator import encode_text
from binprop.batch import (
    collect_files,
    decode_document,
    detect_format,
    encode_document,
    load_document,
    validate_files,
)
from binprop.binary import encode_binary
from binprop.errors import EncodingError
from binprop.examples import build_example_document, example_dictionary
from binprop.serialization import encode_json
from binprop.values import Tag


@pytest.fixture
def example_files(tmp_path):
    """The example document written once per format."""
    document = build_example_document()
    paths = {}
    for fmt, name in (("bin", "doc.bin"), ("text", "doc.py"), ("json", "doc.json"), ("yaml", "doc.yaml")):
        path = tmp_path / name
        path.write_bytes(encode_document(document, fmt, dictionary=example_dictionary()))
        paths[fmt] = path
    return paths


class TestDetectFormat:
    """Test format detection."""

    def test_magic_wins_over_extension(self):
        assert detect_format("weird.json", encode_binary(build_example_document())) == "bin"

    @pytest.mark.parametrize("name, fmt", [
        ("a.bin", "bin"),
        ("a.py", "text"),
        ("a.txt", "text"),
        ("a.json", "json"),
        ("a.YAML", "yaml"),
        ("a.yml", "yaml"),
    ])
    def test_extension(self, name, fmt):
        assert detect_format(name, b"") == fmt

    def test_content_sniffing(self):
        assert detect_format("noext", b"  #PROP_text\n") == "text"
        assert detect_format("noext", b'{"type": "PROP"}') == "json"
        assert detect_format("noext", b"garbage") == "bin"

    def test_content_wins_over_extension(self):
        assert detect_format("a.bin", b"#PROP_text\n") == "text"
        assert detect_format("a.py", b'{"type": "PROP"}') == "json"

    def test_text_file_named_bin_loads(self, tmp_path):
        path = tmp_path / "spell.bin"
        path.write_bytes(encode_document(build_example_document(), "text"))
        assert load_document(path) == build_example_document()


class TestLoadDocument:
    """Test loading each format from disk."""

    @pytest.mark.parametrize("fmt", ["bin", "text", "json", "yaml"])
    def test_load_each_format(self, example_files, fmt):
        assert load_document(example_files[fmt]) == build_example_document()

    def test_text_must_be_utf8(self):
        with pytest.raises(EncodingError):
            decode_document(b"\xff\xfe", "text")

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            decode_document(b"", "xml")
        with pytest.raises(ValueError):
            encode_document(build_example_document(), "xml")

    def test_text_indent_is_passed_through(self):
        document = build_example_document()
        assert encode_document(document, "text", indent=4) == encode_text(document, indent=4).encode("utf-8")

    def test_compact_json(self):
        document = build_example_document()
        output = encode_document(document, "json", json_indent=None)
        assert output == encode_json(document, indent=None).encode("utf-8")
        assert output.count(b"\n") == 1


class TestCollectFiles:
    """Test directory expansion."""

    def test_directory_keeps_known_extensions(self, example_files, tmp_path):
        (tmp_path / "notes.md").write_text("ignore me")
        files = collect_files([tmp_path])
        assert [p.name for p in files] == ["doc.bin", "doc.json", "doc.py", "doc.yaml"]

    def test_recursive(self, tmp_path):
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        (nested / "deep.bin").write_bytes(b"")
        assert collect_files([tmp_path]) == []
        assert collect_files([tmp_path], recursive=True) == [nested / "deep.bin"]

    def test_explicit_files_always_kept(self, tmp_path):
        path = tmp_path / "data.unknown"
        assert collect_files([path]) == [path]


class TestValidateFiles:
    """Test concurrent validation."""

    def test_all_pass(self, example_files):
        report = validate_files(sorted(example_files.values()), max_workers=2)
        assert report.ok
        assert len(report.passed) == 4

    def test_failure_is_recorded(self, example_files, tmp_path):
        broken = tmp_path / "broken.bin"
        broken.write_bytes(example_files["bin"].read_bytes()[:-1])
        paths = [example_files["bin"], broken, tmp_path / "missing.bin"]

        report = validate_files(paths, max_workers=2)

        assert not report.ok
        assert [r.ok for r in report.results] == [True, False, False]
        assert report.results[1].error_type == "TruncatedInput"
        assert report.results[2].error_type == "FileNotFoundError"

    def test_strict_names(self, tmp_path):
        path = tmp_path / "named.py"
        path.write_text(encode_text(build_example_document(), example_dictionary()), encoding="utf-8")

        assert validate_files([path], dictionary=example_dictionary(), strict=False).ok
        # mSpellRef is not in the example dictionary, but it is written as a hex literal
        assert validate_files([path], dictionary=example_dictionary(), strict=True).ok

        path.write_text("Unknown: {}\n", encoding="utf-8")
        report = validate_files([path], dictionary=example_dictionary(), strict=True)
        assert report.results[0].error_type == "TextSyntaxError"

    def test_deep_nesting_fails_one_file_only(self, example_files, tmp_path):
        payload = struct.pack("<IIH", 5, 2, 0)
        for _ in range(1999):
            fields = struct.pack("<HIB", 1, 2, Tag.EMBED) + payload
            payload = struct.pack("<II", 5, len(fields)) + fields
        body = struct.pack("<IHIB", 1, 1, 2, Tag.EMBED) + payload
        deep = tmp_path / "deep.bin"
        deep.write_bytes(struct.pack("<4sIII", b"PROP", 3, 0, 1) + struct.pack("<I", len(body)) + body)

        report = validate_files([deep, example_files["bin"]], max_workers=2)

        assert [r.ok for r in report.results] == [False, True]
        assert report.results[0].error_type == "TypeMismatch"
        assert "nested deeper" in report.results[0].error

    def test_unexpected_error_is_recorded(self, example_files, monkeypatch):
        real_load = binprop.batch.load_document

        def load(path, **kwargs):
            if path == example_files["json"]:
                raise RuntimeError("decoder bug")
            return real_load(path, **kwargs)

        monkeypatch.setattr(binprop.batch, "load_document", load)
        report = validate_files([example_files["json"], example_files["bin"]])

        assert [r.ok for r in report.results] == [False, True]
        assert report.results[0].error_type == "RuntimeError"
        assert report.results[0].error == "decoder bug"
