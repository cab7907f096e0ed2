"""
Tests for the command-line front end.

Commands run in-process through main(argv) against files in tmp_path.
"""

import pytest

from binprop.binary import decode_binary, encode_binary
from binprop.cli import build_parser, main
from binprop.examples import EXAMPLE_LINKS, EXAMPLE_NAMES, build_example_document
from binprop.hashing import fnv1a, xxh64


@pytest.fixture
def bin_file(tmp_path):
    path = tmp_path / "spell.bin"
    path.write_bytes(encode_binary(build_example_document()))
    return path


@pytest.fixture
def hash_file(tmp_path):
    """CDTB-style hash list naming the example document."""
    path = tmp_path / "hashes.txt"
    lines = [f"{fnv1a(name):08x} {name}" for name in EXAMPLE_NAMES]
    lines += [f"{xxh64(link):016x} {link}" for link in EXAMPLE_LINKS]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class TestConvert:
    """Test the convert command."""

    def test_bin_to_text_and_back(self, bin_file, tmp_path, capsys):
        text_path = tmp_path / "spell.py"
        assert main(["convert", str(bin_file)]) == 0
        assert text_path.read_text(encoding="utf-8").startswith("#PROP_text\n")
        assert "-> " in capsys.readouterr().out

        out_path = tmp_path / "again.bin"
        assert main(["convert", str(text_path), "-o", str(out_path)]) == 0
        assert out_path.read_bytes() == bin_file.read_bytes()

    def test_hash_files_name_output(self, bin_file, hash_file, tmp_path):
        out_path = tmp_path / "named.py"
        assert main(["convert", str(bin_file), "-o", str(out_path), "--hashes", str(hash_file)]) == 0
        assert "SpellObject: {" in out_path.read_text(encoding="utf-8")

    @pytest.mark.parametrize("fmt, suffix", [("json", ".json"), ("yaml", ".yaml")])
    def test_to_format(self, bin_file, tmp_path, fmt, suffix):
        assert main(["convert", str(bin_file), "--to", fmt]) == 0
        out_path = tmp_path / ("spell" + suffix)
        assert out_path.exists()

        back = tmp_path / "back.bin"
        assert main(["convert", str(out_path), "-o", str(back)]) == 0
        assert decode_binary(back.read_bytes()) == build_example_document()

    def test_stdout(self, bin_file, capsysbinary):
        assert main(["convert", str(bin_file), "--to", "text", "-o", "-"]) == 0
        assert capsysbinary.readouterr().out.startswith(b"#PROP_text\n")

    def test_refuses_to_overwrite_input(self, bin_file, capsys):
        assert main(["convert", str(bin_file), "--to", "bin"]) == 1
        assert "overwrite" in capsys.readouterr().err

    def test_decode_error_is_reported(self, tmp_path, capsys):
        path = tmp_path / "broken.bin"
        path.write_bytes(b"NOPE" + bytes(12))
        assert main(["convert", str(path)]) == 1
        assert capsys.readouterr().err.startswith("binprop: error:")

    def test_missing_input(self, tmp_path, capsys):
        assert main(["convert", str(tmp_path / "missing.bin")]) == 1
        assert "binprop: error:" in capsys.readouterr().err

    def test_config_file_sets_indent(self, bin_file, tmp_path):
        config = tmp_path / "binprop.yaml"
        config.write_text("indent: 4\n", encoding="utf-8")
        out_path = tmp_path / "wide.py"
        assert main(["--config", str(config), "convert", str(bin_file), "-o", str(out_path)]) == 0
        assert "\n    0x" in out_path.read_text(encoding="utf-8")


class TestValidate:
    """Test the validate command."""

    def test_all_ok(self, bin_file, tmp_path, capsys):
        assert main(["validate", str(tmp_path)]) == 0
        out = capsys.readouterr().out
        assert f"OK    {bin_file}" in out
        assert "1 ok, 0 failed" in out

    def test_failure_sets_exit_code(self, bin_file, tmp_path, capsys):
        (tmp_path / "broken.bin").write_bytes(bin_file.read_bytes()[:-3])
        assert main(["validate", str(tmp_path), "--workers", "2"]) == 1
        out = capsys.readouterr().out
        assert "FAIL" in out and "TruncatedInput" in out
        assert "1 ok, 1 failed" in out

    def test_no_files(self, tmp_path, capsys):
        assert main(["validate", str(tmp_path)]) == 1
        assert "no files" in capsys.readouterr().err


class TestInfo:
    """Test the info command."""

    def test_info(self, bin_file, hash_file, capsys):
        assert main(["info", str(bin_file), "--hashes", str(hash_file)]) == 0
        out = capsys.readouterr().out
        assert out.startswith("PROP version 3")
        assert "SpellObject: 1" in out
        assert "Unresolved name hashes: 4" in out


class TestParser:
    """Test argument parsing."""

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_unknown_format_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["convert", "a.bin", "--to", "xml"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--version"])
        assert excinfo.value.code == 0
        assert capsys.readouterr().out.startswith("binprop ")
