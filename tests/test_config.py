"""
Tests for conversion settings.
"""

import pytest

from binprop.config import ConfigError, ConvertConfig, load_config
from binprop.hashing import fnv1a


def test_defaults():
    config = load_config()
    assert config == ConvertConfig()
    assert config.indent == 2
    assert config.json_indent == 2
    assert config.strict_names is False
    assert config.max_workers is None
    assert config.load_dictionary() is None


def test_load_yaml(tmp_path):
    path = tmp_path / "binprop.yaml"
    path.write_text("indent: 4\nstrict_names: true\nmax_workers: 8\njson_indent: null\n", encoding="utf-8")
    config = load_config(path)
    assert config.indent == 4
    assert config.strict_names is True
    assert config.max_workers == 8
    assert config.json_indent is None


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == ConvertConfig()


def test_overrides_win(tmp_path):
    path = tmp_path / "binprop.yaml"
    path.write_text("indent: 4\n", encoding="utf-8")
    assert load_config(path, indent=8).indent == 8
    assert load_config(path, indent=None).indent == 4


def test_with_overrides():
    config = ConvertConfig().with_overrides(max_workers=3, indent=None)
    assert config.max_workers == 3
    assert config.indent == 2


def test_unknown_key(tmp_path):
    path = tmp_path / "binprop.yaml"
    path.write_text("indnet: 4\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="indnet"):
        load_config(path)


def test_unknown_override():
    with pytest.raises(ConfigError):
        load_config(colour=True)


@pytest.mark.parametrize("text", [
    "indent: -1\n",
    "indent: yes\n",
    "max_workers: 0\n",
    "strict_names: 1\n",
    "hash_files: hashes.txt\n",
])
def test_wrong_types(tmp_path, text):
    path = tmp_path / "binprop.yaml"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_not_a_mapping(tmp_path):
    path = tmp_path / "binprop.yaml"
    path.write_text("- indent\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "binprop.yaml"
    path.write_text("indent: [4\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")


def test_config_error_is_value_error():
    assert issubclass(ConfigError, ValueError)


def test_relative_hash_files(tmp_path):
    """Hash files listed in a config file are relative to that file."""
    hashes = tmp_path / "hashes.binfields.txt"
    hashes.write_text(f"{fnv1a('mRange'):08x} mRange\n", encoding="utf-8")
    path = tmp_path / "binprop.yaml"
    path.write_text("hash_files:\n  - hashes.binfields.txt\n", encoding="utf-8")

    config = load_config(path)
    assert config.hash_files == [str(hashes)]
    assert config.load_dictionary().lookup_name(fnv1a("mRange")) == "mRange"


def test_load_dictionary_merges_files(tmp_path):
    first = tmp_path / "a.txt"
    first.write_text(f"{fnv1a('mName'):08x} mName\n", encoding="utf-8")
    second = tmp_path / "b.txt"
    second.write_text(f"{fnv1a('mRange'):08x} mRange\n", encoding="utf-8")

    dictionary = ConvertConfig(hash_files=[str(first), str(second)]).load_dictionary()
    assert dictionary.knows_name("mName")
    assert dictionary.knows_name("mRange")
