"""
Conversion settings.

Settings come from an optional YAML file and keyword overrides; overrides
win. Example file:

    indent: 4
    json_indent: 2
    strict_names: false
    max_workers: 8
    hash_files:
      - hashes.binentries.txt
      - hashes.binfields.txt
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from binprop.unhash import HashDictionary, load_hash_file


class ConfigError(ValueError):
    """Unreadable config file, unknown key or wrongly typed value."""
    pass


@dataclass(frozen=True)
class ConvertConfig:
    """
    Settings shared by the CLI and batch front ends.

    Properties:
        indent: Spaces per nesting level in text output
        json_indent: Indent of JSON output (None for compact output)
        strict_names: Reject textual names missing from the dictionary
        max_workers: Thread count for batch validation (None = executor default)
        hash_files: Hash list files loaded into the dictionary
    """

    indent: int = 2
    json_indent: Optional[int] = 2
    strict_names: bool = False
    max_workers: Optional[int] = None
    hash_files: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.check()

    def check(self) -> None:
        _expect_int("indent", self.indent, minimum=0)
        if self.json_indent is not None:
            _expect_int("json_indent", self.json_indent, minimum=0)
        if not isinstance(self.strict_names, bool):
            raise ConfigError(f"strict_names must be a bool, got {self.strict_names!r}")
        if self.max_workers is not None:
            _expect_int("max_workers", self.max_workers, minimum=1)
        if not isinstance(self.hash_files, (list, tuple)) or not all(
            isinstance(p, (str, Path)) for p in self.hash_files
        ):
            raise ConfigError(f"hash_files must be a list of paths, got {self.hash_files!r}")

    def with_overrides(self, **overrides: Any) -> "ConvertConfig":
        """Copy with every non-None override applied."""
        _check_keys(overrides, "override")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def load_dictionary(self) -> Optional[HashDictionary]:
        """Load every configured hash file into one dictionary (None if there are none)."""
        if not self.hash_files:
            return None
        dictionary = HashDictionary()
        for path in self.hash_files:
            load_hash_file(path, dictionary)
        return dictionary


def _expect_int(key: str, value: Any, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"{key} must be an integer >= {minimum}, got {value!r}")


def _check_keys(values: Dict[str, Any], what: str) -> None:
    known = {f.name for f in fields(ConvertConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"unknown {what} key(s): {', '.join(unknown)}")


def load_config(path=None, **overrides: Any) -> ConvertConfig:
    """
    Build a ConvertConfig from a YAML file plus keyword overrides.

    Args:
        path: YAML file, or None for defaults only
        **overrides: Setting values; None means "not given"

    Raises:
        ConfigError: If the file can't be read or holds invalid settings
    """
    values: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ConfigError(f"{path}: invalid YAML ({exc})") from exc
        except OSError as exc:
            raise ConfigError(f"unable to read config file {path}: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{path}: expected a YAML mapping, got {type(loaded).__name__}")
        _check_keys(loaded, "config")
        hash_files = loaded.get("hash_files")
        if isinstance(hash_files, list):
            # Relative hash files are relative to the config file
            loaded["hash_files"] = [
                str(path.parent / p) if isinstance(p, str) and not Path(p).is_absolute() else p
                for p in hash_files
            ]
        values.update(loaded)

    _check_keys(overrides, "override")
    values.update({k: v for k, v in overrides.items() if v is not None})
    if "hash_files" in values and isinstance(values["hash_files"], tuple):
        values["hash_files"] = list(values["hash_files"])
    return ConvertConfig(**values)


__all__ = ["ConfigError", "ConvertConfig", "load_config"]
