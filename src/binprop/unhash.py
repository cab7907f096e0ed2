"""
Reverse lookup of hashes ("unhashing").

A hash cannot be inverted; names are recovered only from an externally
supplied dictionary. Coverage is partial and collisions are expected, so
"unresolved" is a normal result, never an error.

Codecs accept any object implementing NameLookup. HashDictionary is the
stock implementation: it keeps every candidate registered for a hash and
reports the first-registered one as the display name.

A dictionary is populated once and then only read. Concurrent readers
need no locking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from binprop.hashing import fnv1a, xxh64

logger = logging.getLogger(__name__)


class NameLookup(Protocol):
    def lookup_name(self, value: int) -> Optional[str]:
        ...

    def lookup_link(self, value: int) -> Optional[str]:
        ...


@dataclass
class HashDictionary:
    """
    Hash -> candidate names, for 32-bit name hashes and 64-bit link hashes.

    Properties:
        names: FNV-1a hash -> candidates in registration order
        links: XXH64 hash -> candidates in registration order
    """

    names: Dict[int, List[str]] = field(default_factory=dict)
    links: Dict[int, List[str]] = field(default_factory=dict)

    @classmethod
    def from_names(cls, names: Iterable[str] = (), links: Iterable[str] = ()) -> "HashDictionary":
        dictionary = cls()
        for name in names:
            dictionary.add_name(name)
        for path in links:
            dictionary.add_link(path)
        return dictionary

    def add_name(self, name: str, value: Optional[int] = None) -> int:
        """Register ``name``; the hash is computed when not given."""
        value = fnv1a(name) if value is None else value
        candidates = self.names.setdefault(value, [])
        if name not in candidates:
            candidates.append(name)
        return value

    def add_link(self, path: str, value: Optional[int] = None) -> int:
        value = xxh64(path) if value is None else value
        candidates = self.links.setdefault(value, [])
        if path not in candidates:
            candidates.append(path)
        return value

    def lookup_name(self, value: int) -> Optional[str]:
        candidates = self.names.get(value)
        return candidates[0] if candidates else None

    def lookup_link(self, value: int) -> Optional[str]:
        candidates = self.links.get(value)
        return candidates[0] if candidates else None

    def name_candidates(self, value: int) -> Tuple[str, ...]:
        return tuple(self.names.get(value, ()))

    def link_candidates(self, value: int) -> Tuple[str, ...]:
        return tuple(self.links.get(value, ()))

    def knows_name(self, name: str) -> bool:
        return name in self.names.get(fnv1a(name), ())

    def knows_link(self, path: str) -> bool:
        return path in self.links.get(xxh64(path), ())

    def update(self, other: "HashDictionary") -> None:
        """Merge another dictionary; existing candidates keep precedence."""
        for value, candidates in other.names.items():
            for name in candidates:
                self.add_name(name, value)
        for value, candidates in other.links.items():
            for path in candidates:
                self.add_link(path, value)

    def __len__(self) -> int:
        return len(self.names) + len(self.links)


def display_name(lookup: Optional[NameLookup], value: int) -> Optional[str]:
    """
    Name to print for a 32-bit hash, or None to print the hash literal.

    A dictionary entry is only used when it hashes back to ``value``, so
    printing a name and parsing it again always yields the same hash.
    """
    if lookup is None:
        return None
    name = lookup.lookup_name(value)
    if name is None or fnv1a(name) != value:
        return None
    return name


def display_link(lookup: Optional[NameLookup], value: int) -> Optional[str]:
    if lookup is None:
        return None
    path = lookup.lookup_link(value)
    if path is None or xxh64(path) != value:
        return None
    return path


def load_hash_lines(lines: Iterable[str], dictionary: Optional[HashDictionary] = None) -> HashDictionary:
    """
    Read CDTB-style hash lists: one ``<hex> <name>`` pair per line.

    Hex strings of up to 8 digits go to the name table, longer ones to the
    link table. Blank lines and lines starting with '#' are skipped;
    malformed lines are skipped with a debug record.
    """
    dictionary = HashDictionary() if dictionary is None else dictionary
    for line_number, line in enumerate(lines, start=1):
        line = line.rstrip("\r\n")
        if not line or line.startswith("#"):
            continue
        digits, _, name = line.partition(" ")
        try:
            value = int(digits, 16)
        except ValueError:
            logger.debug("skipping malformed hash line %d: %r", line_number, line)
            continue
        if not name:
            logger.debug("skipping hash line %d without a name", line_number)
            continue
        if len(digits) <= 8:
            dictionary.add_name(name, value)
        else:
            dictionary.add_link(name, value)
    return dictionary


def load_hash_file(path, dictionary: Optional[HashDictionary] = None) -> HashDictionary:
    """
    Load a hash list file into ``dictionary`` (a new one if omitted).

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(path)
    before = 0 if dictionary is None else len(dictionary)
    with open(path, "r", encoding="utf-8") as fh:
        dictionary = load_hash_lines(fh, dictionary)
    logger.info("loaded %d hash(es) from %s", len(dictionary) - before, path)
    return dictionary


__all__ = [
    "NameLookup",
    "HashDictionary",
    "display_name",
    "display_link",
    "load_hash_lines",
    "load_hash_file",
]
