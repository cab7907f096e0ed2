"""
Core Document Model Objects

Defines the top-level structures of a property file:
    - Entries (typed records identified by a class hash)
    - Patches (field overrides carried by patch files)
    - Documents (root container)

Values and fields live in ``binprop.values``.

ARCHITECTURAL RULE:
    These objects:
        - Know nothing about binary, text or JSON syntax
        - Own their children exclusively (plain tree, no cycles)
        - Preserve insertion order everywhere
        - Represent structure, not game semantics
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from binprop.errors import TypeMismatch, UnsupportedVersion
from binprop.values import (
    Field,
    FieldListMixin,
    Value,
    check_name_hash,
    walk_values,
)

MAGIC_PROP = b"PROP"
MAGIC_PATCH = b"PTCH"

MIN_VERSION = 1
MAX_VERSION = 3
DEFAULT_VERSION = 3

# Linked file tables appear from this version on
LINKED_FILES_VERSION = 2


@dataclass
class Entry(FieldListMixin):
    """
    A typed record in a document.

    Properties:
        class_hash:
            FNV-1a hash of the class name (e.g. "SpellObject")

        fields:
            Ordered Field list. Name hashes are unique within the list.

    Example:
        Entry(
            class_hash=fnv1a("SpellObject"),
            fields=[Field(fnv1a("mName"), String("Fireball"))],
        )

    IMPORTANT:
        Duplicate field names raise DuplicateFieldName at construction.
        After editing ``fields`` in place, ``validate()`` re-checks it.
    """

    class_hash: int
    fields: List[Field] = field(default_factory=list)

    def __post_init__(self):
        self.fields = list(self.fields)
        self.validate()

    def validate(self) -> None:
        check_name_hash(self.class_hash, "class hash")
        self._validate_fields()


@dataclass
class Patch:
    """
    A field override in a patch file.

    Properties:
        entry_hash:
            Hash of the entry being patched

        path:
            Dotted field path inside that entry (e.g. "mSpell.mRange")

        value:
            Replacement value
    """

    entry_hash: int
    path: str
    value: Value

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        check_name_hash(self.entry_hash, "patch entry hash")
        if not isinstance(self.path, str):
            raise TypeMismatch(f"patch path must be str, got {type(self.path).__name__}")
        if not isinstance(self.value, Value):
            raise TypeMismatch(f"patch value must be a Value, got {type(self.value).__name__}")
        self.value.validate()


@dataclass
class Document:
    """
    Root container for one property file.

    This is THE primary artifact. Every codec reads into it and writes
    from it; none of them talk to each other.

    Properties:
        entries:
            Ordered Entry list. Order is part of the canonical encoding.

        version:
            Format version (1..3). Linked files are stored from version 2.

        linked:
            Ordered paths of files this one depends on

        patch:
            True for patch files (PTCH), False for property files (PROP)

        patches:
            Patch records; only meaningful when ``patch`` is True

    INVARIANTS:
        - version is within the supported range
        - every Entry and Patch is internally valid
        - non-patch documents carry no patches
    """

    entries: List[Entry] = field(default_factory=list)
    version: int = DEFAULT_VERSION
    linked: List[str] = field(default_factory=list)
    patch: bool = False
    patches: List[Patch] = field(default_factory=list)

    def __post_init__(self):
        self.entries = list(self.entries)
        self.linked = list(self.linked)
        self.patches = list(self.patches)

    @property
    def magic(self) -> bytes:
        return MAGIC_PATCH if self.patch else MAGIC_PROP

    def validate(self) -> None:
        """
        Re-check the whole tree.

        Writers call this before emitting anything, so an in-place edit
        that broke an invariant fails loudly instead of producing a
        corrupt file.
        """
        if not MIN_VERSION <= self.version <= MAX_VERSION:
            raise UnsupportedVersion(self.version)
        for path in self.linked:
            if not isinstance(path, str):
                raise TypeMismatch(f"linked path must be str, got {type(path).__name__}")
        for entry in self.entries:
            if not isinstance(entry, Entry):
                raise TypeMismatch(f"expected Entry, got {type(entry).__name__}")
            entry.validate()
        if self.patches and not self.patch:
            raise TypeMismatch("only patch documents can carry patches")
        for item in self.patches:
            item.validate()

    def add_entry(self, entry: Entry) -> None:
        self.entries.append(entry)

    def remove_entry(self, index: int) -> Entry:
        return self.entries.pop(index)

    def find_entries(self, class_hash: int) -> List[Entry]:
        """
        Retrieve every entry of one class.

        Args:
            class_hash: Class name hash

        Returns:
            Entries in document order (possibly empty)
        """
        return [entry for entry in self.entries if entry.class_hash == class_hash]

    def get_entry(self, class_hash: int) -> Optional[Entry]:
        for entry in self.entries:
            if entry.class_hash == class_hash:
                return entry
        return None

    def iter_values(self) -> Iterator[Tuple[Value, int]]:
        """Every value in the document with its nesting depth (fields are depth 0)."""
        for entry in self.entries:
            for item in entry.fields:
                yield from walk_values(item.value)
        for item in self.patches:
            yield from walk_values(item.value)


__all__ = [
    "Entry",
    "Patch",
    "Document",
    "MAGIC_PROP",
    "MAGIC_PATCH",
    "MIN_VERSION",
    "MAX_VERSION",
    "DEFAULT_VERSION",
    "LINKED_FILES_VERSION",
]
