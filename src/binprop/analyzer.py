"""
Document Analyzer: inventory and diagnostics of binprop documents.

This module provides lightweight analysis of Document objects:
    - Entry, field and value counts
    - Type tag usage
    - Nesting depth
    - Hash dictionary coverage (names and links it cannot resolve)
    - Warning flags for lossy or suspicious content

IMPORTANT: It does NOT modify the document. It only produces read-only
reports.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from binprop.hashing import format_link_hash, format_name_hash
from binprop.model import LINKED_FILES_VERSION, Document
from binprop.unhash import NameLookup, display_link, display_name
from binprop.values import Tag, Value, walk_values

# Nesting deeper than this is reported
MAX_EXPECTED_DEPTH = 8


@dataclass
class DocumentReport:
    """Analysis report for one document."""

    kind: str
    version: int
    total_entries: int = 0
    total_fields: int = 0
    total_values: int = 0
    total_patches: int = 0
    linked_files: int = 0

    # Type usage, keyed by type name ("i32", "list", ...)
    tag_usage: Dict[str, int] = field(default_factory=dict)

    # Entries per class (display name or hash literal)
    class_counts: Dict[str, int] = field(default_factory=dict)

    max_depth: int = 0
    null_pointers: int = 0
    null_pointers_with_fields: int = 0
    empty_containers: int = 0

    # Hash coverage
    resolved_names: Set[int] = field(default_factory=set)
    unresolved_names: Set[int] = field(default_factory=set)
    unresolved_links: Set[int] = field(default_factory=set)
    name_coverage_percent: float = 0.0

    warnings: List[str] = field(default_factory=list)

    def add_warning(self, msg: str) -> None:
        """Add a warning to the report."""
        if msg not in self.warnings:
            self.warnings.append(msg)


class _NameTally:
    def __init__(self, report: DocumentReport, dictionary: Optional[NameLookup]):
        self.report = report
        self.dictionary = dictionary

    def name(self, value: int) -> None:
        if display_name(self.dictionary, value) is None:
            self.report.unresolved_names.add(value)
        else:
            self.report.resolved_names.add(value)

    def link(self, value: int) -> None:
        if display_link(self.dictionary, value) is None:
            self.report.unresolved_links.add(value)

    def value(self, value: Value) -> None:
        if value.tag in (Tag.HASH, Tag.REFERENCE):
            self.name(value.value)
        elif value.tag == Tag.LINK:
            self.link(value.value)
        elif value.tag in (Tag.POINTER, Tag.EMBED):
            if value.tag == Tag.EMBED or not value.is_null:
                self.name(value.class_hash)
            for item in value.fields:
                self.name(item.name_hash)


def analyze_document(document: Document, dictionary: Optional[NameLookup] = None) -> DocumentReport:
    """
    Perform a full inventory of a Document.

    Checks for:
    - Entry/field/value totals and type usage
    - Nesting depth and empty containers
    - Null pointers (and fields a writer would drop)
    - Names and links the dictionary cannot resolve

    Returns a DocumentReport with metrics and warnings.
    """
    report = DocumentReport(kind=document.magic.decode("ascii"), version=document.version)
    report.total_entries = len(document.entries)
    report.total_patches = len(document.patches)
    report.linked_files = len(document.linked)

    tally = _NameTally(report, dictionary)
    tag_usage: Dict[str, int] = defaultdict(int)
    class_counts: Dict[str, int] = defaultdict(int)

    # =========================================================================
    # 1. ENTRIES AND FIELD NAMES
    # =========================================================================

    for entry in document.entries:
        name = display_name(dictionary, entry.class_hash) or format_name_hash(entry.class_hash)
        class_counts[name] += 1
        tally.name(entry.class_hash)
        report.total_fields += len(entry.fields)
        for item in entry.fields:
            tally.name(item.name_hash)

    for item in document.patches:
        tally.name(item.entry_hash)

    # =========================================================================
    # 2. VALUES
    # =========================================================================

    for value, depth in document.iter_values():
        report.total_values += 1
        tag_usage[value.tag.type_name] += 1
        report.max_depth = max(report.max_depth, depth)
        tally.value(value)

        if value.tag in (Tag.POINTER, Tag.EMBED):
            report.total_fields += len(value.fields)
            if value.tag == Tag.POINTER and value.is_null:
                report.null_pointers += 1
                if value.fields:
                    report.null_pointers_with_fields += 1
        elif value.tag in (Tag.LIST, Tag.LIST2, Tag.MAP) and len(value) == 0:
            report.empty_containers += 1
        elif value.tag == Tag.OPTION and not value.present:
            report.empty_containers += 1

    report.tag_usage = dict(tag_usage)
    report.class_counts = dict(class_counts)

    known = len(report.resolved_names)
    total = known + len(report.unresolved_names)
    if total > 0:
        report.name_coverage_percent = (known / total) * 100

    # =========================================================================
    # 3. WARNING FLAGS
    # =========================================================================

    if report.null_pointers_with_fields:
        report.add_warning(
            f"Null pointers carrying fields (dropped on write): {report.null_pointers_with_fields}"
        )

    if dictionary is not None and report.unresolved_names:
        report.add_warning(f"Unresolved name hashes: {len(report.unresolved_names)}")

    if dictionary is not None and report.unresolved_links:
        report.add_warning(f"Unresolved link hashes: {len(report.unresolved_links)}")

    if report.max_depth > MAX_EXPECTED_DEPTH:
        report.add_warning(f"Deep nesting: max depth {report.max_depth}")

    if document.linked and document.version < LINKED_FILES_VERSION:
        report.add_warning(
            f"Version {document.version} cannot store linked files; {len(document.linked)} would be dropped"
        )

    return report


def format_report(report: DocumentReport) -> str:
    """Plain-text rendering used by ``binprop info``."""
    lines = []
    lines.append(f"{report.kind} version {report.version}")
    lines.append(f"  Linked files:     {report.linked_files}")
    lines.append(f"  Entries:          {report.total_entries}")
    lines.append(f"  Patches:          {report.total_patches}")
    lines.append(f"  Fields:           {report.total_fields}")
    lines.append(f"  Values:           {report.total_values}")
    lines.append(f"  Max depth:        {report.max_depth}")
    lines.append(f"  Null pointers:    {report.null_pointers}")
    lines.append(f"  Name coverage:    {report.name_coverage_percent:.1f}%")

    if report.tag_usage:
        lines.append("  Types:")
        for name, count in sorted(report.tag_usage.items()):
            lines.append(f"    {name}: {count}")

    if report.class_counts:
        lines.append("  Classes:")
        for name, count in sorted(report.class_counts.items()):
            lines.append(f"    {name}: {count}")

    if report.unresolved_links:
        lines.append("  Unresolved links:")
        for value in sorted(report.unresolved_links):
            lines.append(f"    {format_link_hash(value)}")

    for warning in report.warnings:
        lines.append(f"  WARNING: {warning}")

    return "\n".join(lines)


__all__ = ["DocumentReport", "analyze_document", "format_report"]
