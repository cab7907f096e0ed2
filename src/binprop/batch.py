"""
File-level helpers: format detection, loading, saving and batch validation.

Batch validation decodes every file in a thread pool. A failing file is
recorded and logged; it never stops the batch.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from binprop.backends.text_generator import HEADER_COMMENT, encode_text
from binprop.binary import decode_binary, encode_binary
from binprop.errors import BinPropError, EncodingError
from binprop.model import MAGIC_PATCH, MAGIC_PROP, Document
from binprop.serialization import decode_json, decode_yaml, encode_json, encode_yaml
from binprop.text_parser import decode_text
from binprop.unhash import HashDictionary

logger = logging.getLogger(__name__)

FORMATS = ("bin", "text", "json", "yaml")

EXTENSIONS = {
    ".bin": "bin",
    ".py": "text",
    ".txt": "text",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
}

OUTPUT_EXTENSIONS = {"bin": ".bin", "text": ".py", "json": ".json", "yaml": ".yaml"}


def detect_format(path, data: bytes) -> str:
    """
    Guess the format of a file: magic bytes first, then the first
    characters of the content, then the extension.

    Anything unrecognized is treated as binary, so decoding reports
    UnknownMagic.
    """
    if data[:4] in (MAGIC_PROP, MAGIC_PATCH):
        return "bin"
    head = data.lstrip()
    if head.startswith(HEADER_COMMENT.encode("ascii")):
        return "text"
    if head.startswith(b"{"):
        return "json"
    return EXTENSIONS.get(Path(path).suffix.lower(), "bin")


def _as_text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EncodingError(f"file is not valid UTF-8: {exc.reason}", exc.start) from None


def decode_document(
    data: bytes,
    fmt: str,
    dictionary: Optional[HashDictionary] = None,
    strict: bool = False,
) -> Document:
    if fmt == "bin":
        return decode_binary(data)
    if fmt == "text":
        return decode_text(_as_text(data), dictionary=dictionary, strict=strict)
    if fmt == "json":
        return decode_json(_as_text(data))
    if fmt == "yaml":
        return decode_yaml(_as_text(data))
    raise ValueError(f"unknown format {fmt!r}; expected one of {', '.join(FORMATS)}")


def encode_document(
    document: Document,
    fmt: str,
    dictionary: Optional[HashDictionary] = None,
    indent: int = 2,
    json_indent: Optional[int] = 2,
) -> bytes:
    if fmt == "bin":
        return encode_binary(document)
    if fmt == "text":
        return encode_text(document, dictionary=dictionary, indent=indent).encode("utf-8")
    if fmt == "json":
        return encode_json(document, dictionary=dictionary, indent=json_indent).encode("utf-8")
    if fmt == "yaml":
        return encode_yaml(document, dictionary=dictionary).encode("utf-8")
    raise ValueError(f"unknown format {fmt!r}; expected one of {', '.join(FORMATS)}")


def load_document(path, dictionary: Optional[HashDictionary] = None, strict: bool = False) -> Document:
    """
    Read and decode one file in whatever format it is in.

    Raises:
        OSError: If the file can't be read
        BinPropError: If it doesn't decode
    """
    data = Path(path).read_bytes()
    fmt = detect_format(path, data)
    logger.debug("reading %s as %s", path, fmt)
    return decode_document(data, fmt, dictionary=dictionary, strict=strict)


@dataclass
class FileResult:
    """Outcome of validating one file."""

    path: str
    ok: bool
    error: Optional[str] = None
    error_type: Optional[str] = None


@dataclass
class ValidationReport:
    results: List[FileResult] = field(default_factory=list)

    @property
    def passed(self) -> List[FileResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[FileResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)


def collect_files(paths: Iterable, recursive: bool = False) -> List[Path]:
    """
    Expand directories into the files they hold.

    Files named explicitly are always kept. Inside directories only files
    with a known extension are picked up, in sorted order.
    """
    files = []
    for path in paths:
        path = Path(path)
        if path.is_dir():
            candidates = path.rglob("*") if recursive else path.iterdir()
            files.extend(sorted(p for p in candidates if p.is_file() and p.suffix.lower() in EXTENSIONS))
        else:
            files.append(path)
    return files


def validate_file(path, dictionary: Optional[HashDictionary] = None, strict: bool = False) -> FileResult:
    try:
        load_document(path, dictionary=dictionary, strict=strict)
    except (BinPropError, OSError) as exc:
        logger.warning("%s: %s", path, exc)
        return FileResult(str(path), False, str(exc), type(exc).__name__)
    except Exception as exc:
        logger.exception("%s: unexpected error while decoding", path)
        return FileResult(str(path), False, str(exc) or repr(exc), type(exc).__name__)
    return FileResult(str(path), True)


def validate_files(
    paths: Iterable,
    max_workers: Optional[int] = None,
    dictionary: Optional[HashDictionary] = None,
    strict: bool = False,
) -> ValidationReport:
    """
    Validate many files concurrently.

    Args:
        paths: Files to validate (use collect_files for directories)
        max_workers: Thread count; None lets the executor decide
        dictionary: Shared read-only dictionary for strict text parsing
        strict: Require known names in text files

    Returns:
        ValidationReport with one result per path, in input order
    """
    paths = list(paths)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        results = list(executor.map(lambda p: validate_file(p, dictionary, strict), paths))
    report = ValidationReport(results)
    logger.info("validated %d file(s): %d ok, %d failed", len(results), len(report.passed), len(report.failed))
    return report


__all__ = [
    "FORMATS",
    "FileResult",
    "ValidationReport",
    "collect_files",
    "decode_document",
    "detect_format",
    "encode_document",
    "load_document",
    "validate_file",
    "validate_files",
]
