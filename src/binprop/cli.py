"""
Command-line front end.

Examples:
  # Binary to text, names resolved from CDTB hash lists
  binprop convert skin0.bin -o skin0.py --hashes hashes.binentries.txt hashes.binfields.txt

  # Text back to binary
  binprop convert skin0.py --to bin -o skin0.bin

  # Validate a whole tree with 8 threads
  binprop validate data/ -r --workers 8

  # Inventory of one file
  binprop info skin0.bin
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from binprop import __version__
from binprop.analyzer import analyze_document, format_report
from binprop.batch import (
    FORMATS,
    OUTPUT_EXTENSIONS,
    collect_files,
    detect_format,
    decode_document,
    encode_document,
    load_document,
    validate_files,
)
from binprop.config import ConfigError, ConvertConfig, load_config
from binprop.errors import BinPropError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="binprop",
        description="Convert property files between binary, text, JSON and YAML",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:" + __doc__.split("Examples:", 1)[1],
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--config", help="YAML settings file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    convert = subparsers.add_parser("convert", help="Convert one file")
    convert.add_argument("input", help="Input file (format is detected)")
    convert.add_argument("-o", "--output", help="Output file, '-' for stdout (default: input with new extension)")
    convert.add_argument("--to", choices=FORMATS, help="Output format (default: text for binary input, else bin)")
    convert.add_argument("--hashes", nargs="+", default=None, metavar="FILE", help="Hash list files")
    convert.add_argument("--indent", type=int, default=None, help="Text indent width")
    convert.add_argument("--strict", action="store_true", default=None, help="Reject unknown names in text input")

    validate = subparsers.add_parser("validate", help="Decode files and report failures")
    validate.add_argument("paths", nargs="+", help="Files or directories")
    validate.add_argument("-r", "--recursive", action="store_true", help="Descend into subdirectories")
    validate.add_argument("--workers", type=int, default=None, help="Thread count")
    validate.add_argument("--hashes", nargs="+", default=None, metavar="FILE", help="Hash list files")
    validate.add_argument("--strict", action="store_true", default=None, help="Reject unknown names in text input")

    info = subparsers.add_parser("info", help="Print an inventory of one file")
    info.add_argument("input", help="Input file")
    info.add_argument("--hashes", nargs="+", default=None, metavar="FILE", help="Hash list files")

    return parser


def _config_from_args(args) -> ConvertConfig:
    return load_config(
        args.config,
        hash_files=getattr(args, "hashes", None),
        indent=getattr(args, "indent", None),
        strict_names=getattr(args, "strict", None),
        max_workers=getattr(args, "workers", None),
    )


def _output_path(input_path: Path, fmt: str) -> Path:
    output = input_path.with_suffix(OUTPUT_EXTENSIONS[fmt])
    if output == input_path:
        raise ConfigError(f"output would overwrite {input_path}; pass -o")
    return output


def run_convert(args, config: ConvertConfig) -> int:
    input_path = Path(args.input)
    dictionary = config.load_dictionary()
    data = input_path.read_bytes()
    source_format = detect_format(input_path, data)
    target_format = args.to or ("text" if source_format == "bin" else "bin")

    document = decode_document(data, source_format, dictionary=dictionary, strict=config.strict_names)
    output = encode_document(
        document,
        target_format,
        dictionary=dictionary,
        indent=config.indent,
        json_indent=config.json_indent,
    )

    if args.output == "-":
        sys.stdout.buffer.write(output)
        sys.stdout.flush()
    else:
        output_path = Path(args.output) if args.output else _output_path(input_path, target_format)
        output_path.write_bytes(output)
        print(f"{input_path} ({source_format}) -> {output_path} ({target_format}, {len(output)} bytes)")
    return 0


def run_validate(args, config: ConvertConfig) -> int:
    files = collect_files(args.paths, recursive=args.recursive)
    if not files:
        print("binprop: no files to validate", file=sys.stderr)
        return 1
    dictionary = config.load_dictionary() if config.strict_names else None
    report = validate_files(files, max_workers=config.max_workers, dictionary=dictionary, strict=config.strict_names)
    for result in report.results:
        if result.ok:
            print(f"OK    {result.path}")
        else:
            print(f"FAIL  {result.path}: {result.error_type}: {result.error}")
    print(f"{len(report.passed)} ok, {len(report.failed)} failed")
    return 0 if report.ok else 1


def run_info(args, config: ConvertConfig) -> int:
    dictionary = config.load_dictionary()
    document = load_document(args.input, dictionary=dictionary)
    print(format_report(analyze_document(document, dictionary)))
    return 0


COMMANDS = {
    "convert": run_convert,
    "validate": run_validate,
    "info": run_info,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _config_from_args(args)
        return COMMANDS[args.command](args, config)
    except (BinPropError, ConfigError, OSError) as exc:
        logger.debug("command failed", exc_info=True)
        print(f"binprop: error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
