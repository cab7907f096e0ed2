#!/usr/bin/env python3
"""
Complete Pipeline Demo: Document → Binary → Text → JSON → YAML → Binary

Shows the full workflow:
1. Build the example spell document
2. Encode it to binary
3. Convert through text, JSON and YAML
4. Check the bytes survived the trip
5. Analyze the document
"""

import sys

from binprop.analyzer import analyze_document, format_report
from binprop.backends import encode_text
from binprop.binary import decode_binary, encode_binary
from binprop.examples import build_example_document, example_dictionary
from binprop.serialization import decode_json, decode_yaml, encode_json, encode_yaml
from binprop.text_parser import decode_text


def main():
    dictionary = example_dictionary()

    print("=" * 80)
    print("COMPLETE PIPELINE DEMO: bin → text → JSON → YAML → bin")
    print("=" * 80)

    # =========================================================================
    # STEP 1: Build and encode
    # =========================================================================
    print("\n1. ENCODING EXAMPLE DOCUMENT...")
    document = build_example_document()
    original = encode_binary(document)
    print(f"   ✓ Entries: {len(document.entries)}")
    print(f"   ✓ Linked files: {len(document.linked)}")
    print(f"   ✓ Binary size: {len(original)} bytes")

    # =========================================================================
    # STEP 2: Text
    # =========================================================================
    print("\n2. TEXT FORM:")
    print("-" * 80)
    text = encode_text(decode_binary(original), dictionary)
    lines = text.splitlines()
    for line in lines[:20]:
        print(f"   {line}")
    if len(lines) > 20:
        print(f"   ... ({len(lines) - 20} more lines)")

    # =========================================================================
    # STEP 3: JSON and YAML
    # =========================================================================
    print("\n3. CONVERTING THROUGH JSON AND YAML...")
    json_text = encode_json(decode_text(text), dictionary)
    print(f"   ✓ JSON: {len(json_text)} characters")
    yaml_text = encode_yaml(decode_json(json_text), dictionary)
    print(f"   ✓ YAML: {len(yaml_text)} characters")

    # =========================================================================
    # STEP 4: Back to binary
    # =========================================================================
    print("\n4. BACK TO BINARY...")
    final = encode_binary(decode_yaml(yaml_text))
    if final != original:
        print("   ✗ Bytes differ after the round trip")
        return 1
    print(f"   ✓ {len(final)} bytes, identical to the original")

    # =========================================================================
    # STEP 5: Analysis
    # =========================================================================
    print("\n5. ANALYSIS:")
    print("-" * 80)
    print(format_report(analyze_document(document, dictionary)))

    print("\n" + "=" * 80)
    print("PIPELINE COMPLETE!")
    print("\nTo try the same with real files:")
    print("  binprop convert skin0.bin --hashes hashes.binentries.txt hashes.binfields.txt")
    print("  binprop validate data/ -r")
    print("=" * 80)
    return 0


if __name__ == "__main__":
    sys.exit(main())
