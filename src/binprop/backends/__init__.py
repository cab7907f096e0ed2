"""Backends for binprop output generation (text)."""

from .text_generator import TextWriter, encode_text, format_f32, quote_string, save_text_file

__all__ = ["TextWriter", "encode_text", "format_f32", "quote_string", "save_text_file"]
