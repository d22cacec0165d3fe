"""
Codec module for tablevc-sql.

Escapes rich values into JSON-safe structures and restores them, so
history entries can be stored in a single text/JSON column.
"""

from .json_codec import (
    Passthrough,
    Recognized,
    classify,
    decode,
    dumps,
    encode,
    loads,
)

__all__ = [
    "Passthrough",
    "Recognized",
    "classify",
    "decode",
    "dumps",
    "encode",
    "loads",
]
