import numpy as np

from construct import *
from enum import IntEnum

MAGIC = b"BPUL"
BLOCK_MAGIC = b"ZLIB"

HEADER_MIN_SIZE = 0x20
HEADER_SIZE = 0x24

DEFAULT_BLOCK_SIZE = 0x8000

class EntryKind(IntEnum):
    FILE = 0
    DIRECTORY = 1

Header = Struct(
    "magic"         / Const(MAGIC),
    "header_size"   / Int32ul,
    "u1"            / Int32ul, # always 1
    "u2"            / Int32sl, # always -1
    "u3"            / Int32ul, # always 0
    "u4"            / Int32ul, # always 0
    "u5"            / Int32ul, # always 1
    "table_offset"  / Int32ul,
    # meaning varies between samples, never used to size the table
    "table_hint"    / If(this.header_size >= HEADER_SIZE, Int32ul),
)

NameEntry = Struct(
    "index" / Int32ul,
    "kind"  / Int32ul,
    "name"  / Prefixed(Int16ul, GreedyBytes),
)
NAME_ENTRY_MIN_SIZE = 10

BlockHeader = Struct(
    "magic"             / Const(BLOCK_MAGIC),
    "uncompressed_size" / Int32ul,
    "block_size"        / Int32ul,
)
BLOCK_HEADER_MIN_SIZE = 12

int32ul = np.dtype("<u4")
file_entry = np.dtype([("offset", int32ul), ("size", int32ul)])
FILE_ENTRY_SIZE = file_entry.itemsize

__all__ = [
    "MAGIC", "BLOCK_MAGIC", "HEADER_MIN_SIZE", "HEADER_SIZE",
    "DEFAULT_BLOCK_SIZE", "EntryKind", "Header", "NameEntry",
    "NAME_ENTRY_MIN_SIZE", "BlockHeader", "BLOCK_HEADER_MIN_SIZE",
    "int32ul", "file_entry", "FILE_ENTRY_SIZE",
]
