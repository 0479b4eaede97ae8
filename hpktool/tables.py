"""Readers for the two flat tables an HPK archive is built from.

The file table is an array of ``(offset, size)`` records addressed by a
1-based index. A directory's data is a name table: a packed run of
``(index, kind, name)`` records naming its children.
"""
import io
import logging
import numpy as np

from collections import namedtuple
from construct import StreamError

from .errors import (TruncatedInput, IndexOutOfRange, UnknownEntryKind,
                     TrailingOrMisalignedData)
from .hpkstructs import (EntryKind, NameEntry, NAME_ENTRY_MIN_SIZE,
                         file_entry, FILE_ENTRY_SIZE)

logger = logging.getLogger(__name__)

FileTableEntry = namedtuple("FileTableEntry", "offset size")
NameTableEntry = namedtuple("NameTableEntry", "index kind name")


def check_span(buffer, offset, size, what):
    if offset < 0 or size < 0 or offset + size > len(buffer):
        raise TruncatedInput("%s at 0x%x (0x%x bytes) runs past the end of "
                             "the buffer (0x%x bytes)"
                             % (what, offset, size, len(buffer)))


def read_file_table(buffer, table_offset, count):
    check_span(buffer, table_offset, count * FILE_ENTRY_SIZE, "file table")
    if count == 0:
        return []
    table = np.frombuffer(buffer, dtype=file_entry, count=count,
                          offset=table_offset)
    return [FileTableEntry(*x) for x in table.tolist()]


class FileTable:
    """File table records, looked up by their 1-based index."""
    __slots__ = "entries",

    def __init__(self, entries):
        self.entries = list(entries)

    @classmethod
    def read(cls, buffer, table_offset, count):
        return cls(read_file_table(buffer, table_offset, count))

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def __contains__(self, index):
        return 1 <= index <= len(self.entries)

    def __getitem__(self, index):
        if index not in self:
            raise IndexOutOfRange("file table index %d is outside 1..%d"
                                  % (index, len(self.entries)))
        return self.entries[index - 1]


def read_name_table(buffer, blob_offset, blob_size):
    check_span(buffer, blob_offset, blob_size, "name table")
    stream = io.BytesIO(buffer[blob_offset:blob_offset + blob_size])
    entries = []

    while stream.tell() < blob_size:
        pos = stream.tell()
        if blob_size - pos < NAME_ENTRY_MIN_SIZE:
            raise TrailingOrMisalignedData(
                "%d trailing bytes at the end of the name table at 0x%x"
                % (blob_size - pos, blob_offset))
        try:
            entry = NameEntry.parse_stream(stream)
        except StreamError as e:
            raise TrailingOrMisalignedData(
                "name entry at 0x%x spans outside of its table at 0x%x"
                % (blob_offset + pos, blob_offset)) from e
        try:
            kind = EntryKind(entry.kind)
        except ValueError:
            raise UnknownEntryKind("unknown entry kind 0x%x at 0x%x"
                                   % (entry.kind, blob_offset + pos)) from None
        entries.append(NameTableEntry(entry.index, kind, entry.name))

    logger.debug("name table at 0x%x: %d entries", blob_offset, len(entries))
    return entries
