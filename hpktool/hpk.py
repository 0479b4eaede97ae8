import logging

from collections import namedtuple
from construct import ConstError, StreamError

from .errors import (MalformedArchive, MalformedHeader, HeaderMagicMismatch,
                     TruncatedHeader, CyclicReference)
from .hpkstructs import (Header, HEADER_MIN_SIZE, HEADER_SIZE, EntryKind,
                         FILE_ENTRY_SIZE)
from .tables import FileTable, read_name_table, check_span
from . import zlibblock

logger = logging.getLogger(__name__)

ROOT_INDEX = 1
MAX_DEPTH = 128


class FileNode(namedtuple("FileNode", "name offset size index",
                          defaults=(None,))):
    __slots__ = ()
    kind = EntryKind.FILE

    @property
    def span(self):
        return slice(self.offset, self.offset + self.size)


class DirectoryNode(namedtuple("DirectoryNode", "name children index",
                               defaults=(None,))):
    __slots__ = ()
    kind = EntryKind.DIRECTORY

    def files(self):
        return [x for x in self.children if x.kind == EntryKind.FILE]

    def directories(self):
        return [x for x in self.children if x.kind == EntryKind.DIRECTORY]


def parse_header(buffer):
    try:
        header = Header.parse(bytes(buffer[:HEADER_SIZE]))
    except ConstError as e:
        raise HeaderMagicMismatch("not an HPK archive (bad magic)") from e
    except StreamError as e:
        raise TruncatedHeader("archive header is truncated") from e

    if header.header_size < HEADER_MIN_SIZE:
        raise MalformedHeader("header size too short: 0x%x"
                              % header.header_size)
    if header.header_size not in (HEADER_MIN_SIZE, HEADER_SIZE):
        raise MalformedHeader("unsupported format variant: 0x%x"
                              % header.header_size)
    if header.table_offset < header.header_size:
        raise MalformedHeader("file table and file header are overlapping")
    return header


def resolve(buffer, file_table, root_index=ROOT_INDEX):
    return resolve_kind(buffer, file_table, root_index, EntryKind.DIRECTORY)


def resolve_kind(buffer, file_table, index, kind, name=b""):
    if not isinstance(file_table, FileTable):
        file_table = FileTable(file_table)
    return _resolve(buffer, file_table, index, EntryKind(kind), name, [])


# path holds the directory indices currently being expanded
def _resolve(buffer, table, index, kind, name, path):
    entry = table[index]
    if kind == EntryKind.FILE:
        return FileNode(name, entry.offset, entry.size, index)

    if index in path:
        raise CyclicReference("directory loop detected: %s"
                              % " -> ".join(map(str, path + [index])))
    if len(path) >= MAX_DEPTH:
        raise MalformedArchive("directory hierarchy is too deep (> %d levels)"
                               % MAX_DEPTH)

    path.append(index)
    children = tuple(_resolve(buffer, table, x.index, x.kind, x.name, path)
                     for x in read_name_table(buffer, entry.offset, entry.size))
    path.pop()
    return DirectoryNode(name, children, index)


def decode_name(name):
    return name.decode("utf-8", "replace")


def walk(node, path=""):
    yield path, node
    if node.kind == EntryKind.DIRECTORY:
        for child in node.children:
            name = decode_name(child.name)
            yield from walk(child, path + "/" + name if path else name)


def infer_table_count(buffer, table_offset, root_index=ROOT_INDEX):
    """Number of file table entries actually in use.

    Every record that fits between the table offset and the end of the
    buffer is read, then the tree is resolved over that and the highest
    index it reaches is the count.
    """
    available = max(len(buffer) - table_offset, 0) // FILE_ENTRY_SIZE
    table = FileTable.read(buffer, table_offset, available)
    root = resolve(buffer, table, root_index)
    count = max(node.index for _, node in walk(root))
    logger.debug("file table at 0x%x: %d of %d records reachable",
                 table_offset, count, available)
    return count


class Archive:
    __slots__ = "buffer", "header", "file_table", "_root"

    def __init__(self, buffer, count=None):
        self.buffer = buffer
        self.header = parse_header(buffer)
        if count is None:
            count = infer_table_count(buffer, self.header.table_offset)
        self.file_table = FileTable.read(buffer, self.header.table_offset,
                                         count)
        self._root = None

    @property
    def root(self):
        if self._root is None:
            self._root = resolve(self.buffer, self.file_table, ROOT_INDEX)
        return self._root

    def walk(self):
        return walk(self.root)

    def find(self, path):
        if isinstance(path, bytes):
            path = decode_name(path)
        node = self.root
        for part in filter(None, path.split("/")):
            if node.kind != EntryKind.DIRECTORY:
                raise KeyError("no such file %s in archive" % path)
            for child in node.children:
                if decode_name(child.name) == part:
                    node = child
                    break
            else:
                raise KeyError("no such file %s in archive" % path)
        return node

    def data(self, node):
        check_span(self.buffer, node.offset, node.size,
                   "file %r" % decode_name(node.name))
        return memoryview(self.buffer)[node.span]

    def is_block_stream(self, node):
        return zlibblock.is_block_stream(self.data(node))

    def open_stream(self, node, **kwargs):
        return zlibblock.open_stream(self.data(node), **kwargs)
