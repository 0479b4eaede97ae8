"""Write path: serialize a tree back into an HPK archive.

Indices are handed out by a pre-order walk starting at 1 for the root.
The archive is laid out as header, every directory's name table in
index order, every file's data in index order, then the file table, so
the same tree always gives the same bytes.
"""
import logging
import numpy as np

from collections.abc import Mapping
from construct import ConstructError

from .errors import MalformedHeader, UnencodableArchive
from .hpk import FileNode, DirectoryNode
from .hpkstructs import (Header, HEADER_MIN_SIZE, HEADER_SIZE, EntryKind,
                         NameEntry, file_entry)
from .tables import check_span

logger = logging.getLogger(__name__)

HEADER_DEFAULTS = dict(header_size=HEADER_SIZE, u1=1, u2=-1, u3=0, u4=0, u5=1,
                       table_hint=None)
MAX_U32 = 0xFFFFFFFF


def preorder(root):
    """[node, child indices] pairs in index order."""
    order = []
    stack = [(root, None)]
    while stack:
        node, parent = stack.pop()
        order.append((node, []))
        if parent is not None:
            order[parent - 1][1].append(len(order))
        if node.kind == EntryKind.DIRECTORY:
            stack.extend((x, len(order)) for x in reversed(node.children))
    return order


def name_table(order, children):
    try:
        return b"".join(NameEntry.build(dict(index=i,
                                             kind=int(order[i - 1][0].kind),
                                             name=order[i - 1][0].name))
                        for i in children)
    except ConstructError as e:
        raise UnencodableArchive("cannot encode name table: %s" % e) from e


def build_archive(root, source=b"", header=None):
    order = preorder(root)

    fields = dict(HEADER_DEFAULTS)
    if header is not None:
        # fields we do not understand are carried over untouched
        fields.update((k, header[k]) for k in HEADER_DEFAULTS)
    header_size = fields["header_size"]
    if header_size not in (HEADER_MIN_SIZE, HEADER_SIZE):
        raise MalformedHeader("unsupported format variant: 0x%x" % header_size)

    entries = [None] * len(order)
    chunks = []
    pos = header_size
    for kind in (EntryKind.DIRECTORY, EntryKind.FILE):
        for i, (node, children) in enumerate(order):
            if node.kind != kind:
                continue
            if kind == EntryKind.DIRECTORY:
                data = name_table(order, children)
            else:
                check_span(source, node.offset, node.size,
                           "source of %r" % node.name)
                data = bytes(source[node.offset:node.offset + node.size])
            entries[i] = (pos, len(data))
            chunks.append(data)
            pos += len(data)

    if pos > MAX_U32:
        raise UnencodableArchive("archive data ends at 0x%x, past the 4 GiB "
                                 "the file table can address" % pos)
    table = np.array(entries, dtype=file_entry).tobytes()
    if fields["table_hint"] is None and header_size >= HEADER_SIZE:
        fields["table_hint"] = len(table)
    fields["table_offset"] = pos

    try:
        head = Header.build(fields)
    except ConstructError as e:
        raise UnencodableArchive("cannot encode archive header: %s" % e) from e
    logger.debug("built archive: %d entries, file table at 0x%x",
                 len(order), pos)
    return b"".join([head] + chunks + [table])


def rebuild(archive):
    return build_archive(archive.root, archive.buffer, archive.header)


def _encode(name):
    return name.encode("utf-8") if isinstance(name, str) else bytes(name)


def tree_from_mapping(mapping):
    """Tree and source buffer for nested ``{name: bytes or mapping}``."""
    source = bytearray()

    def node(name, value):
        if isinstance(value, Mapping):
            return DirectoryNode(name, tuple(node(_encode(k), v)
                                             for k, v in value.items()))
        offset = len(source)
        source.extend(value)
        return FileNode(name, offset, len(value))

    return node(b"", mapping), bytes(source)


def mapping_from_directory(path, transform=None):
    tree = {}
    for child in sorted(path.iterdir(), key=lambda x: x.name):
        if child.is_dir():
            tree[child.name] = mapping_from_directory(child, transform)
        else:
            data = child.read_bytes()
            if transform is not None:
                data = transform(child, data)
            tree[child.name] = data
    return tree


def tree_from_directory(path, transform=None):
    return tree_from_mapping(mapping_from_directory(path, transform))
