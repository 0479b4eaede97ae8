from .errors import *
from .hpkstructs import EntryKind, MAGIC, BLOCK_MAGIC, DEFAULT_BLOCK_SIZE
from .tables import (FileTableEntry, NameTableEntry, FileTable,
                     read_file_table, read_name_table)
from .hpk import (FileNode, DirectoryNode, Archive, parse_header, resolve,
                  resolve_kind, walk)
from .zlibblock import (BlockStream, BlockCache, open_stream, read_range,
                        compress, is_block_stream)
from .builder import build_archive, rebuild, tree_from_mapping, tree_from_directory
