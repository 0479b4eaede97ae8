import pytest

from hpktool import Archive, EntryKind, FileNode, DirectoryNode, parse_header
from hpktool.builder import (build_archive, rebuild, preorder,
                             tree_from_mapping, tree_from_directory)
from hpktool.errors import (TruncatedInput, MalformedHeader,
                            UnencodableArchive, HPKError)

from samples import GAME_CSV, french_sample

TREE = {
    "CurrentLanguage": {
        "Game.csv": GAME_CSV,
        "Menu.csv": b"id;text\n",
    },
    "Sounds": {
        "Music": {"theme.ogg": b"OggS" + bytes(range(200))},
        "click.wav": b"RIFF....WAVE",
    },
    "empty": {},
    "readme.txt": b"",
}


def listing(archive):
    return [(path, node.kind,
             bytes(archive.data(node)) if node.kind == EntryKind.FILE else None)
            for path, node in archive.walk()]


def test_round_trip():
    root, source = tree_from_mapping(TREE)
    archive = Archive(build_archive(root, source))
    assert listing(archive) == [
        ("", EntryKind.DIRECTORY, None),
        ("CurrentLanguage", EntryKind.DIRECTORY, None),
        ("CurrentLanguage/Game.csv", EntryKind.FILE, GAME_CSV),
        ("CurrentLanguage/Menu.csv", EntryKind.FILE, b"id;text\n"),
        ("Sounds", EntryKind.DIRECTORY, None),
        ("Sounds/Music", EntryKind.DIRECTORY, None),
        ("Sounds/Music/theme.ogg", EntryKind.FILE, b"OggS" + bytes(range(200))),
        ("Sounds/click.wav", EntryKind.FILE, b"RIFF....WAVE"),
        ("empty", EntryKind.DIRECTORY, None),
        ("readme.txt", EntryKind.FILE, b""),
    ]


def test_preorder_indices():
    root, source = tree_from_mapping(TREE)
    archive = Archive(build_archive(root, source))
    assert [node.index for _, node in archive.walk()] == list(range(1, 11))
    assert len(archive.file_table) == 10


def test_rebuild_is_byte_identical():
    root, source = tree_from_mapping(TREE)
    built = build_archive(root, source)
    assert build_archive(root, source) == built

    archive = Archive(built)
    assert rebuild(archive) == built
    assert Archive(rebuild(archive)).root == archive.root


def test_rebuild_hand_made_sample():
    sample = french_sample()
    assert rebuild(Archive(sample)) == sample


def test_layout():
    root, source = tree_from_mapping({"a": b"AAAA", "d": {"b": b"BB"}})
    built = build_archive(root, source)
    archive = Archive(built)
    header = archive.header
    assert header.header_size == 0x24
    assert header.table_hint == 4 * 8
    assert header.table_offset == len(built) - 4 * 8

    # name tables first, then file data, in index order
    spans = [tuple(x) for x in archive.file_table]
    assert [x[0] for x in spans] == [0x24, 0x24 + 22 + 11, 0x24 + 22,
                                     0x24 + 22 + 11 + 4]
    assert built[spans[1][0]:spans[1][0] + 4] == b"AAAA"


def test_opaque_header_fields_are_kept():
    sample = french_sample(hint=0x1234, fields=(3, -7, 5, 6, 2))
    header = parse_header(rebuild(Archive(sample)))
    assert (header.u1, header.u2, header.u3, header.u4, header.u5) == \
        (3, -7, 5, 6, 2)
    assert header.table_hint == 0x1234


def test_short_header_variant_is_kept():
    sample = french_sample(header_size=0x20)
    rebuilt = rebuild(Archive(sample))
    assert rebuilt == sample
    assert parse_header(rebuilt).table_hint is None


def test_preorder():
    leaf = FileNode(b"f", 0, 0)
    root = DirectoryNode(b"", (DirectoryNode(b"a", (leaf, leaf)), leaf))
    order = preorder(root)
    assert [node.name for node, _ in order] == [b"", b"a", b"f", b"f", b"f"]
    assert [children for _, children in order] == [[2, 5], [3, 4], [], [], []]


def test_names_are_bytes():
    root, source = tree_from_mapping({b"caf\xe9.txt": b"x", "été": b"y"})
    archive = Archive(build_archive(root, source))
    assert [x.name for x in archive.root.children] == \
        [b"caf\xe9.txt", "été".encode("utf-8")]


def test_source_out_of_range():
    root = DirectoryNode(b"", (FileNode(b"f", 10, 10),))
    with pytest.raises(TruncatedInput):
        build_archive(root, b"short")


def test_tree_from_directory(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "b" / "inner.txt").write_bytes(b"inner")
    (tmp_path / "a.txt").write_bytes(b"outer")

    root, source = tree_from_directory(tmp_path)
    archive = Archive(build_archive(root, source))
    assert [p for p, _ in archive.walk()] == ["", "a.txt", "b", "b/inner.txt"]
    assert bytes(archive.data(archive.find("b/inner.txt"))) == b"inner"

    root, source = tree_from_directory(tmp_path, lambda path, data: data.upper())
    archive = Archive(build_archive(root, source))
    assert bytes(archive.data(archive.find("a.txt"))) == b"OUTER"


def test_odd_header_size_is_rejected():
    root, source = tree_from_mapping({"a": b"x"})
    header = dict(parse_header(french_sample()), header_size=0x22)
    with pytest.raises(MalformedHeader):
        build_archive(root, source, header)


def test_name_too_long():
    root, source = tree_from_mapping({"n" * 0x10000: b"x"})
    with pytest.raises(UnencodableArchive) as e:
        build_archive(root, source)
    assert isinstance(e.value, HPKError)


def test_header_field_out_of_range():
    root, source = tree_from_mapping({"a": b"x"})
    header = dict(parse_header(french_sample()), table_hint=1 << 32)
    with pytest.raises(UnencodableArchive):
        build_archive(root, source, header)
