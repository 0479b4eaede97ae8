#!/usr/bin/env python3
import sys
import logging

from pathlib import Path
from argparse import ArgumentParser

from .builder import build_archive, tree_from_directory
from .errors import HPKError
from .hpk import Archive
from .hpkstructs import EntryKind, DEFAULT_BLOCK_SIZE
from .zlibblock import compress, is_block_stream

logger = logging.getLogger("hpktool")

argparser = ArgumentParser(prog="hpktool")
argparser.add_argument("-v", "--verbose", action="count", default=0)
subparsers = argparser.add_subparsers(dest="command", required=True)


def load(path):
    with path.open("rb") as fd:
        return Archive(memoryview(fd.read()))


def do_list(args):
    archive = load(args.archive)
    print("Offset", "Size", "Compressed", "Path", sep="\t")
    for path, node in archive.walk():
        if node.kind == EntryKind.DIRECTORY:
            if path:
                # a directory's span is its name table
                entry = archive.file_table[node.index]
                print(hex(entry.offset), entry.size, 0, path + "/", sep="\t")
        else:
            compressed = archive.is_block_stream(node)
            print(hex(node.offset), node.size, int(compressed), path, sep="\t")
    return 0


def do_extract(args):
    archive = load(args.archive)
    out = args.out.resolve()
    failed = 0

    for path, node in archive.walk():
        target = (out / path).resolve()
        if target != out and out not in target.parents:
            logger.error("%s: refusing to write outside of %s", path, out)
            failed += 1
            continue

        try:
            if node.kind == EntryKind.DIRECTORY:
                target.mkdir(parents=True, exist_ok=True)
                continue

            data = archive.data(node)
            if args.decompress and is_block_stream(data):
                data = archive.open_stream(node).read()
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except (HPKError, OSError) as e:
            logger.error("%s: %s", path, e)
            failed += 1
            continue
        logger.info("%s", path)

    return 1 if failed else 0


def do_pack(args):
    extensions = {x.lower().lstrip(".") for x in args.compress_ext}

    def transform(path, data):
        if path.suffix.lower().lstrip(".") in extensions:
            return compress(data, args.block_size, args.level)
        return data

    root, source = tree_from_directory(args.dir, transform)
    args.archive.write_bytes(build_archive(root, source))
    return 0


def do_cat(args):
    archive = load(args.archive)
    try:
        node = archive.find(args.path)
    except KeyError as e:
        logger.error("%s", e.args[0])
        return 1
    if node.kind != EntryKind.FILE:
        logger.error("%s is a directory", args.path)
        return 1

    data = archive.data(node)
    if is_block_stream(data) and not args.raw:
        stream = archive.open_stream(node)
        length = args.length
        if length is None:
            length = max(len(stream) - args.offset, 0)
        data = stream.read_range(args.offset, length)
    else:
        end = len(data) if args.length is None else args.offset + args.length
        data = data[args.offset:end]

    sys.stdout.buffer.write(data)
    return 0


p = subparsers.add_parser("list")
p.add_argument("archive", type=Path)
p.set_defaults(func=do_list)

p = subparsers.add_parser("extract")
p.add_argument("archive", type=Path)
p.add_argument("out", type=Path)
p.add_argument("-d", "--decompress", action="store_true")
p.set_defaults(func=do_extract)

p = subparsers.add_parser("pack")
p.add_argument("dir", type=Path)
p.add_argument("archive", type=Path)
p.add_argument("-c", "--compress-ext", action="append", default=[])
p.add_argument("--block-size", type=int, default=DEFAULT_BLOCK_SIZE)
p.add_argument("--level", type=int, default=9)
p.set_defaults(func=do_pack)

p = subparsers.add_parser("cat")
p.add_argument("archive", type=Path)
p.add_argument("path")
p.add_argument("--offset", type=int, default=0)
p.add_argument("--length", type=int)
p.add_argument("--raw", action="store_true")
p.set_defaults(func=do_cat)


def main(argv=None):
    args = argparser.parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING - 10 * min(args.verbose, 2),
        format="%(levelname)s: %(message)s")

    try:
        return args.func(args)
    except HPKError as e:
        logger.error("%s: %s", args.archive, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
