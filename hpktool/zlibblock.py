"""Seekable ZLIB block streams.

Large assets inside an archive are split into fixed size blocks which
are deflated independently, so any byte range can be decoded by
inflating only the blocks it overlaps::

    "ZLIB" | uncompressed_size | block_size | offset[0] ... | blocks

``offset[0]`` is also the header size, so it tells how many offsets
follow. A block whose stored length equals its uncompressed length was
not worth compressing and is kept raw.
"""
import logging
import threading
import zlib
import numpy as np

from construct import ConstError, StreamError

from .errors import (MalformedHeader, HeaderMagicMismatch, TruncatedHeader,
                     DecompressionSizeMismatch, BlockIndexOutOfRange)
from .hpkstructs import (BlockHeader, BLOCK_MAGIC, BLOCK_HEADER_MIN_SIZE,
                         DEFAULT_BLOCK_SIZE, int32ul)

logger = logging.getLogger(__name__)


def inflate(data, expected_size):
    d = zlib.decompressobj()
    try:
        # never inflate more than one byte past what the block may hold
        return d.decompress(data, expected_size + 1)
    except zlib.error as e:
        raise DecompressionSizeMismatch("block failed to inflate: %s" % e) from e


def is_block_stream(data):
    return bytes(data[:len(BLOCK_MAGIC)]) == BLOCK_MAGIC


class BlockCache:
    """Decoded blocks of one stream.

    Each block is decoded at most once: a caller asking for a block
    another thread is decoding waits on that block's lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending = {}
        self._blocks = {}

    def __len__(self):
        return len(self._blocks)

    def get(self, index, decode):
        with self._lock:
            block = self._blocks.get(index)
            if block is not None:
                return block
            pending = self._pending.setdefault(index, threading.Lock())

        with pending:
            with self._lock:
                block = self._blocks.get(index)
            if block is None:
                block = decode(index)
                with self._lock:
                    self._blocks[index] = block
                    self._pending.pop(index, None)
        return block


class BlockStream:
    __slots__ = ("buffer", "uncompressed_size", "block_size", "offsets",
                 "ends", "inflate", "cache")

    def __init__(self, buffer, uncompressed_size, block_size, offsets, ends,
                 inflate=inflate, cache=None):
        self.buffer = buffer
        self.uncompressed_size = uncompressed_size
        self.block_size = block_size
        self.offsets = offsets
        self.ends = ends
        self.inflate = inflate
        self.cache = cache

    def __len__(self):
        return self.uncompressed_size

    @property
    def block_count(self):
        return len(self.offsets)

    def block_length(self, index):
        """Uncompressed length of a block; the last one holds the tail."""
        if index == len(self.offsets) - 1:
            return self.uncompressed_size - index * self.block_size
        return self.block_size

    def is_stored(self, index):
        return self.ends[index] - self.offsets[index] == self.block_length(index)

    def read_block(self, index):
        if not 0 <= index < len(self.offsets):
            raise BlockIndexOutOfRange("block %d is outside 0..%d"
                                       % (index, len(self.offsets) - 1))
        if self.cache is not None:
            return self.cache.get(index, self._decode_block)
        return self._decode_block(index)

    def _decode_block(self, index):
        start, end = self.offsets[index], self.ends[index]
        data = bytes(self.buffer[start:end])
        expected = self.block_length(index)
        if len(data) == expected:
            return data

        out = self.inflate(data, expected)
        if len(out) != expected:
            raise DecompressionSizeMismatch(
                "block %d at 0x%x inflated to %d bytes, expected %d"
                % (index, start, len(out), expected))
        return out

    def read_range(self, start, length):
        if start < 0 or length < 0 or start + length > self.uncompressed_size:
            raise BlockIndexOutOfRange(
                "range 0x%x+0x%x is outside the 0x%x byte stream"
                % (start, length, self.uncompressed_size))
        if length == 0:
            return b""

        first = start // self.block_size
        last = (start + length - 1) // self.block_size
        data = b"".join(self.read_block(i) for i in range(first, last + 1))
        skip = start - first * self.block_size
        return data[skip:skip + length]

    def read(self):
        return self.read_range(0, self.uncompressed_size)


def open_stream(buffer, inflate=inflate, cached=False):
    try:
        header = BlockHeader.parse(bytes(buffer[:BLOCK_HEADER_MIN_SIZE]))
    except ConstError as e:
        raise HeaderMagicMismatch("not a ZLIB block stream (bad magic)") from e
    except StreamError as e:
        raise TruncatedHeader("block stream header is truncated") from e

    size, block_size = header.uncompressed_size, header.block_size
    if size and not block_size:
        raise MalformedHeader("block size is 0")
    count = -(-size // block_size) if size else 0

    offsets, ends = [], []
    if count:
        if len(buffer) < BLOCK_HEADER_MIN_SIZE + int32ul.itemsize:
            raise TruncatedHeader("block stream header is truncated")
        header_size = int(np.frombuffer(buffer, dtype=int32ul, count=1,
                                        offset=BLOCK_HEADER_MIN_SIZE)[0])
        present, misaligned = divmod(header_size - BLOCK_HEADER_MIN_SIZE,
                                     int32ul.itemsize)
        if misaligned or present not in (count, count + 1):
            raise MalformedHeader(
                "header size 0x%x does not hold %d block offsets"
                % (header_size, count))
        if header_size > len(buffer):
            raise TruncatedHeader("block offsets run past the end of the stream")

        offsets = np.frombuffer(buffer, dtype=int32ul, count=present,
                                offset=BLOCK_HEADER_MIN_SIZE).tolist()
        # without a sentinel the last block runs to the end of the stream
        ends = offsets[1:] if present > count else offsets[1:] + [len(buffer)]
        offsets = offsets[:count]

        if any(a > b for a, b in zip(offsets, ends)):
            raise MalformedHeader("block offsets are not in order")
        if ends[-1] > len(buffer):
            raise TruncatedHeader("last block ends past the end of the stream")

    logger.debug("block stream: %d bytes in %d blocks of %d",
                 size, count, block_size)
    return BlockStream(buffer, size, block_size, offsets, ends,
                       inflate=inflate,
                       cache=BlockCache() if cached else None)


def read_range(stream, start, length):
    return stream.read_range(start, length)


def compress(data, block_size=DEFAULT_BLOCK_SIZE, level=9):
    if block_size <= 0:
        raise ValueError("block size must be positive")

    data = memoryview(data)
    count = -(-len(data) // block_size)
    pos = BLOCK_HEADER_MIN_SIZE + count * int32ul.itemsize

    offsets, blocks = [], []
    for i in range(count):
        raw = bytes(data[i * block_size:(i + 1) * block_size])
        packed = zlib.compress(raw, level)
        # a compressed block must never be mistaken for a stored one
        if len(packed) >= len(raw):
            packed = raw
        offsets.append(pos)
        blocks.append(packed)
        pos += len(packed)

    header = BlockHeader.build(dict(uncompressed_size=len(data),
                                    block_size=block_size))
    return b"".join([header, np.array(offsets, dtype=int32ul).tobytes()]
                    + blocks)
