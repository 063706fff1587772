"""
Huffman file compression.

Compressed stream layout:
    32-bit magic (HUFF_TREE)
    preorder tree header: 0 = internal node, 1 + 9-bit symbol = leaf
    body: one code per input byte, then the code for EOF_SYMBOL
    zero padding up to the next byte boundary
"""

from __future__ import annotations

import heapq
import io
import math
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Mapping, Sequence, Union

from bitarray import bitarray
from loguru import logger

from bitio import BitReader, BitWriter

BITS_PER_WORD = 8
BITS_PER_INT = 32
ALPH_SIZE = 1 << BITS_PER_WORD
EOF_SYMBOL = ALPH_SIZE
SYMBOL_BITS = BITS_PER_WORD + 1  # 8 bits cannot hold EOF_SYMBOL
HUFF_NUMBER = 0xface8200
HUFF_TREE = HUFF_NUMBER | 1
INTERNAL = -1  # symbol marker carried by internal nodes


class HuffException(ValueError):
    """Compressed input that cannot be decoded."""


class BadMagic(HuffException):
    pass


class MalformedHeader(HuffException):
    pass


class TruncatedStream(HuffException):
    pass


@dataclass(frozen=True)
class Leaf:
    symbol: int
    weight: int = 0


@dataclass(frozen=True)
class Internal:
    weight: int
    left: "Node"
    right: "Node"
    symbol: int = INTERNAL


Node = Union[Leaf, Internal]


@dataclass
class CodecStats:
    bytes_in: int
    bytes_out: int
    header_bits: int  # tree only, magic excluded
    body_bits: int

    @property
    def ratio(self) -> float:
        return self.bytes_out / max(1, self.bytes_in)


# Frequencies

def collect_frequencies(reader: BitReader) -> List[int]:
    counts = [0] * (ALPH_SIZE + 1)
    while True:
        value = reader.read_bits(BITS_PER_WORD)
        if value is None:
            break
        counts[value] += 1
    counts[EOF_SYMBOL] = 1  # synthetic sentinel, always exactly one
    return counts


def freq_table(data: bytes) -> List[int]:
    return collect_frequencies(BitReader(io.BytesIO(data)))


# Tree + codes

def build_huffman_tree(counts: Union[Sequence[int], Mapping[int, int]]) -> Node:
    """
    Classic Huffman merge over every symbol with a non-zero count.

    Ties on weight are broken by arrival order: leaves arrive in ascending
    symbol order, then each merged node takes the next sequence number.
    The first node popped becomes the left child.
    """
    pairs = sorted(counts.items()) if isinstance(counts, Mapping) else enumerate(counts)

    heap = []
    seq = 0
    for symbol, weight in pairs:
        if weight > 0:
            heap.append((weight, seq, Leaf(symbol, weight)))
            seq += 1
    if not heap:
        raise ValueError("frequency table has no non-zero counts")
    heapq.heapify(heap)

    while len(heap) > 1:
        left_weight, _, left = heapq.heappop(heap)
        right_weight, _, right = heapq.heappop(heap)
        weight = left_weight + right_weight
        heapq.heappush(heap, (weight, seq, Internal(weight, left, right)))
        seq += 1

    return heap[0][2]


def generate_huffman_codes(root: Node) -> Dict[int, bitarray]:
    codes: Dict[int, bitarray] = {}

    def walk(node: Node, path: bitarray) -> None:
        if isinstance(node, Leaf):
            # a leaf root keeps the empty path: zero-length code
            codes[node.symbol] = path
            return
        walk(node.left, path + bitarray("0"))
        walk(node.right, path + bitarray("1"))

    walk(root, bitarray(endian="big"))
    return codes


# Header

def write_header(root: Node, writer: BitWriter) -> None:
    if isinstance(root, Leaf):
        writer.write_bits(1, 1)
        writer.write_bits(SYMBOL_BITS, root.symbol)
        logger.trace("header leaf {}", root.symbol)
        return
    writer.write_bits(1, 0)
    write_header(root.left, writer)
    write_header(root.right, writer)


def read_header(reader: BitReader, _depth: int = 0) -> Node:
    bit = reader.read_bits(1)
    if bit is None:
        raise MalformedHeader("bit stream ended inside the tree header")
    if bit == 1:
        symbol = reader.read_bits(SYMBOL_BITS)
        if symbol is None:
            raise MalformedHeader("bit stream ended inside a leaf symbol")
        if symbol > EOF_SYMBOL:
            raise MalformedHeader(f"leaf symbol {symbol} is outside the alphabet")
        logger.trace("header leaf {}", symbol)
        return Leaf(symbol)
    # 257 leaves cannot produce more than ALPH_SIZE internal levels
    if _depth >= ALPH_SIZE:
        raise MalformedHeader("tree header nested deeper than any valid tree")
    left = read_header(reader, _depth + 1)
    right = read_header(reader, _depth + 1)
    return Internal(left.weight + right.weight, left, right)


# Body

def write_compressed_bits(codes: Dict[int, bitarray], reader: BitReader, writer: BitWriter) -> None:
    while True:
        value = reader.read_bits(BITS_PER_WORD)
        if value is None:
            break
        writer.write_code(codes[value])
    writer.write_code(codes[EOF_SYMBOL])


def read_compressed_bits(root: Node, reader: BitReader, writer: BitWriter) -> int:
    """Walk the tree bit by bit until the EOF_SYMBOL leaf. Returns bytes emitted."""
    if isinstance(root, Leaf):
        # nothing to walk: the only code is the empty one
        if root.symbol == EOF_SYMBOL:
            return 0
        raise MalformedHeader(f"single-leaf tree for symbol {root.symbol} has no end-of-stream leaf")

    emitted = 0
    node = root
    while True:
        bit = reader.read_bits(1)
        if bit is None:
            raise TruncatedStream(f"bit stream ended after {emitted} bytes without reaching end-of-stream")
        node = node.right if bit else node.left
        if isinstance(node, Leaf):
            if node.symbol == EOF_SYMBOL:
                return emitted
            writer.write_bits(BITS_PER_WORD, node.symbol)
            emitted += 1
            node = root


# Drivers

def compress(infile: BinaryIO, outfile: BinaryIO) -> CodecStats:
    if not infile.seekable():
        infile = io.BytesIO(infile.read())  # second pass needs to rewind
    reader = BitReader(infile)

    counts = collect_frequencies(reader)
    root = build_huffman_tree(counts)
    codes = generate_huffman_codes(root)
    bytes_in = sum(counts) - 1
    logger.debug("read {} bytes, {} distinct symbols (with EOF)", bytes_in, len(codes))

    writer = BitWriter(outfile)
    writer.write_bits(BITS_PER_INT, HUFF_TREE)
    write_header(root, writer)
    header_bits = writer.bits_written - BITS_PER_INT

    reader.reset()
    write_compressed_bits(codes, reader, writer)
    body_bits = writer.bits_written - BITS_PER_INT - header_bits
    writer.close()

    logger.debug("wrote {} header bits, {} body bits", header_bits, body_bits)
    return CodecStats(bytes_in, writer.bytes_written, header_bits, body_bits)


def decompress(infile: BinaryIO, outfile: BinaryIO) -> CodecStats:
    reader = BitReader(infile)
    magic = reader.read_bits(BITS_PER_INT)
    if magic is None:
        raise BadMagic("input too short to hold the magic number")
    if magic != HUFF_TREE:
        raise BadMagic(f"illegal header starts with {magic:#010x}")

    root = read_header(reader)
    header_bits = reader.bits_read - BITS_PER_INT

    writer = BitWriter(outfile)
    emitted = read_compressed_bits(root, reader, writer)
    writer.close()

    body_bits = reader.bits_read - BITS_PER_INT - header_bits
    logger.debug("read {} header bits, {} body bits, wrote {} bytes", header_bits, body_bits, emitted)
    return CodecStats(math.ceil(reader.bits_read / 8), emitted, header_bits, body_bits)


def compress_bytes(data: bytes) -> bytes:
    out = io.BytesIO()
    compress(io.BytesIO(data), out)
    return out.getvalue()


def decompress_bytes(blob: bytes) -> bytes:
    out = io.BytesIO()
    decompress(io.BytesIO(blob), out)
    return out.getvalue()
