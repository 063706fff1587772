import io
import random

import pytest
from bitarray import bitarray

import huffman as huff
from bitio import BitReader, BitWriter


def _shape(node):
    if isinstance(node, huff.Leaf):
        return node.symbol
    return (_shape(node.left), _shape(node.right))


def _check_weights(node):
    if isinstance(node, huff.Leaf):
        return node.weight
    assert node.weight == _check_weights(node.left) + _check_weights(node.right)
    return node.weight


def _random_bytes(n, seed, alphabet=256):
    rng = random.Random(seed)
    return bytes(rng.randrange(alphabet) for _ in range(n))


SAMPLES = [
    b"",
    b"a",
    b"aab",
    b"A" * 10_000,
    bytes(range(256)),
    b"This is a test" * 100,
    _random_bytes(10 * 1024, seed=1),
    _random_bytes(5000, seed=2, alphabet=7),
]


# Round trip

@pytest.mark.parametrize("data", SAMPLES)
def test_roundtrip(data):
    assert huff.decompress_bytes(huff.compress_bytes(data)) == data


def test_roundtrip_small_random_inputs():
    rng = random.Random(42)
    for n in range(1, 40):
        data = bytes(rng.getrandbits(8) for _ in range(n))
        assert huff.decompress_bytes(huff.compress_bytes(data)) == data


def test_compress_is_deterministic():
    data = _random_bytes(3000, seed=7, alphabet=20)
    assert huff.compress_bytes(data) == huff.compress_bytes(data)


def test_compress_buffers_non_seekable_input():
    class Pipe(io.BytesIO):
        def seekable(self):
            return False

    data = b"not rewindable " * 50
    out = io.BytesIO()
    huff.compress(Pipe(data), out)
    assert out.getvalue() == huff.compress_bytes(data)


def test_stats_report_sizes():
    data = b"hello world" * 20
    out = io.BytesIO()
    stats = huff.compress(io.BytesIO(data), out)
    assert stats.bytes_in == len(data)
    assert stats.bytes_out == len(out.getvalue())
    assert 32 + stats.header_bits + stats.body_bits <= stats.bytes_out * 8 < 32 + stats.header_bits + stats.body_bits + 8

    back = io.BytesIO()
    dstats = huff.decompress(io.BytesIO(out.getvalue()), back)
    assert dstats.bytes_out == len(data)
    assert dstats.header_bits == stats.header_bits
    assert dstats.body_bits == stats.body_bits


# Frequencies

def test_sentinel_always_counted_once():
    assert huff.freq_table(b"")[huff.EOF_SYMBOL] == 1
    assert huff.freq_table(b"\xff" * 10)[huff.EOF_SYMBOL] == 1
    assert huff.freq_table(bytes(range(256)) * 3)[huff.EOF_SYMBOL] == 1


def test_frequencies_count_every_byte():
    counts = huff.freq_table(b"aab")
    assert len(counts) == huff.ALPH_SIZE + 1
    assert counts[97] == 2
    assert counts[98] == 1
    assert sum(counts) == 4


# Tree + codes

def test_aab_scenario():
    counts = huff.freq_table(b"aab")
    root = huff.build_huffman_tree(counts)
    assert _shape(root) == (97, (98, huff.EOF_SYMBOL))
    assert root.weight == 4

    codes = huff.generate_huffman_codes(root)
    assert codes == {97: bitarray("0"), 98: bitarray("10"), huff.EOF_SYMBOL: bitarray("11")}

    blob = huff.compress_bytes(b"aab")
    bits = bitarray(endian="big")
    bits.frombytes(blob)
    header_bits = 2 * 1 + 3 * (1 + huff.SYMBOL_BITS)
    body_start = 32 + header_bits
    assert bits[body_start:body_start + 6] == bitarray("001011")
    assert not bits[body_start + 6:].any()
    assert len(blob) == 9


def test_empty_input_is_single_leaf():
    root = huff.build_huffman_tree(huff.freq_table(b""))
    assert root == huff.Leaf(huff.EOF_SYMBOL, 1)
    assert huff.generate_huffman_codes(root) == {huff.EOF_SYMBOL: bitarray()}

    blob = huff.compress_bytes(b"")
    assert len(blob) == 6  # 32 magic bits + 10 header bits, padded
    assert huff.decompress_bytes(blob) == b""


def test_mapping_and_sequence_counts_build_same_tree():
    counts = huff.freq_table(b"mississippi")
    as_dict = {s: c for s, c in enumerate(counts) if c}
    assert _shape(huff.build_huffman_tree(counts)) == _shape(huff.build_huffman_tree(as_dict))


def test_build_rejects_all_zero_counts():
    with pytest.raises(ValueError):
        huff.build_huffman_tree([0] * 257)


@pytest.mark.parametrize("data", SAMPLES)
def test_codes_are_prefix_free(data):
    codes = huff.generate_huffman_codes(huff.build_huffman_tree(huff.freq_table(data)))
    words = [c.to01() for c in codes.values()]
    for i, a in enumerate(words):
        for j, b in enumerate(words):
            if i != j:
                assert not b.startswith(a)


@pytest.mark.parametrize("data", SAMPLES)
def test_weight_invariant(data):
    counts = huff.freq_table(data)
    root = huff.build_huffman_tree(counts)
    assert _check_weights(root) == sum(counts)


def test_codes_only_for_present_symbols():
    codes = huff.generate_huffman_codes(huff.build_huffman_tree(huff.freq_table(b"abcabc")))
    assert set(codes) == {97, 98, 99, huff.EOF_SYMBOL}


# Header

@pytest.mark.parametrize("data", SAMPLES)
def test_header_roundtrip_preserves_shape(data):
    root = huff.build_huffman_tree(huff.freq_table(data))
    buf = io.BytesIO()
    writer = BitWriter(buf)
    huff.write_header(root, writer)
    writer.close()

    again = huff.read_header(BitReader(io.BytesIO(buf.getvalue())))
    assert _shape(again) == _shape(root)


# Corruption

def test_flipped_magic_is_bad_magic():
    blob = bytearray(huff.compress_bytes(b"Hello World" * 50))
    blob[0] ^= 0xFF
    with pytest.raises(huff.BadMagic):
        huff.decompress_bytes(bytes(blob))


def test_short_input_is_bad_magic():
    with pytest.raises(huff.BadMagic):
        huff.decompress_bytes(b"\xfa\xce")


def test_truncated_header_is_malformed():
    blob = huff.compress_bytes(b"aab")
    with pytest.raises(huff.MalformedHeader):
        huff.decompress_bytes(blob[:5])


def test_truncated_body_is_truncated_stream():
    blob = huff.compress_bytes(b"This is a test" * 100)
    with pytest.raises(huff.TruncatedStream):
        huff.decompress_bytes(blob[:-1])
    with pytest.raises(huff.TruncatedStream):
        huff.decompress_bytes(blob[:-3])


def _crafted(build):
    buf = io.BytesIO()
    writer = BitWriter(buf)
    writer.write_bits(huff.BITS_PER_INT, huff.HUFF_TREE)
    build(writer)
    writer.close()
    return buf.getvalue()


def test_leaf_symbol_out_of_range_is_malformed():
    def build(w):
        w.write_bits(1, 1)
        w.write_bits(huff.SYMBOL_BITS, 300)

    with pytest.raises(huff.MalformedHeader):
        huff.decompress_bytes(_crafted(build))


def test_single_non_eof_leaf_is_malformed():
    def build(w):
        w.write_bits(1, 1)
        w.write_bits(huff.SYMBOL_BITS, 65)

    with pytest.raises(huff.MalformedHeader):
        huff.decompress_bytes(_crafted(build))


def test_runaway_nesting_is_malformed():
    def build(w):
        for _ in range(300):
            w.write_bits(1, 0)

    with pytest.raises(huff.MalformedHeader):
        huff.decompress_bytes(_crafted(build))


def test_errors_share_a_base_class():
    for cls in (huff.BadMagic, huff.MalformedHeader, huff.TruncatedStream):
        assert issubclass(cls, huff.HuffException)
        assert issubclass(cls, ValueError)


def test_trailing_bits_after_eof_are_ignored():
    data = b"trailing garbage"
    blob = huff.compress_bytes(data) + b"\x12\x34"
    assert huff.decompress_bytes(blob) == data
