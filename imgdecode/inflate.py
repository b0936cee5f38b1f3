"""DEFLATE and zlib stream decoding."""

from __future__ import annotations

from .core import ImageError

_LENGTH_BASE = (
    3, 4, 5, 6, 7, 8, 9, 10, 11, 13,
    15, 17, 19, 23, 27, 31, 35, 43, 51, 59,
    67, 83, 99, 115, 131, 163, 195, 227, 258, 0, 0,
)
_LENGTH_EXTRA = (
    0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 2, 2, 2, 2,
    3, 3, 3, 3, 4, 4, 4, 4, 5, 5, 5, 5, 0, 0, 0,
)
_DIST_BASE = (
    1, 2, 3, 4, 5, 7, 9, 13, 17, 25, 33, 49, 65, 97, 129, 193,
    257, 385, 513, 769, 1025, 1537, 2049, 3073, 4097, 6145, 8193, 12289, 16385, 24577,
)
_DIST_EXTRA = (
    0, 0, 0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 6, 6,
    7, 7, 8, 8, 9, 9, 10, 10, 11, 11, 12, 12, 13, 13,
)
_CODELENGTH_ORDER = (16, 17, 18, 0, 8, 7, 9, 6, 10, 5, 11, 4, 12, 3, 13, 2, 14, 1, 15)

# Missing input reads as zero bytes; this bounds how far that may go before
# the stream is treated as truncated.
_MAX_OVERRUN = 8


def _corrupt(reason: str) -> ImageError:
    return ImageError("Corrupt PNG", reason)


class _BitReader:
    """Least-significant-bit-first reader over a byte buffer."""

    __slots__ = ("data", "pos", "buffer", "count", "overrun")

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.pos = 0
        self.buffer = 0
        self.count = 0
        self.overrun = 0

    def byte(self) -> int:
        if self.pos < len(self.data):
            value = self.data[self.pos]
            self.pos += 1
            return value
        self.overrun += 1
        if self.overrun > _MAX_OVERRUN:
            raise _corrupt("unexpected end of data")
        return 0

    def bits(self, n: int) -> int:
        while self.count < n:
            self.buffer |= self.byte() << self.count
            self.count += 8
        value = self.buffer & ((1 << n) - 1)
        self.buffer >>= n
        self.count -= n
        return value

    def align(self) -> None:
        """Drop the padding bits up to the next byte boundary."""
        self.bits(self.count & 7)
        self.buffer = 0
        self.count = 0

    def take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise _corrupt("read past buffer")
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk


class _Huffman:
    """Canonical Huffman code built from a list of code lengths."""

    __slots__ = ("counts", "symbols")

    def __init__(self, lengths) -> None:
        counts = [0] * 16
        for length in lengths:
            counts[length] += 1
        counts[0] = 0
        code = 0
        for size in range(1, 16):
            code += counts[size]
            if counts[size] and code - 1 >= (1 << size):
                raise _corrupt("bad codelengths")
            code <<= 1
        self.counts = counts
        self.symbols = [
            symbol for _, symbol in sorted(
                (length, symbol) for symbol, length in enumerate(lengths) if length
            )
        ]

    def decode(self, reader: _BitReader) -> int:
        code = first = index = 0
        for count in self.counts[1:]:
            code |= reader.bits(1)
            if code - first < count:
                return self.symbols[index + code - first]
            index += count
            first = (first + count) << 1
            code <<= 1
        raise _corrupt("bad huffman code")


_FIXED_LITERAL = _Huffman([8] * 144 + [9] * 112 + [7] * 24 + [8] * 8)
_FIXED_DISTANCE = _Huffman([5] * 32)


def _reserve(out: bytearray, n: int, max_size: int | None) -> None:
    if max_size is not None and len(out) + n > max_size:
        raise _corrupt("output buffer limit")


def _stored_block(reader: _BitReader, out: bytearray, max_size: int | None) -> None:
    reader.align()
    header = bytes(reader.byte() for _ in range(4))
    length = header[0] | (header[1] << 8)
    nlength = header[2] | (header[3] << 8)
    if nlength != length ^ 0xFFFF:
        raise _corrupt("zlib corrupt")
    payload = reader.take(length)
    _reserve(out, length, max_size)
    out += payload


def _dynamic_tables(reader: _BitReader) -> tuple[_Huffman, _Huffman]:
    hlit = reader.bits(5) + 257
    hdist = reader.bits(5) + 1
    hclen = reader.bits(4) + 4
    codelength_sizes = [0] * 19
    for symbol in _CODELENGTH_ORDER[:hclen]:
        codelength_sizes[symbol] = reader.bits(3)
    codelengths = _Huffman(codelength_sizes)

    total = hlit + hdist
    lengths: list[int] = []
    while len(lengths) < total:
        code = codelengths.decode(reader)
        if code < 16:
            lengths.append(code)
        elif code == 16:
            if not lengths:
                raise _corrupt("bad codelengths")
            lengths.extend([lengths[-1]] * (reader.bits(2) + 3))
        elif code == 17:
            lengths.extend([0] * (reader.bits(3) + 3))
        else:
            lengths.extend([0] * (reader.bits(7) + 11))
    if len(lengths) != total:
        raise _corrupt("bad codelengths")
    return _Huffman(lengths[:hlit]), _Huffman(lengths[hlit:])


def _huffman_block(
    reader: _BitReader,
    out: bytearray,
    literal: _Huffman,
    distance: _Huffman,
    max_size: int | None,
) -> None:
    while True:
        symbol = literal.decode(reader)
        if symbol < 256:
            _reserve(out, 1, max_size)
            out.append(symbol)
            continue
        if symbol == 256:
            return
        symbol -= 257
        length = _LENGTH_BASE[symbol] + reader.bits(_LENGTH_EXTRA[symbol])
        code = distance.decode(reader)
        if code >= len(_DIST_BASE):
            raise _corrupt("bad dist")
        dist = _DIST_BASE[code] + reader.bits(_DIST_EXTRA[code])
        if len(out) < dist:
            raise _corrupt("bad dist")
        _reserve(out, length, max_size)
        start = len(out) - dist
        if length <= dist:
            out += out[start:start + length]
        else:
            pattern = out[start:]
            out += (pattern * -(-length // dist))[:length]


def _inflate(reader: _BitReader, max_size: int | None) -> bytes:
    out = bytearray()
    while True:
        final = reader.bits(1)
        kind = reader.bits(2)
        if kind == 0:
            _stored_block(reader, out, max_size)
        elif kind == 3:
            raise _corrupt("bad block type")
        else:
            if kind == 1:
                literal, distance = _FIXED_LITERAL, _FIXED_DISTANCE
            else:
                literal, distance = _dynamic_tables(reader)
            _huffman_block(reader, out, literal, distance, max_size)
        if final:
            return bytes(out)


def zlib_decode(data: bytes, max_size: int | None = None) -> bytes:
    """Decode a zlib stream (header, then DEFLATE data; the checksum is ignored).

    With ``max_size`` set, output larger than that raises ``ImageError``.
    """
    reader = _BitReader(data)
    cmf = reader.byte()
    flg = reader.byte()
    if (cmf * 256 + flg) % 31 != 0:
        raise _corrupt("bad zlib header")
    if flg & 32:
        raise _corrupt("no preset dict")
    if cmf & 15 != 8:
        raise _corrupt("bad compression")
    return _inflate(reader, max_size)


def deflate_decode(data: bytes, max_size: int | None = None) -> bytes:
    """Decode raw DEFLATE data with no zlib header."""
    return _inflate(_BitReader(data), max_size)