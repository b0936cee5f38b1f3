import struct
import zlib

import pytest

from imgdecode.core import ImageError, compute_luma
from imgdecode.png import is_png, load_png

SIGNATURE = bytes((137, 80, 78, 71, 13, 10, 26, 10))


def _chunk(kind: bytes, payload: bytes = b"") -> bytes:
    return (
        struct.pack(">I", len(payload))
        + kind
        + payload
        + struct.pack(">I", zlib.crc32(kind + payload) & 0xFFFFFFFF)
    )


def _ihdr(width, height, color, depth=8, interlace=0):
    return _chunk(b"IHDR", struct.pack(">IIBBBBB", width, height, depth, color, 0, 0, interlace))


def _predict(filter_type, a, b, c):
    if filter_type == 0:
        return 0
    if filter_type == 1:
        return a
    if filter_type == 2:
        return b
    if filter_type == 3:
        return (a + b) >> 1
    p = a + b - c
    pa, pb, pc = abs(p - a), abs(p - b), abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def _encode_rows(rows, bpp, filter_type=0):
    prior = bytes(len(rows[0]))
    out = bytearray()
    for row in rows:
        out.append(filter_type)
        for i, value in enumerate(row):
            a = row[i - bpp] if i >= bpp else 0
            c = prior[i - bpp] if i >= bpp else 0
            out.append((value - _predict(filter_type, a, prior[i], c)) & 0xFF)
        prior = row
    return bytes(out)


def _png(*chunks):
    return SIGNATURE + b"".join(chunks) + _chunk(b"IEND")


def _idat(raw):
    return _chunk(b"IDAT", zlib.compress(raw))


RGB_ROWS = [
    bytes((i * 37 + k * 91) % 256 for i in range(9))
    for k in range(3)
]


def test_is_png():
    assert is_png(_png(_ihdr(1, 1, 0), _idat(b"\x00\x00")))
    assert not is_png(b"GIF89a")
    assert not is_png(b"")


def test_rgb_unfiltered_round_trip():
    image = load_png(_png(_ihdr(3, 3, 2), _idat(_encode_rows(RGB_ROWS, 3))))
    assert (image.width, image.height) == (3, 3)
    assert image.channels == 3
    assert image.components == 3
    assert image.data == b"".join(RGB_ROWS)


@pytest.mark.parametrize("filter_type", [0, 1, 2, 3, 4])
def test_each_filter_decodes_to_same_pixels(filter_type):
    raw = _encode_rows(RGB_ROWS, 3, filter_type)
    image = load_png(_png(_ihdr(3, 3, 2), _idat(raw)))
    assert image.data == b"".join(RGB_ROWS)


@pytest.mark.parametrize("filter_type", [1, 3, 4])
def test_filters_with_direct_alpha_insertion(filter_type):
    rows = [bytes((5, 200, 17)), bytes((250, 3, 99))]
    raw = _encode_rows(rows, 1, filter_type)
    image = load_png(_png(_ihdr(3, 2, 0), _idat(raw)), req_comp=2)
    expected = bytearray()
    for value in b"".join(rows):
        expected += bytes((value, 255))
    assert image.components == 2
    assert image.channels == 1
    assert image.data == bytes(expected)


def test_grey_to_rgba():
    rows = [bytes((0, 64, 128, 255))]
    image = load_png(_png(_ihdr(4, 1, 0), _idat(_encode_rows(rows, 1))), req_comp=4)
    expected = b"".join(bytes((g, g, g, 255)) for g in rows[0])
    assert image.components == 4
    assert image.data == expected


def test_grey_alpha_kept():
    rows = [bytes((10, 20, 30, 40))]
    image = load_png(_png(_ihdr(2, 1, 4), _idat(_encode_rows(rows, 2))))
    assert image.channels == 2
    assert image.components == 2
    assert image.data == rows[0]


def test_rgba_to_luminance():
    rows = [bytes((200, 10, 30, 7, 1, 250, 60, 9))]
    image = load_png(_png(_ihdr(2, 1, 6), _idat(_encode_rows(rows, 4))), req_comp=1)
    row = rows[0]
    expected = bytes(compute_luma(*row[i:i + 3]) for i in range(0, len(row), 4))
    assert image.channels == 4
    assert image.components == 1
    assert image.data == expected


PALETTE = [(255, 0, 0), (0, 128, 0), (7, 8, 9)]
INDICES = bytes((0, 1, 2, 1))


def _palette_chunk():
    return _chunk(b"PLTE", b"".join(bytes(entry) for entry in PALETTE))


def test_palette_expansion():
    data = _png(_ihdr(4, 1, 3), _palette_chunk(), _idat(_encode_rows([INDICES], 1)))
    image = load_png(data)
    assert image.channels == 3
    assert image.components == 3
    assert image.data == b"".join(bytes(PALETTE[i]) for i in INDICES)


def test_palette_forced_to_rgba():
    data = _png(_ihdr(4, 1, 3), _palette_chunk(), _idat(_encode_rows([INDICES], 1)))
    image = load_png(data, req_comp=4)
    assert image.components == 4
    assert image.data == b"".join(bytes(PALETTE[i]) + b"\xff" for i in INDICES)


def test_palette_transparency():
    alphas = [0, 128]
    data = _png(
        _ihdr(4, 1, 3),
        _palette_chunk(),
        _chunk(b"tRNS", bytes(alphas)),
        _idat(_encode_rows([INDICES], 1)),
    )
    image = load_png(data)
    full_alphas = alphas + [255]
    assert image.channels == 4
    assert image.components == 4
    assert image.data == b"".join(bytes(PALETTE[i]) + bytes((full_alphas[i],)) for i in INDICES)


def test_rgb_colour_key():
    pixels = [(1, 2, 3), (4, 5, 6), (1, 2, 3)]
    row = b"".join(bytes(p) for p in pixels)
    key = struct.pack(">HHH", *pixels[0])
    data = _png(_ihdr(3, 1, 2), _chunk(b"tRNS", key), _idat(_encode_rows([row], 3)))
    image = load_png(data)
    assert image.channels == 3
    assert image.components == 4
    assert list(image.data[3::4]) == [0 if p == pixels[0] else 255 for p in pixels]
    assert image.data[0::4] == bytes(p[0] for p in pixels)


def test_grey_colour_key():
    row = bytes((9, 33, 9, 200))
    data = _png(_ihdr(4, 1, 0), _chunk(b"tRNS", struct.pack(">H", 9)), _idat(_encode_rows([row], 1)))
    image = load_png(data)
    assert image.components == 2
    assert image.data[0::2] == row
    assert list(image.data[1::2]) == [0 if g == 9 else 255 for g in row]


def test_ancillary_chunk_skipped_and_idat_split():
    compressed = zlib.compress(_encode_rows(RGB_ROWS, 3))
    half = len(compressed) // 2
    data = _png(
        _ihdr(3, 3, 2),
        _chunk(b"tEXt", b"Comment\x00hello"),
        _chunk(b"IDAT", compressed[:half]),
        _chunk(b"IDAT", compressed[half:]),
    )
    assert load_png(data).data == b"".join(RGB_ROWS)


def _reason(data, req_comp=0):
    with pytest.raises(ImageError) as info:
        load_png(data, req_comp)
    return info.value.reason


GOOD_IDAT = _idat(b"\x00\x05")


@pytest.mark.parametrize(
    "data, reason",
    [
        (b"\x89PNX\r\n\x1a\n", "bad png sig"),
        (SIGNATURE + _chunk(b"IDAT", b"xx"), "first not IHDR"),
        (_png(_ihdr(1, 1, 0, depth=16), GOOD_IDAT), "8bit only"),
        (_png(_ihdr(1, 1, 0, interlace=1), GOOD_IDAT), "interlaced"),
        (_png(_ihdr(1, 1, 5), GOOD_IDAT), "bad ctype"),
        (_png(_ihdr(1, 1, 7), GOOD_IDAT), "bad ctype"),
        (_png(_ihdr(0, 1, 0), GOOD_IDAT), "0-pixel image"),
        (_png(_ihdr(1, 1, 0), _ihdr(1, 1, 0), GOOD_IDAT), "multiple IHDR"),
        (_png(_ihdr(1, 1, 0)), "no IDAT"),
        (_png(_ihdr(1, 1, 0), GOOD_IDAT, _chunk(b"tRNS", b"\x00\x01")), "tRNS after IDAT"),
        (_png(_ihdr(1, 1, 6), _chunk(b"tRNS", b"\x00\x01"), GOOD_IDAT), "tRNS with alpha"),
        (_png(_ihdr(1, 1, 3), GOOD_IDAT), "no PLTE"),
        (_png(_ihdr(2, 1, 0), GOOD_IDAT), "not enough pixels"),
        (_png(_ihdr(1, 1, 0), _idat(b"\x05\x05")), "invalid filter"),
        (_png(_ihdr(1, 1, 0), _chunk(b"PLTE", b"\x00\x00")), "invalid PLTE"),
        (_png(_ihdr(1, 1, 0), _chunk(b"ZZZZ", b"")), "ZZZZ chunk not known"),
    ],
)
def test_errors(data, reason):
    assert _reason(data) == reason


def test_truncated_idat():
    data = SIGNATURE + _ihdr(1, 1, 0) + struct.pack(">I", 1000) + b"IDAT" + b"\x00" * 10
    assert _reason(data) == "outofdata"


def test_bad_req_comp():
    assert _reason(_png(_ihdr(1, 1, 0), GOOD_IDAT), req_comp=5) == "bad req_comp"


def test_corrupt_zlib_propagates():
    data = _png(_ihdr(1, 1, 0), _chunk(b"IDAT", b"\x78\x00"))
    with pytest.raises(ImageError) as info:
        load_png(data)
    assert info.value.message == "Corrupt PNG"