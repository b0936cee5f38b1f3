import struct

import pytest

from imgdecode.core import ImageError
from imgdecode.tga import is_tga, load_tga

TOP_LEFT = 0x20


def _header(image_type, width, height, bpp, descriptor=TOP_LEFT,
            indexed=0, pal_len=0, pal_bits=0):
    return struct.pack(
        "<BBBHHBHHHHBB", 0, indexed, image_type, 0, pal_len, pal_bits,
        0, 0, width, height, bpp, descriptor,
    )


def test_uncompressed_24bit_swaps_bgr():
    data = _header(2, 2, 1, 24) + bytes((1, 2, 3, 4, 5, 6))
    image = load_tga(data)
    assert (image.width, image.height) == (2, 1)
    assert image.channels == 3
    assert image.components == 3
    assert image.data == bytes((3, 2, 1, 6, 5, 4))


def test_bottom_left_origin_is_flipped():
    data = _header(2, 1, 2, 24, descriptor=0) + bytes((1, 2, 3, 4, 5, 6))
    image = load_tga(data)
    assert image.data == bytes((6, 5, 4, 3, 2, 1))


def test_flip_twice_is_consistent():
    body = bytes(range(1, 13))
    top = load_tga(_header(2, 2, 2, 24) + body)
    bottom = load_tga(_header(2, 2, 2, 24, descriptor=0) + body)
    assert top.data[:6] == bottom.data[6:]
    assert top.data[6:] == bottom.data[:6]


def test_32bit_keeps_alpha():
    data = _header(2, 1, 1, 32) + bytes((1, 2, 3, 77))
    image = load_tga(data)
    assert image.components == 4
    assert image.data == bytes((3, 2, 1, 77))


def test_greyscale_8bit():
    data = _header(3, 3, 1, 8) + bytes((0, 128, 255))
    image = load_tga(data)
    assert image.components == 1
    assert image.data == bytes((0, 128, 255))


def test_greyscale_expanded_to_rgba():
    data = _header(3, 1, 1, 8) + bytes((42,))
    image = load_tga(data, 4)
    assert image.channels == 1
    assert image.data == bytes((42, 42, 42, 255))


def test_rgb_reduced_to_grey_on_grey_pixel():
    data = _header(2, 1, 1, 24) + bytes((100, 100, 100))
    image = load_tga(data, 1)
    assert image.data == bytes((100,))


def test_rle_runs_and_literals():
    body = bytes((0x81, 1, 2, 3, 0x00, 4, 5, 6))
    image = load_tga(_header(10, 3, 1, 24) + body)
    assert image.data == bytes((3, 2, 1, 3, 2, 1, 6, 5, 4))


def test_rle_literal_packet_of_two():
    body = bytes((0x01, 1, 2, 3, 4, 5, 6))
    image = load_tga(_header(10, 2, 1, 24) + body)
    assert image.data == bytes((3, 2, 1, 6, 5, 4))


def test_indexed_palette_lookup():
    palette = bytes((1, 2, 3, 4, 5, 6))
    body = bytes((1, 0, 9))  # out-of-range index falls back to entry 0
    data = _header(1, 3, 1, 8, indexed=1, pal_len=2, pal_bits=24) + palette + body
    image = load_tga(data)
    assert image.channels == 3
    assert image.data == bytes((6, 5, 4, 3, 2, 1, 3, 2, 1))


def test_bad_image_type_rejected():
    with pytest.raises(ImageError):
        load_tga(_header(4, 1, 1, 24) + bytes(3))


def test_zero_width_rejected():
    with pytest.raises(ImageError):
        load_tga(_header(2, 0, 1, 24))


def test_bad_depth_rejected():
    with pytest.raises(ImageError):
        load_tga(_header(2, 1, 1, 15) + bytes(2))


def test_is_tga():
    assert is_tga(_header(2, 1, 1, 24) + bytes(3))
    assert is_tga(_header(10, 4, 4, 32))
    assert not is_tga(_header(5, 1, 1, 24))
    assert not is_tga(_header(2, 1, 1, 12))
    assert not is_tga(b"BM" + bytes(40))