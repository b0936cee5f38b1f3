import pytest

from imgdecode.core import (
    ByteReader,
    DecodedImage,
    ImageError,
    compute_luma,
    convert_format,
    hdr_to_ldr,
    ldr_to_hdr,
)


def test_reader_big_and_little_endian():
    reader = ByteReader(b"\x01\x02\x03\x04")
    assert reader.read32be() == 0x01020304
    reader = ByteReader(b"\x01\x02\x03\x04")
    assert reader.read32le() == 0x04030201
    reader = ByteReader(b"\x01\x02")
    assert reader.read16be() == 0x0102
    reader = ByteReader(b"\x01\x02")
    assert reader.read16le() == 0x0201


def test_reader_past_end_yields_zero():
    reader = ByteReader(b"\x07")
    assert reader.read8() == 7
    assert reader.at_eof()
    assert reader.read8() == 0
    assert reader.read16be() == 0


def test_reader_read_pads_and_skip():
    reader = ByteReader(b"abcdef")
    reader.skip(2)
    assert reader.read(2) == b"cd"
    assert reader.read(4) == b"ef\x00\x00"
    assert reader.at_eof()


def test_luma_of_grey_is_identity():
    for v in range(256):
        assert compute_luma(v, v, v) == v


def test_luma_is_monotonic_in_each_channel():
    assert compute_luma(0, 0, 0) == 0
    assert compute_luma(10, 0, 0) < compute_luma(11, 0, 0) or compute_luma(10, 0, 0) == compute_luma(11, 0, 0)
    assert compute_luma(0, 200, 0) > compute_luma(200, 0, 0) > compute_luma(0, 0, 200)


def test_convert_same_components_returns_input():
    data = b"\x01\x02\x03"
    assert convert_format(data, 3, 3, 1, 1) is data


def test_convert_grey_to_grey_alpha():
    assert convert_format(b"\x10\x20", 1, 2, 2, 1) == b"\x10\xff\x20\xff"


def test_convert_rgb_rgba_round_trip():
    data = bytes(range(24))
    rgba = convert_format(data, 3, 4, 4, 2)
    assert len(rgba) == 32
    assert rgba[3::4] == b"\xff" * 8
    assert convert_format(rgba, 4, 3, 4, 2) == data


def test_convert_grey_to_rgb_replicates():
    data = bytes([5, 9, 200])
    rgb = convert_format(data, 1, 3, 3, 1)
    assert rgb[0::3] == rgb[1::3] == rgb[2::3] == data


def test_convert_rgba_to_grey_alpha_keeps_alpha():
    data = bytes([30, 30, 30, 77, 100, 100, 100, 88])
    out = convert_format(data, 4, 2, 2, 1)
    assert out == bytes([30, 77, 100, 88])


def test_convert_rejects_bad_component_count():
    with pytest.raises(ValueError):
        convert_format(b"\x00", 1, 5, 1, 1)


def test_convert_rejects_short_data():
    with pytest.raises(ValueError):
        convert_format(b"\x00\x00", 3, 4, 1, 1)


@pytest.mark.parametrize("comp", [1, 2, 3, 4])
def test_ldr_hdr_round_trip(comp):
    data = bytes(v % 256 for v in range(256 * comp))
    floats = ldr_to_hdr(data, 256, 1, comp)
    assert len(floats) == len(data)
    assert hdr_to_ldr(floats, 256, 1, comp) == data


def test_ldr_to_hdr_alpha_is_linear():
    floats = ldr_to_hdr(bytes([255, 51]), 1, 1, 2)
    assert floats[0] == pytest.approx(1.0)
    assert floats[1] == pytest.approx(51 / 255)


def test_hdr_to_ldr_clamps():
    assert hdr_to_ldr([10.0, 10.0, 10.0], 1, 1, 3) == b"\xff\xff\xff"
    assert hdr_to_ldr([-1.0, -1.0, -1.0], 1, 1, 3) == b"\x00\x00\x00"


def test_decoded_image_fields():
    image = DecodedImage(width=2, height=1, channels=3, components=4, data=b"\x00" * 8)
    assert image.width * image.height * image.components == len(image.data)


def test_image_error_carries_reason():
    error = ImageError("Corrupt PNG", "bad dist")
    assert str(error) == "Corrupt PNG"
    assert error.reason == "bad dist"
    assert ImageError("Out of memory").reason == "Out of memory"