import struct

import pytest

from imgdecode.core import ImageError
from imgdecode.psd import is_psd, load_psd


def _psd(width, height, channels, body, compression=0, version=1, depth=8, mode=3):
    return (
        b"8BPS"
        + struct.pack(">H", version)
        + bytes(6)
        + struct.pack(">HIIHH", channels, height, width, depth, mode)
        + struct.pack(">III", 0, 0, 0)
        + struct.pack(">H", compression)
        + body
    )


PLANES = [
    bytes((1, 2, 3, 4)),
    bytes((50, 60, 70, 80)),
    bytes((200, 201, 202, 203)),
    bytes((9, 99, 199, 255)),
]


def _interleave(planes):
    return bytes(value for pixel in zip(*planes) for value in pixel)


def test_is_psd():
    assert is_psd(_psd(1, 1, 4, bytes(4)))
    assert not is_psd(b"\x89PNG")
    assert not is_psd(b"")


def test_raw_four_channels():
    image = load_psd(_psd(2, 2, 4, b"".join(PLANES)))
    assert (image.width, image.height) == (2, 2)
    assert image.channels == 4
    assert image.components == 4
    assert image.data == _interleave(PLANES)


def test_raw_convert_to_rgb():
    image = load_psd(_psd(2, 2, 4, b"".join(PLANES)), req_comp=3)
    assert image.components == 3
    assert image.data == _interleave(PLANES[:3])


def _rle_body(height, channels, streams):
    return bytes(height * channels * 2) + b"".join(streams)


def test_rle_literals_with_default_alpha():
    streams = [bytes((3,)) + plane for plane in PLANES[:3]]
    image = load_psd(_psd(2, 2, 3, _rle_body(2, 3, streams), compression=1))
    assert image.channels == 3
    assert image.components == 4
    assert image.data == _interleave(PLANES[:3] + [b"\xff" * 4])


def test_rle_runs_and_noop():
    run_red = bytes((128, 0xFD, 42))
    streams = [run_red, bytes((3,)) + PLANES[1], bytes((3,)) + PLANES[2]]
    image = load_psd(_psd(2, 2, 3, _rle_body(2, 3, streams), compression=1))
    assert image.data[0::4] == bytes((42,)) * 4
    assert image.data[1::4] == PLANES[1]
    assert image.data[2::4] == PLANES[2]


def test_rle_missing_channels_default_to_black():
    streams = [bytes((3,)) + PLANES[0]]
    image = load_psd(_psd(2, 2, 1, _rle_body(2, 1, streams), compression=1))
    assert image.channels == 1
    assert image.data[1::4] == bytes(4)
    assert image.data[2::4] == bytes(4)
    assert image.data[3::4] == b"\xff" * 4


def test_rle_run_longer_than_image_is_clipped():
    streams = [bytes((0x81, 7)), bytes((0x81, 8)), bytes((0x81, 9))]
    image = load_psd(_psd(2, 1, 3, _rle_body(1, 3, streams), compression=1))
    assert len(image.data) == 8
    assert image.data[0::4] == bytes((7, 7))
    assert image.data[2::4] == bytes((9, 9))


@pytest.mark.parametrize(
    "data, reason",
    [
        (b"8BPX" + bytes(40), "not PSD"),
        (_psd(1, 1, 3, bytes(4), version=2), "wrong version"),
        (_psd(1, 1, 17, bytes(4)), "wrong channel count"),
        (_psd(1, 1, 3, bytes(4), depth=16), "unsupported bit depth"),
        (_psd(1, 1, 3, bytes(4), mode=1), "wrong color format"),
        (_psd(1, 1, 3, bytes(4), compression=2), "bad compression"),
    ],
)
def test_errors(data, reason):
    with pytest.raises(ImageError) as info:
        load_psd(data)
    assert info.value.reason == reason


def test_error_message_for_bad_signature():
    with pytest.raises(ImageError) as info:
        load_psd(b"nope")
    assert info.value.message == "Corrupt PSD image"