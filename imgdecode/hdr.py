"""Radiance RGBE (.hdr) decoding, both to floats and to raw RGBE bytes."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from .core import ByteReader, DecodedImage, ImageError

_SIGNATURE = b"#?RADIANCE\n"
_MAGIC = "#?RADIANCE"
_FORMAT = "FORMAT=32-bit_rle_rgbe"
_TOKEN_LIMIT = 1023
_MIN_RLE_WIDTH = 8
_MAX_RLE_WIDTH = 32768
_INTEGER = re.compile(r"[+-]?\d+")


@dataclass(frozen=True)
class HdrImage:
    """A decoded floating-point image.

    ``channels`` is the channel count of the file (always 3); ``components``
    is the number of interleaved floats per pixel stored in ``data``.
    """

    width: int
    height: int
    channels: int
    components: int
    data: tuple[float, ...]


def _token(reader: ByteReader) -> str:
    """Read one header line, without its newline; overlong lines are cut."""
    chars = bytearray()
    c = reader.read8()
    while not reader.at_eof() and c != 0x0A:
        chars.append(c)
        if len(chars) == _TOKEN_LIMIT:
            while not reader.at_eof() and reader.read8() != 0x0A:
                pass
            break
        c = reader.read8()
    return chars.decode("latin-1").split("\0", 1)[0]


def _strtol(text: str) -> tuple[int, str]:
    stripped = text.lstrip(" \t\n\r\f\v")
    match = _INTEGER.match(stripped)
    if match is None:
        return 0, text
    return int(match.group()), stripped[match.end():]


def _read_header(reader: ByteReader) -> tuple[int, int]:
    if _token(reader) != _MAGIC:
        raise ImageError("Corrupt HDR image", "not HDR")
    valid = False
    while True:
        token = _token(reader)
        if not token:
            break
        if token == _FORMAT:
            valid = True
    if not valid:
        raise ImageError("Unsupported HDR format", "unsupported format")

    token = _token(reader)
    if not token.startswith("-Y "):
        raise ImageError("Unsupported HDR format", "unsupported data layout")
    height, rest = _strtol(token[3:])
    rest = rest.lstrip(" ")
    if not rest.startswith("+X "):
        raise ImageError("Unsupported HDR format", "unsupported data layout")
    width, _ = _strtol(rest[3:])
    if width < 0 or height < 0:
        raise ImageError("Corrupt HDR image", "bad dimensions")
    return width, height


def _read_rle_plane(reader: ByteReader, width: int) -> bytes:
    plane = bytearray()
    while len(plane) < width:
        count = reader.read8()
        if count > 128:
            plane += bytes((reader.read8(),)) * (count - 128)
        elif count == 0 and reader.at_eof():
            raise ImageError("corrupt HDR", "truncated scanline")
        else:
            plane += reader.read(count)
    return bytes(plane[:width])


def _read_rgbe(reader: ByteReader, width: int, height: int) -> bytes:
    """Read all pixels as interleaved RGBE bytes, undoing run-length coding."""
    total = width * height
    if width < _MIN_RLE_WIDTH or width >= _MAX_RLE_WIDTH:
        return reader.read(total * 4)
    out = bytearray()
    for _ in range(height):
        c1 = reader.read8()
        c2 = reader.read8()
        length = reader.read8()
        if c1 != 2 or c2 != 2 or length & 0x80:
            # Not run-length coded: this is the first pixel of a flat image.
            first = bytes((c1, c2, length, reader.read8()))
            return first + reader.read((total - 1) * 4)
        length = (length << 8) | reader.read8()
        if length != width:
            raise ImageError("corrupt HDR", "invalid decoded scanline length")
        row = bytearray(width * 4)
        for k in range(4):
            row[k::4] = _read_rle_plane(reader, width)
        out += row
    return bytes(out)


def _convert(pixel: bytes, req_comp: int) -> tuple[float, ...]:
    r, g, b, e = pixel
    if e != 0:
        f1 = math.ldexp(1.0, e - (128 + 8))
        if req_comp <= 2:
            values = [(r + g + b) * f1 / 3]
        else:
            values = [r * f1, g * f1, b * f1]
    else:
        values = [0.0] if req_comp <= 2 else [0.0, 0.0, 0.0]
    if req_comp in (2, 4):
        values.append(1.0)
    return tuple(values)


def _check_req_comp(req_comp: int) -> None:
    if not 0 <= req_comp <= 4:
        raise ImageError("Internal error", "bad req_comp")


def is_hdr(data: bytes) -> bool:
    """Return True if ``data`` starts with the Radiance signature."""
    return bytes(data[:len(_SIGNATURE)]) == _SIGNATURE


def load_hdr(data: bytes, req_comp: int = 0) -> HdrImage:
    """Decode a Radiance image to floats.

    ``req_comp`` of 0 gives three components; 1 or 2 give luminance (with
    an alpha of 1.0 for 2), 4 adds an alpha of 1.0 to RGB.
    """
    _check_req_comp(req_comp)
    reader = ByteReader(data)
    width, height = _read_header(reader)
    components = req_comp or 3
    rgbe = _read_rgbe(reader, width, height)
    values: list[float] = []
    for offset in range(0, width * height * 4, 4):
        values.extend(_convert(rgbe[offset:offset + 4], components))
    return HdrImage(
        width=width,
        height=height,
        channels=3,
        components=components,
        data=tuple(values),
    )


def load_hdr_rgbe(data: bytes) -> DecodedImage:
    """Decode a Radiance image to raw RGBE bytes, four per pixel."""
    reader = ByteReader(data)
    width, height = _read_header(reader)
    return DecodedImage(
        width=width,
        height=height,
        channels=4,
        components=4,
        data=_read_rgbe(reader, width, height),
    )