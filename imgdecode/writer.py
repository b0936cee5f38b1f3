"""Encoding of 8-bit pixel buffers as uncompressed BMP and TGA files."""

from __future__ import annotations

import os
import struct
from pathlib import Path

_BACKGROUND = (255, 0, 255)
_BMP_HEADER_SIZE = 14 + 40


def _check(width: int, height: int, comp: int, data: bytes) -> None:
    if not 1 <= comp <= 4:
        raise ValueError(f"unsupported component count {comp}")
    if width < 0 or height < 0:
        raise ValueError("image dimensions must not be negative")
    needed = width * height * comp
    if len(data) < needed:
        raise ValueError(f"expected at least {needed} bytes of pixels, got {len(data)}")


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


def _blend(value: int, background: int, alpha: int) -> int:
    return (background + _trunc_div((value - background) * alpha, 255)) & 0xFF


def _pixels(width: int, height: int, comp: int, data: bytes, write_alpha: bool, pad: int) -> bytes:
    """Rows bottom-up, each pixel as BGR, optionally followed by its alpha."""
    out = bytearray()
    stride = width * comp
    padding = bytes(pad)
    for row in reversed(range(height)):
        line = data[row * stride:(row + 1) * stride]
        for i in range(0, stride, comp):
            d = line[i:i + comp]
            if comp <= 2:
                out += bytes((d[0], d[0], d[0]))
            elif comp == 4 and not write_alpha:
                blended = [_blend(d[k], _BACKGROUND[k], d[3]) for k in range(3)]
                out += bytes(reversed(blended))
            else:
                out += bytes((d[2], d[1], d[0]))
            if write_alpha:
                out.append(d[comp - 1])
        out += padding
    return bytes(out)


def encode_bmp(width: int, height: int, comp: int, data: bytes) -> bytes:
    """Encode pixels as a 24-bit BMP; alpha is blended over magenta."""
    _check(width, height, comp, data)
    pad = (-width * 3) & 3
    size = _BMP_HEADER_SIZE + (width * 3 + pad) * height
    header = struct.pack(
        "<2sIHHIIIIHHIIIIII",
        b"BM",
        size & 0xFFFFFFFF,
        0,
        0,
        _BMP_HEADER_SIZE,
        40,
        width & 0xFFFFFFFF,
        height & 0xFFFFFFFF,
        1,
        24,
        0, 0, 0, 0, 0, 0,
    )
    return header + _pixels(width, height, comp, bytes(data), False, pad)


def encode_tga(width: int, height: int, comp: int, data: bytes) -> bytes:
    """Encode pixels as an uncompressed true-colour TGA, with alpha for 2 or 4 components."""
    _check(width, height, comp, data)
    has_alpha = not comp & 1
    header = struct.pack(
        "<BBBHHBHHHHBB",
        0,
        0,
        2,
        0,
        0,
        0,
        0,
        0,
        width & 0xFFFF,
        height & 0xFFFF,
        24 + 8 * has_alpha,
        8 * has_alpha,
    )
    return header + _pixels(width, height, comp, bytes(data), has_alpha, 0)


def write_bmp(path: str | os.PathLike, width: int, height: int, comp: int, data: bytes) -> None:
    """Write pixels to ``path`` as a BMP file."""
    Path(path).write_bytes(encode_bmp(width, height, comp, data))


def write_tga(path: str | os.PathLike, width: int, height: int, comp: int, data: bytes) -> None:
    """Write pixels to ``path`` as a TGA file."""
    Path(path).write_bytes(encode_tga(width, height, comp, data))