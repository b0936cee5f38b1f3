"""Truevision TGA decoding (true-colour, greyscale and colour-mapped, optionally RLE)."""

from __future__ import annotations

from .core import ByteReader, DecodedImage, ImageError, compute_luma

_VALID_TYPES = (1, 2, 3, 9, 10, 11)
_VALID_DEPTHS = (8, 16, 24, 32)


def is_tga(data: bytes) -> bool:
    """Return True if the header of ``data`` passes the loose TGA checks."""
    reader = ByteReader(data)
    reader.read8()  # id length
    if reader.read8() > 1:
        return False
    if reader.read8() not in _VALID_TYPES:
        return False
    reader.read16be()  # palette start
    reader.read16be()  # palette length
    reader.read8()  # palette entry bits
    reader.read16be()  # x origin
    reader.read16be()  # y origin
    if reader.read16be() < 1:
        return False
    if reader.read16be() < 1:
        return False
    return reader.read8() in _VALID_DEPTHS


def _to_rgba(raw: bytes, bpp: int, previous: tuple[int, int, int, int]) -> tuple[int, int, int, int]:
    if bpp == 8:
        return (raw[0], raw[0], raw[0], 255)
    if bpp == 16:
        return (raw[0], raw[0], raw[0], raw[1])
    if bpp == 24:
        return (raw[2], raw[1], raw[0], 255)
    if bpp == 32:
        return (raw[2], raw[1], raw[0], raw[3])
    return previous


def _encode(rgba: tuple[int, int, int, int], comp: int) -> bytes:
    r, g, b, a = rgba
    if comp == 1:
        return bytes((compute_luma(r, g, b),))
    if comp == 2:
        return bytes((compute_luma(r, g, b), a))
    if comp == 3:
        return bytes((r, g, b))
    if comp == 4:
        return bytes((r, g, b, a))
    return bytes(max(comp, 0))


def _padded(chunk: bytes, n: int) -> bytes:
    return chunk + bytes(max(n - len(chunk), 0))


def load_tga(data: bytes, req_comp: int = 0) -> DecodedImage:
    """Decode a TGA image.

    ``req_comp`` of 1 to 4 forces that many components; anything else keeps
    the file's bytes-per-pixel. ``channels`` reports the file's count.
    """
    reader = ByteReader(data)
    offset = reader.read8()
    indexed = reader.read8()
    image_type = reader.read8()
    pal_start = reader.read16le()
    pal_len = reader.read16le()
    pal_bits = reader.read8()
    reader.read16le()  # x origin
    reader.read16le()  # y origin
    width = reader.read16le()
    height = reader.read16le()
    bpp = reader.read8()
    descriptor = reader.read8()

    rle = image_type >= 8
    if rle:
        image_type -= 8
    inverted = not (descriptor >> 5) & 1

    if width < 1 or height < 1 or not 1 <= image_type <= 3 or bpp not in _VALID_DEPTHS:
        raise ImageError("Corrupt TGA", "bad TGA header")

    if indexed:
        bpp = pal_bits
    if not 1 <= req_comp <= 4:
        req_comp = bpp // 8
    channels = bpp // 8

    reader.skip(offset)
    palette = b""
    if indexed:
        reader.skip(pal_start)
        palette = reader.read(pal_len * pal_bits // 8)

    pixel_bytes = (bpp + 7) // 8
    entry_stride = bpp // 8
    rgba = (0, 0, 0, 0)
    encoded = b""
    run_count = 0
    repeating = False
    read_next = True
    out = bytearray()
    for _ in range(width * height):
        if rle:
            if run_count == 0:
                command = reader.read8()
                run_count = 1 + (command & 127)
                repeating = bool(command >> 7)
                read_next = True
            elif not repeating:
                read_next = True
        else:
            read_next = True
        if read_next:
            if indexed:
                index = reader.read8()
                if index >= pal_len:
                    index = 0
                start = index * entry_stride
                raw = _padded(palette[start:start + pixel_bytes], pixel_bytes)
            else:
                raw = reader.read(pixel_bytes)
            rgba = _to_rgba(_padded(raw, 4), bpp, rgba)
            encoded = _encode(rgba, req_comp)
            read_next = False
        out += encoded
        run_count -= 1

    pixels = bytes(out)
    if inverted and req_comp > 0:
        stride = width * req_comp
        rows = [pixels[row * stride:(row + 1) * stride] for row in range(height)]
        pixels = b"".join(reversed(rows))
    return DecodedImage(
        width=width,
        height=height,
        channels=channels,
        components=req_comp,
        data=pixels,
    )