"""Windows BMP decoding (uncompressed 4, 8, 16, 24 and 32 bits per pixel)."""

from __future__ import annotations

from .core import ByteReader, DecodedImage, ImageError, convert_format

_HEADER_SIZES = (12, 40, 56, 108)


def _corrupt(reason: str) -> ImageError:
    return ImageError("Corrupt BMP", reason)


def _int32(value: int) -> int:
    return ((value + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def _high_bit(value: int) -> int:
    """Index of the highest set bit, or -1 for zero."""
    return value.bit_length() - 1


def _bit_count(value: int) -> int:
    return bin(value & 0xFFFFFFFF).count("1")


def _shift_signed(value: int, shift: int, bits: int) -> int:
    """Move a masked field so its top bit lands on bit 7, replicating low bits."""
    value = _int32(value)
    if shift < 0:
        value = _int32(value << -shift)
    else:
        value >>= shift
    result = value
    z = bits
    while z < 8:
        result += value >> z
        z += bits
    return result & 0xFF


def is_bmp(data: bytes) -> bool:
    """Return True if ``data`` looks like a BMP with a supported header size."""
    reader = ByteReader(data)
    if reader.read8() != ord("B") or reader.read8() != ord("M"):
        return False
    reader.read32le()  # file size
    reader.read16le()  # reserved
    reader.read16le()  # reserved
    reader.read32le()  # data offset
    return reader.read32le() in _HEADER_SIZES


def _read_palette_rows(
    reader: ByteReader, width: int, height: int, bpp: int, palette: list[bytes]
) -> list[bytes]:
    if bpp == 4:
        row_bytes = (width + 1) >> 1
    elif bpp == 8:
        row_bytes = width
    else:
        raise _corrupt("bad bpp")
    pad = (-row_bytes) & 3
    rows = []
    for _ in range(height):
        row = bytearray()
        for i in range(0, width, 2):
            v = reader.read8()
            v2 = 0
            if bpp == 4:
                v2 = v & 15
                v >>= 4
            row += palette[v]
            if i + 1 == width:
                break
            v = reader.read8() if bpp == 8 else v2
            row += palette[v]
        reader.skip(pad)
        rows.append(bytes(row))
    return rows


def _read_direct_rows(
    reader: ByteReader,
    width: int,
    height: int,
    bpp: int,
    target: int,
    masks: tuple[int, int, int, int],
) -> list[bytes]:
    mr, mg, mb, ma = masks
    if bpp == 24:
        row_bytes = 3 * width
    elif bpp == 16:
        row_bytes = 2 * width
    else:
        row_bytes = 0
    pad = (-row_bytes) & 3

    easy = 0
    if bpp == 24:
        easy = 1
    elif bpp == 32 and mb == 0xFF and mg == 0xFF00 and mr == 0xFF000000 and ma == 0xFF000000:
        easy = 2

    rows = []
    if easy:
        step = 3 if easy == 1 else 4
        for _ in range(height):
            chunk = reader.read(width * step)
            row = bytearray(width * target)
            row[0::target] = chunk[2::step]
            row[1::target] = chunk[1::step]
            row[2::target] = chunk[0::step]
            if target == 4:
                row[3::4] = chunk[3::4] if easy == 2 else b"\xff" * width
            reader.skip(pad)
            rows.append(bytes(row))
        return rows

    if not mr or not mg or not mb:
        raise _corrupt("bad masks")
    # Every field uses the bit count of the red mask.
    count = _bit_count(mr)
    shifts = (_high_bit(mr) - 7, _high_bit(mg) - 7, _high_bit(mb) - 7, _high_bit(ma) - 7)
    for _ in range(height):
        row = bytearray()
        for _ in range(width):
            v = reader.read16le() if bpp == 16 else reader.read32le()
            row.append(_shift_signed(v & mr, shifts[0], count))
            row.append(_shift_signed(v & mg, shifts[1], count))
            row.append(_shift_signed(v & mb, shifts[2], count))
            alpha = _shift_signed(v & ma, shifts[3], count) if ma else 255
            if target == 4:
                row.append(alpha)
        reader.skip(pad)
        rows.append(bytes(row))
    return rows


def load_bmp(data: bytes, req_comp: int = 0) -> DecodedImage:
    """Decode an uncompressed BMP.

    Pixels are decoded straight to three or four components; ``req_comp`` of
    1 or 2 converts afterwards. ``channels`` reports the decoded layout.
    """
    if not 0 <= req_comp <= 4:
        raise ImageError("Internal error", "bad req_comp")
    reader = ByteReader(data)
    if reader.read8() != ord("B") or reader.read8() != ord("M"):
        raise _corrupt("not BMP")
    reader.read32le()  # file size
    reader.read16le()  # reserved
    reader.read16le()  # reserved
    offset = _int32(reader.read32le())
    hsz = reader.read32le()
    if hsz not in _HEADER_SIZES:
        raise ImageError("BMP type not supported: unknown", "unknown BMP")
    if hsz == 12:
        width = reader.read16le()
        raw_height = reader.read16le()
    else:
        width = reader.read32le()
        raw_height = _int32(reader.read32le())
    if reader.read16le() != 1:
        raise ImageError("bad BMP")
    bpp = reader.read16le()
    if bpp == 1:
        raise ImageError("BMP type not supported: 1-bit", "monochrome")
    flip_vertically = raw_height > 0
    height = abs(raw_height)

    mr = mg = mb = ma = 0
    psize = 0
    if hsz == 12:
        if bpp < 24:
            psize = int((offset - 14 - 24) / 3)
    else:
        compress = reader.read32le()
        if compress in (1, 2):
            raise ImageError("BMP type not supported: RLE", "BMP RLE")
        for _ in range(5):  # image size, resolutions, colours used, important
            reader.read32le()
        if hsz in (40, 56):
            if hsz == 56:
                for _ in range(4):
                    reader.read32le()
            if bpp in (16, 32):
                if compress == 0:
                    if bpp == 32:
                        mr, mg, mb = 0xFF << 16, 0xFF << 8, 0xFF
                    else:
                        mr, mg, mb = 31 << 10, 31 << 5, 31
                elif compress == 3:
                    mr = reader.read32le()
                    mg = reader.read32le()
                    mb = reader.read32le()
                    if mr == mg == mb:
                        raise ImageError("bad BMP")
                else:
                    raise ImageError("bad BMP")
        else:
            mr = reader.read32le()
            mg = reader.read32le()
            mb = reader.read32le()
            ma = reader.read32le()
            reader.read32le()  # colour space
            for _ in range(12):
                reader.read32le()  # colour space parameters
        if bpp < 16:
            psize = (offset - 14 - hsz) >> 2

    img_n = 4 if ma else 3
    target = req_comp if req_comp >= 3 else img_n

    if bpp < 16:
        if psize == 0 or psize > 256:
            raise _corrupt("invalid")
        suffix = b"\xff" if target == 4 else b""
        palette = []
        for _ in range(psize):
            b = reader.read8()
            g = reader.read8()
            r = reader.read8()
            if hsz != 12:
                reader.read8()
            palette.append(bytes((r, g, b)) + suffix)
        palette += [bytes(3) + suffix] * (256 - psize)
        reader.skip(offset - 14 - hsz - psize * (3 if hsz == 12 else 4))
        rows = _read_palette_rows(reader, width, height, bpp, palette)
    else:
        reader.skip(offset - 14 - hsz)
        rows = _read_direct_rows(reader, width, height, bpp, target, (mr, mg, mb, ma))

    if flip_vertically:
        rows.reverse()
    pixels = b"".join(rows)
    components = target
    if req_comp and req_comp != target:
        pixels = convert_format(pixels, target, req_comp, width, height)
        components = req_comp
    return DecodedImage(
        width=width,
        height=height,
        channels=target,
        components=components,
        data=pixels,
    )