"""PNG decoding for 8-bit, non-interlaced images."""

from __future__ import annotations

from .core import ByteReader, DecodedImage, ImageError, convert_format
from .inflate import zlib_decode

_SIGNATURE = bytes((137, 80, 78, 71, 13, 10, 26, 10))
_MAX_DIMENSION = 1 << 24
_MAX_SAMPLES = 1 << 30


def _chunk_type(name: str) -> int:
    return int.from_bytes(name.encode("ascii"), "big")


_IHDR = _chunk_type("IHDR")
_PLTE = _chunk_type("PLTE")
_TRNS = _chunk_type("tRNS")
_IDAT = _chunk_type("IDAT")
_IEND = _chunk_type("IEND")
_ANCILLARY_BIT = 1 << 29


def _corrupt(reason: str) -> ImageError:
    return ImageError("Corrupt PNG", reason)


def _paeth(a: int, b: int, c: int) -> int:
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def _unfilter(raw: bytes, width: int, height: int, img_n: int) -> bytearray:
    """Undo the per-scanline filters; the row above the first is all zeros."""
    stride = width * img_n
    if len(raw) != (stride + 1) * height:
        raise _corrupt("not enough pixels")
    out = bytearray(stride * height)
    prior = bytes(stride)
    pos = 0
    for row in range(height):
        filter_type = raw[pos]
        if filter_type > 4:
            raise _corrupt("invalid filter")
        line = raw[pos + 1:pos + 1 + stride]
        pos += stride + 1
        cur = bytearray(line)
        if filter_type == 1:
            for i in range(img_n, stride):
                cur[i] = (cur[i] + cur[i - img_n]) & 0xFF
        elif filter_type == 2:
            cur = bytearray((a + b) & 0xFF for a, b in zip(line, prior))
        elif filter_type == 3:
            for i in range(stride):
                left = cur[i - img_n] if i >= img_n else 0
                cur[i] = (line[i] + ((prior[i] + left) >> 1)) & 0xFF
        elif filter_type == 4:
            for i in range(stride):
                if i >= img_n:
                    predictor = _paeth(cur[i - img_n], prior[i], prior[i - img_n])
                else:
                    predictor = _paeth(0, prior[i], 0)
                cur[i] = (line[i] + predictor) & 0xFF
        out[row * stride:(row + 1) * stride] = cur
        prior = cur
    return out


def _add_alpha(pixels: bytearray, img_n: int) -> bytearray:
    count = len(pixels) // img_n
    out_n = img_n + 1
    out = bytearray(count * out_n)
    for k in range(img_n):
        out[k::out_n] = pixels[k::img_n]
    out[img_n::out_n] = b"\xff" * count
    return out


def _apply_transparency(pixels: bytearray, key: tuple[int, ...], out_n: int) -> None:
    if out_n == 2:
        pixels[1::2] = bytes(0 if grey == key[0] else 255 for grey in pixels[0::2])
        return
    for offset in range(0, len(pixels), 4):
        if tuple(pixels[offset:offset + 3]) == key[:3]:
            pixels[offset + 3] = 0


class _PngParser:
    """Walks the chunks of one PNG stream."""

    def __init__(self, data: bytes, req_comp: int) -> None:
        self.reader = ByteReader(data)
        self.req_comp = req_comp
        self.width = 0
        self.height = 0
        self.img_n = 0
        self.palette = [bytearray((0, 0, 0, 255)) for _ in range(256)]
        self.pal_len = 0
        self.pal_img_n = 0
        self.colour_key: tuple[int, ...] | None = None
        self.idata = bytearray()
        self.seen_idat = False

    def check_signature(self) -> None:
        if self.reader.read(len(_SIGNATURE)) != _SIGNATURE:
            raise ImageError("Not a PNG", "bad png sig")

    def parse(self) -> DecodedImage:
        self.check_signature()
        reader = self.reader
        first = True
        while True:
            length = reader.read32be()
            kind = reader.read32be()
            if first and kind != _IHDR:
                raise _corrupt("first not IHDR")
            if kind == _IHDR:
                if not first:
                    raise _corrupt("multiple IHDR")
                self._header(length)
            elif kind == _PLTE:
                self._palette(length)
            elif kind == _TRNS:
                self._transparency(length)
            elif kind == _IDAT:
                self._image_data(length)
            elif kind == _IEND:
                return self._finish()
            elif not kind & _ANCILLARY_BIT:
                name = kind.to_bytes(4, "big").decode("latin-1")
                raise ImageError(
                    "PNG not supported: unknown chunk type", f"{name} chunk not known"
                )
            else:
                reader.skip(length)
            reader.read32be()  # CRC, not verified
            first = False

    def _header(self, length: int) -> None:
        reader = self.reader
        if length != 13:
            raise _corrupt("bad IHDR len")
        self.width = reader.read32be()
        if self.width > _MAX_DIMENSION:
            raise ImageError("Very large image (corrupt?)", "too large")
        self.height = reader.read32be()
        if self.height > _MAX_DIMENSION:
            raise ImageError("Very large image (corrupt?)", "too large")
        if reader.read8() != 8:
            raise ImageError("PNG not supported: 8-bit only", "8bit only")
        color = reader.read8()
        if color > 6:
            raise _corrupt("bad ctype")
        if color == 3:
            self.pal_img_n = 3
        elif color & 1:
            raise _corrupt("bad ctype")
        if reader.read8():
            raise _corrupt("bad comp method")
        if reader.read8():
            raise _corrupt("bad filter method")
        if reader.read8():
            raise ImageError("PNG not supported: interlaced mode", "interlaced")
        if not self.width or not self.height:
            raise _corrupt("0-pixel image")
        if not self.pal_img_n:
            self.img_n = (3 if color & 2 else 1) + (1 if color & 4 else 0)
            if _MAX_SAMPLES // self.width // self.img_n < self.height:
                raise ImageError("Image too large to decode", "too large")
        else:
            self.img_n = 1
            if _MAX_SAMPLES // self.width // 4 < self.height:
                raise _corrupt("too large")

    def _palette(self, length: int) -> None:
        if length > 256 * 3 or length % 3:
            raise _corrupt("invalid PLTE")
        self.pal_len = length // 3
        for entry in self.palette[:self.pal_len]:
            entry[0:3] = self.reader.read(3)
            entry[3] = 255

    def _transparency(self, length: int) -> None:
        reader = self.reader
        if self.seen_idat:
            raise _corrupt("tRNS after IDAT")
        if self.pal_img_n:
            if self.pal_len == 0:
                raise _corrupt("tRNS before PLTE")
            if length > self.pal_len:
                raise _corrupt("bad tRNS len")
            self.pal_img_n = 4
            for entry, alpha in zip(self.palette, reader.read(length)):
                entry[3] = alpha
        else:
            if not self.img_n & 1:
                raise _corrupt("tRNS with alpha")
            if length != self.img_n * 2:
                raise _corrupt("bad tRNS len")
            self.colour_key = tuple(reader.read16be() & 0xFF for _ in range(self.img_n))

    def _image_data(self, length: int) -> None:
        reader = self.reader
        if self.pal_img_n and not self.pal_len:
            raise _corrupt("no PLTE")
        if reader.pos + length > len(reader.data):
            raise _corrupt("outofdata")
        self.idata += reader.read(length)
        self.seen_idat = True

    def _finish(self) -> DecodedImage:
        if not self.seen_idat:
            raise _corrupt("no IDAT")
        raw = zlib_decode(bytes(self.idata))
        img_n = self.img_n
        req_comp = self.req_comp
        widen = req_comp == img_n + 1 and req_comp != 3 and not self.pal_img_n
        out_n = img_n + 1 if widen or self.colour_key is not None else img_n

        pixels = _unfilter(raw, self.width, self.height, img_n)
        if out_n != img_n:
            pixels = _add_alpha(pixels, img_n)
        if self.colour_key is not None:
            _apply_transparency(pixels, self.colour_key, out_n)

        channels = img_n
        if self.pal_img_n:
            channels = self.pal_img_n
            out_n = req_comp if req_comp >= 3 else self.pal_img_n
            pixels = bytearray(
                b"".join(bytes(self.palette[index][:out_n]) for index in pixels)
            )

        if req_comp and req_comp != out_n:
            pixels = convert_format(bytes(pixels), out_n, req_comp, self.width, self.height)
            out_n = req_comp
        return DecodedImage(
            width=self.width,
            height=self.height,
            channels=channels,
            components=out_n,
            data=bytes(pixels),
        )


def is_png(data: bytes) -> bool:
    """Return True if ``data`` starts with the PNG signature."""
    return bytes(data[:len(_SIGNATURE)]) == _SIGNATURE


def load_png(data: bytes, req_comp: int = 0) -> DecodedImage:
    """Decode an 8-bit, non-interlaced PNG.

    ``req_comp`` of 0 keeps the decoded layout; 1 to 4 force that many
    interleaved components in the result.
    """
    if not 0 <= req_comp <= 4:
        raise ImageError("Internal error", "bad req_comp")
    return _PngParser(data, req_comp).parse()