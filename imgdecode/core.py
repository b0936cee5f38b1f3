"""Shared pieces for the image decoders: errors, byte reading and pixel conversion."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

DEFAULT_GAMMA = 2.2
DEFAULT_SCALE = 1.0


class ImageError(Exception):
    """Raised when an image cannot be decoded.

    ``message`` is the user-facing text; ``reason`` is a short technical code.
    """

    def __init__(self, message: str, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason or message


class ByteReader:
    """Sequential reader over an in-memory buffer.

    Reads past the end yield zero bytes instead of failing, which is what the
    decoders rely on when probing truncated input.
    """

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.pos = 0

    def read8(self) -> int:
        if self.pos < len(self.data):
            value = self.data[self.pos]
            self.pos += 1
            return value
        return 0

    def read16be(self) -> int:
        high = self.read8()
        return (high << 8) + self.read8()

    def read32be(self) -> int:
        high = self.read16be()
        return (high << 16) + self.read16be()

    def read16le(self) -> int:
        low = self.read8()
        return low + (self.read8() << 8)

    def read32le(self) -> int:
        low = self.read16le()
        return low + (self.read16le() << 16)

    def read(self, n: int) -> bytes:
        """Return the next ``n`` bytes, zero-filled past the end of the buffer."""
        if n <= 0:
            return b""
        start = min(self.pos, len(self.data))
        chunk = self.data[start:start + n]
        self.pos += n
        return chunk + bytes(n - len(chunk))

    def skip(self, n: int) -> None:
        self.pos = max(0, self.pos + n)

    def at_eof(self) -> bool:
        return self.pos >= len(self.data)


@dataclass(frozen=True)
class DecodedImage:
    """A decoded 8-bit image.

    ``channels`` is the channel count the source file had; ``components`` is
    the number of interleaved bytes per pixel actually stored in ``data``.
    """

    width: int
    height: int
    channels: int
    components: int
    data: bytes


def compute_luma(r: int, g: int, b: int) -> int:
    """Integer luminance used when reducing colour to grey."""
    return ((r * 77) + (g * 150) + (29 * b)) >> 8


# Each target channel is either a source channel index, "Y" for luminance,
# or None for an opaque alpha of 255.
_CONVERSIONS = {
    (1, 2): (0, None),
    (1, 3): (0, 0, 0),
    (1, 4): (0, 0, 0, None),
    (2, 1): (0,),
    (2, 3): (0, 0, 0),
    (2, 4): (0, 0, 0, 1),
    (3, 4): (0, 1, 2, None),
    (3, 1): ("Y",),
    (3, 2): ("Y", None),
    (4, 1): ("Y",),
    (4, 2): ("Y", 3),
    (4, 3): (0, 1, 2),
}


def _require_length(data: Sequence, count: int) -> None:
    if len(data) < count:
        raise ValueError(f"expected at least {count} samples, got {len(data)}")


def convert_format(data: bytes, img_n: int, req_comp: int, width: int, height: int) -> bytes:
    """Convert interleaved pixels from ``img_n`` to ``req_comp`` components."""
    if req_comp == img_n:
        return data
    if not 1 <= req_comp <= 4 or not 1 <= img_n <= 4:
        raise ValueError(f"cannot convert {img_n} components to {req_comp}")
    pixels = width * height
    _require_length(data, pixels * img_n)
    source = bytes(data[:pixels * img_n])
    planes = [source[k::img_n] for k in range(img_n)]
    out = bytearray(pixels * req_comp)
    for k, origin in enumerate(_CONVERSIONS[(img_n, req_comp)]):
        if origin is None:
            out[k::req_comp] = b"\xff" * pixels
        elif origin == "Y":
            out[k::req_comp] = bytes(
                compute_luma(r, g, b) for r, g, b in zip(planes[0], planes[1], planes[2])
            )
        else:
            out[k::req_comp] = planes[origin]
    return bytes(out)


def _colour_components(comp: int) -> int:
    return comp if comp & 1 else comp - 1


def ldr_to_hdr(
    data: bytes,
    width: int,
    height: int,
    comp: int,
    gamma: float = DEFAULT_GAMMA,
    scale: float = DEFAULT_SCALE,
) -> list[float]:
    """Expand 8-bit samples to floats; colour is gamma-expanded, alpha is linear."""
    count = width * height * comp
    _require_length(data, count)
    colour = _colour_components(comp)
    return [
        (value / 255.0) ** gamma * scale if index % comp < colour else value / 255.0
        for index, value in enumerate(data[:count])
    ]


def _clamp_byte(z: float) -> int:
    if not z > 0:
        return 0
    return int(min(z, 255.0))


def hdr_to_ldr(
    data: Sequence[float],
    width: int,
    height: int,
    comp: int,
    gamma: float = DEFAULT_GAMMA,
    scale: float = DEFAULT_SCALE,
) -> bytes:
    """Compress float samples to 8 bits; colour is gamma-corrected, alpha is linear."""
    count = width * height * comp
    _require_length(data, count)
    inv_gamma = 1.0 / gamma
    inv_scale = 1.0 / scale
    colour = _colour_components(comp)

    def colour_byte(value: float) -> int:
        base = value * inv_scale
        if base < 0:
            return 0
        try:
            return _clamp_byte(base ** inv_gamma * 255 + 0.5)
        except OverflowError:
            return 255

    return bytes(
        colour_byte(value) if index % comp < colour else _clamp_byte(value * 255 + 0.5)
        for index, value in enumerate(data[:count])
    )