"""Photoshop PSD decoding (composited RGB image only)."""

from __future__ import annotations

from .core import ByteReader, DecodedImage, ImageError, convert_format

_SIGNATURE = 0x38425053  # "8BPS"
_MAX_CHANNELS = 16
_RGB_MODE = 3


def _default_plane(channel: int, pixel_count: int) -> bytes:
    return (b"\xff" if channel == 3 else b"\x00") * pixel_count


def _read_rle_plane(reader: ByteReader, pixel_count: int) -> bytes:
    """Decode one PackBits-compressed channel."""
    plane = bytearray()
    while len(plane) < pixel_count:
        n = reader.read8()
        if n == 128:
            continue
        if n < 128:
            plane += reader.read(n + 1)
        else:
            plane += bytes((reader.read8(),)) * (257 - n)
    return bytes(plane[:pixel_count])


def is_psd(data: bytes) -> bool:
    """Return True if ``data`` starts with the PSD signature."""
    return ByteReader(data).read32be() == _SIGNATURE


def load_psd(data: bytes, req_comp: int = 0) -> DecodedImage:
    """Decode the composited image of an 8-bit RGB PSD file.

    The image is decoded to four components; ``req_comp`` of 1 to 3 converts
    it afterwards. ``channels`` reports the channel count stored in the file.
    """
    reader = ByteReader(data)
    if reader.read32be() != _SIGNATURE:
        raise ImageError("Corrupt PSD image", "not PSD")
    if reader.read16be() != 1:
        raise ImageError("Unsupported version of PSD image", "wrong version")
    reader.skip(6)
    channel_count = reader.read16be()
    if channel_count > _MAX_CHANNELS:
        raise ImageError("Unsupported number of channels in PSD image", "wrong channel count")
    height = reader.read32be()
    width = reader.read32be()
    if reader.read16be() != 8:
        raise ImageError("PSD bit depth is not 8 bit", "unsupported bit depth")
    if reader.read16be() != _RGB_MODE:
        raise ImageError("PSD is not in RGB color format", "wrong color format")
    for _ in range(3):  # mode data, image resources, layer and mask data
        reader.skip(reader.read32be())
    compression = reader.read16be()
    if compression > 1:
        raise ImageError("PSD has an unknown compression format", "bad compression")

    pixel_count = width * height
    try:
        out = bytearray(4 * pixel_count)
    except (MemoryError, OverflowError) as exc:
        raise ImageError("Out of memory", "outofmem") from exc

    if compression:
        reader.skip(height * channel_count * 2)  # per-row byte counts
        for channel in range(4):
            if channel >= channel_count:
                out[channel::4] = _default_plane(channel, pixel_count)
            else:
                out[channel::4] = _read_rle_plane(reader, pixel_count)
    else:
        for channel in range(4):
            if channel > channel_count:
                out[channel::4] = _default_plane(channel, pixel_count)
            else:
                out[channel::4] = reader.read(pixel_count)

    pixels = bytes(out)
    components = 4
    if req_comp and req_comp != 4:
        pixels = convert_format(pixels, 4, req_comp, width, height)
        components = req_comp
    return DecodedImage(
        width=width,
        height=height,
        channels=channel_count,
        components=components,
        data=pixels,
    )