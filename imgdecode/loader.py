"""Format detection and decoding of images from memory or from files.

Formats are tried in a fixed order: JPEG, PNG, BMP, PSD, Radiance HDR, any
registered custom loaders, and finally TGA, whose header check is the
weakest.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .bmp import is_bmp, load_bmp
from .core import DecodedImage, ImageError, hdr_to_ldr, ldr_to_hdr
from .hdr import HdrImage, is_hdr, load_hdr
from .jpeg import is_jpeg, load_jpeg
from .png import is_png, load_png
from .psd import is_psd, load_psd
from .tga import is_tga, load_tga

MAX_LOADERS = 32

_BUILTIN_LDR = (
    (is_jpeg, load_jpeg),
    (is_png, load_png),
    (is_bmp, load_bmp),
    (is_psd, load_psd),
)


@dataclass(frozen=True, eq=False)
class CustomLoader:
    """A user-supplied image format: a detector and a decoder."""

    detect: Callable[[bytes], bool]
    decode: Callable[[bytes, int], DecodedImage]

    def test(self, data: bytes) -> bool:
        """Return True if ``data`` is in this loader's format."""
        return bool(self.detect(data))

    def load(self, data: bytes, req_comp: int = 0) -> DecodedImage:
        """Decode ``data`` with this loader."""
        return self.decode(data, req_comp)


@dataclass
class _Conversion:
    hdr_to_ldr_gamma: float = 2.2
    hdr_to_ldr_scale: float = 1.0
    ldr_to_hdr_gamma: float = 2.2
    ldr_to_hdr_scale: float = 1.0


_conversion = _Conversion()
_loaders: list[CustomLoader] = []


def register_loader(loader: CustomLoader) -> bool:
    """Add a custom loader; False if the table of loaders is already full."""
    if any(existing is loader for existing in _loaders):
        return True
    if len(_loaders) >= MAX_LOADERS:
        return False
    _loaders.append(loader)
    return True


def _positive(value: float, what: str) -> float:
    if value == 0:
        raise ValueError(f"{what} must not be zero")
    return float(value)


def set_hdr_to_ldr_gamma(gamma: float) -> None:
    """Set the gamma used when turning HDR data into 8-bit pixels."""
    _conversion.hdr_to_ldr_gamma = _positive(gamma, "gamma")


def set_hdr_to_ldr_scale(scale: float) -> None:
    """Set the scale used when turning HDR data into 8-bit pixels."""
    _conversion.hdr_to_ldr_scale = _positive(scale, "scale")


def set_ldr_to_hdr_gamma(gamma: float) -> None:
    """Set the gamma used when turning 8-bit pixels into floats."""
    _conversion.ldr_to_hdr_gamma = float(gamma)


def set_ldr_to_hdr_scale(scale: float) -> None:
    """Set the scale used when turning 8-bit pixels into floats."""
    _conversion.ldr_to_hdr_scale = float(scale)


def _unknown() -> ImageError:
    return ImageError("Image not of any known type, or corrupt", "unknown image type")


def _read_file(path: str | os.PathLike) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise ImageError("Unable to open file", "can't fopen") from exc


def load_from_memory(data: bytes, req_comp: int = 0) -> DecodedImage:
    """Detect the format of ``data`` and decode it to 8-bit pixels."""
    data = bytes(data)
    for detect, decode in _BUILTIN_LDR:
        if detect(data):
            return decode(data, req_comp)
    if is_hdr(data):
        image = load_hdr(data, req_comp)
        pixels = hdr_to_ldr(
            image.data,
            image.width,
            image.height,
            image.components,
            _conversion.hdr_to_ldr_gamma,
            _conversion.hdr_to_ldr_scale,
        )
        return DecodedImage(
            width=image.width,
            height=image.height,
            channels=image.channels,
            components=image.components,
            data=bytes(pixels),
        )
    for loader in _loaders:
        if loader.test(data):
            return loader.load(data, req_comp)
    if is_tga(data):
        return load_tga(data, req_comp)
    raise _unknown()


def load(path: str | os.PathLike, req_comp: int = 0) -> DecodedImage:
    """Read the file at ``path`` and decode it to 8-bit pixels."""
    return load_from_memory(_read_file(path), req_comp)


def loadf_from_memory(data: bytes, req_comp: int = 0) -> HdrImage:
    """Decode ``data`` to floats; 8-bit formats are converted with the LDR-to-HDR settings."""
    data = bytes(data)
    if is_hdr(data):
        return load_hdr(data, req_comp)
    image = load_from_memory(data, req_comp)
    values = ldr_to_hdr(
        image.data,
        image.width,
        image.height,
        image.components,
        _conversion.ldr_to_hdr_gamma,
        _conversion.ldr_to_hdr_scale,
    )
    return HdrImage(
        width=image.width,
        height=image.height,
        channels=image.channels,
        components=image.components,
        data=tuple(float(v) for v in values),
    )


def loadf(path: str | os.PathLike, req_comp: int = 0) -> HdrImage:
    """Read the file at ``path`` and decode it to floats."""
    return loadf_from_memory(_read_file(path), req_comp)


def is_hdr_from_memory(data: bytes) -> bool:
    """Return True if ``data`` is a Radiance HDR image."""
    return is_hdr(bytes(data))


def is_hdr_file(path: str | os.PathLike) -> bool:
    """Return True if the file at ``path`` is a Radiance HDR image; False if unreadable."""
    try:
        data = Path(path).read_bytes()
    except OSError:
        return False
    return is_hdr(data)