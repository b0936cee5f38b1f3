# imgdecode

A small image decoding library written in pure Python. It has no
dependencies.

| Format | Load | Save |
|--------|------|------|
| JPEG (baseline, 8-bit, 1 or 3 components, not progressive) | yes | |
| PNG (8-bit, not interlaced) | yes | |
| BMP (uncompressed 4/8/16/24/32-bit; not 1-bit, not RLE) | yes | yes (24-bit) |
| TGA (raw and RLE; grey, true-colour, colour-mapped) | yes | yes |
| PSD (composited RGB image, 8-bit) | yes | |
| Radiance HDR (RGBE) | yes | |

The package also has its own zlib/DEFLATE decoder.

## Installation

```
pip install .
```

## Loading images

`imgdecode.loader.load` reads a file. `load_from_memory` takes bytes. Both
work out the format from the data. They try JPEG, PNG, BMP, PSD and Radiance
HDR first, then any custom loaders you have registered, and TGA last. Both
return an `imgdecode.core.DecodedImage`, a frozen dataclass with these fields:

- `width`, `height`
- `channels`: the channel count the file reports
- `components`: the number of interleaved bytes per pixel in `data`
- `data`: the pixel bytes, row by row, top row first

```python
from imgdecode.loader import load, load_from_memory

image = load("picture.png", req_comp=4)   # force RGBA
print(image.width, image.height, image.components)

with open("photo.jpg", "rb") as fh:
    image = load_from_memory(fh.read())    # keep the image's own layout
```

`req_comp` sets how many components come out: 0 keeps the decoded layout,
1 is grey, 2 is grey+alpha, 3 is RGB and 4 is RGBA.

When data cannot be decoded, `imgdecode.core.ImageError` is raised. Its
`message` is a readable description, such as `"Corrupt PNG"`. Its `reason`
is a short technical code, such as `"bad png sig"`. If a file cannot be
opened, `load` raises `ImageError("Unable to open file")`.

## Floating-point data

`loadf` and `loadf_from_memory` return an `imgdecode.hdr.HdrImage`. It has the
same fields as `DecodedImage`, but `data` is a tuple of floats. Radiance files
are decoded straight to floats. Every other format is decoded to 8 bits
first. Its colour channels are then expanded as `(v / 255) ** gamma * scale`,
and alpha as `v / 255`.

When `load`/`load_from_memory` read a Radiance file, the floats are turned
back into 8-bit values with `(v / scale) ** (1 / gamma) * 255` and clamped.

You can change the settings for both directions:

```python
from imgdecode.loader import (
    is_hdr_file, loadf, set_hdr_to_ldr_gamma, set_hdr_to_ldr_scale,
    set_ldr_to_hdr_gamma, set_ldr_to_hdr_scale,
)

set_ldr_to_hdr_gamma(2.2)       # defaults: gamma 2.2, scale 1.0
if is_hdr_file("sky.hdr"):
    hdr = loadf("sky.hdr", req_comp=3)
```

`set_hdr_to_ldr_gamma` and `set_hdr_to_ldr_scale` raise `ValueError` for zero.
`is_hdr_file` returns `False` for a file it cannot read. `is_hdr_from_memory`
checks bytes.

`imgdecode.hdr.load_hdr_rgbe` returns the raw RGBE bytes as a `DecodedImage`
with four components and no conversion.

## Format modules

Each format has its own module, with a check and a decoder that both take
bytes:

- `imgdecode.jpeg`: `is_jpeg`, `load_jpeg`
- `imgdecode.png`: `is_png`, `load_png`
- `imgdecode.bmp`: `is_bmp`, `load_bmp`
- `imgdecode.tga`: `is_tga`, `load_tga`
- `imgdecode.psd`: `is_psd`, `load_psd`
- `imgdecode.hdr`: `is_hdr`, `load_hdr`, `load_hdr_rgbe`

`imgdecode.core` has the shared helpers:

- `ByteReader`, which reads past the end as zero bytes
- `compute_luma`
- `convert_format`, which changes the number of components in an interleaved buffer
- `ldr_to_hdr` and `hdr_to_ldr`

## Writing images

```python
from imgdecode.writer import encode_tga, write_bmp

write_bmp("out.bmp", width, height, 3, rgb_bytes)
tga_bytes = encode_tga(width, height, 4, rgba_bytes)
```

`encode_bmp`/`write_bmp` always produce a 24-bit BMP. Grey input is copied
into all three colour channels. With four components, alpha is blended over
magenta.

`encode_tga`/`write_tga` produce an uncompressed true-colour TGA. It is
24-bit, or 32-bit with alpha when the input has 2 or 4 components.

Input data must hold at least `width * height * comp` bytes. If it does not,
or if `comp` is not between 1 and 4, `ValueError` is raised.

## Custom loaders

A `CustomLoader` is built from two callables. `detect(data)` returns whether
the bytes are in the loader's format. `decode(data, req_comp)` returns a
`DecodedImage`. Pass the loader to `register_loader`.

```python
from imgdecode.loader import CustomLoader, register_loader

register_loader(CustomLoader(detect=my_detect, decode=my_decode))
```

Registered loaders are tried after the built-in formats and before TGA. At
most 32 can be registered; past that, `register_loader` returns `False`.

## zlib

```python
from imgdecode.inflate import deflate_decode, zlib_decode

raw = zlib_decode(compressed)             # zlib header; checksum not checked
raw = deflate_decode(stream, max_size=1 << 20)
```

If the output grows past `max_size`, `ImageError` is raised.

## What it does not do

This is a library only; it has no command-line tool. It does not:

- upload images to a graphics card or make textures
- load DDS files
- write PNG, JPEG or compressed files
- decode progressive JPEGs, interlaced or 16-bit PNGs, or RLE-compressed BMPs