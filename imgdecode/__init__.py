"""Pure-Python decoders for JPEG, PNG, BMP, TGA, PSD and Radiance HDR images, with BMP and TGA writers."""

__version__ = "0.1.0"
__all__ = ["core", "inflate", "jpeg", "png", "psd", "bmp", "tga", "hdr", "writer", "loader"]