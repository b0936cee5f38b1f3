[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "imgdecode"
version = "0.1.0"
description = "Pure-Python image decoders for JPEG, PNG, BMP, TGA, PSD and Radiance HDR, with BMP and TGA writers"
requires-python = ">=3.10"
dependencies = []
keywords = ["image", "decoder", "jpeg", "png", "bmp", "tga", "psd", "hdr", "rgbe", "zlib", "deflate"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["imgdecode"]

[tool.pytest.ini_options]
addopts = "-ra"
