"""Data model of the Datalith store."""

from .file import File
from .image import Image, ImageSize
from .resource import Resource

__all__ = [
    "File",
    "Image",
    "ImageSize",
    "Resource",
]
