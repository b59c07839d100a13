"""Panel services - pure Python helpers with no USB access.

- image.py: decode/resize/crop and text rendering for button bitmaps
"""

from .image import ImageService

__all__ = [
    'ImageService',
]
