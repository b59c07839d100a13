"""Image processing service: decode, resize, crop, solid fills, text.

Pure Python (PIL + numpy), no USB dependencies.
"""
from __future__ import annotations

import logging
from typing import Any

import numpy as np
from PIL import Image as PILImage
from PIL import ImageDraw, ImageFilter

from ..core.models import TextButton

log = logging.getLogger(__name__)

# Cap decompression well above any sane panel source image. Prevents
# decompression bombs from crafted files causing OOM.
PILImage.MAX_IMAGE_PIXELS = 4096 * 4096


class ImageService:
    """Stateless image processing utilities."""

    @staticmethod
    def load(path: str) -> Any:
        """Decode an image file (PNG/JPEG/GIF/BMP). GIFs use frame 0."""
        with PILImage.open(path) as img:
            img.load()
            return img.convert('RGB')

    @staticmethod
    def solid_color(r: int, g: int, b: int, w: int, h: int) -> Any:
        """Create a solid-color PIL Image."""
        return PILImage.new('RGB', (w, h), (r, g, b))

    @staticmethod
    def resize(img: Any, w: int, h: int) -> Any:
        """Resize to (w, h) with Lanczos resampling and a light sharpen.

        Downscaled icons look soft on 72 px displays; the unsharp mask
        (radius 1, 100%, threshold 0) restores edge contrast.
        """
        if img.mode != 'RGB':
            img = img.convert('RGB')
        resized = img.resize((w, h), PILImage.Resampling.LANCZOS)
        return resized.filter(ImageFilter.UnsharpMask(radius=1, percent=100, threshold=0))

    @staticmethod
    def crop_center(img: Any, w: int, h: int) -> Any:
        """Cut a (w, h) region out of the center of *img*.

        Dimensions already smaller than the target are left as they are.
        """
        cw = min(w, img.width)
        ch = min(h, img.height)
        left = (img.width - cw) // 2
        top = (img.height - ch) // 2
        return img.crop((left, top, left + cw, top + ch))

    @staticmethod
    def letterbox(img: Any, w: int, h: int) -> Any:
        """Center *img* on a black (w, h) canvas."""
        canvas = PILImage.new('RGB', (w, h), (0, 0, 0))
        canvas.paste(img.convert('RGB'), ((w - img.width) // 2, (h - img.height) // 2))
        return canvas

    @staticmethod
    def to_array(img: Any) -> np.ndarray:
        """(height, width, 3) uint8 array of an image's RGB pixels."""
        if img.mode != 'RGB':
            img = img.convert('RGB')
        return np.asarray(img, dtype=np.uint8)

    @staticmethod
    def from_array(arr: np.ndarray) -> Any:
        return PILImage.fromarray(np.ascontiguousarray(arr, dtype=np.uint8), 'RGB')

    @staticmethod
    def render_text(text_button: TextButton, w: int, h: int, fonts: Any = None) -> Any:
        """Paint a TextButton onto a new (w, h) canvas.

        Each line is drawn left-aligned with its baseline at
        ``(pos_x, pos_y)``.

        Args:
            text_button: Lines and background color.
            w, h: Canvas size.
            fonts: FontResolver (default: shared module instance).
        """
        if fonts is None:
            from ..font_resolver import font_resolver as fonts

        img = PILImage.new('RGB', (w, h), tuple(text_button.bg_color))
        draw = ImageDraw.Draw(img)
        for line in text_button.lines:
            font = fonts.get(line.font_size, line.font)
            log.debug("render_text: %r at (%d, %d) size=%s",
                      line.text, line.pos_x, line.pos_y, line.font_size)
            draw.text((line.pos_x, line.pos_y), line.text,
                      fill=tuple(line.font_color), font=font, anchor='ls')
        return img
