"""
Panel geometry: button index <-> pixel rectangle within a full panel image.

Buttons are numbered row-major from the top-left logical position, but the
physical column order in each row is mirrored: button 0 sits at the
*right* edge of the top row of the rendered panel image.  This matches the
order the device scans its displays in::

    panel image (436 x 254)
    +----+----+----+----+----+
    |  4 |  3 |  2 |  1 |  0 |
    +----+----+----+----+----+
    |  9 |  8 |  7 |  6 |  5 |
    +----+----+----+----+----+
    | 14 | 13 | 12 | 11 | 10 |
    +----+----+----+----+----+
"""
from __future__ import annotations

import logging
import numbers
from typing import Any, List, Optional

from .constants import (
    BUTTON_SIZE,
    NUM_BUTTONS,
    NUM_COLUMNS,
    PANEL_HEIGHT,
    PANEL_WIDTH,
    SPACER,
)
from .core.models import Rect
from .errors import InvalidButtonIndex
from .services.image import ImageService

log = logging.getLogger(__name__)

# Distance between the origins of two neighbouring buttons
_PITCH = BUTTON_SIZE + SPACER


def check_button_index(index: int) -> None:
    """Raise InvalidButtonIndex unless index is an integer in 0..14."""
    if (isinstance(index, bool) or not isinstance(index, numbers.Integral)
            or not 0 <= index < NUM_BUTTONS):
        raise InvalidButtonIndex(
            f"Invalid button index {index!r} (expected 0..{NUM_BUTTONS - 1})")


class PanelLayout:
    """Stateless panel geometry helpers."""

    @staticmethod
    def rect_for(index: int) -> Rect:
        """Pixel rectangle of button *index* within the panel image."""
        check_button_index(index)
        row, col = divmod(index, NUM_COLUMNS)
        return Rect(
            left=PANEL_WIDTH - BUTTON_SIZE - col * _PITCH,
            top=row * _PITCH,
            width=BUTTON_SIZE,
            height=BUTTON_SIZE,
        )

    @staticmethod
    def button_at(x: int, y: int) -> Optional[int]:
        """Button index under panel pixel (x, y), or None for spacers/outside."""
        if not (0 <= x < PANEL_WIDTH and 0 <= y < PANEL_HEIGHT):
            return None
        col_from_left, x_off = divmod(x, _PITCH)
        row, y_off = divmod(y, _PITCH)
        if x_off >= BUTTON_SIZE or y_off >= BUTTON_SIZE:
            return None
        col = NUM_COLUMNS - 1 - col_from_left
        return row * NUM_COLUMNS + col

    @staticmethod
    def fit_panel_image(image: Any) -> Any:
        """Scale and crop *image* to exactly the panel size.

        Order matters: first resize to the panel width (keeping aspect
        ratio), then center-crop whatever still overflows.  An image that
        ends up shorter than the panel is centered on black.
        """
        if image.width != PANEL_WIDTH:
            ratio = image.width / PANEL_WIDTH
            new_height = max(1, int(image.height / ratio))
            log.debug("Panel image %dx%d -> %dx%d",
                      image.width, image.height, PANEL_WIDTH, new_height)
            image = ImageService.resize(image, PANEL_WIDTH, new_height)

        if image.width > PANEL_WIDTH or image.height > PANEL_HEIGHT:
            image = ImageService.crop_center(image, PANEL_WIDTH, PANEL_HEIGHT)

        if image.size != (PANEL_WIDTH, PANEL_HEIGHT):
            image = ImageService.letterbox(image, PANEL_WIDTH, PANEL_HEIGHT)
        return image

    @classmethod
    def tile_panel_image(cls, image: Any) -> List[Any]:
        """Cut a full panel image into 15 button images, index order."""
        panel = cls.fit_panel_image(image)
        if panel.mode != 'RGB':
            panel = panel.convert('RGB')
        return [panel.crop(cls.rect_for(i).box) for i in range(NUM_BUTTONS)]
