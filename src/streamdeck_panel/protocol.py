"""
Wire protocol for the 15-key panel.

One button fill is two OUT messages sent back to back.  The device pairs
them by position, so page 2 must directly follow page 1 for the same key.

Page 1 (70-byte header + 2583 pixels = 7819 bytes)::

    [0]     0x02              report id
    [1]     0x01              command: write image
    [2]     0x01              page number
    [3]     0x00
    [4]     0x00              last-page flag
    [5]     button + 1        1-based key number
    [6:16]  zeros
    [16:70] BMP file + info header (72x72, 24 bpp, 15552-byte bitmap)

Page 2 (18-byte header + 2601 pixels = 7821 bytes)::

    [0:6]   02 01 02 00 01 <button + 1>
    [6:18]  zeros

Pixel data is the 72x72 bitmap scanned rows top to bottom, columns
right to left, each pixel as (R, B, G).

Input reports are 17 bytes: a framing byte, one state byte per key
(0 = released) in device order, and a trailing framing byte.
"""
from __future__ import annotations

import logging
from typing import Any, List, Tuple

from .constants import (
    BUTTON_SIZE,
    BYTES_PER_PIXEL,
    HEADER_INDEX_OFFSET,
    NUM_BUTTONS,
    PAGE1_HEADER_SIZE,
    PAGE1_PIXELS,
    PAGE2_HEADER_SIZE,
)
from .core.models import ButtonState
from .errors import InvalidImageSize, TransportError
from .layout import check_button_index
from .services.image import ImageService

log = logging.getLogger(__name__)

_PAGE1_HEADER = bytes([
    0x02, 0x01, 0x01, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    # BITMAPFILEHEADER: "BM", file size 0x3CF6, reserved, pixel offset 0x36
    0x42, 0x4D, 0xF6, 0x3C, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    0x36, 0x00, 0x00, 0x00,
    # BITMAPINFOHEADER: size 40, 72 x 72, 1 plane, 24 bpp, BI_RGB,
    # image size 0x3CC0, 3780 px/m both axes, no palette
    0x28, 0x00, 0x00, 0x00, 0x48, 0x00, 0x00, 0x00, 0x48, 0x00,
    0x00, 0x00, 0x01, 0x00, 0x18, 0x00, 0x00, 0x00, 0x00, 0x00,
    0xC0, 0x3C, 0x00, 0x00, 0xC4, 0x0E, 0x00, 0x00, 0xC4, 0x0E,
    0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
])

_PAGE2_HEADER = bytes([
    0x02, 0x01, 0x02, 0x00, 0x01, 0x00, 0x00, 0x00, 0x00, 0x00,
    0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
])

_PAGE1_PAYLOAD_SIZE = PAGE1_PIXELS * BYTES_PER_PIXEL  # 7749

# Wire channel order: R, B, G
_WIRE_CHANNELS = [0, 2, 1]


class ProtocolEncoder:
    """Pure encoder/decoder for the panel wire format. No I/O."""

    @staticmethod
    def build_page1_header(index: int) -> bytes:
        check_button_index(index)
        header = bytearray(_PAGE1_HEADER)
        header[HEADER_INDEX_OFFSET] = index + 1
        return bytes(header)

    @staticmethod
    def build_page2_header(index: int) -> bytes:
        check_button_index(index)
        header = bytearray(_PAGE2_HEADER)
        header[HEADER_INDEX_OFFSET] = index + 1
        return bytes(header)

    @staticmethod
    def encode_pixels(image: Any) -> bytes:
        """Reorder a 72x72 image into the 15552-byte wire bitmap.

        Raises:
            InvalidImageSize: If the image is not exactly 72x72.
        """
        if tuple(image.size) != (BUTTON_SIZE, BUTTON_SIZE):
            raise InvalidImageSize(
                f"Button image must be {BUTTON_SIZE}x{BUTTON_SIZE}, "
                f"got {image.size[0]}x{image.size[1]}")
        arr = ImageService.to_array(image)
        wire = arr[:, ::-1, :][:, :, _WIRE_CHANNELS]
        return wire.tobytes()

    @classmethod
    def encode(cls, index: int, image: Any) -> Tuple[bytes, bytes]:
        """Build the (page1, page2) message pair for one button fill."""
        check_button_index(index)
        bitmap = cls.encode_pixels(image)
        page1 = cls.build_page1_header(index) + bitmap[:_PAGE1_PAYLOAD_SIZE]
        page2 = cls.build_page2_header(index) + bitmap[_PAGE1_PAYLOAD_SIZE:]
        log.debug("Encoded button %d: page1=%d bytes, page2=%d bytes",
                  index, len(page1), len(page2))
        return page1, page2

    @staticmethod
    def decode(page1: bytes, page2: bytes) -> Tuple[int, Any]:
        """Inverse of encode(): recover (index, 72x72 RGB image).

        Used for diagnostics and tests; the device never sends pixels back.
        """
        import numpy as np

        index = page1[HEADER_INDEX_OFFSET] - 1
        bitmap = page1[PAGE1_HEADER_SIZE:] + page2[PAGE2_HEADER_SIZE:]
        arr = np.frombuffer(bitmap, dtype=np.uint8).reshape(
            BUTTON_SIZE, BUTTON_SIZE, BYTES_PER_PIXEL)
        rgb = arr[:, ::-1, :][:, :, _WIRE_CHANNELS]
        return index, ImageService.from_array(rgb)

    @staticmethod
    def parse_input_report(report: bytes) -> List[ButtonState]:
        """Strip the framing bytes and translate the 15 key states.

        Raises:
            TransportError: If the report does not hold 15 state bytes.
        """
        states = bytes(report)[1:-1]
        if len(states) != NUM_BUTTONS:
            raise TransportError(
                f"Malformed input report: {len(report)} bytes "
                f"(expected {NUM_BUTTONS + 2})")
        return [ButtonState.from_byte(b) for b in states]
