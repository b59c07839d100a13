"""
streamdeck-panel - driver for the 15-key LED display panel

Treats the panel's 5x3 keys as 72x72 pixel surfaces and reports key
presses/releases as callbacks.  USB access via pyusb, imaging via Pillow.

Usage:
    # As a library
    from streamdeck_panel import PanelController, ButtonState

    deck = PanelController()
    deck.fill_color(0, 255, 0, 0)
    deck.set_event_callback(lambda i, s: print(i, s))
    deck.run()                    # blocks; pass a threading.Event to stop

    # Command line
    streamdeck-panel list         # attached panels
    streamdeck-panel monitor      # print key events
"""

from streamdeck_panel.__version__ import __version__
from streamdeck_panel.constants import (
    BUTTON_SIZE,
    NUM_BUTTONS,
    PANEL_HEIGHT,
    PANEL_WIDTH,
    PRODUCT_ID,
    VENDOR_ID,
)
from streamdeck_panel.core.controllers import PanelController
from streamdeck_panel.core.models import ButtonState, Rect, TextButton, TextLine
from streamdeck_panel.device_usb import DeviceLink, list_serial_numbers
from streamdeck_panel.errors import (
    EndpointNotFound,
    InvalidButtonIndex,
    InvalidColorValue,
    InvalidImageSize,
    LockOrStateError,
    NoDeviceFound,
    SerialMismatch,
    StreamDeckError,
    TransportError,
)
from streamdeck_panel.layout import PanelLayout
from streamdeck_panel.protocol import ProtocolEncoder

__all__ = [
    # Version
    "__version__",
    # Geometry / USB ids
    "BUTTON_SIZE",
    "NUM_BUTTONS",
    "PANEL_HEIGHT",
    "PANEL_WIDTH",
    "PRODUCT_ID",
    "VENDOR_ID",
    # Core
    "PanelController",
    "DeviceLink",
    "list_serial_numbers",
    "PanelLayout",
    "ProtocolEncoder",
    # Models
    "ButtonState",
    "Rect",
    "TextButton",
    "TextLine",
    # Errors
    "StreamDeckError",
    "NoDeviceFound",
    "EndpointNotFound",
    "SerialMismatch",
    "TransportError",
    "InvalidButtonIndex",
    "InvalidColorValue",
    "InvalidImageSize",
    "LockOrStateError",
]
