"""Exception hierarchy for streamdeck-panel.

Every error raised by this package derives from :class:`StreamDeckError`.
pyusb's ``USBError`` never escapes the device layer; it is wrapped in
:class:`TransportError`.
"""


class StreamDeckError(Exception):
    """Base class for all panel errors."""


# -- Connection ------------------------------------------------------------

class NoDeviceFound(StreamDeckError):
    """No USB device matches the vendor/product id."""


class EndpointNotFound(StreamDeckError):
    """The device does not expose both an IN and an OUT endpoint."""


class SerialMismatch(StreamDeckError):
    """Panels are attached, but none carries the requested serial number."""


class TransportError(StreamDeckError):
    """A USB transfer failed, or the link is not connected."""


# -- Validation ------------------------------------------------------------

class InvalidButtonIndex(StreamDeckError, ValueError):
    """Button index outside 0..14."""


class InvalidColorValue(StreamDeckError, ValueError):
    """Color channel outside 0..255."""


class InvalidImageSize(StreamDeckError, ValueError):
    """Image handed to the encoder is not exactly one button in size."""


class LockOrStateError(StreamDeckError, RuntimeError):
    """Controller used in a state it does not support."""
