"""
PanelController - button fills and the button event loop.

Write path:  fill_*() → ProtocolEncoder → DeviceLink.write (page 1, page 2)
Read path:   run() → DeviceLink.read → debounce against cached states
             → event callback (one background thread per transition)

One lock per controller serializes the cached button states, the
callback references, and each page 1 / page 2 write pair.  Callbacks are
never invoked while the lock is held, and never on the event loop thread.
"""
from __future__ import annotations

import logging
import numbers
import threading
from typing import Any, Callable, List, Optional

from ..constants import (
    BUTTON_SIZE,
    DEFAULT_READ_TIMEOUT_MS,
    INPUT_REPORT_SIZE,
    NUM_BUTTONS,
)
from ..device_usb import DeviceLink
from ..errors import InvalidColorValue, LockOrStateError, StreamDeckError, TransportError
from ..layout import PanelLayout, check_button_index
from ..protocol import ProtocolEncoder
from ..services.image import ImageService
from .models import ButtonCallback, ButtonState, TextButton

log = logging.getLogger(__name__)

Dispatcher = Callable[[ButtonCallback, int, ButtonState], None]


def check_rgb(value: int) -> None:
    """Raise InvalidColorValue unless value is an 8-bit channel."""
    if (isinstance(value, bool) or not isinstance(value, numbers.Integral)
            or not 0 <= value <= 255):
        raise InvalidColorValue(f"Invalid color value {value!r} (expected 0..255)")


def _run_callback(callback: ButtonCallback, index: int, state: ButtonState) -> None:
    try:
        callback(index, state)
    except Exception:
        log.exception("Button callback failed (button %d, %s)", index, state)


def _run_connect_callback(callback: Callable[..., None], *args: Any) -> None:
    try:
        callback(*args)
    except Exception:
        log.exception("Connection callback failed")


def spawn_dispatch(callback: ButtonCallback, index: int, state: ButtonState) -> None:
    """Fire-and-forget: run the callback on its own daemon thread.

    Transitions from one report are spawned in ascending index order, but
    the callbacks themselves may run in any order.
    """
    threading.Thread(
        target=_run_callback, args=(callback, index, state),
        name=f"panel-button-{index}", daemon=True,
    ).start()


class PanelController:
    """Drives one 15-key panel: fills, clears, and button events.

    Args:
        serial: Only connect to the panel with this serial number.
        link: Pre-built DeviceLink (``serial``/``read_timeout_ms`` are
            then ignored).
        reconnect_delay: Seconds to wait after a failed read before
            reconnecting. 0 retries immediately.
        read_timeout_ms: USB read timeout for run(). 0 blocks until the
            panel reports; a positive value bounds how long a stop
            request can go unnoticed.
        dispatch: How callbacks are delivered (default: one daemon
            thread per transition).

    Raises:
        NoDeviceFound, SerialMismatch, EndpointNotFound, TransportError:
            From the initial connect or the initial clear.
    """

    def __init__(self, serial: Optional[str] = None, *,
                 link: Optional[DeviceLink] = None,
                 reconnect_delay: float = 0.0,
                 read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS,
                 dispatch: Optional[Dispatcher] = None):
        if link is None:
            link = DeviceLink(serial=serial, read_timeout_ms=read_timeout_ms)
        self._link = link
        self.reconnect_delay = reconnect_delay
        self._dispatch = dispatch or spawn_dispatch
        self._lock = threading.Lock()
        self._button_states: List[ButtonState] = [ButtonState.RELEASED] * NUM_BUTTONS
        self._event_cb: Optional[ButtonCallback] = None
        self._on_connect: Optional[Callable[[], None]] = None
        self._on_connect_failure: Optional[Callable[[Exception], None]] = None
        self._running = False
        self._closed = False

        self._link.connect()
        self.clear_all()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── State ────────────────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self._link.is_connected

    @property
    def button_states(self) -> List[ButtonState]:
        """Snapshot of the last known state of every button."""
        with self._lock:
            return list(self._button_states)

    def serial_number(self) -> Optional[str]:
        return self._link.serial_number()

    # ── Callbacks ────────────────────────────────────────────────────

    def set_event_callback(self, callback: Optional[ButtonCallback]) -> None:
        """Set the (index, state) callback for button transitions.

        Safe from any thread, including from inside a callback; takes
        effect for the next report.
        """
        with self._lock:
            self._event_cb = callback

    def on_connect(self, callback: Optional[Callable[[], None]]) -> None:
        """Callback run by the event loop after each successful reconnect."""
        with self._lock:
            self._on_connect = callback

    def on_connect_failure(self, callback: Optional[Callable[[Exception], None]]) -> None:
        """Callback run with the error when a reconnect fails, before run() raises."""
        with self._lock:
            self._on_connect_failure = callback

    # ── Fills ────────────────────────────────────────────────────────

    def fill_color(self, index: int, r: int, g: int, b: int) -> None:
        """Fill one button with a solid color."""
        check_button_index(index)
        for value in (r, g, b):
            check_rgb(value)
        self.fill_image(index, ImageService.solid_color(
            int(r), int(g), int(b), BUTTON_SIZE, BUTTON_SIZE))

    def fill_image(self, index: int, image: Any) -> None:
        """Show a PIL image on one button. Other sizes are resized to 72x72.

        Raises:
            InvalidButtonIndex: Before anything is written.
            LockOrStateError: The controller has been closed.
            TransportError: Page 1 or page 2 write failed.  A page 1
                failure means page 2 is never sent.
        """
        check_button_index(index)
        if tuple(image.size) != (BUTTON_SIZE, BUTTON_SIZE):
            image = ImageService.resize(image, BUTTON_SIZE, BUTTON_SIZE)
        page1, page2 = ProtocolEncoder.encode(index, image)

        with self._lock:
            if self._closed:
                raise LockOrStateError("Panel controller is closed")
            self._link.write(page1)
            self._link.write(page2)

    def fill_image_from_file(self, index: int, path: str) -> None:
        check_button_index(index)
        self.fill_image(index, ImageService.load(path))

    def fill_panel_image(self, image: Any) -> None:
        """Spread one image across the whole panel.

        The image is resized to the panel width, center-cropped, and cut
        into button tiles.  Buttons are written 0..14; on error the
        buttons already written keep their new content.
        """
        for index, tile in enumerate(PanelLayout.tile_panel_image(image)):
            self.fill_image(index, tile)

    def fill_panel_from_file(self, path: str) -> None:
        self.fill_panel_image(ImageService.load(path))

    def write_text(self, index: int, text_button: TextButton) -> None:
        """Render lines of text on one button.

        Fitting the lines on the 72x72 face is up to the caller.
        """
        check_button_index(index)
        image = ImageService.render_text(text_button, BUTTON_SIZE, BUTTON_SIZE)
        self.fill_image(index, image)

    def clear_button(self, index: int) -> None:
        """Fill one button with black."""
        self.fill_color(index, 0, 0, 0)

    def clear_all(self) -> None:
        """Fill every button with black, 14 down to 0."""
        for index in range(NUM_BUTTONS - 1, -1, -1):
            self.clear_button(index)

    # ── Event loop ───────────────────────────────────────────────────

    def run(self, stop: Optional[threading.Event] = None) -> None:
        """Read button reports until *stop* is set or the controller is closed.

        Blocks the calling thread.  A failed read drops the link; the next
        iteration reconnects (after ``reconnect_delay``) and carries on.
        The stop event is checked between reports, not during a read.
        close() from another thread ends the loop once the pending read
        fails; the panel is not reclaimed.

        Raises:
            LockOrStateError: run() is already active on this controller.
            StreamDeckError: A reconnect attempt failed.
        """
        if stop is None:
            stop = threading.Event()

        with self._lock:
            if self._running:
                raise LockOrStateError("Event loop is already running")
            self._running = True

        log.debug("Event loop started")
        try:
            while not stop.is_set():
                if not self._link.is_connected:
                    if not self._reconnect():
                        break
                    continue

                try:
                    report = self._link.read(INPUT_REPORT_SIZE)
                except TransportError as e:
                    if self._is_closed():
                        break
                    log.warning("Panel read failed, reconnecting: %s", e)
                    if self.reconnect_delay > 0:
                        stop.wait(self.reconnect_delay)
                    continue

                if report is not None:
                    self._handle_report(report)
        finally:
            with self._lock:
                self._running = False
            log.debug("Event loop stopped")

    def _is_closed(self) -> bool:
        with self._lock:
            return self._closed

    def _reconnect(self) -> bool:
        """Reconnect the link.  Returns False if the controller was closed."""
        try:
            with self._lock:
                if self._closed:
                    return False
                self._link.connect()
        except StreamDeckError as e:
            log.warning("Reconnect failed: %s", e)
            with self._lock:
                on_failure = self._on_connect_failure
            if on_failure is not None:
                _run_connect_callback(on_failure, e)
            raise

        log.info("Panel reconnected")
        with self._lock:
            on_connect = self._on_connect
        if on_connect is not None:
            _run_connect_callback(on_connect)
        return True

    def _handle_report(self, report: bytes) -> None:
        """Debounce one input report and dispatch its transitions."""
        try:
            states = ProtocolEncoder.parse_input_report(report)
        except TransportError as e:
            log.warning("Skipping input report: %s", e)
            return

        changes = []
        with self._lock:
            for index, state in enumerate(states):
                if self._button_states[index] != state:
                    self._button_states[index] = state
                    changes.append((index, state))
            callback = self._event_cb

        for index, state in changes:
            log.debug("Button %d %s", index, state)
            if callback is not None:
                self._dispatch(callback, index, state)

    # ── Shutdown ─────────────────────────────────────────────────────

    def close(self, clear: bool = True) -> None:
        """Blank the panel (unless *clear* is False), then release the USB device.

        Fills are refused afterwards and a running event loop exits
        instead of reconnecting.  Closing twice is harmless.
        """
        if clear and not self._is_closed() and self._link.is_connected:
            try:
                self.clear_all()
            except TransportError as e:
                log.warning("Could not clear panel before closing: %s", e)
        with self._lock:
            self._closed = True
        self._link.close()
