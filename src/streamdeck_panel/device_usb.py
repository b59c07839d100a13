"""
USB link to the panel via pyusb (libusb backend).

Owns the device handle, the claimed interface and the IN/OUT endpoints.
The link is either connected (endpoints valid) or disconnected (all
handles dropped); nothing in between is observable.

A failed read is treated as an authoritative disconnect: the link flips
to disconnected *before* the error is raised, so the event loop sees the
state change immediately and reconnects instead of retrying a dead handle.
A failed write only raises; it does not change the connection state.

Linux: the kernel usbhid driver claims the panel on plug-in.  connect()
detaches it from every interface before claiming.  Without a udev rule
granting access, libusb needs root.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional

import usb.core
import usb.util
from usb.core import USBError, USBTimeoutError

from .constants import (
    DEFAULT_READ_TIMEOUT_MS,
    DEFAULT_WRITE_TIMEOUT_MS,
    PRODUCT_ID,
    VENDOR_ID,
)
from .errors import EndpointNotFound, NoDeviceFound, SerialMismatch, TransportError

log = logging.getLogger(__name__)

# The panel exposes interrupt endpoints on its HID interface; plain bulk
# endpoints are accepted too.  pyusb picks the transfer type per endpoint.
_TRANSFER_TYPES = (usb.util.ENDPOINT_TYPE_BULK, usb.util.ENDPOINT_TYPE_INTR)


def _read_serial(dev: Any) -> Optional[str]:
    """Serial number string descriptor, None if the device has none."""
    if not dev.iSerialNumber:
        return None
    try:
        return usb.util.get_string(dev, dev.iSerialNumber)
    except (USBError, ValueError) as e:
        raise TransportError(
            f"Cannot read serial number of {dev.idVendor:04x}:{dev.idProduct:04x}: {e}"
        ) from e


def list_serial_numbers(vendor_id: int = VENDOR_ID,
                        product_id: int = PRODUCT_ID) -> List[Optional[str]]:
    """Serial numbers of every attached panel, in enumeration order."""
    devices = usb.core.find(find_all=True, idVendor=vendor_id, idProduct=product_id)
    return [_read_serial(dev) for dev in devices]


class DeviceLink:
    """Connection to one panel over USB.

    All state changes happen under one internal lock.  Transfers run
    outside the lock on a snapshot of the endpoint, so a read blocked in
    the event loop never holds up a concurrent write.
    """

    def __init__(self, vendor_id: int = VENDOR_ID, product_id: int = PRODUCT_ID,
                 serial: Optional[str] = None,
                 read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS,
                 write_timeout_ms: int = DEFAULT_WRITE_TIMEOUT_MS):
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.serial = serial
        self.read_timeout_ms = read_timeout_ms
        self.write_timeout_ms = write_timeout_ms
        self._lock = threading.Lock()
        self._dev = None
        self._intf_number: Optional[int] = None
        self._ep_in = None
        self._ep_out = None
        self._connected = False

    def __repr__(self) -> str:
        state = "connected" if self._connected else "disconnected"
        return f"<DeviceLink {self.vendor_id:04x}:{self.product_id:04x} {state}>"

    # -- State -------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def _drop_session(self, ep_in: Any) -> None:
        """Release the handles behind a failed read, unless a newer session replaced them."""
        with self._lock:
            if self._ep_in is ep_in:
                self._release()

    # -- Connect -----------------------------------------------------------

    def _find(self) -> Any:
        """First matching device (filtered by serial if one was given)."""
        devices = list(usb.core.find(
            find_all=True, idVendor=self.vendor_id, idProduct=self.product_id))
        if not devices:
            raise NoDeviceFound(
                f"USB device {self.vendor_id:04x}:{self.product_id:04x} not found")

        if self.serial is None:
            if len(devices) > 1:
                log.info("%d panels attached, using the first", len(devices))
            return devices[0]

        for dev in devices:
            if _read_serial(dev) == self.serial:
                return dev
        raise SerialMismatch(f"No panel found with serial number {self.serial}")

    @staticmethod
    def _detach_kernel_drivers(dev: Any) -> None:
        """Detach whichever OS driver already owns the interfaces."""
        cfg = dev.get_active_configuration()
        for i in range(cfg.bNumInterfaces):
            try:
                if dev.is_kernel_driver_active(i):
                    dev.detach_kernel_driver(i)
                    log.debug("Detached kernel driver from interface %d", i)
            except NotImplementedError:
                # Backend/platform without kernel driver control (macOS, Windows)
                return

    @staticmethod
    def _find_endpoints(dev: Any):
        """Walk configurations/interfaces/endpoints for one IN and one OUT.

        Returns (interface_number, ep_in, ep_out).
        """
        ep_in = ep_out = None
        intf_number = None
        for cfg in dev:
            for intf in cfg:
                for ep in intf:
                    if usb.util.endpoint_type(ep.bmAttributes) not in _TRANSFER_TYPES:
                        continue
                    direction = usb.util.endpoint_direction(ep.bEndpointAddress)
                    if direction == usb.util.ENDPOINT_IN and ep_in is None:
                        ep_in = ep
                        intf_number = intf.bInterfaceNumber
                    elif direction == usb.util.ENDPOINT_OUT and ep_out is None:
                        ep_out = ep
        if ep_in is None or ep_out is None:
            raise EndpointNotFound(
                "Could not find IN/OUT endpoints "
                f"(IN={'ok' if ep_in is not None else 'missing'}, "
                f"OUT={'ok' if ep_out is not None else 'missing'})")
        return intf_number, ep_in, ep_out

    def connect(self) -> None:
        """Find, detach, configure and claim the panel.

        Raises:
            NoDeviceFound: No device with this vendor/product id.
            SerialMismatch: Devices present, none with the requested serial.
            EndpointNotFound: Device lacks an IN or OUT endpoint.
            TransportError: Any libusb failure while claiming.
        """
        with self._lock:
            self._release()
            dev = self._find()
            try:
                self._detach_kernel_drivers(dev)
                dev.set_configuration()
                intf_number, ep_in, ep_out = self._find_endpoints(dev)
                usb.util.claim_interface(dev, intf_number)
            except EndpointNotFound:
                usb.util.dispose_resources(dev)
                raise
            except USBError as e:
                usb.util.dispose_resources(dev)
                raise TransportError(f"Failed to claim panel: {e}") from e

            self._dev = dev
            self._intf_number = intf_number
            self._ep_in = ep_in
            self._ep_out = ep_out
            self._connected = True

        log.info("Connected to panel %04x:%04x (EP IN=0x%02x, EP OUT=0x%02x)",
                 self.vendor_id, self.product_id,
                 ep_in.bEndpointAddress, ep_out.bEndpointAddress)

    # -- Transfers ---------------------------------------------------------

    def write(self, data: bytes) -> int:
        """Write one message to the OUT endpoint. Returns bytes written.

        Raises:
            TransportError: Not connected, or the transfer failed.
        """
        with self._lock:
            if not self._connected:
                raise TransportError("Panel not connected")
            ep_out = self._ep_out

        try:
            return ep_out.write(data, timeout=self.write_timeout_ms)
        except USBError as e:
            raise TransportError(f"USB write failed ({len(data)} bytes): {e}") from e

    def read(self, size: int) -> Optional[bytes]:
        """Blocking read of one report from the IN endpoint.

        Returns None if a positive read timeout expired with no data; the
        link stays connected in that case.

        Raises:
            TransportError: Not connected, or the transfer failed.  The link is
                already disconnected, with its handles released, when
                this is raised.
        """
        with self._lock:
            if not self._connected:
                raise TransportError("Panel not connected")
            ep_in = self._ep_in

        try:
            return bytes(ep_in.read(size, timeout=self.read_timeout_ms))
        except USBTimeoutError:
            if self.read_timeout_ms > 0:
                return None
            self._drop_session(ep_in)
            raise TransportError("USB read timed out") from None
        except USBError as e:
            self._drop_session(ep_in)
            raise TransportError(f"USB read failed: {e}") from e

    # -- Identity ----------------------------------------------------------

    def serial_number(self) -> Optional[str]:
        """Serial number of the connected panel, or of the first match."""
        with self._lock:
            dev = self._dev if self._connected else None
        if dev is None:
            dev = self._find()
        return _read_serial(dev)

    # -- Close -------------------------------------------------------------

    def _release(self) -> None:
        """Drop handles left over from a dead session (lock held)."""
        if self._dev is not None:
            try:
                usb.util.dispose_resources(self._dev)
            except USBError as e:
                log.debug("Ignoring dispose error on stale handle: %s", e)
        self._dev = None
        self._intf_number = None
        self._ep_in = None
        self._ep_out = None
        self._connected = False

    def close(self) -> None:
        """Release the interface, then the device resources.

        No-op if no device is held.  Stops at, and reports, the first failure.
        """
        with self._lock:
            if self._dev is None:
                return
            dev, intf_number = self._dev, self._intf_number
            self._dev = None
            self._intf_number = None
            self._ep_in = None
            self._ep_out = None
            self._connected = False

            try:
                usb.util.release_interface(dev, intf_number)
                usb.util.dispose_resources(dev)
            except USBError as e:
                raise TransportError(f"Failed to close panel: {e}") from e
        log.info("Panel closed")

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *exc):
        self.close()
