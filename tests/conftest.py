"""Shared fixtures: a scripted stand-in for DeviceLink."""
import threading

import pytest

from streamdeck_panel.constants import NUM_BUTTONS
from streamdeck_panel.core.controllers import PanelController
from streamdeck_panel.errors import TransportError


def make_report(pressed=(), marker=0xFF):
    """17-byte input report with the given button indices pressed."""
    states = [1 if i in pressed else 0 for i in range(NUM_BUTTONS)]
    return bytes([marker] + states + [marker])


class FakeLink:
    """Scripted DeviceLink.

    ``reports`` items are bytes (returned by read), None (read timeout) or
    an exception (read fails and the link drops).  When the script runs
    out, ``stop`` is set so run() returns.

    ``connect_errors`` is consumed one item per connect(): None succeeds,
    an exception is raised.
    """

    def __init__(self, reports=(), connect_errors=()):
        self.reports = list(reports)
        self.connect_errors = list(connect_errors)
        self.connected = False
        self.connect_calls = 0
        self.close_calls = 0
        self.writes = []
        self.write_errors = {}   # write number (0-based) -> exception
        self.write_attempts = 0
        self.serial = "AL12345678"
        self.stop = threading.Event()

    @property
    def is_connected(self):
        return self.connected

    def connect(self):
        self.connect_calls += 1
        if self.connect_errors:
            err = self.connect_errors.pop(0)
            if err is not None:
                raise err
        self.connected = True

    def write(self, data):
        n = self.write_attempts
        self.write_attempts += 1
        if not self.connected:
            raise TransportError("Panel not connected")
        if n in self.write_errors:
            raise self.write_errors[n]
        self.writes.append(bytes(data))
        return len(data)

    def read(self, size):
        if not self.reports:
            self.stop.set()
            return None
        item = self.reports.pop(0)
        if isinstance(item, Exception):
            self.connected = False
            raise TransportError(f"USB read failed: {item}")
        return item

    def serial_number(self):
        return self.serial

    def close(self):
        self.close_calls += 1
        self.connected = False


def sync_dispatch(events):
    """Dispatcher that records (index, state) and calls back inline."""
    def dispatch(callback, index, state):
        events.append((index, state))
        callback(index, state)
    return dispatch


@pytest.fixture
def link():
    return FakeLink()


@pytest.fixture
def events():
    return []


@pytest.fixture
def deck(link, events):
    """Connected controller on a FakeLink with the initial clear discarded."""
    controller = PanelController(link=link, dispatch=sync_dispatch(events))
    link.writes.clear()
    link.write_attempts = 0
    return controller
