"""PanelController tests against a scripted FakeLink (no USB hardware)."""
import threading
import time

import numpy as np
import pytest
from PIL import Image

from conftest import FakeLink, make_report, sync_dispatch
from streamdeck_panel.core.controllers import PanelController, spawn_dispatch
from streamdeck_panel.core.models import ButtonState, TextButton, TextLine
from streamdeck_panel.errors import (
    InvalidButtonIndex,
    InvalidColorValue,
    LockOrStateError,
    NoDeviceFound,
    SerialMismatch,
    TransportError,
)
from streamdeck_panel.layout import PanelLayout
from streamdeck_panel.protocol import ProtocolEncoder

PRESSED = ButtonState.PRESSED
RELEASED = ButtonState.RELEASED


def _pairs(writes):
    """Group raw writes into (page1, page2) pairs."""
    assert len(writes) % 2 == 0
    return [(writes[i], writes[i + 1]) for i in range(0, len(writes), 2)]


def _decoded(writes):
    return [ProtocolEncoder.decode(p1, p2) for p1, p2 in _pairs(writes)]


# =========================================================================
# Construction
# =========================================================================

class TestConstruct:

    def test_connects_and_clears_all(self):
        link = FakeLink()
        deck = PanelController(link=link)
        assert link.connect_calls == 1
        assert deck.is_connected
        assert len(link.writes) == 30
        indices = [idx for idx, _ in _decoded(link.writes)]
        assert indices == list(range(14, -1, -1))
        for _, img in _decoded(link.writes):
            assert img.getcolors() == [(72 * 72, (0, 0, 0))]

    def test_initial_states_released(self, deck):
        assert deck.button_states == [RELEASED] * 15

    def test_connect_error_propagates(self):
        link = FakeLink(connect_errors=[NoDeviceFound("none")])
        with pytest.raises(NoDeviceFound):
            PanelController(link=link)
        assert link.writes == []

    def test_serial_mismatch_propagates(self):
        link = FakeLink(connect_errors=[SerialMismatch("wrong panel")])
        with pytest.raises(SerialMismatch):
            PanelController(link=link)

    def test_serial_number(self, deck, link):
        assert deck.serial_number() == link.serial

    def test_context_manager_closes(self, link):
        with PanelController(link=link) as deck:
            assert deck.is_connected
        assert link.close_calls == 1


# =========================================================================
# Fills
# =========================================================================

class TestFillColor:

    def test_writes_page1_then_page2(self, deck, link):
        deck.fill_color(3, 255, 128, 0)
        assert len(link.writes) == 2
        page1, page2 = link.writes
        assert page1[:3] == bytes([0x02, 0x01, 0x01])
        assert page2[:3] == bytes([0x02, 0x01, 0x02])
        assert page1[5] == page2[5] == 4

    def test_solid_color_on_the_wire(self, deck, link):
        deck.fill_color(0, 10, 20, 30)
        [(index, img)] = _decoded(link.writes)
        assert index == 0
        assert img.getcolors() == [(72 * 72, (10, 20, 30))]

    @pytest.mark.parametrize("rgb", [(-1, 0, 0), (0, 256, 0), (0, 0, 999)])
    def test_invalid_color_writes_nothing(self, deck, link, rgb):
        with pytest.raises(InvalidColorValue):
            deck.fill_color(0, *rgb)
        assert link.write_attempts == 0

    @pytest.mark.parametrize("index", [-1, 15])
    def test_invalid_index_writes_nothing(self, deck, link, index):
        with pytest.raises(InvalidButtonIndex):
            deck.fill_color(index, 0, 0, 0)
        with pytest.raises(InvalidButtonIndex):
            deck.fill_image(index, Image.new('RGB', (72, 72)))
        assert link.write_attempts == 0

    def test_index_checked_before_color(self, deck):
        with pytest.raises(InvalidButtonIndex):
            deck.fill_color(15, 300, 0, 0)

    def test_numpy_color_values_accepted(self, deck, link):
        deck.fill_color(np.int64(2), np.uint8(10), np.uint8(20), np.int32(30))
        [(index, img)] = _decoded(link.writes)
        assert index == 2
        assert img.getcolors() == [(72 * 72, (10, 20, 30))]

    @pytest.mark.parametrize("index", [True, 3.5])
    def test_non_integer_index_writes_nothing(self, deck, link, index):
        with pytest.raises(InvalidButtonIndex):
            deck.fill_color(index, 0, 0, 0)
        assert link.write_attempts == 0

    @pytest.mark.parametrize("value", [True, 1.5, "10"])
    def test_non_integer_color_writes_nothing(self, deck, link, value):
        with pytest.raises(InvalidColorValue):
            deck.fill_color(0, value, 0, 0)
        assert link.write_attempts == 0


class TestFillImage:

    def test_exact_size_sent_unchanged(self, deck, link):
        img = Image.new('RGB', (72, 72), (1, 2, 3))
        img.putpixel((5, 6), (200, 100, 50))
        deck.fill_image(9, img)
        [(index, decoded)] = _decoded(link.writes)
        assert index == 9
        assert decoded.tobytes() == img.tobytes()

    def test_other_sizes_resized(self, deck, link):
        deck.fill_image(1, Image.new('RGB', (300, 200), (0, 255, 0)))
        [(_, decoded)] = _decoded(link.writes)
        assert decoded.size == (72, 72)
        assert decoded.getpixel((36, 36))[1] > 200

    def test_page1_failure_skips_page2(self, deck, link):
        link.write_errors[0] = TransportError("stall")
        with pytest.raises(TransportError):
            deck.fill_color(0, 1, 1, 1)
        assert link.write_attempts == 1
        assert link.writes == []

    def test_page2_failure_raises(self, deck, link):
        link.write_errors[1] = TransportError("stall")
        with pytest.raises(TransportError):
            deck.fill_color(0, 1, 1, 1)
        assert link.write_attempts == 2

    def test_write_failure_keeps_link_connected(self, deck, link):
        link.write_errors[0] = TransportError("stall")
        with pytest.raises(TransportError):
            deck.fill_color(0, 1, 1, 1)
        assert deck.is_connected

    def test_from_file(self, deck, link, tmp_path):
        path = tmp_path / "icon.png"
        Image.new('RGB', (72, 72), (9, 8, 7)).save(path)
        deck.fill_image_from_file(2, str(path))
        [(index, decoded)] = _decoded(link.writes)
        assert index == 2
        assert decoded.getcolors() == [(72 * 72, (9, 8, 7))]

    def test_fill_pairs_not_interleaved(self, deck, link):
        """Concurrent fills never split a page 1 / page 2 pair."""
        def worker(i):
            for _ in range(5):
                deck.fill_color(i, i * 10, 0, 0)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for page1, page2 in _pairs(link.writes):
            assert page1[2] == 0x01 and page2[2] == 0x02
            assert page1[5] == page2[5]


class TestFillPanel:

    def _panel(self):
        img = Image.new('RGB', (436, 254))
        px = img.load()
        for y in range(254):
            for x in range(436):
                px[x, y] = (x % 256, y % 256, (x + y) % 256)
        return img

    def test_matches_per_button_fills(self, link):
        panel = self._panel()
        deck = PanelController(link=link)
        link.writes.clear()
        deck.fill_panel_image(panel)
        panel_writes = list(link.writes)

        link.writes.clear()
        for i in range(15):
            deck.fill_image(i, panel.crop(PanelLayout.rect_for(i).box))
        assert panel_writes == link.writes

    def test_buttons_written_in_order(self, deck, link):
        deck.fill_panel_image(self._panel())
        assert [idx for idx, _ in _decoded(link.writes)] == list(range(15))

    def test_partial_fill_on_error(self, deck, link):
        link.write_errors[6] = TransportError("gone")
        with pytest.raises(TransportError):
            deck.fill_panel_image(self._panel())
        assert [idx for idx, _ in _decoded(link.writes)] == [0, 1, 2]

    def test_from_file(self, deck, link, tmp_path):
        path = tmp_path / "wall.png"
        self._panel().save(path)
        deck.fill_panel_from_file(str(path))
        assert len(link.writes) == 30


class TestTextAndClear:

    def test_write_text_draws_on_background(self, deck, link):
        button = TextButton(
            lines=[TextLine(text="Hi", pos_x=4, pos_y=50, font_size=30,
                            font_color=(255, 255, 255))],
            bg_color=(0, 0, 128),
        )
        deck.write_text(7, button)
        [(index, img)] = _decoded(link.writes)
        assert index == 7
        colors = {c for _, c in img.getcolors(72 * 72)}
        assert (0, 0, 128) in colors
        assert len(colors) > 1

    def test_write_text_bad_index(self, deck, link):
        with pytest.raises(InvalidButtonIndex):
            deck.write_text(15, TextButton())
        assert link.write_attempts == 0

    def test_clear_button(self, deck, link):
        deck.clear_button(4)
        [(index, img)] = _decoded(link.writes)
        assert index == 4
        assert img.getcolors() == [(72 * 72, (0, 0, 0))]

    def test_clear_all_descending(self, deck, link):
        deck.clear_all()
        assert [idx for idx, _ in _decoded(link.writes)] == list(range(14, -1, -1))

    def test_close_clears_then_closes(self, deck, link):
        deck.close()
        assert len(link.writes) == 30
        assert link.close_calls == 1

    def test_close_without_clear(self, deck, link):
        deck.close(clear=False)
        assert link.writes == []
        assert link.close_calls == 1

    def test_close_when_clear_fails(self, deck, link):
        link.write_errors[0] = TransportError("gone")
        deck.close()
        assert link.close_calls == 1

    def test_fill_after_close_refused(self, deck, link):
        deck.close(clear=False)
        with pytest.raises(LockOrStateError):
            deck.fill_color(0, 255, 0, 0)
        assert link.write_attempts == 0

    def test_close_twice_clears_once(self, deck, link):
        deck.close()
        deck.close()
        assert len(link.writes) == 30
        assert link.close_calls == 2


# =========================================================================
# Event loop
# =========================================================================

def _run(deck, link):
    deck.run(link.stop)


class TestEventLoop:

    def test_all_released_fires_nothing(self, deck, link, events):
        deck.set_event_callback(lambda i, s: None)
        link.reports = [make_report()]
        _run(deck, link)
        assert events == []

    def test_single_press(self, deck, link, events):
        received = []
        deck.set_event_callback(lambda i, s: received.append((i, s)))
        link.reports = [make_report(), make_report(pressed={3})]
        _run(deck, link)
        assert received == [(3, PRESSED)]
        assert deck.button_states[3] is PRESSED

    def test_repeated_reports_debounced(self, deck, link, events):
        deck.set_event_callback(lambda i, s: None)
        link.reports = [make_report(pressed={3})] * 4
        _run(deck, link)
        assert events == [(3, PRESSED)]

    def test_press_and_release(self, deck, link, events):
        deck.set_event_callback(lambda i, s: None)
        link.reports = [make_report(pressed={3}), make_report()]
        _run(deck, link)
        assert events == [(3, PRESSED), (3, RELEASED)]

    def test_ascending_order_within_report(self, deck, link, events):
        deck.set_event_callback(lambda i, s: None)
        link.reports = [make_report(pressed={12, 0, 7})]
        _run(deck, link)
        assert events == [(0, PRESSED), (7, PRESSED), (12, PRESSED)]

    def test_no_callback_still_tracks_state(self, deck, link, events):
        link.reports = [make_report(pressed={1})]
        _run(deck, link)
        assert events == []
        assert deck.button_states[1] is PRESSED

    def test_malformed_report_skipped(self, deck, link, events):
        deck.set_event_callback(lambda i, s: None)
        link.reports = [b'\x01\x01\x01', make_report(pressed={2})]
        _run(deck, link)
        assert events == [(2, PRESSED)]

    def test_read_timeout_keeps_looping(self, deck, link, events):
        deck.set_event_callback(lambda i, s: None)
        link.reports = [None, None, make_report(pressed={5})]
        _run(deck, link)
        assert events == [(5, PRESSED)]
        assert link.connect_calls == 1

    def test_stop_already_set(self, deck, link):
        link.reports = [make_report(pressed={1})]
        stop = threading.Event()
        stop.set()
        deck.run(stop)
        assert len(link.reports) == 1

    def test_callback_replaced_from_inside_callback(self, deck, link):
        first, second = [], []

        def cb_first(i, s):
            first.append(i)
            deck.set_event_callback(lambda i, s: second.append(i))

        deck.set_event_callback(cb_first)
        link.reports = [make_report(pressed={1}), make_report(pressed={1, 2})]
        _run(deck, link)
        assert first == [1]
        assert second == [2]

    def test_run_is_not_reentrant(self, deck, link):
        errors = []

        def cb(i, s):
            try:
                deck.run(threading.Event())
            except LockOrStateError as e:
                errors.append(e)

        deck.set_event_callback(cb)
        link.reports = [make_report(pressed={0})]
        _run(deck, link)
        assert len(errors) == 1


class TestReconnect:

    def test_read_failure_reconnects(self, deck, link, events):
        reconnects = []
        deck.on_connect(lambda: reconnects.append(link.connected))
        deck.set_event_callback(lambda i, s: None)
        link.reports = [OSError("no device"), make_report(pressed={4})]
        _run(deck, link)
        assert link.connect_calls == 2
        assert reconnects == [True]
        assert events == [(4, PRESSED)]

    def test_failed_reconnect_ends_loop_with_error(self, deck, link):
        failures = []
        deck.on_connect_failure(failures.append)
        err = NoDeviceFound("unplugged")
        link.connect_errors = [err]
        link.reports = [OSError("no device"), make_report(pressed={1})]
        with pytest.raises(NoDeviceFound) as exc_info:
            _run(deck, link)
        assert exc_info.value is err
        assert failures == [err]
        assert not deck.is_connected

    def test_connects_on_entry_when_disconnected(self, deck, link):
        link.connected = False
        link.reports = []
        _run(deck, link)
        assert link.connect_calls == 2

    def test_cache_survives_reconnect(self, deck, link, events):
        deck.set_event_callback(lambda i, s: None)
        link.reports = [make_report(pressed={8}), OSError("reset"), make_report()]
        _run(deck, link)
        assert events == [(8, PRESSED), (8, RELEASED)]

    def test_reconnect_delay_waits_on_stop(self, link):
        deck = PanelController(link=link, reconnect_delay=0.01)
        link.reports = [OSError("gone"), OSError("gone")]
        _run(deck, link)
        assert link.connect_calls == 3

    def test_loop_can_run_again_after_error(self, deck, link):
        link.connect_errors = [NoDeviceFound("x")]
        link.reports = [OSError("gone")]
        with pytest.raises(NoDeviceFound):
            _run(deck, link)

    def test_on_connect_error_keeps_loop_running(self, deck, link, events, caplog):
        def broken():
            raise RuntimeError("listener bug")

        deck.on_connect(broken)
        deck.set_event_callback(lambda i, s: None)
        link.reports = [OSError("reset"), make_report(pressed={6})]
        _run(deck, link)
        assert events == [(6, PRESSED)]
        assert "Connection callback failed" in caplog.text

    def test_on_connect_failure_error_keeps_original(self, deck, link, caplog):
        def broken(err):
            raise RuntimeError("listener bug")

        deck.on_connect_failure(broken)
        link.connect_errors = [NoDeviceFound("unplugged")]
        link.reports = [OSError("gone")]
        with pytest.raises(NoDeviceFound):
            _run(deck, link)
        assert "Connection callback failed" in caplog.text


class _BlockingReadLink(FakeLink):
    """Read blocks until close(), then fails like a released interface."""

    def __init__(self):
        super().__init__()
        self.reading = threading.Event()
        self.released = threading.Event()

    def read(self, size):
        self.reading.set()
        self.released.wait(5)
        self.connected = False
        raise TransportError("USB read failed: interface released")

    def close(self):
        super().close()
        self.released.set()


class TestCloseWhileRunning:

    def test_close_ends_loop_without_reconnect(self):
        link = _BlockingReadLink()
        deck = PanelController(link=link)
        loop = threading.Thread(target=deck.run, daemon=True)
        loop.start()
        assert link.reading.wait(2)

        deck.close()
        loop.join(2)
        assert not loop.is_alive()
        assert link.connect_calls == 1
        assert not deck.is_connected

    def test_reconnect_skipped_after_close(self, deck, link):
        deck.close(clear=False)
        link.reports = [make_report(pressed={1})]
        _run(deck, link)
        assert link.connect_calls == 1
        assert len(link.reports) == 1
        link.stop.clear()
        link.reports = []
        _run(deck, link)


class TestSpawnDispatch:

    def test_callback_runs_on_other_thread(self):
        done = threading.Event()
        seen = []

        def cb(i, s):
            seen.append((i, s, threading.current_thread().name))
            done.set()

        spawn_dispatch(cb, 3, PRESSED)
        assert done.wait(2)
        assert seen == [(3, PRESSED, "panel-button-3")]

    def test_callback_error_is_contained(self, caplog):
        done = threading.Event()

        def cb(i, s):
            done.set()
            raise RuntimeError("boom")

        spawn_dispatch(cb, 0, RELEASED)
        assert done.wait(2)
        for thread in threading.enumerate():
            if thread.name == "panel-button-0":
                thread.join(2)
        assert "Button callback failed" in caplog.text

    def test_slow_callback_does_not_block_loop(self):
        link = FakeLink()
        deck = PanelController(link=link)
        release = threading.Event()
        started = []

        def slow(i, s):
            started.append(i)
            release.wait(5)

        deck.set_event_callback(slow)
        link.reports = [make_report(pressed={0}), make_report(pressed={0, 1})]
        loop = threading.Thread(target=deck.run, args=(link.stop,), daemon=True)
        loop.start()
        try:
            loop.join(2)
            assert not loop.is_alive()
            assert not release.is_set()
            deadline = time.monotonic() + 2
            while len(started) < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert sorted(started) == [0, 1]
        finally:
            release.set()


def test_sync_dispatch_helper_records(events):
    dispatch = sync_dispatch(events)
    dispatch(lambda i, s: None, 1, PRESSED)
    assert events == [(1, PRESSED)]
