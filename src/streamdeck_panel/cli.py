#!/usr/bin/env python3
"""
streamdeck-panel - Command Line Interface

Entry point for the streamdeck-panel package.
"""

import argparse
import logging
import signal
import sys
import threading

from streamdeck_panel.__version__ import __version__
from streamdeck_panel.errors import StreamDeckError


def _setup_logging(verbose=0):
    """Configure logging from -v count (filter out noisy PIL)."""
    if verbose >= 2:
        logging.basicConfig(level=logging.DEBUG, format='[%(levelname)s] %(name)s: %(message)s')
        logging.getLogger('PIL').setLevel(logging.WARNING)
    elif verbose == 1:
        logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING)


def _parse_hex(hex_color):
    """'ff8000' or '#ff8000' → (255, 128, 0). Raises ValueError."""
    hex_color = hex_color.lstrip('#')
    if len(hex_color) != 6:
        raise ValueError(f"Invalid hex color {hex_color!r}. Use format: ff0000")
    return (int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16))


def _open_panel(serial=None):
    """PanelController with saved settings; --serial overrides the saved one."""
    from streamdeck_panel.conf import Settings
    from streamdeck_panel.core.controllers import PanelController

    settings = Settings.load()
    if serial:
        settings.serial = serial
    return PanelController(**settings.controller_kwargs())


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="streamdeck-panel",
        description="Drive a 15-key LED display panel",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    streamdeck-panel list                   List attached panels
    streamdeck-panel color 0 ff0000         Button 0 red
    streamdeck-panel image 4 icon.png       Image on button 4
    streamdeck-panel panel wallpaper.jpg    Image across all buttons
    streamdeck-panel text 7 "Hi" -s 20      Text on button 7
    streamdeck-panel clear                  Blank all buttons
    streamdeck-panel monitor                Print button events
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)"
    )
    parser.add_argument("--serial", "-s", help="Serial number of the panel to use")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List attached panels")

    color_parser = subparsers.add_parser("color", help="Fill a button with a solid color")
    color_parser.add_argument("index", type=int, help="Button index (0-14)")
    color_parser.add_argument("hex", help="Hex color code (e.g., ff0000 for red)")

    image_parser = subparsers.add_parser("image", help="Show an image file on a button")
    image_parser.add_argument("index", type=int, help="Button index (0-14)")
    image_parser.add_argument("path", help="Image file")

    panel_parser = subparsers.add_parser("panel", help="Spread an image file across the panel")
    panel_parser.add_argument("path", help="Image file")

    text_parser = subparsers.add_parser("text", help="Write text on a button")
    text_parser.add_argument("index", type=int, help="Button index (0-14)")
    text_parser.add_argument("text", help="Text to write")
    text_parser.add_argument("--size", type=float, default=18, help="Font size (default 18)")
    text_parser.add_argument("--font", help="Font file or family name")
    text_parser.add_argument("--color", default="ffffff", help="Text color (default ffffff)")
    text_parser.add_argument("--bg", default="000000", help="Background color (default 000000)")

    clear_parser = subparsers.add_parser("clear", help="Blank one or all buttons")
    clear_parser.add_argument("index", type=int, nargs="?", help="Button index (default: all)")

    subparsers.add_parser("monitor", help="Print button press/release events until Ctrl+C")

    config_parser = subparsers.add_parser("config", help="Show or change saved settings")
    config_parser.add_argument("--set-serial", metavar="SERIAL",
                               help="Preferred panel serial ('' to forget)")
    config_parser.add_argument("--reconnect-delay", type=float, metavar="SECONDS",
                               help="Wait between reconnect attempts")
    config_parser.add_argument("--read-timeout", type=int, metavar="MS",
                               help="USB read timeout for monitor (0 = block)")

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "list":
        return list_panels()
    elif args.command == "color":
        return fill_color(args.index, args.hex, serial=args.serial)
    elif args.command == "image":
        return fill_image(args.index, args.path, serial=args.serial)
    elif args.command == "panel":
        return fill_panel(args.path, serial=args.serial)
    elif args.command == "text":
        return write_text(args.index, args.text, size=args.size, font=args.font,
                          color=args.color, bg=args.bg, serial=args.serial)
    elif args.command == "clear":
        return clear(args.index, serial=args.serial)
    elif args.command == "monitor":
        return monitor(serial=args.serial)
    elif args.command == "config":
        return configure(serial=args.set_serial, reconnect_delay=args.reconnect_delay,
                         read_timeout=args.read_timeout)

    return 0


def list_panels():
    """Print the serial number of every attached panel."""
    try:
        from streamdeck_panel.device_usb import list_serial_numbers

        serials = list_serial_numbers()
        if not serials:
            print("No panels found")
            return 1
        for i, serial in enumerate(serials):
            print(f"[{i}] serial={serial or '(none)'}")
        return 0
    except StreamDeckError as e:
        print(f"Error listing panels: {e}")
        return 1


def fill_color(index, hex_color, serial=None):
    """Fill one button with a hex color."""
    try:
        r, g, b = _parse_hex(hex_color)
        deck = _open_panel(serial)
        deck.fill_color(index, r, g, b)
        deck.close(clear=False)
        print(f"Button {index} set to #{hex_color.lstrip('#')}")
        return 0
    except (StreamDeckError, ValueError) as e:
        print(f"Error: {e}")
        return 1


def fill_image(index, path, serial=None):
    """Show an image file on one button."""
    try:
        deck = _open_panel(serial)
        deck.fill_image_from_file(index, path)
        deck.close(clear=False)
        print(f"Button {index} set to {path}")
        return 0
    except (StreamDeckError, OSError) as e:
        print(f"Error: {e}")
        return 1


def fill_panel(path, serial=None):
    """Spread an image file across all buttons."""
    try:
        deck = _open_panel(serial)
        deck.fill_panel_from_file(path)
        deck.close(clear=False)
        print(f"Panel set to {path}")
        return 0
    except (StreamDeckError, OSError) as e:
        print(f"Error: {e}")
        return 1


def write_text(index, text, size=18, font=None, color="ffffff", bg="000000", serial=None):
    """Write a single line of text on a button, vertically centered."""
    try:
        from streamdeck_panel.constants import BUTTON_SIZE
        from streamdeck_panel.core.models import TextButton, TextLine

        line = TextLine(text=text, pos_x=4, pos_y=int(BUTTON_SIZE / 2 + size / 3),
                        font=font, font_size=size, font_color=_parse_hex(color))
        deck = _open_panel(serial)
        deck.write_text(index, TextButton(lines=[line], bg_color=_parse_hex(bg)))
        deck.close(clear=False)
        print(f"Button {index} text set")
        return 0
    except (StreamDeckError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1


def clear(index=None, serial=None):
    """Blank one button, or every button."""
    try:
        deck = _open_panel(serial)
        if index is None:
            deck.close()
        else:
            deck.clear_button(index)
            deck.close(clear=False)
        return 0
    except StreamDeckError as e:
        print(f"Error: {e}")
        return 1


def monitor(serial=None):
    """Print button events until interrupted."""
    try:
        deck = _open_panel(serial)
    except StreamDeckError as e:
        print(f"Error: {e}")
        return 1

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    deck.set_event_callback(lambda i, state: print(f"Button {i:2d} {state}", flush=True))
    deck.on_connect(lambda: print("Panel reconnected", flush=True))
    print("Watching buttons (Ctrl+C to quit)...")
    try:
        deck.run(stop)
    except KeyboardInterrupt:
        stop.set()
    except StreamDeckError as e:
        print(f"Panel lost: {e}")
        return 1

    try:
        deck.close()
    except StreamDeckError as e:
        print(f"Error closing panel: {e}")
        return 1
    return 0


def configure(serial=None, reconnect_delay=None, read_timeout=None):
    """Update saved settings, then print them."""
    from streamdeck_panel import conf

    if serial is not None:
        conf.save_serial(serial or None)
    if reconnect_delay is not None:
        conf.save_reconnect_delay(reconnect_delay)
    if read_timeout is not None:
        conf.save_read_timeout_ms(read_timeout)

    settings = conf.Settings.load()
    print(f"Config:          {conf.CONFIG_PATH}")
    print(f"Serial:          {settings.serial or '(first found)'}")
    print(f"Reconnect delay: {settings.reconnect_delay:g} s")
    print(f"Read timeout:    {settings.read_timeout_ms} ms")
    return 0


if __name__ == "__main__":
    sys.exit(main())
