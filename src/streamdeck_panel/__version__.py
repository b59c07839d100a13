"""streamdeck-panel version information."""

__version__ = "0.3.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - Initial release: USB connect, solid color and image fills,
#         button event loop
# 0.2.0 - Whole-panel images (resize + center crop + tiling), text buttons,
#         serial number selection, reconnect on read failure
# 0.3.0 - Exception hierarchy wraps pyusb errors, configurable reconnect delay
#         and read timeout, JSON config, CLI subcommands
