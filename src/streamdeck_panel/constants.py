"""Shared constants for the 15-key LED panel.

USB identity, panel geometry, and wire-format sizes.
"""

# USB IDs (Elgato Stream Deck, first generation)
VENDOR_ID = 0x0FD9
PRODUCT_ID = 0x0060

# =========================================================================
# Panel geometry
# =========================================================================

NUM_COLUMNS = 5
NUM_ROWS = 3
NUM_BUTTONS = NUM_COLUMNS * NUM_ROWS  # 15

BUTTON_SIZE = 72   # px, square
SPACER = 19        # px between two adjacent buttons

# Derived panel size including spacers: 436 x 254
PANEL_WIDTH = NUM_COLUMNS * BUTTON_SIZE + SPACER * (NUM_COLUMNS - 1)
PANEL_HEIGHT = NUM_ROWS * BUTTON_SIZE + SPACER * (NUM_ROWS - 1)

# =========================================================================
# Wire format
# =========================================================================

BUTTON_PIXELS = BUTTON_SIZE * BUTTON_SIZE  # 5184
BYTES_PER_PIXEL = 3

# A button bitmap is split across two OUT messages at a fixed pixel offset
PAGE1_PIXELS = 2583
PAGE2_PIXELS = BUTTON_PIXELS - PAGE1_PIXELS  # 2601

PAGE1_HEADER_SIZE = 70
PAGE2_HEADER_SIZE = 18

# Offset of the (button index + 1) byte in both headers
HEADER_INDEX_OFFSET = 5

# Input report: framing byte + 15 state bytes + framing byte
INPUT_REPORT_SIZE = NUM_BUTTONS + 2  # 17

# USB timeouts (ms). 0 = wait forever (libusb semantics).
DEFAULT_WRITE_TIMEOUT_MS = 1000
DEFAULT_READ_TIMEOUT_MS = 0
