"""
Panel models - pure data classes with no USB or imaging dependencies.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, List, Optional, Tuple

RGB = Tuple[int, int, int]


# =============================================================================
# Button state
# =============================================================================

class ButtonState(Enum):
    """Physical state of one button."""
    PRESSED = auto()
    RELEASED = auto()

    @classmethod
    def from_byte(cls, value: int) -> "ButtonState":
        """Translate one input-report state byte (0 = released)."""
        return cls.RELEASED if value == 0 else cls.PRESSED

    def __str__(self) -> str:
        return self.name.capitalize()


# (button_index, new_state), invoked once per transition
ButtonCallback = Callable[[int, ButtonState], None]


# =============================================================================
# Geometry
# =============================================================================

@dataclass(frozen=True)
class Rect:
    """Pixel rectangle within the full panel image."""
    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        """Exclusive right edge."""
        return self.left + self.width

    @property
    def bottom(self) -> int:
        """Exclusive bottom edge."""
        return self.top + self.height

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """PIL crop box ``(left, top, right, bottom)``."""
        return (self.left, self.top, self.right, self.bottom)

    def contains(self, x: int, y: int) -> bool:
        return self.left <= x < self.right and self.top <= y < self.bottom

    def overlaps(self, other: "Rect") -> bool:
        return (self.left < other.right and other.left < self.right
                and self.top < other.bottom and other.top < self.bottom)


# =============================================================================
# Text buttons
# =============================================================================

@dataclass
class TextLine:
    """One line of text on a button.

    ``pos_y`` is the baseline; ``font`` is a font file path or a family
    name resolved through fontconfig (None = default font).
    """
    text: str
    pos_x: int = 0
    pos_y: int = 0
    font: Optional[str] = None
    font_size: float = 14
    font_color: RGB = (255, 255, 255)


@dataclass
class TextButton:
    """Lines of text plus a background color for one button."""
    lines: List[TextLine] = field(default_factory=list)
    bg_color: RGB = (0, 0, 0)
