"""
Core panel layer.

Models: pure data (ButtonState, Rect, TextLine, TextButton)
Controllers: PanelController (button fills + event loop)

Note: the controller is NOT re-exported here to avoid circular imports
(services → core.models → core.__init__ → controllers → services).
Import it directly: `from streamdeck_panel.core.controllers import PanelController`
"""

from .models import ButtonCallback, ButtonState, Rect, TextButton, TextLine

__all__ = [
    'ButtonCallback',
    'ButtonState',
    'Rect',
    'TextButton',
    'TextLine',
]
