"""Font resolution for text buttons: name or path → PIL font.

Pure infrastructure: subprocess (fc-match) + filesystem scanning.
"""
from __future__ import annotations

import logging
import os
import subprocess
from typing import List, Optional

from PIL import ImageFont

log = logging.getLogger(__name__)

_HOME = os.path.expanduser('~')

FONT_SEARCH_DIRS: List[str] = [
    os.path.join(_HOME, '.local/share/fonts'),          # XDG user fonts
    os.path.join(_HOME, '.fonts'),                      # legacy user fonts
    '/usr/local/share/fonts',                           # manually installed
    '/usr/share/fonts/truetype',                        # Debian, Ubuntu, Mint
    '/usr/share/fonts/truetype/dejavu',                 # Debian DejaVu
    '/usr/share/fonts/dejavu-sans-fonts',               # Fedora DejaVu
    '/usr/share/fonts/TTF',                             # Arch, Void
    '/usr/share/fonts/noto',                            # Alpine, Gentoo
    '/Library/Fonts',                                   # macOS
]

# Tried in order when no font is requested
DEFAULT_FONT_FILES = ['DejaVuSans.ttf', 'NotoSans-Regular.ttf', 'Arial.ttf']

Font = ImageFont.FreeTypeFont


class FontResolver:
    """Resolve font names or paths to PIL fonts with caching.

    Resolution order:
    1. Cache hit → return immediately
    2. Existing file path → load directly
    3. fc-match (fontconfig) → system font by family name
    4. Manual scan of FONT_SEARCH_DIRS
    5. Pillow's built-in scalable font → ultimate fallback
    """

    def __init__(self) -> None:
        self.cache: dict[tuple, Font] = {}

    def get(self, size: float, font: Optional[str] = None) -> Font:
        key = (size, font)
        if key in self.cache:
            return self.cache[key]

        path = None
        if font and os.path.isfile(font):
            path = font
        elif font:
            path = self.resolve_path(font)
            if path is None:
                log.warning("Font %r not found, using default", font)
        if path is None:
            path = self._default_path()

        if path is not None:
            self.cache[key] = ImageFont.truetype(path, size)
        else:
            self.cache[key] = ImageFont.load_default(size)
        return self.cache[key]

    def resolve_path(self, font_name: str) -> Optional[str]:
        """Resolve font family name to file path.

        Tries fc-match first, falls back to manual directory scanning.
        """
        try:
            result = subprocess.run(
                ['fc-match', font_name, '--format=%{file}'],
                capture_output=True, text=True, timeout=2
            )
            if result.returncode == 0 and result.stdout and os.path.exists(result.stdout):
                return result.stdout
        except (FileNotFoundError, subprocess.TimeoutExpired):
            pass

        name_lower = font_name.lower().replace(' ', '')
        for font_dir in FONT_SEARCH_DIRS:
            if not os.path.isdir(font_dir):
                continue
            for fname in sorted(os.listdir(font_dir)):
                if name_lower in fname.lower().replace(' ', ''):
                    return os.path.join(font_dir, fname)

        return None

    @staticmethod
    def _default_path() -> Optional[str]:
        for font_dir in FONT_SEARCH_DIRS:
            for fname in DEFAULT_FONT_FILES:
                p = os.path.join(font_dir, fname)
                if os.path.exists(p):
                    return p
        return None

    def clear_cache(self) -> None:
        self.cache.clear()


# Shared instance used by ImageService.render_text
font_resolver = FontResolver()
