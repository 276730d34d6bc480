"""RGB status indicator of the gateway."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional


class Color(Enum):
    """Indicator channels, valued by the GPIO pin driving each one."""

    RED = 4
    GREEN = 2
    BLUE = 27


class RgbIndicator:
    """Three-channel status light, all channels off at start.

    ``on_change`` is called with the channel and its new level whenever a
    channel is driven, which lets real outputs follow the state.
    """

    def __init__(self, on_change: Optional[Callable[[Color, bool], None]] = None) -> None:
        self._on_change = on_change
        self._levels = dict.fromkeys(Color, False)
        self._show(False, False, False)

    def _set(self, color: Color, level: bool) -> None:
        self._levels[color] = level
        if self._on_change is not None:
            self._on_change(color, level)

    def _show(self, red: bool, green: bool, blue: bool) -> None:
        self._set(Color.RED, red)
        self._set(Color.GREEN, green)
        self._set(Color.BLUE, blue)

    def on(self) -> None:
        """Light all channels."""
        self._show(True, True, True)

    def red(self) -> None:
        """Light red only."""
        self._show(True, False, False)

    def green(self) -> None:
        """Light green only."""
        self._show(False, True, False)

    def blue(self) -> None:
        """Light blue only."""
        self._show(False, False, True)

    def off(self) -> None:
        """Turn all channels off."""
        self._show(False, False, False)

    def toggle(self, color: Color) -> None:
        """Invert one channel."""
        self._set(color, not self._levels[color])

    def level(self, color: Color) -> bool:
        """Current level of one channel."""
        return self._levels[color]

    @property
    def state(self) -> tuple[bool, bool, bool]:
        """Levels of red, green and blue."""
        return tuple(self._levels[color] for color in Color)