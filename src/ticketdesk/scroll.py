"""
Scroll controller — keeps a reader who scrolled up in place, follows the
conversation otherwise.

Before each transcript mutation we check whether the viewer is within
NEAR_BOTTOM_PX of the bottom. After the mutation has been rendered we
scroll to the bottom if they were, if the mutation was their own action,
or if a scroll was explicitly requested.
"""

from typing import Callable, Optional

NEAR_BOTTOM_PX = 100


class Viewport:
    """Geometry of the scrollable message region, in pixels."""

    def __init__(self, scroll_top: float = 0, scroll_height: float = 0, client_height: float = 0):
        self.scroll_top = scroll_top
        self.scroll_height = scroll_height
        self.client_height = client_height

    @property
    def distance_from_bottom(self) -> float:
        return self.scroll_height - self.scroll_top - self.client_height

    def scroll_to_bottom(self) -> None:
        self.scroll_top = max(0, self.scroll_height - self.client_height)

    def __repr__(self) -> str:
        return (f"Viewport(scroll_top={self.scroll_top!r}, scroll_height={self.scroll_height!r}, "
                f"client_height={self.client_height!r})")


class ScrollController:
    def __init__(self, viewport: Optional[Viewport] = None, threshold: float = NEAR_BOTTOM_PX):
        self.viewport = viewport or Viewport()
        self.threshold = threshold
        self._forced = False

    def is_near_bottom(self) -> bool:
        return self.viewport.distance_from_bottom <= self.threshold

    def request_scroll(self) -> None:
        """Force a scroll to bottom on the next mutation."""
        self._forced = True

    def run(self, render: Callable[[], None], own_action: bool = False) -> bool:
        """Render a mutation and auto-scroll if appropriate. Returns True if it scrolled."""
        follow = self.is_near_bottom() or own_action or self._forced
        self._forced = False
        render()
        if follow:
            self.viewport.scroll_to_bottom()
        return follow
