"""
Pointer-drag teleoperation driving the IK gesture.

Presents the rig in a side view (screen right = rig forward ``+z``, screen
up = rig ``+y``).  Pressing the pointer near the hand starts a drag, motion
streams new effector targets, and release or loss of window focus ends the
gesture.  A terminal fallback is provided when Pygame is not available.

Classes:
    DragTeleop: Maps pointer input to reconciler drag gestures.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from arm_rig.state.reconciler import RigStateReconciler


@dataclass
class DragTeleop:
    """Maps pointer input to drag gestures on a ``RigStateReconciler``.

    When Pygame is available the teleop consumes mouse button and motion
    events in real time.  Otherwise single-character terminal commands grab,
    move and release the hand (useful in headless / SSH scenarios).

    Attributes:
        reconciler: Engine receiving gesture start, targets and end.
        pixels_per_unit: Screen scale of the side view.
        origin: Screen position of the rig root frame.
        grab_radius_px: Maximum pointer distance from the hand to grab it.
        step: Target displacement per terminal command (rig units).
    """

    reconciler: RigStateReconciler
    pixels_per_unit: float = 150.0
    origin: Tuple[float, float] = (320.0, 120.0)
    grab_radius_px: float = 30.0
    step: float = 0.05
    _depth: float = 0.0

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def to_screen(self, point: np.ndarray) -> Tuple[float, float]:
        """Project a rig point onto the side view.

        Args:
            point: Rig-frame position ``[x, y, z]``.

        Returns:
            Screen coordinates ``(px, py)``, y growing downwards.
        """
        ox, oy = self.origin
        return ox + point[2] * self.pixels_per_unit, oy - point[1] * self.pixels_per_unit

    def to_rig(self, px: float, py: float) -> np.ndarray:
        """Unproject a screen point at the depth captured when grabbing.

        Args:
            px: Screen x.
            py: Screen y.

        Returns:
            Rig-frame position ``[x, y, z]``.
        """
        ox, oy = self.origin
        return np.array(
            [self._depth, (oy - py) / self.pixels_per_unit, (px - ox) / self.pixels_per_unit]
        )

    # ------------------------------------------------------------------
    # Gesture handling
    # ------------------------------------------------------------------

    def press(self, px: float, py: float) -> bool:
        """Start a drag if the pointer is close enough to the hand.

        Returns:
            *True* when a drag gesture started.
        """
        hand = self.reconciler.pose().effector
        hx, hy = self.to_screen(hand)
        if np.hypot(px - hx, py - hy) > self.grab_radius_px:
            return False
        self._depth = float(hand[0])
        return self.reconciler.begin_drag(self.to_rig(px, py))

    def move(self, px: float, py: float) -> bool:
        """Stream a new target while dragging."""
        if not self.reconciler.is_dragging:
            return False
        return self.reconciler.update_drag_target(self.to_rig(px, py))

    def release(self) -> None:
        """End the gesture (pointer release or focus loss)."""
        self.reconciler.end_drag()

    def process_pygame_events(self) -> bool:
        """Pump Pygame events and forward pointer gestures.

        Returns:
            *False* if a QUIT event was received; *True* otherwise.

        Raises:
            ImportError: If Pygame is not installed.
        """
        try:
            import pygame
        except ImportError as exc:
            raise ImportError(
                "Pygame required for real-time drag teleop: pip install pygame"
            ) from exc
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.release()
                return False
            self._handle_pygame_event(event, pygame)
        return True

    def _handle_pygame_event(self, event: object, pygame_module: object) -> None:
        """Dispatch one Pygame event to press / move / release.

        Args:
            event: Pygame event object.
            pygame_module: The ``pygame`` module (passed to avoid re-import).
        """
        pg = pygame_module
        if event.type == pg.MOUSEBUTTONDOWN and event.button == 1:
            self.press(*event.pos)
        elif event.type == pg.MOUSEMOTION:
            self.move(*event.pos)
        elif event.type == pg.MOUSEBUTTONUP and event.button == 1:
            self.release()
        elif event.type == getattr(pg, "WINDOWFOCUSLOST", None):
            self.release()

    def process_terminal_input(self, char: str) -> bool:
        """Drive the gesture from a single-character terminal command.

        Supported characters: ``g`` (grab), ``w``/``s`` (target up/down),
        ``a``/``d`` (target back/forward), ``r`` (release), ``q`` (quit).

        Args:
            char: Single character read from stdin.

        Returns:
            *False* if the quit character was received; *True* otherwise.
        """
        if char == "q":
            self.release()
            return False
        if char == "g":
            self.reconciler.begin_drag()
        elif char == "r":
            self.release()
        else:
            self._nudge_target(char)
        return True

    def _nudge_target(self, char: str) -> None:
        """Shift the drag target by one ``step`` for a w/a/s/d command."""
        deltas = {"w": (0.0, 1.0, 0.0), "s": (0.0, -1.0, 0.0), "a": (0.0, 0.0, -1.0), "d": (0.0, 0.0, 1.0)}
        target: Optional[np.ndarray] = self.reconciler.drag_target
        if target is None or char not in deltas:
            return
        self.reconciler.update_drag_target(target + self.step * np.array(deltas[char]))
