"""Test pointer-drag teleoperation.

Tests for arm_rig.teleop.drag_teleop:
    - Side-view projection round trip
    - Grab radius, drag streaming and release
    - Focus loss ends the gesture
    - Terminal fallback commands

Run:
    pytest tests/test_drag_teleop.py -v
"""

from types import SimpleNamespace

import numpy as np
import pytest

from arm_rig.state.reconciler import RigStateReconciler
from arm_rig.teleop.drag_teleop import DragTeleop

# Minimal stand-in for the pygame event constants used by the teleop
FAKE_PYGAME = SimpleNamespace(
    QUIT=256, MOUSEBUTTONDOWN=1025, MOUSEBUTTONUP=1026, MOUSEMOTION=1024, WINDOWFOCUSLOST=32784
)


@pytest.fixture
def sent():
    return []


@pytest.fixture
def teleop(sent):
    return DragTeleop(RigStateReconciler(send=sent.append))


def _hand_px(teleop):
    return teleop.to_screen(teleop.reconciler.pose().effector)


def test_projection_round_trip(teleop):
    point = np.array([0.0, -0.4, 0.7])
    assert teleop.to_rig(*teleop.to_screen(point)) == pytest.approx(point)


def test_press_outside_radius_ignored(teleop):
    hx, hy = _hand_px(teleop)
    assert not teleop.press(hx + 100.0, hy)
    assert not teleop.reconciler.is_dragging


def test_press_move_release(teleop, sent):
    hx, hy = _hand_px(teleop)
    hand = teleop.reconciler.pose().effector
    assert teleop.press(hx, hy)
    assert teleop.reconciler.drag_target == pytest.approx(hand)

    assert teleop.move(hx + 45.0, hy - 30.0)
    expected = hand + np.array([0.0, 30.0, 45.0]) / teleop.pixels_per_unit
    assert teleop.reconciler.drag_target == pytest.approx(expected)
    teleop.reconciler.tick(now=0.0)

    teleop.release()
    assert not teleop.reconciler.is_dragging
    assert sent
    assert not teleop.move(hx, hy)


def test_pygame_events(teleop):
    hx, hy = _hand_px(teleop)
    event = SimpleNamespace
    teleop._handle_pygame_event(
        event(type=FAKE_PYGAME.MOUSEBUTTONDOWN, button=1, pos=(hx, hy)), FAKE_PYGAME
    )
    assert teleop.reconciler.is_dragging
    teleop._handle_pygame_event(event(type=FAKE_PYGAME.MOUSEMOTION, pos=(hx + 30, hy)), FAKE_PYGAME)
    assert teleop.reconciler.drag_target[2] == pytest.approx(
        teleop.reconciler.pose().effector[2] + 30.0 / teleop.pixels_per_unit
    )
    teleop._handle_pygame_event(event(type=FAKE_PYGAME.WINDOWFOCUSLOST), FAKE_PYGAME)
    assert not teleop.reconciler.is_dragging


def test_right_button_does_not_grab(teleop):
    hx, hy = _hand_px(teleop)
    teleop._handle_pygame_event(
        SimpleNamespace(type=FAKE_PYGAME.MOUSEBUTTONDOWN, button=3, pos=(hx, hy)), FAKE_PYGAME
    )
    assert not teleop.reconciler.is_dragging


def test_terminal_commands(teleop):
    assert teleop.process_terminal_input("w")
    assert not teleop.reconciler.is_dragging

    assert teleop.process_terminal_input("g")
    start = teleop.reconciler.drag_target
    teleop.process_terminal_input("w")
    teleop.process_terminal_input("d")
    assert teleop.reconciler.drag_target == pytest.approx(start + np.array([0.0, 0.05, 0.05]))

    assert teleop.process_terminal_input("r")
    assert not teleop.reconciler.is_dragging
    teleop.process_terminal_input("g")
    assert not teleop.process_terminal_input("q")
    assert not teleop.reconciler.is_dragging
