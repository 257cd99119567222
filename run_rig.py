#!/usr/bin/env python3
"""
Main entry point for the arm rig engine.

Runs the IK core headless or wired to its collaborators: a one-shot CCD
solve, scripted drag-to-reach episodes, interactive drag teleoperation,
or a live link to the joint-controller bridge.

Usage examples::

    # Solve towards a point relative to the resting hand
    python run_rig.py --mode solve --target 0 -0.1 0.3

    # Scripted drag-to-reach episodes in the Gymnasium environment
    python run_rig.py --mode sim --episodes 5

    # Drag the hand with the mouse (Pygame) or terminal commands
    python run_rig.py --mode teleop

    # Mirror telemetry from the bridge for ten seconds
    python run_rig.py --mode bridge --url ws://192.168.1.14:81/ --duration 10
"""

from __future__ import annotations

import argparse
import logging
import time
from typing import Dict

import numpy as np

from arm_rig.envs.configs import BridgeConfig, DragReachSimConfig, ReconcilerConfig
from arm_rig.envs.drag_reach import DragReachSimEnv
from arm_rig.envs.factory import make_channel, make_reconciler
from arm_rig.state.models import Command, JointState
from arm_rig.teleop.drag_teleop import DragTeleop
from arm_rig.utils.constants import ARM_JOINT_NAMES
from arm_rig.utils.logging_config import setup_logging

logger = logging.getLogger("arm_rig.cli")

# ======================================================================
# Helpers
# ======================================================================


def _format_angles(angles: np.ndarray) -> str:
    return ", ".join(f"{a:7.2f}" for a in angles)


def _print_command(command: Command) -> None:
    print(f"-> {command.to_message()}")


def _print_snapshot(snapshot: Dict[int, JointState]) -> None:
    print(
        " | ".join(
            f"{ARM_JOINT_NAMES[j]}: {st.angle_deg:7.2f}/{st.target_deg:7.2f}"
            for j, st in snapshot.items()
        )
    )


# ======================================================================
# Mode runners
# ======================================================================


def _run_solve(args: argparse.Namespace) -> None:
    """Run frame-by-frame CCD towards a target offset from the resting hand.

    Args:
        args: Parsed CLI arguments.
    """
    cfg = ReconcilerConfig()
    rig = make_reconciler(cfg, send=_print_command)
    start = rig.pose().effector
    target = start + np.asarray(args.target, dtype=np.float64)
    print(f"Hand: {start}  Target: {target}")
    rig.begin_drag(target)
    for frame in range(args.frames):
        pose = rig.tick(now=frame * cfg.frame_interval_s)
        distance = float(np.linalg.norm(pose.effector - target))
        print(f"frame {frame:3d}  angles [{_format_angles(rig.joint_angles())}]  d={distance:.4f}")
    rig.end_drag()


def _run_sim(args: argparse.Namespace) -> None:
    """Run scripted drag-to-reach episodes.

    Args:
        args: Parsed CLI arguments.
    """
    env = DragReachSimEnv(DragReachSimConfig(seed=args.seed))
    successes = 0
    for episode in range(args.episodes):
        env.reset()
        info: dict = {}
        done = False
        steps = 0
        while not done:
            _, _, terminated, truncated, info = env.step(env.scripted_action())
            done = terminated or truncated
            steps += 1
        successes += int(info["is_success"])
        print(
            f"Episode {episode + 1}: success={info['is_success']} steps={steps} "
            f"d={info['distance']:.4f} commands={len(info['commands'])} "
            f"snapshots={info['snapshots_published']}"
        )
    print(f"\nSuccess rate: {successes}/{args.episodes}")


def _draw_rig(screen: object, pygame_module: object, teleop: DragTeleop) -> None:
    """Draw the chain as a polyline in the teleop's side view."""
    pg = pygame_module
    pose = teleop.reconciler.pose()
    points = [teleop.to_screen(link.position) for link in pose.links]
    points.append(teleop.to_screen(pose.effector))
    screen.fill((30, 30, 30))
    pg.draw.lines(screen, (200, 200, 200), False, points, 3)
    colour = (80, 200, 80) if teleop.reconciler.is_dragging else (200, 80, 80)
    pg.draw.circle(screen, colour, [int(v) for v in points[-1]], 8)
    pg.display.flip()


def _run_teleop_pygame(teleop: DragTeleop, fps: int) -> None:
    import pygame

    pygame.init()
    screen = pygame.display.set_mode((640, 480))
    pygame.display.set_caption("Arm rig drag teleop")
    clock = pygame.time.Clock()
    try:
        while teleop.process_pygame_events():
            teleop.reconciler.tick()
            _draw_rig(screen, pygame, teleop)
            clock.tick(fps)
    finally:
        pygame.quit()


def _run_teleop_terminal(teleop: DragTeleop) -> None:
    print("Terminal teleop: g grab, w/a/s/d move target, r release, q quit.")
    while True:
        line = input("> ").strip().lower()
        if not line:
            continue
        if not teleop.process_terminal_input(line[0]):
            break
        pose = teleop.reconciler.tick()
        print(f"hand {pose.effector}  angles [{_format_angles(teleop.reconciler.joint_angles())}]")


def _run_teleop(args: argparse.Namespace) -> None:
    """Drag the hand interactively; Pygame when installed, else the terminal.

    Args:
        args: Parsed CLI arguments.
    """
    cfg = ReconcilerConfig()
    rig = make_reconciler(cfg, send=_print_command)
    teleop = DragTeleop(rig)
    if args.terminal:
        _run_teleop_terminal(teleop)
        return
    try:
        _run_teleop_pygame(teleop, cfg.fps)
    except ImportError:
        logger.warning("Pygame not installed, falling back to terminal teleop")
        _run_teleop_terminal(teleop)


def _run_bridge(args: argparse.Namespace) -> None:
    """Mirror bridge telemetry into the rig state for ``--duration`` seconds.

    Args:
        args: Parsed CLI arguments.
    """
    cfg = ReconcilerConfig()
    rig = make_reconciler(cfg, send=lambda command: channel.send(command))
    channel = make_channel(BridgeConfig(url=args.url), rig.apply_telemetry, on_log=print)
    rig.subscribe(_print_snapshot)
    try:
        channel.connect()
    except ImportError as exc:
        logger.error("Bridge mode unavailable: %s", exc)
        return
    deadline = time.monotonic() + args.duration
    try:
        while time.monotonic() < deadline:
            channel.poll()
            rig.tick()
            time.sleep(cfg.frame_interval_s)
    finally:
        channel.close()


# ======================================================================
# CLI
# ======================================================================


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Arm rig IK engine")
    parser.add_argument(
        "--mode", choices=["solve", "sim", "teleop", "bridge"], default="solve"
    )
    parser.add_argument(
        "--target", type=float, nargs=3, default=[0.0, -0.1, 0.3],
        metavar=("DX", "DY", "DZ"), help="target offset from the resting hand",
    )
    parser.add_argument("--frames", type=int, default=5)
    parser.add_argument("--episodes", type=int, default=5)
    parser.add_argument("--terminal", action="store_true", help="terminal teleop only")
    parser.add_argument("--url", default=BridgeConfig().url)
    parser.add_argument("--duration", type=float, default=10.0)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default=None)
    return parser.parse_args()


# ======================================================================
# Dispatch
# ======================================================================


# Mapping from mode name to runner function
_MODE_DISPATCH = {
    "solve": _run_solve,
    "sim": _run_sim,
    "teleop": _run_teleop,
    "bridge": _run_bridge,
}


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------
if __name__ == "__main__":
    args = _parse_args()
    setup_logging(args.log_level, args.log_file)
    print(f"Mode: {args.mode} | Seed: {args.seed}")
    print("-" * 60)
    _MODE_DISPATCH[args.mode](args)
