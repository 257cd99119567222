"""
Dataclass configurations for the rig engine, the bridge and the simulation.

Classes:
    SolverConfig: CCD solver tuning.
    ReconcilerConfig: Frame loop and snapshot throttling.
    BridgeConfig: Joint-controller bridge address and reconnect policy.
    DragReachSimConfig: Headless drag-to-reach simulation environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

from arm_rig.utils.constants import (
    ARM_JOINT_LIMITS,
    ARM_JOINT_SIGNS,
    BRIDGE_RECONNECT_INTERVAL_S,
    BRIDGE_URL,
    CCD_DAMPING,
    CCD_EPSILON,
    CCD_ITERATIONS,
    DEFAULT_FPS,
    DRAG_EMIT_INTERVAL_S,
)


@dataclass
class SolverConfig:
    """CCD solver tuning.

    Attributes:
        iterations: Tip-to-root sweeps per solve (one solve per frame).
        damping: Fraction of each ideal joint correction applied.
        epsilon: Length below which vectors count as zero.
    """

    iterations: int = CCD_ITERATIONS
    damping: float = CCD_DAMPING
    epsilon: float = CCD_EPSILON


@dataclass
class ReconcilerConfig:
    """Rig engine configuration.

    Attributes:
        fps: Frame loop rate.
        emit_interval_s: Minimum spacing of drag snapshots to views.
        joint_limits: ``(min_deg, max_deg)`` per joint.
        joint_signs: Rotation sign per joint.
        solver: CCD solver tuning.
    """

    fps: int = DEFAULT_FPS
    emit_interval_s: float = DRAG_EMIT_INTERVAL_S
    joint_limits: Tuple[Tuple[float, float], ...] = ARM_JOINT_LIMITS
    joint_signs: Tuple[int, ...] = ARM_JOINT_SIGNS
    solver: SolverConfig = field(default_factory=SolverConfig)

    @property
    def frame_interval_s(self) -> float:
        """Seconds between two frames."""
        return 1.0 / self.fps


@dataclass
class BridgeConfig:
    """Joint-controller bridge configuration.

    Attributes:
        url: WebSocket address of the bridge.
        reconnect_interval_s: Delay before reopening a closed link.
        open_timeout_s: Handshake timeout.
    """

    url: str = BRIDGE_URL
    reconnect_interval_s: float = BRIDGE_RECONNECT_INTERVAL_S
    open_timeout_s: float = 2.0


@dataclass
class DragReachSimConfig:
    """Configuration for the headless drag-to-reach environment.

    Each step moves the drag target by at most ``max_target_step`` and runs
    one rig frame.  The episode succeeds when the hand is within
    ``success_threshold`` of a goal sampled from the reachable workspace.

    Attributes:
        task: Fixed to ``'DragReach-Sim-v0'``.
        episode_length: Maximum steps per episode.
        seed: Random seed for goal sampling.
        action_dim: Target displacement (dx, dy, dz).
        max_target_step: Target displacement for a unit action (rig units).
        success_threshold: Hand-to-goal distance counted as reached.
        rig: Rig engine configuration.
    """

    task: str = "DragReach-Sim-v0"
    episode_length: int = 240
    seed: int = 42
    action_dim: int = 3
    max_target_step: float = 0.02
    success_threshold: float = 0.02
    rig: ReconcilerConfig = field(default_factory=ReconcilerConfig)

    @property
    def env_type(self) -> str:
        """Return the ``task`` field value."""
        return self.task

    @property
    def state_dim(self) -> int:
        """Joint angles, hand position and goal position."""
        return len(self.rig.joint_limits) + 6
