"""
Headless drag-to-reach simulation environment (Gymnasium-compatible).

The agent plays the user's pointer: each action displaces the IK drag
target and the rig engine runs one frame (one CCD solve).  A goal is
sampled from forward kinematics of random in-limit angles, so it always
lies in the reachable workspace.  Released drags commit one ``move`` per
moved joint, exposed through ``info['commands']``.

Classes:
    DragReachSimEnv: Gymnasium environment for the drag-to-reach task.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import gymnasium as gym
import numpy as np
from gymnasium import spaces

from arm_rig.envs.configs import DragReachSimConfig
from arm_rig.robots.arm_chain import make_arm_chain
from arm_rig.robots.ccd_solver import CCDSolver
from arm_rig.state.models import Command
from arm_rig.state.reconciler import RigStateReconciler, Snapshot


class DragReachSimEnv(gym.Env):
    """Gymnasium environment driving the rig engine with drag gestures.

    Observations are ``{'agent_pos': [angles..., hand xyz, goal xyz]}``.
    The reward is the negative hand-to-goal distance.

    Attributes:
        metadata: Gymnasium metadata; the environment does not render.
        cfg: ``DragReachSimConfig`` controlling episode length, step size, etc.
    """

    metadata: Dict[str, Any] = {"render_modes": []}

    def __init__(self, cfg: DragReachSimConfig | None = None) -> None:
        super().__init__()
        self.cfg = cfg or DragReachSimConfig()
        self._rng = np.random.default_rng(self.cfg.seed)
        self._step_count = 0
        self._commands: List[Command] = []
        self._published = 0
        self._goal = np.zeros(3)
        self._rig = self._make_rig()
        self._init_spaces()

    # ------------------------------------------------------------------
    # Initialisation helpers
    # ------------------------------------------------------------------

    def _make_rig(self) -> RigStateReconciler:
        rig_cfg = self.cfg.rig
        solver_cfg = rig_cfg.solver
        rig = RigStateReconciler(
            chain=make_arm_chain(limits=rig_cfg.joint_limits, signs=rig_cfg.joint_signs),
            solver=CCDSolver(solver_cfg.iterations, solver_cfg.damping, solver_cfg.epsilon),
            send=self._commands.append,
            emit_interval_s=rig_cfg.emit_interval_s,
        )
        rig.subscribe(self._count_snapshot)
        return rig

    def _count_snapshot(self, snapshot: Snapshot) -> None:
        self._published += 1

    def _init_spaces(self) -> None:
        """Define action and observation Gymnasium spaces."""
        self.action_space = spaces.Box(
            low=-1.0, high=1.0, shape=(self.cfg.action_dim,), dtype=np.float32
        )
        self.observation_space = spaces.Dict(
            {
                "agent_pos": spaces.Box(
                    low=-360.0, high=360.0, shape=(self.cfg.state_dim,), dtype=np.float32
                )
            }
        )

    # ------------------------------------------------------------------
    # Gymnasium API
    # ------------------------------------------------------------------

    @property
    def rig(self) -> RigStateReconciler:
        """The rig engine driven by this environment."""
        return self._rig

    @property
    def goal(self) -> np.ndarray:
        return self._goal.copy()

    def _randomise_goal(self) -> None:
        """Sample a goal from the hand position of random in-limit angles."""
        chain = self._rig.chain
        lows = np.array([j.min_deg for j in chain.joints])
        highs = np.array([j.max_deg for j in chain.joints])
        self._goal = chain.end_effector(self._rng.uniform(lows, highs))

    def reset(
        self, *, seed: Optional[int] = None, options: Optional[Dict[str, Any]] = None
    ) -> Tuple[Dict[str, np.ndarray], Dict[str, Any]]:
        """Reset the rig to its rest pose, sample a goal and grab the hand.

        Args:
            seed: Optional RNG seed.
            options: Unused; for Gymnasium compatibility.

        Returns:
            Tuple of (observation dict, info dict).
        """
        super().reset(seed=seed)
        if seed is not None:
            self._rng = np.random.default_rng(seed)
        self._step_count = 0
        self._published = 0
        self._commands.clear()
        self._rig = self._make_rig()
        self._randomise_goal()
        self._rig.begin_drag()
        return self._build_observation(), {}

    def step(
        self, action: np.ndarray
    ) -> Tuple[Dict[str, np.ndarray], float, bool, bool, Dict[str, Any]]:
        """Move the drag target and run one rig frame.

        Args:
            action: 3-D target displacement in ``[-1, 1]`` per axis, scaled by
                ``max_target_step``.

        Returns:
            Tuple of (observation, reward, terminated, truncated, info).
        """
        action = np.clip(np.asarray(action, dtype=np.float64), -1.0, 1.0)
        target = self._rig.drag_target
        if target is not None:
            self._rig.update_drag_target(target + action * self.cfg.max_target_step)
        self._step_count += 1
        self._rig.tick(now=self._step_count * self.cfg.rig.frame_interval_s)

        distance = self._distance()
        success = distance < self.cfg.success_threshold
        truncated = self._step_count >= self.cfg.episode_length
        info: Dict[str, Any] = {"is_success": success, "distance": distance}
        if success or truncated:
            self._rig.end_drag()
            info["commands"] = list(self._commands)
            info["snapshots_published"] = self._published
        return self._build_observation(), -distance, success, truncated, info

    def scripted_action(self) -> np.ndarray:
        """Action pulling the drag target straight towards the goal."""
        target = self._rig.drag_target
        if target is None:
            return np.zeros(self.cfg.action_dim, dtype=np.float32)
        delta = (self._goal - target) / self.cfg.max_target_step
        return np.clip(delta, -1.0, 1.0).astype(np.float32)

    # ------------------------------------------------------------------
    # Observation builder
    # ------------------------------------------------------------------

    def _distance(self) -> float:
        return float(np.linalg.norm(self._rig.pose().effector - self._goal))

    def _build_observation(self) -> Dict[str, np.ndarray]:
        state = np.concatenate(
            [self._rig.joint_angles(), self._rig.pose().effector, self._goal]
        ).astype(np.float32)
        return {"agent_pos": state}
