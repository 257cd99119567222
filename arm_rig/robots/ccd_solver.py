"""
Damped Cyclic-Coordinate-Descent (CCD) inverse kinematics.

Each iteration sweeps the chain tip-to-root.  For every joint the current
end-effector and the target are seen from the joint pivot, projected onto
the plane the joint can actually rotate in, and the joint turns a damped
fraction of the signed angle between the two projections.  Motion outside
that plane is left to joints further up the chain.

The solve always runs a fixed number of iterations: it neither loops until
convergence nor raises on unreachable targets.  Degenerate geometry
(effector or target on the pivot or on the joint axis) skips that joint
for the iteration.

Classes:
    CCDResult: Solved joint angles and the distance history.
    CCDSolver: The solver and its tuning parameters.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from arm_rig.robots.arm_chain import JointSpec, KinematicChain
from arm_rig.utils.angles import canonical_in_range
from arm_rig.utils.constants import CCD_DAMPING, CCD_EPSILON, CCD_ITERATIONS
from arm_rig.utils.helpers import to_vector3


@dataclass
class CCDResult:
    """Outcome of one solve.

    Attributes:
        angles: Joint angles in degrees, every entry inside its limits.
        errors: Effector-to-target distance before the first iteration and
            after each iteration.  Empty when the target was rejected.
    """

    angles: np.ndarray
    errors: List[float] = field(default_factory=list)

    @property
    def final_error(self) -> float:
        """Distance after the last iteration (``inf`` if never measured)."""
        return self.errors[-1] if self.errors else math.inf


@dataclass
class CCDSolver:
    """Fixed-budget damped CCD solver.

    Attributes:
        iterations: Tip-to-root sweeps per solve.
        damping: Fraction of the ideal per-joint correction applied.
        epsilon: Length below which a vector counts as zero.
    """

    iterations: int = CCD_ITERATIONS
    damping: float = CCD_DAMPING
    epsilon: float = CCD_EPSILON

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def solve(
        self, chain: KinematicChain, angles: Sequence[float], target: Sequence[float]
    ) -> CCDResult:
        """Move the end-effector of *chain* toward *target*.

        Args:
            chain: Kinematic chain to solve.
            angles: Starting joint angles in degrees.
            target: Target point in the chain's root frame.

        Returns:
            A ``CCDResult``; for a malformed or non-finite target the
            starting angles are returned (clamped) with no error history.
        """
        current = chain.clamp_angles(angles)
        goal = to_vector3(target)
        if goal is None:
            return CCDResult(angles=current)
        errors = [self._distance(chain, current, goal)]
        for _ in range(max(0, int(self.iterations))):
            for joint in reversed(chain.joints):
                self._adjust_joint(chain, current, joint, goal)
            errors.append(self._distance(chain, current, goal))
        return CCDResult(angles=current, errors=errors)

    # ------------------------------------------------------------------
    # Per-joint update
    # ------------------------------------------------------------------

    def _distance(self, chain: KinematicChain, angles: np.ndarray, goal: np.ndarray) -> float:
        return float(np.linalg.norm(chain.end_effector(angles) - goal))

    def _project(self, vec: np.ndarray, axis: np.ndarray) -> np.ndarray:
        """Remove the component of *vec* along the unit vector *axis*."""
        return vec - np.dot(vec, axis) * axis

    def _signed_angle_deg(
        self, from_vec: np.ndarray, to_vec: np.ndarray, axis: np.ndarray
    ) -> float:
        """Signed angle turning unit vector *from_vec* onto *to_vec* about *axis*.

        Args:
            from_vec: Normalized projection of the effector direction.
            to_vec: Normalized projection of the target direction.
            axis: Unit rotation axis in world space.

        Returns:
            Angle in degrees; positive is a right-handed turn about *axis*.
        """
        cross = np.cross(from_vec, to_vec)
        magnitude = math.asin(float(np.clip(np.linalg.norm(cross), -1.0, 1.0)))
        direction = float(np.sign(np.dot(cross, axis)))
        return math.degrees(direction * magnitude)

    def _adjust_joint(
        self,
        chain: KinematicChain,
        angles: np.ndarray,
        joint: JointSpec,
        goal: np.ndarray,
    ) -> None:
        """Rotate one joint toward the goal, in place on *angles*.

        Args:
            chain: Kinematic chain being solved.
            angles: Mutable joint-angle array (degrees).
            joint: Joint to adjust.
            goal: Target position in the root frame.
        """
        pose = chain.forward_kinematics(angles)
        pivot = pose.links[joint.id].position
        axis = chain.world_axis(pose, joint.id)
        to_effector = pose.effector - pivot
        to_goal = goal - pivot
        if min(np.linalg.norm(to_effector), np.linalg.norm(to_goal)) < self.epsilon:
            return
        effector_plane = self._project(to_effector, axis)
        goal_plane = self._project(to_goal, axis)
        effector_len = np.linalg.norm(effector_plane)
        goal_len = np.linalg.norm(goal_plane)
        if min(effector_len, goal_len) < self.epsilon:
            return
        rig_delta = self.damping * self._signed_angle_deg(
            effector_plane / effector_len, goal_plane / goal_len, axis
        )
        base = canonical_in_range(angles[joint.id], joint.min_deg, joint.max_deg)
        angles[joint.id] = joint.clamp(base + joint.sign * rig_delta)
