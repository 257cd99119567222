"""
Serial joint chain with forward kinematics for the humanoid arm rig.

The chain is an arena: a tuple of immutable ``JointSpec`` records where each
joint names its parent by index.  Forward kinematics is a root-to-tip fold
over that tuple; nothing is cached between calls, so a pose is always a pure
function of the joint angles handed in.

Classes:
    JointSpec: Static description of one revolute joint.
    LinkPose: Read-only world pose of one joint frame.
    RigPose: Read-only world poses of every joint plus the end-effector.
    KinematicChain: The joint arena and its forward kinematics.

Functions:
    axis_rotation: 3x3 rotation about a principal axis.
    make_arm_chain: Build the default right-arm rig.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from arm_rig.utils.constants import (
    ARM_JOINT_AXES,
    ARM_JOINT_LIMITS,
    ARM_JOINT_OFFSETS,
    ARM_JOINT_SIGNS,
    ARM_TIP_OFFSET,
)

ROOT_PARENT: int = -1

_UNIT_AXES = {
    "x": np.array([1.0, 0.0, 0.0]),
    "y": np.array([0.0, 1.0, 0.0]),
    "z": np.array([0.0, 0.0, 1.0]),
}


def axis_rotation(axis: str, angle_deg: float) -> np.ndarray:
    """Return the 3x3 rotation matrix about a principal axis.

    Args:
        axis: ``'x'``, ``'y'`` or ``'z'``.
        angle_deg: Right-handed rotation angle in degrees.

    Returns:
        Rotation matrix of shape ``(3, 3)``.
    """
    rad = np.radians(angle_deg)
    c = np.cos(rad)
    s = np.sin(rad)
    if axis == "x":
        return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])
    if axis == "y":
        return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def _frozen(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    return array


@dataclass(frozen=True)
class JointSpec:
    """Static description of one revolute joint.

    Attributes:
        id: Index of the joint in its chain.
        axis: Local rotation axis, ``'x'``, ``'y'`` or ``'z'``.
        sign: ``+1`` or ``-1``; the rig rotates by ``sign * angle``.
        min_deg: Lower joint limit in degrees.
        max_deg: Upper joint limit in degrees.
        parent_id: Index of the parent joint, ``-1`` for the chain root.
        offset: Fixed translation of the joint pivot in the parent frame.
    """

    id: int
    axis: str
    sign: int
    min_deg: float
    max_deg: float
    parent_id: int = ROOT_PARENT
    offset: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def local_axis(self) -> np.ndarray:
        """Unit vector of the rotation axis in the joint's own frame."""
        return _UNIT_AXES[self.axis].copy()

    def clamp(self, angle_deg: float) -> float:
        """Clamp *angle_deg* into ``[min_deg, max_deg]``."""
        return float(min(self.max_deg, max(self.min_deg, angle_deg)))


@dataclass(frozen=True)
class LinkPose:
    """World pose of a joint frame, after the joint's own rotation.

    Attributes:
        joint_id: Index of the joint.
        position: Pivot position in the root frame, shape ``(3,)``.
        rotation: Frame orientation in the root frame, shape ``(3, 3)``.
    """

    joint_id: int
    position: np.ndarray
    rotation: np.ndarray


@dataclass(frozen=True)
class RigPose:
    """Read-only world poses of a whole chain.

    Attributes:
        links: One ``LinkPose`` per joint, in chain order.
        effector: End-effector position in the root frame.
    """

    links: Tuple[LinkPose, ...]
    effector: np.ndarray


@dataclass(frozen=True)
class KinematicChain:
    """Serial chain of revolute joints with a fixed tip offset.

    Joints are stored in an arena ordered so that every parent precedes its
    children; joint ``i`` has ``id == i``.

    Attributes:
        joints: The joint specs in chain order.
        tip_offset: End-effector offset in the last joint's frame.
    """

    joints: Tuple[JointSpec, ...]
    tip_offset: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        """Validate ids, parent ordering, axes, signs and limits.

        Raises:
            ValueError: If the arena is not a well-formed chain.
        """
        if not self.joints:
            raise ValueError("A kinematic chain needs at least one joint")
        for index, joint in enumerate(self.joints):
            self._validate_joint(index, joint)

    @staticmethod
    def _validate_joint(index: int, joint: JointSpec) -> None:
        if joint.id != index:
            raise ValueError(f"Joint at index {index} has id {joint.id}")
        if not ROOT_PARENT <= joint.parent_id < index:
            raise ValueError(
                f"Joint {index} parent {joint.parent_id} must precede it in the chain"
            )
        if joint.axis not in _UNIT_AXES:
            raise ValueError(f"Joint {index} axis '{joint.axis}' is not x, y or z")
        if joint.sign not in (1, -1):
            raise ValueError(f"Joint {index} sign must be +1 or -1, got {joint.sign}")
        if joint.min_deg > joint.max_deg:
            raise ValueError(f"Joint {index} limits are inverted")

    # ------------------------------------------------------------------
    # Angle helpers
    # ------------------------------------------------------------------

    @property
    def num_joints(self) -> int:
        """Number of joints in the chain."""
        return len(self.joints)

    def clamp_angles(self, angles: Sequence[float]) -> np.ndarray:
        """Return *angles* with non-finite entries zeroed and limits enforced.

        Args:
            angles: One angle per joint in degrees; missing entries are 0.

        Returns:
            Float64 array of shape ``(num_joints,)``.
        """
        raw = np.zeros(self.num_joints)
        given = np.asarray(angles, dtype=np.float64).ravel()[: self.num_joints]
        raw[: given.shape[0]] = given
        raw[~np.isfinite(raw)] = 0.0
        lower = np.array([j.min_deg for j in self.joints])
        upper = np.array([j.max_deg for j in self.joints])
        return np.clip(raw, lower, upper)

    # ------------------------------------------------------------------
    # Forward kinematics
    # ------------------------------------------------------------------

    def _fold_frames(self, angles: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Compose every joint frame root-to-tip.

        Args:
            angles: Clamped joint angles in degrees.

        Returns:
            Tuple of positions ``(N, 3)`` and rotations ``(N, 3, 3)``.
        """
        n = self.num_joints
        positions = np.zeros((n, 3))
        rotations = np.zeros((n, 3, 3))
        for joint in self.joints:
            if joint.parent_id == ROOT_PARENT:
                parent_pos, parent_rot = np.zeros(3), np.eye(3)
            else:
                parent_pos = positions[joint.parent_id]
                parent_rot = rotations[joint.parent_id]
            positions[joint.id] = parent_pos + parent_rot @ np.asarray(joint.offset)
            rotations[joint.id] = parent_rot @ axis_rotation(
                joint.axis, joint.sign * angles[joint.id]
            )
        return positions, rotations

    def forward_kinematics(self, angles: Sequence[float]) -> RigPose:
        """Compute the world pose of every joint and the end-effector.

        Args:
            angles: One angle per joint in degrees (clamped into limits).

        Returns:
            A read-only ``RigPose``.
        """
        positions, rotations = self._fold_frames(self.clamp_angles(angles))
        links = tuple(
            LinkPose(
                joint_id=i,
                position=_frozen(positions[i].copy()),
                rotation=_frozen(rotations[i].copy()),
            )
            for i in range(self.num_joints)
        )
        effector = positions[-1] + rotations[-1] @ np.asarray(self.tip_offset)
        return RigPose(links=links, effector=_frozen(effector))

    def end_effector(self, angles: Sequence[float]) -> np.ndarray:
        """Return the end-effector position for *angles*.

        Args:
            angles: One angle per joint in degrees.

        Returns:
            Writable array of shape ``(3,)``.
        """
        positions, rotations = self._fold_frames(self.clamp_angles(angles))
        return positions[-1] + rotations[-1] @ np.asarray(self.tip_offset)

    def world_axis(self, pose: RigPose, joint_id: int) -> np.ndarray:
        """Return the world direction of a joint's rotation axis.

        A joint's rotation leaves its own axis unchanged, so the axis is read
        straight off the joint frame.

        Args:
            pose: Pose produced by :meth:`forward_kinematics`.
            joint_id: Index of the joint.

        Returns:
            Unit vector of shape ``(3,)``.
        """
        return pose.links[joint_id].rotation @ self.joints[joint_id].local_axis


def make_arm_chain(
    limits: Sequence[Tuple[float, float]] = ARM_JOINT_LIMITS,
    signs: Sequence[int] = ARM_JOINT_SIGNS,
) -> KinematicChain:
    """Build the right-arm rig: shoulder pitch, shoulder roll, elbow, wrist.

    Args:
        limits: ``(min_deg, max_deg)`` per joint.
        signs: Rotation sign per joint.

    Returns:
        A four-joint ``KinematicChain`` rooted at the chest frame.
    """
    joints = tuple(
        JointSpec(
            id=i,
            axis=ARM_JOINT_AXES[i],
            sign=int(signs[i]),
            min_deg=float(limits[i][0]),
            max_deg=float(limits[i][1]),
            parent_id=i - 1,
            offset=ARM_JOINT_OFFSETS[i],
        )
        for i in range(len(ARM_JOINT_AXES))
    )
    return KinematicChain(joints=joints, tip_offset=ARM_TIP_OFFSET)
