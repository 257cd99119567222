"""
State reconciliation engine for the arm rig.

Three writers compete for the per-joint state:

* **Telemetry** from the joint controllers, applied to a field only while
  telemetry owns it.
* **Local edits** (typed input, dial drags, nudge and preset buttons).  An
  edit takes ownership of its (joint, field) pair, writes optimistically,
  and on commit hands ownership back and emits exactly one command.
* **IK** while the hand is dragged.  The drag owns the angle of every chain
  joint, runs one CCD solve per frame, publishes throttled snapshots to
  views and, on release, one final snapshot plus one ``move`` per joint
  that moved.

Without ownership, a telemetry echo arriving mid-gesture would snap the
control back to a stale value.

Everything runs on one cooperative frame loop; ownership is plain state,
not a lock.  Public methods never raise on bad input: they log and keep the
previous state.

Classes:
    RigStateReconciler: The engine.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from arm_rig.bridge.messages import TelemetryDecodeError, decode_telemetry, parse_message
from arm_rig.robots.arm_chain import KinematicChain, RigPose, make_arm_chain
from arm_rig.robots.ccd_solver import CCDSolver
from arm_rig.state.models import (
    FIELD_COMMANDS,
    Command,
    CommandType,
    EditField,
    FieldOwner,
    JointState,
    TelemetrySnapshot,
)
from arm_rig.state.sampler import ThrottledSampler
from arm_rig.utils.angles import quantize
from arm_rig.utils.constants import (
    DEFAULT_NUDGE_STEP,
    DRAG_EMIT_INTERVAL_S,
    FIELD_RANGES,
    MICROSTEP_TABLE,
)
from arm_rig.utils.helpers import clamp, is_finite_number, to_vector3

logger = logging.getLogger(__name__)

Snapshot = Dict[int, JointState]
TelemetryInput = Union[TelemetrySnapshot, Mapping[str, Any], str, bytes]

# JointState attribute written by each non-angle edit field
_FIELD_ATTRS: Dict[EditField, str] = {
    EditField.SPEED: "speed",
    EditField.ACCEL: "accel",
    EditField.CURRENT: "current_ma",
    EditField.MICRO: "microstepping",
}


class RigStateReconciler:
    """Authoritative per-joint state merged from telemetry, edits and IK.

    Args:
        chain: Kinematic chain; joint ids are ``0..chain.num_joints - 1``.
        solver: CCD solver run once per frame while dragging.
        send: Outbound command sink (usually ``BridgeChannel.send``).
        emit_interval_s: Minimum spacing of drag snapshots to views.
        clock: Monotonic clock used when no timestamp is passed.
    """

    def __init__(
        self,
        chain: Optional[KinematicChain] = None,
        solver: Optional[CCDSolver] = None,
        send: Optional[Callable[[Command], Any]] = None,
        emit_interval_s: float = DRAG_EMIT_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.chain = chain or make_arm_chain()
        self.solver = solver or CCDSolver()
        self._send = send
        self._clock = clock
        self._views: List[Callable[[Snapshot], None]] = []
        self._states: Dict[int, JointState] = {}
        self._owners: Dict[Tuple[int, EditField], FieldOwner] = {}
        self._sampler = ThrottledSampler(publish=self._publish, interval_s=emit_interval_s)
        self._drag_target: Optional[np.ndarray] = None
        self._drag_start: Dict[int, float] = {}

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def num_joints(self) -> int:
        return self.chain.num_joints

    def is_valid_joint(self, joint: Any) -> bool:
        """Return whether *joint* is an index of the chain."""
        return (
            isinstance(joint, (int, np.integer))
            and not isinstance(joint, bool)
            and 0 <= joint < self.num_joints
        )

    def state(self, joint: int) -> Optional[JointState]:
        """Return a copy of one joint's state, *None* for unknown joints.

        Joints never observed yet report their defaults, with angle and
        target at 0 clamped into the joint limits.
        """
        if not self.is_valid_joint(joint):
            return None
        return self._state(joint).copy()

    def snapshot(self) -> Snapshot:
        """Return copies of every joint state, keyed by joint id."""
        return {j: self._state(j).copy() for j in range(self.num_joints)}

    def owner(self, joint: int, field: EditField) -> FieldOwner:
        """Return who currently writes ``(joint, field)``.

        Unknown joints and fields are always telemetry-owned.
        """
        if not self._is_edit_target(joint, field):
            return FieldOwner.TELEMETRY
        return self._owners.get((joint, field), FieldOwner.TELEMETRY)

    def is_locked(self, joint: int, field: EditField) -> bool:
        """Return *True* while telemetry must not overwrite ``(joint, field)``."""
        return self.owner(joint, field) is not FieldOwner.TELEMETRY

    def field_range(self, joint: int, field: EditField) -> Optional[Tuple[float, float]]:
        """Return the inclusive accepted range of a numeric field, *None* if unknown."""
        if not self._is_edit_target(joint, field):
            return None
        if field is EditField.ANGLE:
            spec = self.chain.joints[joint]
            return spec.min_deg, spec.max_deg
        if field is EditField.MICRO:
            return float(MICROSTEP_TABLE[0]), float(MICROSTEP_TABLE[-1])
        return FIELD_RANGES[field.value]

    def _is_edit_target(self, joint: Any, field: Any) -> bool:
        return self.is_valid_joint(joint) and isinstance(field, EditField)

    def joint_angles(self) -> np.ndarray:
        """Return the displayed (target) angle of every chain joint."""
        return np.array([self._state(j).target_deg for j in range(self.num_joints)])

    def pose(self) -> RigPose:
        """Recompute the read-only rig pose from the current state."""
        return self.chain.forward_kinematics(self.joint_angles())

    def subscribe(self, view: Callable[[Snapshot], None]) -> None:
        """Register a view receiving snapshots after every state change."""
        self._views.append(view)

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def apply_telemetry(self, message: TelemetryInput) -> bool:
        """Merge one telemetry message into the state.

        Locked fields are left untouched; flags always apply.  Angles are
        clamped into the joint limits.  Malformed messages are logged and
        dropped.

        Args:
            message: A decoded snapshot, a message dictionary or raw JSON.

        Returns:
            *True* when the message was applied.
        """
        try:
            snap = self._decode(message)
        except TelemetryDecodeError as exc:
            logger.warning("Dropping malformed telemetry: %s", exc)
            return False
        if not self.is_valid_joint(snap.joint):
            logger.warning("Dropping telemetry for unknown joint %s", snap.joint)
            return False

        st = self._state(snap.joint)
        if not self.is_locked(snap.joint, EditField.ANGLE):
            spec = self.chain.joints[snap.joint]
            if snap.angle is not None:
                st.angle_deg = spec.clamp(snap.angle)
            if snap.target is not None:
                st.target_deg = spec.clamp(snap.target)
        self._apply_unlocked(snap.joint, EditField.SPEED, snap.speed)
        self._apply_unlocked(snap.joint, EditField.ACCEL, snap.accel)
        self._apply_unlocked(snap.joint, EditField.CURRENT, snap.current_ma)
        self._apply_unlocked(snap.joint, EditField.MICRO, snap.microstep)
        if snap.flags is not None:
            st.flags = snap.flags
        if not self.is_dragging:
            self._publish(self.snapshot())
        return True

    def _decode(self, message: TelemetryInput) -> TelemetrySnapshot:
        if isinstance(message, TelemetrySnapshot):
            return message
        if isinstance(message, (str, bytes)):
            message = parse_message(message)
        return decode_telemetry(message)

    def _apply_unlocked(self, joint: int, field: EditField, value: Any) -> None:
        if value is None or self.is_locked(joint, field):
            return
        attr = _FIELD_ATTRS[field]
        setattr(self._state(joint), attr, int(value) if field is EditField.MICRO else value)

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------

    def begin_edit(self, joint: int, field: EditField) -> bool:
        """Take ownership of ``(joint, field)`` for a user gesture.

        Returns:
            *False* for unknown joints or while a drag owns the field.
        """
        if not self._is_edit_target(joint, field) or self.owner(joint, field) is FieldOwner.IK:
            return False
        self._owners[(joint, field)] = FieldOwner.USER
        return True

    def preview_edit(self, joint: int, field: EditField, value: float) -> bool:
        """Write an in-progress edit value optimistically.

        Angles are clamped into the joint limits like a dial would; other
        fields must already be valid.  Invalid values are ignored.

        Returns:
            *True* when the value was written.
        """
        if not self.begin_edit(joint, field):
            return False
        if field is EditField.ANGLE and is_finite_number(value):
            value = clamp(float(value), *self.field_range(joint, field))
        if not self._is_valid_value(joint, field, value):
            logger.debug("Ignoring invalid %s preview %r for joint %d", field.value, value, joint)
            return False
        self._write_field(joint, field, value)
        self._publish(self.snapshot())
        return True

    def cancel_edit(self, joint: int, field: EditField) -> None:
        """Release a user lock without sending anything."""
        if self.owner(joint, field) is FieldOwner.USER:
            del self._owners[(joint, field)]

    def commit_edit(
        self, joint: int, field: EditField, value: Optional[float] = None
    ) -> Optional[Command]:
        """Finish an edit: release the lock and send one command.

        Args:
            joint: Joint index.
            field: Edited field.
            value: Final value; defaults to the field's current value.

        Returns:
            The command sent, or *None* when the value was non-finite, out
            of range, or the field is owned by a drag.
        """
        if not self._is_edit_target(joint, field) or self.owner(joint, field) is FieldOwner.IK:
            return None
        self.cancel_edit(joint, field)
        if value is None:
            value = self._read_field(joint, field)
        if not self._is_valid_value(joint, field, value):
            logger.debug("Ignoring invalid %s commit %r for joint %d", field.value, value, joint)
            return None
        self._write_field(joint, field, value)
        command = Command(FIELD_COMMANDS[field], joint, self._read_field(joint, field))
        self._publish(self.snapshot())
        self._emit(command)
        return command

    def nudge(
        self, joint: int, direction: int, step: float = DEFAULT_NUDGE_STEP
    ) -> Optional[Command]:
        """Move a joint's target one step up (``direction >= 0``) or down and commit.

        The result is snapped to the step grid and clamped into the limits.
        """
        if not self.is_valid_joint(joint) or not is_finite_number(step) or step <= 0:
            return None
        current = self._state(joint).target_deg
        moved = quantize(current + (1 if direction >= 0 else -1) * step, step)
        lo, hi = self.field_range(joint, EditField.ANGLE)
        return self.commit_edit(joint, EditField.ANGLE, clamp(moved, lo, hi))

    def preset(self, joint: int, angle_deg: float) -> Optional[Command]:
        """Commit a fixed target angle (ignored when out of range)."""
        return self.commit_edit(joint, EditField.ANGLE, angle_deg)

    def home(self, joint: int) -> Optional[Command]:
        """Send a ``home`` command."""
        return self._simple_command(CommandType.HOME, joint)

    def reset(self, joint: int) -> Optional[Command]:
        """Send a ``reset`` command."""
        return self._simple_command(CommandType.RESET, joint)

    def _simple_command(self, kind: CommandType, joint: int) -> Optional[Command]:
        if not self.is_valid_joint(joint):
            return None
        command = Command(kind, joint)
        self._emit(command)
        return command

    def _is_valid_value(self, joint: int, field: EditField, value: Any) -> bool:
        if not is_finite_number(value):
            return False
        if field is EditField.MICRO:
            return float(value) == int(value) and int(value) in MICROSTEP_TABLE
        lo, hi = self.field_range(joint, field)
        return lo <= float(value) <= hi

    def _read_field(self, joint: int, field: EditField) -> float:
        st = self._state(joint)
        if field is EditField.ANGLE:
            return st.target_deg
        return getattr(st, _FIELD_ATTRS[field])

    def _write_field(self, joint: int, field: EditField, value: float) -> None:
        st = self._state(joint)
        if field is EditField.ANGLE:
            st.target_deg = float(value)
            st.angle_deg = float(value)
        elif field is EditField.MICRO:
            st.microstepping = int(value)
        else:
            setattr(st, _FIELD_ATTRS[field], float(value))

    # ------------------------------------------------------------------
    # IK drag
    # ------------------------------------------------------------------

    @property
    def is_dragging(self) -> bool:
        """*True* between ``begin_drag`` and ``end_drag``."""
        return self._drag_target is not None

    @property
    def drag_target(self) -> Optional[np.ndarray]:
        """Copy of the current effector target, *None* when not dragging."""
        return None if self._drag_target is None else self._drag_target.copy()

    def begin_drag(self, target: Optional[Sequence[float]] = None) -> bool:
        """Start a drag gesture; the rig becomes locally authoritative.

        Pending user edits on chain angles are discarded without a command.

        Args:
            target: Initial effector target; defaults to the current hand
                position.

        Returns:
            *False* if a drag is already active or *target* is malformed.
        """
        if self.is_dragging:
            return False
        start = self.pose().effector.copy() if target is None else to_vector3(target)
        if start is None:
            logger.debug("Ignoring drag start with malformed target %r", target)
            return False
        for j in range(self.num_joints):
            self._owners[(j, EditField.ANGLE)] = FieldOwner.IK
        self._drag_start = {j: self._state(j).target_deg for j in range(self.num_joints)}
        self._drag_target = start
        self._sampler.reset()
        logger.debug("Drag started at %s", start)
        return True

    def update_drag_target(self, target: Sequence[float]) -> bool:
        """Move the effector target; malformed points are ignored."""
        point = to_vector3(target)
        if not self.is_dragging or point is None:
            return False
        self._drag_target = point
        return True

    def tick(self, now: Optional[float] = None) -> RigPose:
        """Advance one frame: solve while dragging, then return the pose.

        Args:
            now: Monotonic timestamp; read from the clock when omitted.

        Returns:
            The rig pose for this frame.
        """
        if self.is_dragging:
            now = self._clock() if now is None else now
            result = self.solver.solve(self.chain, self.joint_angles(), self._drag_target)
            for j, angle in enumerate(result.angles):
                st = self._state(j)
                st.angle_deg = float(angle)
                st.target_deg = float(angle)
            self._sampler.sample(self.snapshot(), now)
        return self.pose()

    def end_drag(self) -> List[Command]:
        """Finish the drag: flush a final snapshot and commit moved joints.

        Ownership of every chain angle returns to telemetry and throttle
        state is discarded.

        Returns:
            The ``move`` commands sent, one per joint whose target changed.
        """
        if not self.is_dragging:
            return []
        for j in range(self.num_joints):
            self._owners.pop((j, EditField.ANGLE), None)
        self._drag_target = None
        self._sampler.flush(self.snapshot())
        commands = []
        for j, start in self._drag_start.items():
            final = self._state(j).target_deg
            if not math.isclose(final, start, abs_tol=1e-9):
                commands.append(Command(CommandType.MOVE, j, final))
        self._drag_start = {}
        for command in commands:
            self._emit(command)
        logger.debug("Drag ended, %d joint(s) moved", len(commands))
        return commands

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _state(self, joint: int) -> JointState:
        st = self._states.get(joint)
        if st is None:
            rest = self.chain.joints[joint].clamp(0.0)
            st = JointState(id=joint, angle_deg=rest, target_deg=rest)
            self._states[joint] = st
        return st

    def _publish(self, snapshot: Snapshot) -> None:
        for view in list(self._views):
            try:
                view(snapshot)
            except Exception:
                logger.exception("View callback failed")

    def _emit(self, command: Command) -> None:
        if self._send is None:
            return
        try:
            self._send(command)
        except Exception:
            logger.exception("Command sink failed for %s", command)
