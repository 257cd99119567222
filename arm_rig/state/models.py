"""
Joint state, telemetry and command models.

Mirrors the message shapes exchanged with the joint-controller bridge: a
telemetry snapshot per joint flows in, single complete commands flow out.

Classes:
    JointFlags: Eight status flags decoded from the telemetry bitfield.
    JointState: Mutable per-joint state owned by the reconciler.
    TelemetrySnapshot: One decoded inbound telemetry message.
    EditField: Fields a local edit can lock.
    FieldOwner: Who currently writes a (joint, field) pair.
    CommandType: Outbound command tags.
    Command: One outbound command.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from arm_rig.utils.constants import (
    DEFAULT_ACCEL,
    DEFAULT_CURRENT_MA,
    DEFAULT_MICROSTEPPING,
    DEFAULT_SPEED,
    FLAG_NAMES,
)


@dataclass(frozen=True)
class JointFlags:
    """Status flags reported by a joint controller (bit0 first).

    Attributes:
        ok: Driver healthy.
        open_load: Motor phase open.
        over_temp_warning: Driver approaching thermal limit.
        over_temp: Driver in thermal shutdown.
        stall: Stall detected.
        homing: Homing in progress.
        closed_loop: Encoder closed-loop mode active.
        calibrating: Encoder calibration in progress.
    """

    ok: bool = False
    open_load: bool = False
    over_temp_warning: bool = False
    over_temp: bool = False
    stall: bool = False
    homing: bool = False
    closed_loop: bool = False
    calibrating: bool = False

    @classmethod
    def from_bits(cls, bits: int) -> JointFlags:
        """Decode the low eight bits of *bits*."""
        return cls(**{name: bool(bits >> i & 1) for i, name in enumerate(FLAG_NAMES)})

    def to_bits(self) -> int:
        """Encode back into a bitfield."""
        return sum(1 << i for i, name in enumerate(FLAG_NAMES) if getattr(self, name))


@dataclass
class JointState:
    """Authoritative state of one joint.

    Attributes:
        id: Joint index in ``[0, N)``.
        angle_deg: Last known joint angle.
        target_deg: Commanded angle; this is what dials and the rig show.
        speed: Controller speed setting.
        accel: Controller acceleration setting.
        current_ma: Motor current setting in milliamps.
        microstepping: Microsteps per full step.
        flags: Controller status flags.
    """

    id: int
    angle_deg: float = 0.0
    target_deg: float = 0.0
    speed: float = DEFAULT_SPEED
    accel: float = DEFAULT_ACCEL
    current_ma: float = DEFAULT_CURRENT_MA
    microstepping: int = DEFAULT_MICROSTEPPING
    flags: JointFlags = JointFlags()

    def copy(self) -> JointState:
        """Return an independent copy (flags are immutable and shared)."""
        return replace(self)


@dataclass(frozen=True)
class TelemetrySnapshot:
    """One decoded telemetry message; *None* fields were absent.

    Attributes:
        joint: Joint index.
        angle: Measured angle in degrees.
        target: Commanded angle in degrees.
        speed: Speed setting.
        microstep: Microstepping.
        current_ma: Current setting in milliamps.
        accel: Acceleration setting.
        flags: Decoded status flags.
    """

    joint: int
    angle: Optional[float] = None
    target: Optional[float] = None
    speed: Optional[float] = None
    microstep: Optional[int] = None
    current_ma: Optional[float] = None
    accel: Optional[float] = None
    flags: Optional[JointFlags] = None


class EditField(str, Enum):
    """Fields a local edit can lock; ``ANGLE`` covers angle and target."""

    ANGLE = "angle"
    SPEED = "speed"
    ACCEL = "accel"
    CURRENT = "current"
    MICRO = "micro"


class FieldOwner(str, Enum):
    """Writer currently owning a (joint, field) pair.

    Transitions: ``TELEMETRY -> USER`` on edit begin, ``USER -> TELEMETRY``
    on commit, ``TELEMETRY | USER -> IK`` on drag start (angle only) and
    ``IK -> TELEMETRY`` on drag end.
    """

    TELEMETRY = "telemetry"
    USER = "user"
    IK = "ik"


class CommandType(str, Enum):
    """Outbound command tags."""

    MOVE = "move"
    SPEED = "speed"
    ACCEL = "accel"
    CURRENT = "current"
    MICRO = "micro"
    HOME = "home"
    RESET = "reset"


# Wire key carrying the value of each command type
COMMAND_VALUE_KEYS: Dict[CommandType, str] = {
    CommandType.MOVE: "deg",
    CommandType.SPEED: "v",
    CommandType.ACCEL: "a",
    CommandType.CURRENT: "mA",
    CommandType.MICRO: "u",
}

# Command emitted when a locked field is committed
FIELD_COMMANDS: Dict[EditField, CommandType] = {
    EditField.ANGLE: CommandType.MOVE,
    EditField.SPEED: CommandType.SPEED,
    EditField.ACCEL: CommandType.ACCEL,
    EditField.CURRENT: CommandType.CURRENT,
    EditField.MICRO: CommandType.MICRO,
}


@dataclass(frozen=True)
class Command:
    """One complete outbound command.

    Attributes:
        type: Command tag.
        joint: Target joint index.
        value: Payload value; *None* for ``home`` and ``reset``.
    """

    type: CommandType
    joint: int
    value: Optional[float] = None

    def to_message(self) -> Dict[str, Any]:
        """Return the wire dictionary, e.g. ``{'type': 'move', 'joint': 0, 'deg': 45.0}``."""
        msg: Dict[str, Any] = {"type": self.type.value, "joint": self.joint}
        key = COMMAND_VALUE_KEYS.get(self.type)
        if key is not None:
            msg[key] = int(self.value) if self.type is CommandType.MICRO else self.value
        return msg
