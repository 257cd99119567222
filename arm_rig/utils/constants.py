"""
Shared constants for the arm_rig package.

Collects the humanoid right-arm rig geometry, the per-joint rotation sign
conventions, joint-controller field defaults and ranges, and the timing
defaults of the frame loop, solver and command channel.
"""

from __future__ import annotations

from typing import Dict, Tuple

# ---------------------------------------------------------------------------
# Frame loop / solver defaults
# ---------------------------------------------------------------------------
DEFAULT_FPS: int = 60
CCD_ITERATIONS: int = 10
CCD_DAMPING: float = 0.6
CCD_EPSILON: float = 1e-9

# Minimum spacing between drag snapshots sent to dependent views (seconds)
DRAG_EMIT_INTERVAL_S: float = 0.040

# ---------------------------------------------------------------------------
# Command channel defaults
# ---------------------------------------------------------------------------
BRIDGE_URL: str = "ws://192.168.1.14:81/"
BRIDGE_RECONNECT_INTERVAL_S: float = 2.0

# ---------------------------------------------------------------------------
# Rig geometry (rig units, chest frame = rig root frame)
# ---------------------------------------------------------------------------
ARM_JOINT_NAMES: Tuple[str, ...] = ("Shoulder", "Upper Arm", "Elbow", "Wrist")
ARM_JOINT_AXES: Tuple[str, ...] = ("x", "z", "x", "x")
SHOULDER_MOUNT_OFFSET: Tuple[float, float, float] = (-0.55, 0.2, 0.0)
UPPER_ARM_LENGTH: float = 0.8
FOREARM_LENGTH: float = 0.7
HAND_LENGTH: float = 0.18

ARM_JOINT_OFFSETS: Tuple[Tuple[float, float, float], ...] = (
    SHOULDER_MOUNT_OFFSET,
    (0.0, 0.0, 0.0),
    (0.0, -UPPER_ARM_LENGTH, 0.0),
    (0.0, -FOREARM_LENGTH, 0.0),
)
ARM_TIP_OFFSET: Tuple[float, float, float] = (0.0, -HAND_LENGTH, 0.0)

# ---------------------------------------------------------------------------
# Rotation sign per joint: rig rotation = sign * joint angle.
# Rig revisions disagree on which way positive shoulder pitch swings; each
# convention lives here and nowhere else.
# ---------------------------------------------------------------------------
SHOULDER_PITCH_SIGN: int = -1
SHOULDER_ROLL_SIGN: int = -1
ELBOW_FLEX_SIGN: int = -1
WRIST_FLEX_SIGN: int = 1

ARM_JOINT_SIGNS: Tuple[int, ...] = (
    SHOULDER_PITCH_SIGN,
    SHOULDER_ROLL_SIGN,
    ELBOW_FLEX_SIGN,
    WRIST_FLEX_SIGN,
)

# Hardware-space joint limits in degrees
ARM_JOINT_LIMITS: Tuple[Tuple[float, float], ...] = (
    (-30.0, 180.0),
    (-5.0, 180.0),
    (0.0, 150.0),
    (-90.0, 90.0),
)

# ---------------------------------------------------------------------------
# Joint controller fields
# ---------------------------------------------------------------------------
DEFAULT_SPEED: float = 30.0
DEFAULT_ACCEL: float = 50000.0
DEFAULT_CURRENT_MA: float = 1000.0
DEFAULT_MICROSTEPPING: int = 32

MICROSTEP_TABLE: Tuple[int, ...] = (1, 2, 4, 8, 16, 32, 64, 128, 256)
DEFAULT_NUDGE_STEP: int = 5

# Accepted (inclusive) ranges for locally committed values
FIELD_RANGES: Dict[str, Tuple[float, float]] = {
    "speed": (0.0, 3000.0),
    "accel": (0.0, 65535.0),
    "current": (0.0, 5200.0),
}

# Telemetry flag bits, bit0 first
FLAG_NAMES: Tuple[str, ...] = (
    "ok",
    "open_load",
    "over_temp_warning",
    "over_temp",
    "stall",
    "homing",
    "closed_loop",
    "calibrating",
)

# ---------------------------------------------------------------------------
# Dial display
# ---------------------------------------------------------------------------
ZERO_POSITION_OFFSETS: Dict[str, float] = {
    "top": 0.0,
    "right": 90.0,
    "bottom": 180.0,
    "left": 270.0,
}
DIAL_LABEL_SPACING: int = 30
