"""
Arm rig IK engine.

Drives a multi-joint humanoid arm rig from a single 3-D drag target and
keeps every angle space (hardware units, dial display, rig rotation)
consistent.  Telemetry from the joint controllers, in-progress local edits
and solver output are merged into one authoritative per-joint state.

Modules:
    utils: Shared constants, angle conventions, logging and small helpers.
    robots: Kinematic chain model, forward kinematics and the CCD solver.
    state: Joint state models, edit ownership and the reconciliation engine.
    bridge: Telemetry/command message codec and the reconnecting channel.
    teleop: Pointer-drag input mapped to IK gestures.
    envs: Gymnasium environment running the rig frame loop headless.
"""

__version__ = "0.1.0"
