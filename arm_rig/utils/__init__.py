"""
Shared constants, angle conventions, logging setup and helper utilities.

Centralizes rig geometry, joint sign conventions, telemetry field ranges and
small stateless helpers used across the arm_rig package.
"""
