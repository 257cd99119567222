"""
Configuration, factories and the Gymnasium drag-to-reach environment.
"""

from arm_rig.envs.configs import (
    BridgeConfig,
    DragReachSimConfig,
    ReconcilerConfig,
    SolverConfig,
)
from arm_rig.envs.drag_reach import DragReachSimEnv
from arm_rig.envs.factory import make_channel, make_reconciler, make_sim_env, make_solver

__all__ = [
    "BridgeConfig",
    "DragReachSimConfig",
    "ReconcilerConfig",
    "SolverConfig",
    "DragReachSimEnv",
    "make_channel",
    "make_reconciler",
    "make_sim_env",
    "make_solver",
]
