"""
Factory functions wiring configurations to runtime objects.

Functions:
    make_solver: Build a ``CCDSolver`` from a ``SolverConfig``.
    make_reconciler: Build a ``RigStateReconciler`` from a ``ReconcilerConfig``.
    make_channel: Build a ``BridgeChannel`` from a ``BridgeConfig``.
    make_sim_env: Create one or more vectorised simulation environments.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Dict, Optional

import gymnasium as gym

from arm_rig.bridge.channel import BridgeChannel, open_websocket
from arm_rig.envs.configs import (
    BridgeConfig,
    DragReachSimConfig,
    ReconcilerConfig,
    SolverConfig,
)
from arm_rig.robots.arm_chain import make_arm_chain
from arm_rig.robots.ccd_solver import CCDSolver
from arm_rig.state.models import Command
from arm_rig.state.reconciler import RigStateReconciler


# ---------------------------------------------------------------------------
# Config look-up table (name -> default config constructor)
# ---------------------------------------------------------------------------
_ENV_REGISTRY: Dict[str, type] = {
    "drag_reach": DragReachSimConfig,
}


def make_solver(cfg: Optional[SolverConfig] = None) -> CCDSolver:
    cfg = cfg or SolverConfig()
    return CCDSolver(iterations=cfg.iterations, damping=cfg.damping, epsilon=cfg.epsilon)


def make_reconciler(
    cfg: Optional[ReconcilerConfig] = None,
    send: Optional[Callable[[Command], Any]] = None,
) -> RigStateReconciler:
    """Build the rig engine described by *cfg*.

    Args:
        cfg: Rig configuration; defaults to the hardware rig.
        send: Outbound command sink.

    Returns:
        A fresh ``RigStateReconciler``.
    """
    cfg = cfg or ReconcilerConfig()
    return RigStateReconciler(
        chain=make_arm_chain(limits=cfg.joint_limits, signs=cfg.joint_signs),
        solver=make_solver(cfg.solver),
        send=send,
        emit_interval_s=cfg.emit_interval_s,
    )


def make_channel(
    cfg: Optional[BridgeConfig] = None,
    on_telemetry: Optional[Callable[[Dict[str, Any]], Any]] = None,
    on_log: Optional[Callable[[str], None]] = None,
) -> BridgeChannel:
    """Build a WebSocket bridge channel described by *cfg*."""
    cfg = cfg or BridgeConfig()
    return BridgeChannel(
        url=cfg.url,
        connector=functools.partial(open_websocket, open_timeout=cfg.open_timeout_s),
        on_telemetry=on_telemetry,
        on_log=on_log,
        reconnect_interval_s=cfg.reconnect_interval_s,
    )


def _resolve_config(cfg: DragReachSimConfig | str) -> DragReachSimConfig:
    """Convert a string name to its default config, or pass through a config.

    Raises:
        ValueError: If the string name is not in the registry.
    """
    if isinstance(cfg, DragReachSimConfig):
        return cfg
    if cfg not in _ENV_REGISTRY:
        raise ValueError(f"Unknown env '{cfg}'. Choose from {list(_ENV_REGISTRY)}")
    return _ENV_REGISTRY[cfg]()


def _validate_n_envs(n_envs: int) -> None:
    if n_envs < 1:
        raise ValueError("`n_envs` must be at least 1")


def make_sim_env(
    cfg: DragReachSimConfig | str = "drag_reach",
    n_envs: int = 1,
    use_async_envs: bool = False,
) -> Dict[str, Dict[int, gym.vector.VectorEnv]]:
    """Create vectorised drag-to-reach environments.

    Args:
        cfg: A ``DragReachSimConfig`` or a registry name (``'drag_reach'``).
        n_envs: Number of parallel environments (default 1).
        use_async_envs: Whether to use ``AsyncVectorEnv`` (default *False*).

    Returns:
        ``{task_name: {0: VectorEnv}}`` mapping.
    """
    from arm_rig.envs.drag_reach import DragReachSimEnv

    resolved_cfg = _resolve_config(cfg)
    _validate_n_envs(n_envs)
    wrapper_cls = gym.vector.AsyncVectorEnv if use_async_envs else gym.vector.SyncVectorEnv
    vec = wrapper_cls([lambda c=resolved_cfg: DragReachSimEnv(c) for _ in range(n_envs)])
    return {resolved_cfg.env_type: {0: vec}}
