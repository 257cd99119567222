"""Test the state reconciliation engine.

Tests for arm_rig.state.reconciler:
    - Unobserved joints start at 0 clamped into their limits
    - Telemetry decode scenario updates joint fields exactly
    - Malformed or unknown-joint telemetry is dropped
    - Edit ownership suppresses telemetry on the locked field only
    - Commit releases ownership and sends exactly one command
    - Invalid input sends nothing; unknown joints and fields stay unlocked
    - Nudge / preset / home / reset shortcuts
    - Drag: IK ownership, throttled snapshots, final flush, move commands

Run:
    pytest tests/test_reconciler.py -v
"""

import math

import numpy as np
import pytest

from arm_rig.envs.configs import ReconcilerConfig
from arm_rig.envs.factory import make_reconciler
from arm_rig.state.models import Command, CommandType, EditField, FieldOwner, JointFlags
from arm_rig.state.reconciler import RigStateReconciler

SCENARIO = {"type": "state", "j": 2, "a": 10, "t": 10, "s": 30, "u": 32, "i": 1000, "acc": 50000, "f": 1}


@pytest.fixture
def sent():
    return []


@pytest.fixture
def snapshots():
    return []


@pytest.fixture
def rig(sent, snapshots):
    r = RigStateReconciler(send=sent.append, clock=lambda: 0.0)
    r.subscribe(snapshots.append)
    return r


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


def test_defaults(rig):
    st = rig.state(0)
    assert st.angle_deg == 0.0
    assert st.target_deg == 0.0
    assert st.microstepping == 32
    assert rig.state(4) is None
    assert rig.state(-1) is None


def test_defaults_respect_limits_excluding_zero(sent):
    cfg = ReconcilerConfig(
        joint_limits=((10.0, 180.0), (-5.0, 180.0), (20.0, 150.0), (-90.0, 90.0))
    )
    rig = make_reconciler(cfg, send=sent.append)
    st = rig.state(0)
    assert st.angle_deg == st.target_deg == 10.0
    snap = rig.snapshot()
    assert snap[2].angle_deg == snap[2].target_deg == 20.0
    assert snap[1].target_deg == 0.0
    np.testing.assert_allclose(rig.joint_angles(), [10.0, 0.0, 20.0, 0.0])
    np.testing.assert_allclose(
        rig.pose().effector, rig.chain.end_effector([10.0, 0.0, 20.0, 0.0])
    )
    assert rig.commit_edit(0, EditField.ANGLE) == Command(CommandType.MOVE, 0, 10.0)
    assert sent == [Command(CommandType.MOVE, 0, 10.0)]


def test_telemetry_scenario(rig, snapshots):
    assert rig.apply_telemetry(SCENARIO)
    st = rig.state(2)
    assert st.angle_deg == 10.0
    assert st.target_deg == 10.0
    assert st.speed == 30.0
    assert st.microstepping == 32
    assert st.current_ma == 1000.0
    assert st.accel == 50000.0
    assert st.flags == JointFlags(ok=True)
    assert st.flags.to_bits() == 1
    assert len(snapshots) == 1
    assert snapshots[0][2].angle_deg == 10.0


def test_telemetry_from_raw_json(rig):
    assert rig.apply_telemetry('{"type":"state","j":1,"a":42.5,"t":40}')
    assert rig.state(1).angle_deg == 42.5
    assert rig.state(1).target_deg == 40.0


def test_telemetry_angles_clamped(rig):
    rig.apply_telemetry({"j": 2, "a": -20, "t": 400})
    assert rig.state(2).angle_deg == 0.0
    assert rig.state(2).target_deg == 150.0


@pytest.mark.parametrize(
    "message",
    ["not json", {"j": 9, "a": 1}, {"a": 1}, {"j": 0, "a": "x"}, '{"type":"log","j":0}'],
)
def test_bad_telemetry_dropped(rig, snapshots, message):
    before = rig.snapshot()
    assert not rig.apply_telemetry(message)
    assert rig.snapshot() == before
    assert snapshots == []


# ---------------------------------------------------------------------------
# Local edits
# ---------------------------------------------------------------------------


def test_edit_lock_suppresses_telemetry(rig, sent):
    assert rig.begin_edit(1, EditField.ANGLE)
    assert rig.owner(1, EditField.ANGLE) is FieldOwner.USER

    rig.apply_telemetry({"j": 1, "a": 50, "t": 50, "s": 99})
    assert rig.state(1).target_deg == 0.0
    assert rig.state(1).speed == 99.0

    assert rig.preview_edit(1, EditField.ANGLE, 45.0)
    rig.apply_telemetry({"j": 1, "a": 50, "t": 50})
    assert rig.state(1).target_deg == 45.0
    assert sent == []

    command = rig.commit_edit(1, EditField.ANGLE)
    assert command == Command(CommandType.MOVE, 1, 45.0)
    assert sent == [command]
    assert rig.owner(1, EditField.ANGLE) is FieldOwner.TELEMETRY

    rig.apply_telemetry({"j": 1, "a": 60, "t": 60})
    assert rig.state(1).target_deg == 60.0
    assert len(sent) == 1


def test_lock_is_per_field(rig):
    rig.begin_edit(0, EditField.SPEED)
    rig.apply_telemetry({"j": 0, "a": 20, "t": 20, "s": 500})
    assert rig.state(0).speed == 30.0
    assert rig.state(0).target_deg == 20.0


def test_preview_clamps_angle(rig):
    assert rig.preview_edit(2, EditField.ANGLE, 200.0)
    assert rig.state(2).target_deg == 150.0


@pytest.mark.parametrize(
    "field,value",
    [
        (EditField.SPEED, 5000.0),
        (EditField.SPEED, math.nan),
        (EditField.CURRENT, -1.0),
        (EditField.ACCEL, math.inf),
        (EditField.MICRO, 3),
        (EditField.ANGLE, 400.0),
        (EditField.ANGLE, "45"),
    ],
)
def test_invalid_commit_sends_nothing(rig, sent, field, value):
    rig.begin_edit(0, field)
    assert rig.commit_edit(0, field, value) is None
    assert sent == []
    assert rig.owner(0, field) is FieldOwner.TELEMETRY


def test_commit_other_fields(rig, sent):
    assert rig.commit_edit(3, EditField.MICRO, 16) == Command(CommandType.MICRO, 3, 16)
    assert rig.commit_edit(3, EditField.CURRENT, 1200) == Command(CommandType.CURRENT, 3, 1200.0)
    assert rig.state(3).microstepping == 16
    assert rig.state(3).current_ma == 1200.0
    assert [c.type for c in sent] == [CommandType.MICRO, CommandType.CURRENT]


def test_commit_unknown_joint(rig, sent):
    assert not rig.begin_edit(7, EditField.ANGLE)
    assert rig.commit_edit(7, EditField.ANGLE, 10.0) is None
    assert sent == []


@pytest.mark.parametrize("joint", [9, -1, [1], "0", None, True])
def test_lock_queries_on_unknown_joint(rig, sent, joint):
    assert rig.field_range(joint, EditField.ANGLE) is None
    assert rig.owner(joint, EditField.ANGLE) is FieldOwner.TELEMETRY
    assert not rig.is_locked(joint, EditField.ANGLE)
    rig.cancel_edit(joint, EditField.ANGLE)
    assert not rig.preview_edit(joint, EditField.ANGLE, 10.0)
    assert sent == []


def test_unknown_field_is_rejected(rig, sent):
    assert rig.field_range(0, "angle") is None
    assert not rig.is_locked(0, "speed")
    assert not rig.begin_edit(0, "angle")
    assert rig.commit_edit(0, "speed", 10.0) is None
    assert sent == []


def test_cancel_edit_sends_nothing(rig, sent):
    rig.preview_edit(0, EditField.ANGLE, 30.0)
    rig.cancel_edit(0, EditField.ANGLE)
    assert not rig.is_locked(0, EditField.ANGLE)
    assert sent == []


def test_nudge_snaps_to_step(rig, sent):
    rig.preset(0, 7.0)
    command = rig.nudge(0, +1)
    assert command == Command(CommandType.MOVE, 0, 10.0)
    assert rig.nudge(0, -1, step=15) == Command(CommandType.MOVE, 0, 0.0)


def test_nudge_clamps_at_limit(rig):
    assert rig.nudge(2, -1) == Command(CommandType.MOVE, 2, 0.0)
    assert rig.nudge(2, +1, step=0) is None


def test_preset_out_of_range_ignored(rig, sent):
    assert rig.preset(2, 170.0) is None
    assert sent == []


def test_home_and_reset(rig, sent):
    assert rig.home(1).to_message() == {"type": "home", "joint": 1}
    assert rig.reset(3).to_message() == {"type": "reset", "joint": 3}
    assert rig.home(9) is None
    assert len(sent) == 2


def test_failing_sink_does_not_raise(snapshots):
    def broken(command):
        raise RuntimeError("link down")

    rig = RigStateReconciler(send=broken)
    assert rig.preset(0, 10.0) == Command(CommandType.MOVE, 0, 10.0)
    assert rig.state(0).target_deg == 10.0


# ---------------------------------------------------------------------------
# Drag
# ---------------------------------------------------------------------------


def test_drag_lifecycle(rig, sent, snapshots):
    start = rig.pose().effector
    target = start + np.array([0.0, 0.1, 0.3])
    assert rig.begin_drag(target)
    assert not rig.begin_drag(target)
    assert rig.owner(0, EditField.ANGLE) is FieldOwner.IK
    assert not rig.begin_edit(0, EditField.ANGLE)
    assert rig.begin_edit(0, EditField.SPEED)
    rig.cancel_edit(0, EditField.SPEED)

    initial = float(np.linalg.norm(start - target))
    for now in (0.0, 0.016, 0.032, 0.048):
        pose = rig.tick(now=now)
    assert float(np.linalg.norm(pose.effector - target)) < initial
    assert len(snapshots) == 2

    # telemetry echoes cannot pull the arm back mid-gesture
    dragged = rig.state(0).target_deg
    assert rig.apply_telemetry({"j": 0, "a": -30, "t": -30})
    assert rig.state(0).target_deg == dragged
    assert len(snapshots) == 2

    commands = rig.end_drag()
    assert len(snapshots) == 3
    assert not rig.is_dragging
    assert rig.owner(0, EditField.ANGLE) is FieldOwner.TELEMETRY
    moved = {j for j, st in rig.snapshot().items() if st.target_deg != 0.0}
    assert {c.joint for c in commands} == moved
    assert 0 in moved
    assert all(c.type is CommandType.MOVE for c in commands)
    assert all(c.value == rig.state(c.joint).target_deg for c in commands)
    assert sent == commands
    assert rig.end_drag() == []


def test_drag_angles_stay_in_limits(rig):
    rig.begin_drag([5.0, 5.0, 5.0])
    for frame in range(20):
        rig.tick(now=frame / 60.0)
    for joint in rig.chain.joints:
        assert joint.min_deg <= rig.state(joint.id).target_deg <= joint.max_deg
    rig.end_drag()


def test_drag_target_updates(rig):
    assert rig.drag_target is None
    assert not rig.update_drag_target([0.0, 0.0, 0.0])
    rig.begin_drag()
    assert rig.drag_target == pytest.approx(rig.pose().effector)
    assert rig.update_drag_target([0.1, -1.0, 0.2])
    assert not rig.update_drag_target([math.nan, 0.0, 0.0])
    assert rig.drag_target == pytest.approx([0.1, -1.0, 0.2])


def test_drag_rejects_malformed_start(rig):
    assert not rig.begin_drag([math.nan, 0.0, 0.0])
    assert not rig.is_dragging
    assert rig.owner(0, EditField.ANGLE) is FieldOwner.TELEMETRY


def test_drag_without_motion_sends_nothing(rig, sent):
    rig.begin_drag()
    rig.tick(now=0.0)
    assert rig.end_drag() == []
    assert sent == []


def test_tick_idle_returns_pose(rig, snapshots):
    rig.preset(0, 90.0)
    pose = rig.tick(now=1.0)
    assert pose.effector == pytest.approx([-0.55, 0.2, 1.68])
    assert len(snapshots) == 1
