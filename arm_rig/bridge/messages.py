"""
JSON codec for the joint-controller bridge.

Inbound telemetry uses the controller's compact keys::

    {"type": "state", "j": 2, "a": 10, "t": 10, "s": 30, "u": 32,
     "i": 1000, "acc": 50000, "f": 1}

Outbound commands are produced by :meth:`Command.to_message` and serialized
here.

Classes:
    TelemetryDecodeError: Raised for malformed telemetry.

Functions:
    parse_message: Decode one JSON text frame into a dictionary.
    decode_microstep: Interpret the ``u`` field.
    decode_telemetry: Build a ``TelemetrySnapshot`` from a message.
    encode_command: Serialize a ``Command`` to JSON text.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional, Union

from arm_rig.state.models import Command, JointFlags, TelemetrySnapshot
from arm_rig.utils.constants import DEFAULT_MICROSTEPPING, MICROSTEP_TABLE
from arm_rig.utils.helpers import is_finite_number

STATE_MESSAGE_TYPE = "state"

# Telemetry key -> snapshot attribute for plain numeric fields
_NUMERIC_KEYS: Dict[str, str] = {
    "a": "angle",
    "t": "target",
    "s": "speed",
    "i": "current_ma",
    "acc": "accel",
}


class TelemetryDecodeError(ValueError):
    """A telemetry message is malformed and must be dropped."""

    pass


def parse_message(raw: Union[str, bytes]) -> Dict[str, Any]:
    """Decode one JSON text frame.

    Args:
        raw: Frame payload.

    Returns:
        The decoded object.

    Raises:
        TelemetryDecodeError: If the payload is not a JSON object.
    """
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise TelemetryDecodeError(f"Bad JSON: {raw!r}") from exc
    if not isinstance(msg, dict):
        raise TelemetryDecodeError(f"Expected a JSON object, got {type(msg).__name__}")
    return msg


def _as_int(value: Any, key: str) -> int:
    """Return *value* as an int when it is an integral number."""
    if not is_finite_number(value) or float(value) != int(value):
        raise TelemetryDecodeError(f"Field '{key}' must be an integer, got {value!r}")
    return int(value)


def decode_microstep(code: Any) -> int:
    """Interpret the telemetry ``u`` field.

    Controllers report either the microstep count itself or its index in
    ``MICROSTEP_TABLE``.  Counts take precedence, so ``2`` means 2
    microsteps, not table entry 2.

    Args:
        code: Raw ``u`` value.

    Returns:
        Microsteps per full step; ``DEFAULT_MICROSTEPPING`` when unknown.
    """
    if not is_finite_number(code) or float(code) != int(code):
        return DEFAULT_MICROSTEPPING
    value = int(code)
    if value in MICROSTEP_TABLE:
        return value
    if 0 <= value < len(MICROSTEP_TABLE):
        return MICROSTEP_TABLE[value]
    return DEFAULT_MICROSTEPPING


def decode_telemetry(msg: Mapping[str, Any]) -> TelemetrySnapshot:
    """Build a snapshot from a decoded telemetry message.

    Only ``j`` is mandatory; absent fields stay *None* so the previous value
    is kept.  Present fields must be finite numbers.

    Args:
        msg: Decoded message dictionary.

    Returns:
        The telemetry snapshot.

    Raises:
        TelemetryDecodeError: If the message is malformed.
    """
    if not isinstance(msg, Mapping):
        raise TelemetryDecodeError(f"Expected a mapping, got {type(msg).__name__}")
    msg_type = msg.get("type", STATE_MESSAGE_TYPE)
    if msg_type != STATE_MESSAGE_TYPE:
        raise TelemetryDecodeError(f"Not a state message: type={msg_type!r}")
    if "j" not in msg:
        raise TelemetryDecodeError("Missing joint index 'j'")
    joint = _as_int(msg["j"], "j")
    if joint < 0:
        raise TelemetryDecodeError(f"Negative joint index {joint}")

    values: Dict[str, Any] = {}
    for key, attr in _NUMERIC_KEYS.items():
        if msg.get(key) is None:
            continue
        if not is_finite_number(msg[key]):
            raise TelemetryDecodeError(f"Field '{key}' is not a finite number: {msg[key]!r}")
        values[attr] = float(msg[key])

    microstep: Optional[int] = None
    if msg.get("u") is not None:
        microstep = decode_microstep(msg["u"])
    flags: Optional[JointFlags] = None
    if msg.get("f") is not None:
        flags = JointFlags.from_bits(_as_int(msg["f"], "f"))
    return TelemetrySnapshot(joint=joint, microstep=microstep, flags=flags, **values)


def encode_command(command: Command) -> str:
    """Serialize *command* as one compact JSON object."""
    return json.dumps(command.to_message(), separators=(",", ":"))
