"""Test the reconnecting bridge channel against fake transports.

Tests for arm_rig.bridge.channel:
    - connect is a no-op while open
    - state messages routed to the telemetry sink, others ignored
    - bad JSON logged and dropped
    - link loss schedules a reconnect after the retry interval
    - sends while disconnected are dropped
    - close stops reconnecting
    - end to end with the reconciler: telemetry in, one command out

Run:
    pytest tests/test_channel.py -v
"""

import json
import logging
from collections import deque

import pytest

from arm_rig.bridge.channel import BridgeChannel, BridgeConnectionError
from arm_rig.state.models import Command, CommandType, EditField
from arm_rig.state.reconciler import RigStateReconciler


class FakeTransport:
    """In-memory duplex link."""

    def __init__(self):
        self.inbox = deque()
        self.sent = []
        self.closed = False
        self.broken = False

    def send(self, text):
        if self.broken:
            raise BridgeConnectionError("send on broken link")
        self.sent.append(text)

    def recv_nowait(self):
        if self.broken:
            raise BridgeConnectionError("connection reset")
        return self.inbox.popleft() if self.inbox else None

    def close(self):
        self.closed = True


class FakeConnector:
    """Hands out fresh transports; fails while ``down`` is set."""

    def __init__(self):
        self.transports = []
        self.down = False

    def __call__(self, url):
        if self.down:
            raise BridgeConnectionError(f"refused {url}")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def current(self):
        return self.transports[-1]


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def received():
    return []


@pytest.fixture
def notices():
    return []


@pytest.fixture
def channel(connector, received, notices):
    return BridgeChannel(
        url="ws://bridge.test:81/",
        connector=connector,
        on_telemetry=received.append,
        on_log=notices.append,
        clock=lambda: 0.0,
    )


def test_connect_is_idempotent(channel, connector, notices):
    assert channel.connect(now=0.0)
    assert channel.connect(now=0.1)
    assert len(connector.transports) == 1
    assert channel.is_connected
    assert notices == ["WS connected"]


def test_poll_routes_state_messages(channel, connector, received):
    channel.connect(now=0.0)
    connector.current.inbox.extend(
        [
            '{"type":"state","j":0,"a":12}',
            '{"type":"log","msg":"hello"}',
            '{"type":"state","j":1,"a":5}',
        ]
    )
    assert channel.poll(now=0.1) == 2
    assert [m["j"] for m in received] == [0, 1]
    assert channel.poll(now=0.2) == 0


def test_bad_json_dropped(channel, connector, received, notices, caplog):
    channel.connect(now=0.0)
    connector.current.inbox.extend(["{oops", '{"type":"state","j":2}'])
    with caplog.at_level(logging.WARNING, logger="arm_rig.bridge.channel"):
        assert channel.poll(now=0.1) == 1
    assert "Bad JSON" in caplog.text
    assert notices[-1].startswith("Bad JSON")
    assert received == [{"type": "state", "j": 2}]
    assert channel.is_connected


def test_poll_respects_max_frames(channel, connector, received):
    channel.connect(now=0.0)
    connector.current.inbox.extend(['{"type":"state","j":0}'] * 5)
    assert channel.poll(now=0.1, max_frames=3) == 3
    assert channel.poll(now=0.2) == 2


def test_reconnect_after_loss(channel, connector, notices):
    channel.connect(now=0.0)
    connector.current.broken = True
    assert channel.poll(now=10.0) == 0
    assert not channel.is_connected
    assert connector.current.closed
    assert channel.retry_at == pytest.approx(12.0)
    assert notices[-1] == "WS closed - retry in 2s"

    channel.poll(now=11.0)
    assert not channel.is_connected
    channel.poll(now=12.0)
    assert channel.is_connected
    assert len(connector.transports) == 2


def test_failed_connect_retries(channel, connector, notices):
    connector.down = True
    assert not channel.connect(now=0.0)
    assert channel.retry_at == pytest.approx(2.0)
    assert notices == ["WS closed - retry in 2s"]

    channel.poll(now=2.0)
    assert channel.retry_at == pytest.approx(4.0)
    connector.down = False
    channel.poll(now=4.0)
    assert channel.is_connected


def test_send_while_disconnected_dropped(channel, connector):
    command = Command(CommandType.HOME, 0)
    assert not channel.send(command)
    channel.connect(now=0.0)
    assert channel.send(command)
    assert connector.current.sent == ['{"type":"home","joint":0}']


def test_send_failure_schedules_retry(channel, connector):
    channel.connect(now=0.0)
    connector.current.broken = True
    assert not channel.send(Command(CommandType.RESET, 1))
    assert not channel.is_connected
    assert channel.retry_at == pytest.approx(2.0)


def test_close_stops_reconnecting(channel, connector):
    channel.connect(now=0.0)
    transport = connector.current
    channel.close()
    assert transport.closed
    assert channel.retry_at is None
    channel.poll(now=100.0)
    assert not channel.is_connected
    assert len(connector.transports) == 1


def test_end_to_end_with_reconciler(connector):
    link = {}
    rig = RigStateReconciler(send=lambda command: link["channel"].send(command))
    channel = BridgeChannel(connector=connector, on_telemetry=rig.apply_telemetry, clock=lambda: 0.0)
    link["channel"] = channel
    channel.connect()

    connector.current.inbox.append(
        '{"type":"state","j":2,"a":10,"t":10,"s":30,"u":32,"i":1000,"acc":50000,"f":1}'
    )
    assert channel.poll() == 1
    assert rig.state(2).target_deg == 10.0

    rig.begin_edit(2, EditField.ANGLE)
    rig.preview_edit(2, EditField.ANGLE, 60.0)
    connector.current.inbox.append('{"type":"state","j":2,"a":10,"t":10}')
    channel.poll()
    assert rig.state(2).target_deg == 60.0
    rig.commit_edit(2, EditField.ANGLE)

    assert [json.loads(m) for m in connector.current.sent] == [
        {"type": "move", "joint": 2, "deg": 60.0}
    ]
