"""
Reconnecting duplex channel to the joint-controller bridge.

Handles:
    - Opening the link (a no-op while it is already open)
    - Non-blocking polling of inbound frames from the frame loop
    - Routing ``state`` messages to a telemetry sink
    - Dropping bad JSON with a log line
    - Reconnecting ``reconnect_interval_s`` after the link closes
    - Dropping commands while disconnected (no retry queue)

The channel never blocks and never raises from ``poll`` or ``send``; link
failures are logged and forwarded to an optional notification callback.
The transport is injectable: :func:`open_websocket` is the production
connector, tests pass fakes.

Classes:
    BridgeError: Base exception for bridge errors.
    BridgeConnectionError: The link could not be opened or was lost.
    WebSocketTransport: ``websockets`` sync client wrapped as a transport.
    BridgeChannel: The reconnecting channel.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol, Union

from arm_rig.bridge.messages import (
    STATE_MESSAGE_TYPE,
    TelemetryDecodeError,
    encode_command,
    parse_message,
)
from arm_rig.state.models import Command
from arm_rig.utils.constants import BRIDGE_RECONNECT_INTERVAL_S, BRIDGE_URL

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class BridgeError(Exception):
    """Base exception for all bridge errors."""

    pass


class BridgeConnectionError(BridgeError):
    """The link could not be opened, or dropped during operation."""

    pass


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class Transport(Protocol):
    """Minimal duplex text link used by the channel."""

    def send(self, text: str) -> None: ...

    def recv_nowait(self) -> Optional[Frame]: ...

    def close(self) -> None: ...


class WebSocketTransport:
    """Adapter over a ``websockets`` synchronous client connection."""

    def __init__(self, connection: Any, closed_exc: type) -> None:
        self._conn = connection
        self._closed_exc = closed_exc

    def send(self, text: str) -> None:
        try:
            self._conn.send(text)
        except self._closed_exc as exc:
            raise BridgeConnectionError(str(exc)) from exc

    def recv_nowait(self) -> Optional[Frame]:
        """Return the next frame if one is buffered, else *None*.

        Raises:
            BridgeConnectionError: If the connection has closed.
        """
        try:
            return self._conn.recv(timeout=0)
        except TimeoutError:
            return None
        except self._closed_exc as exc:
            raise BridgeConnectionError(str(exc)) from exc

    def close(self) -> None:
        self._conn.close()


def open_websocket(url: str, open_timeout: float = 2.0) -> WebSocketTransport:
    """Open a WebSocket link to *url*.

    Args:
        url: ``ws://`` address of the bridge.
        open_timeout: Handshake timeout in seconds.

    Returns:
        A connected ``WebSocketTransport``.

    Raises:
        ImportError: If ``websockets`` is not installed.
        BridgeConnectionError: If the connection cannot be established.
    """
    try:
        from websockets.exceptions import ConnectionClosed
        from websockets.sync.client import connect
    except ImportError as exc:
        raise ImportError("websockets required for the bridge: pip install websockets") from exc
    try:
        connection = connect(url, open_timeout=open_timeout)
    except (OSError, TimeoutError) as exc:
        raise BridgeConnectionError(f"Cannot connect to {url}: {exc}") from exc
    return WebSocketTransport(connection, ConnectionClosed)


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------


class BridgeChannel:
    """Reconnecting bridge link polled from the frame loop.

    Args:
        url: Bridge address.
        connector: ``connector(url) -> Transport``; raises
            ``BridgeConnectionError`` or ``OSError`` when the link cannot be
            opened.
        on_telemetry: Receives each decoded ``state`` message dictionary.
        on_log: Receives human-readable link events ("WS connected", ...).
        reconnect_interval_s: Delay before reopening a closed link.
        clock: Monotonic clock used when no timestamp is passed.
    """

    def __init__(
        self,
        url: str = BRIDGE_URL,
        connector: Callable[[str], Transport] = open_websocket,
        on_telemetry: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_log: Optional[Callable[[str], None]] = None,
        reconnect_interval_s: float = BRIDGE_RECONNECT_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self.reconnect_interval_s = reconnect_interval_s
        self._connector = connector
        self._on_telemetry = on_telemetry
        self._on_log = on_log
        self._clock = clock
        self._transport: Optional[Transport] = None
        self._retry_at: Optional[float] = None
        self._stopped = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        """*True* while the transport is open."""
        return self._transport is not None

    @property
    def retry_at(self) -> Optional[float]:
        """Timestamp of the next reconnect attempt, if one is scheduled."""
        return self._retry_at

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, now: Optional[float] = None) -> bool:
        """Open the link unless it is already open.

        Args:
            now: Monotonic timestamp; read from the clock when omitted.

        Returns:
            *True* when the link is open after the call.
        """
        if self._transport is not None:
            return True
        now = self._clock() if now is None else now
        self._stopped = False
        self._retry_at = None
        try:
            self._transport = self._connector(self.url)
        except (BridgeConnectionError, OSError) as exc:
            self._schedule_retry(f"Bridge connect failed ({exc})", now)
            return False
        logger.info("Bridge connected to %s", self.url)
        self._notify("WS connected")
        return True

    def close(self) -> None:
        """Close the link and stop reconnecting."""
        self._stopped = True
        self._retry_at = None
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
            logger.info("Bridge closed by client")

    def _schedule_retry(self, reason: str, now: float) -> None:
        self._retry_at = now + self.reconnect_interval_s
        logger.warning("%s, retry in %.0fs", reason, self.reconnect_interval_s)
        self._notify(f"WS closed - retry in {self.reconnect_interval_s:.0f}s")

    def _handle_lost(self, exc: Exception, now: float) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                transport.close()
            except (BridgeConnectionError, OSError) as close_exc:
                logger.debug("Ignoring error while closing lost link: %s", close_exc)
        self._schedule_retry(f"Bridge connection lost ({exc})", now)

    # ------------------------------------------------------------------
    # Frame loop
    # ------------------------------------------------------------------

    def poll(self, now: Optional[float] = None, max_frames: int = 64) -> int:
        """Drain buffered frames, or reconnect when the retry is due.

        Args:
            now: Monotonic timestamp; read from the clock when omitted.
            max_frames: Upper bound of frames handled in one call.

        Returns:
            Number of telemetry messages delivered.
        """
        now = self._clock() if now is None else now
        if self._transport is None:
            if not self._stopped and self._retry_at is not None and now >= self._retry_at:
                self.connect(now)
            return 0
        delivered = 0
        for _ in range(max_frames):
            try:
                frame = self._transport.recv_nowait()
            except BridgeConnectionError as exc:
                self._handle_lost(exc, now)
                break
            if frame is None:
                break
            delivered += self._handle_frame(frame)
        return delivered

    def _handle_frame(self, frame: Frame) -> int:
        try:
            msg = parse_message(frame)
        except TelemetryDecodeError:
            logger.warning("Bad JSON from bridge: %r", frame)
            self._notify(f"Bad JSON: {frame!r}")
            return 0
        if msg.get("type") != STATE_MESSAGE_TYPE or self._on_telemetry is None:
            return 0
        self._on_telemetry(msg)
        return 1

    def send(self, command: Command) -> bool:
        """Send one command; dropped (with a log line) while disconnected.

        Returns:
            *True* when the command was handed to the transport.
        """
        if self._transport is None:
            logger.debug("Bridge not connected, dropping %s", command)
            return False
        try:
            self._transport.send(encode_command(command))
        except (BridgeConnectionError, OSError) as exc:
            self._handle_lost(exc, self._clock())
            return False
        return True

    def _notify(self, text: str) -> None:
        if self._on_log is not None:
            self._on_log(text)
