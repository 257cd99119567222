"""
Joint-controller bridge: message codec and reconnecting command channel.

Telemetry snapshots arrive as JSON ``{"type": "state", ...}`` messages and
commands leave as single JSON objects tagged by ``type``.
"""
