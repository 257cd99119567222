"""
Timestamp-gated snapshot sampler for drag gestures.

While the hand is dragged the rig changes every frame, but dependent views
only need a snapshot every few tens of milliseconds.  The sampler compares
the caller's monotonic timestamp with the last emission: ticks that come
too early are skipped, never queued.  ``flush`` publishes one final
snapshot unconditionally and forgets the gate, so the next gesture starts
fresh.

Classes:
    ThrottledSampler: Rate-limits calls to a publish callback.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from arm_rig.utils.constants import DRAG_EMIT_INTERVAL_S


@dataclass
class ThrottledSampler:
    """Forward at most one payload per ``interval_s`` to ``publish``.

    Attributes:
        publish: Callback receiving the emitted payloads.
        interval_s: Minimum spacing between two sampled emissions.
    """

    publish: Callable[[Any], None]
    interval_s: float = DRAG_EMIT_INTERVAL_S
    _last_emit: Optional[float] = None

    @property
    def last_emit(self) -> Optional[float]:
        """Timestamp of the last sampled emission, *None* after a reset."""
        return self._last_emit

    def is_due(self, now: float) -> bool:
        """Return whether a sample at *now* would be emitted."""
        return self._last_emit is None or now - self._last_emit >= self.interval_s

    def sample(self, payload: Any, now: float) -> bool:
        """Emit *payload* if the interval has elapsed since the last emission.

        Args:
            payload: Snapshot to forward.
            now: Monotonic timestamp in seconds.

        Returns:
            *True* when the payload was published.
        """
        if not self.is_due(now):
            return False
        self._last_emit = now
        self.publish(payload)
        return True

    def flush(self, payload: Any) -> None:
        """Publish *payload* unconditionally and reset the gate."""
        self.reset()
        self.publish(payload)

    def reset(self) -> None:
        """Discard the gate state without publishing."""
        self._last_emit = None
