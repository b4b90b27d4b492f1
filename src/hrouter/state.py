"""Per-device runtime state.

One DeviceState per configured device, shared by the router, the
timeout watchdog and the stop worker.  Each state has its own lock,
so devices never contend with each other.  The lock is only held for
a single read-modify-write, never across a network send.

Example:
    >>> state = DeviceState()
    >>> state.record_sample(0.4, 10.0)
    (0.0, None)
    >>> state.record_sample(0.6, 10.5)
    (0.4, 10.0)
"""

import threading


class DeviceState:
    """Last signal time and last sample of one device.

    ``last_signal_time`` is a monotonic timestamp, or None until the
    first sample arrives.  ``max_speed`` holds a runtime override set by
    max-speed messages (None means "use the configured value").
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last_signal_time: float | None = None
        self._last_value = 0.0
        self._max_speed: float | None = None

    def record_sample(self, value: float, now: float) -> tuple[float, float | None]:
        """Store *value* and *now*, returning the previous pair.

        Returns:
            ``(prev_value, prev_signal_time)``.  The previous value is
            0.0 and the time None when nothing was recorded yet.
        """
        with self._lock:
            prev = (self._last_value, self._last_signal_time)
            self._last_value = value
            self._last_signal_time = now
        return prev

    def touch(self, now: float) -> None:
        """Restart the silence window without changing the last value."""
        with self._lock:
            self._last_signal_time = now

    def elapsed(self, now: float) -> float | None:
        """Seconds since the last signal, or None if never signalled."""
        with self._lock:
            if self._last_signal_time is None:
                return None
            return now - self._last_signal_time

    def expire(self, now: float, timeout: float) -> bool:
        """Restart the window if *timeout* seconds have passed.

        Check and reset happen under one lock so a sample arriving
        in between is never overwritten by a stale expiry.

        Returns:
            True if the window had expired.
        """
        with self._lock:
            if self._last_signal_time is None:
                return False
            if now - self._last_signal_time < timeout:
                return False
            self._last_signal_time = now
            return True

    @property
    def last_value(self) -> float:
        with self._lock:
            return self._last_value

    @property
    def last_signal_time(self) -> float | None:
        with self._lock:
            return self._last_signal_time

    @property
    def max_speed(self) -> float | None:
        with self._lock:
            return self._max_speed

    @max_speed.setter
    def max_speed(self, value: float | None) -> None:
        with self._lock:
            self._max_speed = value


class StateTable:
    """Lazily created DeviceState objects, keyed by device index.

    Entries are never removed; they live as long as the process.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._states: dict[int, DeviceState] = {}

    def get(self, key: int) -> DeviceState:
        """Return the state for *key*, creating it on first use."""
        with self._lock:
            state = self._states.get(key)
            if state is None:
                state = DeviceState()
                self._states[key] = state
            return state

    def __contains__(self, key: int) -> bool:
        with self._lock:
            return key in self._states

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
