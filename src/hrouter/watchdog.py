"""Timeout watchdog: stops devices whose signal went quiet.

One watchdog per device.  Every tick it checks how long ago the last
proximity sample arrived; once that reaches the configured timeout it
sends a zero command and restarts the window, so a silent device gets
one stop per timeout period until samples resume.

Example:
    >>> dog = Watchdog(device, state, registry, timeout=5)
    >>> dog.check(now)
    False
"""

import logging
import threading
import time

from hrouter.config import TICK_S
from hrouter.registry import DeliveryError

log = logging.getLogger(__name__)


class Watchdog:
    """Silence detector for one device.

    A device that never sent a sample has no window yet and is left
    alone.

    Args:
        device: DeviceConfig of the watched device.
        state: The device's DeviceState.
        registry: Object with ``send_device(device, value)``.
        timeout: Seconds of silence before a forced stop.
        clock: Monotonic time source.
        interval: Seconds between checks.
    """

    def __init__(self, device, state, registry, timeout: float,
                 clock=time.monotonic, interval: float = TICK_S):
        self._device = device
        self._state = state
        self._registry = registry
        self._timeout = timeout
        self._clock = clock
        self._interval = interval

    def check(self, now: float | None = None) -> bool:
        """Run one check; send a stop if the window expired.

        Returns:
            True if a stop was triggered.
        """
        if now is None:
            now = self._clock()
        if not self._state.expire(now, self._timeout):
            return False

        log.info("%s: no signal for %ss, stopping", self._device.name, self._timeout)
        try:
            self._registry.send_device(self._device, 0)
        except DeliveryError as exc:
            log.warning("%s: timeout stop failed: %s", self._device.name, exc)
        return True

    def run(self, shutdown: threading.Event) -> int:
        """Check every interval until *shutdown* is set.

        Returns the number of stops triggered.
        """
        fired = 0
        while not shutdown.wait(self._interval):
            if self.check():
                fired += 1
        return fired

    def start(self, shutdown: threading.Event) -> threading.Thread:
        """Run :meth:`run` in a daemon thread and return it."""
        thread = threading.Thread(
            target=self.run, args=(shutdown,),
            name="watchdog-%s" % self._device.name, daemon=True,
        )
        thread.start()
        return thread
