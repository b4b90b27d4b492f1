"""Stop worker: keeps sending zero while a device is stopping.

When a device's proximity drops to zero the router starts its
StopWorker, which sends a zero command every tick until the next
nonzero sample cancels it.  UDP is lossy; repeating the stop makes sure
the motor actually halts.

Example:
    >>> worker = StopWorker(device, registry)
    >>> worker.start()
    True
    >>> worker.start()  # Already running
    False
    >>> worker.stop()
    True
"""

import logging
import threading

from hrouter.config import TICK_S
from hrouter.registry import DeliveryError

log = logging.getLogger(__name__)


class StopWorker:
    """Cancellable zero-sender for one device.

    At most one worker thread runs per StopWorker.  Cancellation uses a
    threading.Event, so a stopped worker wakes from its wait at once
    instead of finishing the tick.  A send already in flight when
    :meth:`stop` is called still goes out.

    Args:
        device: DeviceConfig of the device to stop.
        registry: Object with ``send_device(device, value)``.
        interval: Seconds between zero commands.
    """

    def __init__(self, device, registry, interval: float = TICK_S):
        self._device = device
        self._registry = registry
        self._interval = interval
        self._lock = threading.Lock()
        self._cancel: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """True between :meth:`start` and :meth:`stop`."""
        with self._lock:
            return self._cancel is not None

    def start(self) -> bool:
        """Start the worker unless it is already running.

        Returns:
            True if a new worker thread was started.
        """
        with self._lock:
            if self._cancel is not None:
                return False
            cancel = threading.Event()
            self._cancel = cancel
            self._thread = threading.Thread(
                target=self._run, args=(cancel,),
                name="stop-%s" % self._device.name, daemon=True,
            )
            self._thread.start()
        log.debug("%s: stop worker started", self._device.name)
        return True

    def stop(self) -> bool:
        """Cancel the worker if it is running.

        Returns:
            True if a running worker was cancelled.
        """
        with self._lock:
            if self._cancel is None:
                return False
            self._cancel.set()
            self._cancel = None
        log.debug("%s: stop worker cancelled", self._device.name)
        return True

    def join(self, timeout: float | None = None) -> None:
        """Wait for the last started worker thread to exit."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _run(self, cancel: threading.Event) -> int:
        """Send zero every interval until *cancel* is set."""
        sent = 0
        while not cancel.is_set():
            try:
                self._registry.send_device(self._device, 0)
                sent += 1
            except DeliveryError as exc:
                log.warning("%s: stop command failed: %s", self._device.name, exc)
            if cancel.wait(self._interval):
                break
        return sent
