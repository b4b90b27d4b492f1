"""Connection registry for outbound device commands.

Keeps one UdpSender per device endpoint together with delivery
counters, and evicts endpoints that have not been used for a while.
Every command to a device goes through :meth:`ConnectionRegistry.send`.

Example:
    >>> from hrouter.registry import ConnectionRegistry
    >>> registry = ConnectionRegistry()
    >>> registry.send(("192.168.1.157", 8888), "/avatar/parameters/motor", 0)
    >>> registry.info(("192.168.1.157", 8888)).success_count
    1
"""

from dataclasses import dataclass, replace
import logging
import threading
import time

from hrouter.config import IDLE_EVICT_S, SWEEP_INTERVAL_S
from hrouter.osc import encode_message
from hrouter.udp_sender import UdpSender

log = logging.getLogger(__name__)


class DeliveryError(Exception):
    """A command could not be handed to the transport.

    Attributes:
        endpoint: ``(host, port)`` the command was meant for.
        address: OSC address of the command.
    """

    def __init__(self, endpoint: tuple[str, int], address: str, reason: str):
        super().__init__("%s:%d %s: %s" % (endpoint[0], endpoint[1], address, reason))
        self.endpoint = endpoint
        self.address = address


class DeliveryTimeout(DeliveryError):
    """Connect or send exceeded its time bound."""


@dataclass
class ConnectionInfo:
    """Counters for one endpoint.

    ``last_used`` is a monotonic timestamp of the most recent attempt.
    """

    last_used: float
    attempt_count: int = 0
    success_count: int = 0
    error_count: int = 0


class ConnectionRegistry:
    """Pooled senders plus delivery statistics, keyed by endpoint.

    Args:
        sender_factory: Callable ``(host, port) -> sender`` where the
            sender has ``send(data)`` and ``close()``.  Defaults to
            :class:`UdpSender`; tests substitute a fake.
        clock: Monotonic time source.
        idle_evict_s: Endpoints unused for this long are evicted by
            :meth:`sweep`.
    """

    def __init__(self, sender_factory=UdpSender, clock=time.monotonic,
                 idle_evict_s: float = IDLE_EVICT_S):
        self._sender_factory = sender_factory
        self._clock = clock
        self._idle_evict_s = idle_evict_s
        self._lock = threading.Lock()
        self._senders: dict[tuple[str, int], object] = {}
        self._info: dict[tuple[str, int], ConnectionInfo] = {}

    def _checkout(self, endpoint: tuple[str, int]):
        """Count an attempt and return the sender for *endpoint*."""
        with self._lock:
            now = self._clock()
            info = self._info.get(endpoint)
            if info is None:
                info = ConnectionInfo(last_used=now)
                self._info[endpoint] = info
                self._senders[endpoint] = self._sender_factory(*endpoint)
            info.attempt_count += 1
            info.last_used = now
            return self._senders[endpoint]

    def _record(self, endpoint: tuple[str, int], ok: bool) -> None:
        with self._lock:
            info = self._info.get(endpoint)
            if info is None:
                # Evicted while the send was in flight.
                return
            if ok:
                info.success_count += 1
            else:
                info.error_count += 1

    def send(self, endpoint: tuple[str, int], address: str, value: int) -> None:
        """Send one OSC int command to *endpoint*.

        Raises:
            DeliveryTimeout: Connect or send timed out.
            DeliveryError: Any other transport failure.
        """
        data = encode_message(address, value)
        sender = self._checkout(endpoint)
        try:
            sender.send(data)
        except TimeoutError as exc:
            self._record(endpoint, False)
            raise DeliveryTimeout(endpoint, address, "timed out") from exc
        except OSError as exc:
            self._record(endpoint, False)
            raise DeliveryError(endpoint, address, str(exc)) from exc
        self._record(endpoint, True)
        log.debug("sent %s=%d to %s:%d", address, value, endpoint[0], endpoint[1])

    def send_device(self, device, value: int) -> None:
        """Send *value* to every motor address of *device*.

        All addresses are attempted even if one fails; the first
        failure is raised afterwards.

        Args:
            device: A DeviceConfig (uses ``endpoint`` and
                ``motor_addresses``).
            value: Actuation value.
        """
        first_error = None
        for address in device.motor_addresses:
            try:
                self.send(device.endpoint, address, value)
            except DeliveryError as exc:
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def info(self, endpoint: tuple[str, int]) -> ConnectionInfo | None:
        """Return a snapshot of the counters for *endpoint*, or None."""
        with self._lock:
            info = self._info.get(endpoint)
            return replace(info) if info is not None else None

    def endpoints(self) -> list[tuple[str, int]]:
        """Return the endpoints currently registered."""
        with self._lock:
            return list(self._info)

    def sweep(self) -> int:
        """Evict endpoints unused for ``idle_evict_s`` or more.

        Returns:
            Number of evicted endpoints.
        """
        now = self._clock()
        evicted = []
        with self._lock:
            for endpoint, info in list(self._info.items()):
                if now - info.last_used >= self._idle_evict_s:
                    del self._info[endpoint]
                    evicted.append(self._senders.pop(endpoint))
                    log.debug("evicting idle endpoint %s:%d", *endpoint)
        for sender in evicted:
            sender.close()
        return len(evicted)

    def run_sweep(self, shutdown: threading.Event,
                  interval: float = SWEEP_INTERVAL_S) -> int:
        """Sweep every *interval* seconds until *shutdown* is set.

        Returns the total number of evictions.
        """
        total = 0
        while not shutdown.wait(interval):
            total += self.sweep()
        return total

    def start_sweep(self, shutdown: threading.Event,
                    interval: float = SWEEP_INTERVAL_S) -> threading.Thread:
        """Run :meth:`run_sweep` in a daemon thread and return it."""
        thread = threading.Thread(
            target=self.run_sweep, args=(shutdown, interval),
            name="registry-sweep", daemon=True,
        )
        thread.start()
        return thread

    def close(self) -> None:
        """Close every pooled sender and forget all endpoints."""
        with self._lock:
            senders = list(self._senders.values())
            self._senders.clear()
            self._info.clear()
        for sender in senders:
            sender.close()
