"""Router: turns inbound OSC parameters into device commands.

Matches each inbound message against the configured devices.  A
proximity parameter drives that device's state machine; a max-speed
parameter adjusts the device's speed ceiling.

Per-device states:

- idle: no sample seen yet;
- active: receiving nonzero samples, each mapped to a motor value;
- stopping: the last sample was zero; a burst of zero commands went
  out and the stop worker repeats them until the next nonzero sample.

Example:
    >>> router = Router(global_cfg, devices, ConnectionRegistry())
    >>> router.handle_message("/avatar/parameters/proximity_01", 0.5)
    True
"""

from dataclasses import replace
from datetime import timedelta
import logging
import threading
import time

from hrouter.config import (
    AVATAR_CHANGE_ADDRESS,
    STOP_BURST,
    TICK_S,
    DeviceConfig,
    GlobalConfig,
)
from hrouter.osc import as_number, decode_message
from hrouter.processing import compute_direct, compute_velocity, speed_limit_meter
from hrouter.registry import DeliveryError
from hrouter.state import StateTable
from hrouter.terminator import StopWorker
from hrouter.watchdog import Watchdog

log = logging.getLogger(__name__)


class Router:
    """Dispatches proximity and max-speed messages to devices.

    Devices are identified by their index in *devices*.

    Args:
        global_cfg: Validated GlobalConfig.
        devices: Validated DeviceConfig list.
        registry: Object with ``send_device(device, value)``.
        clock: Monotonic time source.
        tick: Period of the stop workers and watchdogs, in seconds.
    """

    def __init__(self, global_cfg: GlobalConfig, devices: list[DeviceConfig],
                 registry, clock=time.monotonic, tick: float = TICK_S):
        self._global = global_cfg
        self._devices = list(devices)
        self._registry = registry
        self._clock = clock
        self._tick = tick
        self._states = StateTable()
        self._workers = [StopWorker(d, registry, tick) for d in self._devices]

    @property
    def devices(self) -> list[DeviceConfig]:
        return list(self._devices)

    def state(self, index: int):
        """Return the DeviceState of device *index*."""
        return self._states.get(index)

    def worker(self, index: int) -> StopWorker:
        """Return the StopWorker of device *index*."""
        return self._workers[index]

    def device_config(self, index: int) -> DeviceConfig:
        """Return device *index* with any runtime max-speed override."""
        device = self._devices[index]
        override = self._states.get(index).max_speed
        if override is None:
            return device
        return replace(device, max_speed=override)

    def handle_datagram(self, dgram: bytes) -> bool:
        """Decode one datagram and dispatch it.

        Returns:
            True if the message matched something.
        """
        decoded = decode_message(dgram)
        if decoded is None:
            log.debug("ignoring undecodable datagram (%d bytes)", len(dgram))
            return False
        address, value = decoded
        return self.handle_message(address, value)

    def handle_message(self, address: str, value: object) -> bool:
        """Dispatch one ``(address, argument)`` message.

        Non-numeric arguments and unknown addresses are ignored.
        One address may feed several devices.

        Returns:
            True if at least one device (or the avatar-change handler)
            took the message.
        """
        if address == AVATAR_CHANGE_ADDRESS:
            if isinstance(value, str):
                log.info("Avatar Changed: %s", value)
            return True

        number = as_number(value)
        if number is None:
            log.debug("ignoring %s: non-numeric argument %r", address, value)
            return False

        matched = False
        for index, device in enumerate(self._devices):
            if address == device.max_speed_parameter:
                self.set_max_speed(index, number)
                matched = True
            elif address == device.proximity_parameter:
                self.handle_sample(index, address, number)
                matched = True
        return matched

    def set_max_speed(self, index: int, value: float) -> float:
        """Override device *index*'s max speed, floored at the minimum.

        Returns:
            The max speed now in effect.
        """
        max_speed = max(value, self._global.minimum_max_speed)
        self._states.get(index).max_speed = max_speed
        log.info("%s: %s", self._devices[index].name, speed_limit_meter(max_speed))
        return max_speed

    def handle_sample(self, index: int, address: str, value: float) -> int | None:
        """Feed one proximity sample to device *index*.

        A zero sample starts the stop worker and sends a burst of zero
        commands.  A nonzero sample cancels the stop worker before the
        new motor value is computed and sent.

        Returns:
            The motor value sent, or None for a zero sample.
        """
        device = self.device_config(index)
        state = self._states.get(index)
        now = self._clock()
        prev_value, prev_time = state.record_sample(value, now)
        log.debug("%s: %s=%.3f (prev %.3f)", device.name, address, value, prev_value)

        if value == 0:
            if self._workers[index].start():
                log.info("%s: stopping", device.name)
            for _ in range(STOP_BURST):
                self._send(device, 0)
            return None

        self._workers[index].stop()
        if device.use_velocity_control:
            if prev_time is None:
                delta = timedelta(0)
            else:
                delta = timedelta(seconds=now - prev_time)
            tx = compute_velocity(value, prev_value, delta, device)
        else:
            tx = compute_direct(value, device, prev_value)
        self._send(device, tx)
        return tx

    def _send(self, device: DeviceConfig, value: int) -> None:
        try:
            self._registry.send_device(device, value)
        except DeliveryError as exc:
            log.warning("%s: send failed: %s", device.name, exc)

    def start_watchdog(self, index: int,
                       shutdown: threading.Event) -> threading.Thread:
        """Start the timeout watchdog of device *index*."""
        dog = Watchdog(
            self._devices[index], self._states.get(index), self._registry,
            self._global.timeout, clock=self._clock, interval=self._tick,
        )
        return dog.start(shutdown)

    def start_watchdogs(self, shutdown: threading.Event) -> list[threading.Thread]:
        """Start one watchdog per device."""
        return [self.start_watchdog(i, shutdown) for i in range(len(self._devices))]

    def stop_all(self) -> None:
        """Cancel every stop worker and send each device a final zero."""
        for worker in self._workers:
            worker.stop()
        for index in range(len(self._devices)):
            self._send(self._devices[index], 0)
