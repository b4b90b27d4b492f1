"""Shared pytest fixtures for hrouter tests."""

import threading

from pythonosc.osc_message_builder import OscMessageBuilder

from hrouter.config import DeviceConfig, GlobalConfig
from hrouter.registry import DeliveryError


def make_message(address: str, value, arg_type: str | None = None) -> bytes:
    """Build an OSC datagram with one argument for testing."""
    builder = OscMessageBuilder(address=address)
    builder.add_arg(value, arg_type)
    return builder.build().dgram


def make_device(**overrides) -> DeviceConfig:
    """Build a DeviceConfig with test defaults."""
    fields = {
        "host": "127.0.0.1",
        "proximity_parameter": "/avatar/parameters/proximity_01",
        "min_speed": 0.1,
        "max_speed": 1.0,
        "start_tx": 30,
        "speed_scale": 1.0,
    }
    fields.update(overrides)
    return DeviceConfig(**fields)


def make_global(**overrides) -> GlobalConfig:
    """Build a GlobalConfig with test defaults."""
    return GlobalConfig(**overrides)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRegistry:
    """Test double for ConnectionRegistry: records sent values.

    Args:
        fail: If True every send raises DeliveryError.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []
        self._lock = threading.Lock()

    def send_device(self, device, value: int) -> None:
        """Record ``(host, value)``; raise if configured to fail."""
        with self._lock:
            self.sent.append((device.host, value))
        if self.fail:
            raise DeliveryError(device.endpoint, "/avatar/parameters/motor", "refused")

    def values(self, host: str | None = None) -> list[int]:
        """Return the sent values, optionally for one host only."""
        with self._lock:
            return [v for h, v in self.sent if host is None or h == host]


class FakeSender:
    """Test double for UdpSender: records datagrams.

    Args:
        error: Exception instance raised by every send, or None.
    """

    instances = []

    def __init__(self, host: str, port: int, error: Exception | None = None):
        self.endpoint = (host, port)
        self.error = error
        self.sent = []
        self.closed = False
        FakeSender.instances.append(self)

    def send(self, data: bytes) -> None:
        """Record *data* or raise the configured error."""
        if self.error is not None:
            raise self.error
        self.sent.append(data)

    def close(self) -> None:
        self.closed = True
