"""Tests for hrouter.router."""

import logging
import struct
import threading
import time

import pytest

from hrouter.config import STOP_BURST
from hrouter.router import Router

from conftest import FakeClock, FakeRegistry, make_device, make_global, make_message

PROX = "/avatar/parameters/proximity_01"
MAX_SPEED = "/avatar/parameters/max_speed"


def _router(devices=None, clock=None, tick=10.0, fail=False):
    """Router over a FakeRegistry; long tick keeps stop workers quiet."""
    registry = FakeRegistry(fail=fail)
    router = Router(
        make_global(), devices or [make_device()], registry,
        clock=clock or FakeClock(), tick=tick,
    )
    return router, registry


def _wait_for(predicate, timeout=1.0):
    """Poll *predicate* until true or *timeout* seconds pass."""
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.005)
    return predicate()


class TestProximity:
    """Tests for proximity samples in direct mode."""

    def test_first_sample_gets_kick(self):
        """The first small sample after idle is raised to start_tx."""
        router, registry = _router()
        assert router.handle_sample(0, PROX, 0.05) == 30
        assert registry.values() == [30]

    def test_following_sample_no_kick(self):
        """Later samples use the raw value."""
        router, registry = _router()
        router.handle_sample(0, PROX, 0.05)
        assert router.handle_sample(0, PROX, 0.05) == 24

    def test_sample_records_state(self):
        """Samples update last value and signal time."""
        clock = FakeClock(3.0)
        router, _ = _router(clock=clock)
        router.handle_sample(0, PROX, 0.5)
        state = router.state(0)
        assert state.last_value == 0.5
        assert state.last_signal_time == 3.0

    def test_zero_sample_burst_and_worker(self):
        """A zero sends STOP_BURST zeros and starts the stop worker."""
        router, registry = _router()
        router.handle_sample(0, PROX, 0.5)
        assert router.handle_sample(0, PROX, 0.0) is None

        assert router.worker(0).running is True
        # Burst plus the worker's first immediate zero.
        assert _wait_for(lambda: registry.values().count(0) == STOP_BURST + 1)
        router.stop_all()

    def test_nonzero_cancels_worker(self):
        """A nonzero sample stops the worker before sending its value."""
        router, registry = _router()
        router.handle_sample(0, PROX, 0.0)
        assert router.worker(0).running is True

        tx = router.handle_sample(0, PROX, 0.5)

        assert router.worker(0).running is False
        assert tx == 93
        assert registry.values()[-1] == 93

    def test_kick_after_stop(self):
        """A sample after a zero is a cold start again."""
        router, _ = _router()
        router.handle_sample(0, PROX, 0.5)
        router.handle_sample(0, PROX, 0.0)
        assert router.handle_sample(0, PROX, 0.05) == 30

    def test_worker_repeats_until_cancelled(self):
        """While stopping, zeros keep flowing; after cancel they stop."""
        router, registry = _router(tick=0.02)
        router.handle_sample(0, PROX, 0.0)
        time.sleep(0.15)
        assert registry.values().count(0) >= STOP_BURST + 3

        router.handle_sample(0, PROX, 0.5)
        time.sleep(0.02)
        settled = registry.values().count(0)
        time.sleep(0.1)
        assert registry.values().count(0) == settled

    def test_double_zero_single_worker(self):
        """Two zeros in a row do not start a second worker."""
        router, registry = _router(tick=0.05)
        router.handle_sample(0, PROX, 0.0)
        router.handle_sample(0, PROX, 0.0)
        time.sleep(0.22)
        router.stop_all()
        router.worker(0).join(1.0)

        # Two bursts, one final zero, and ~5 ticks from a single worker.
        zeros = registry.values().count(0)
        assert zeros <= 2 * STOP_BURST + 1 + 6

    def test_send_failure_is_not_fatal(self):
        """Delivery errors are logged, not raised."""
        router, registry = _router(fail=True)
        assert router.handle_sample(0, PROX, 0.5) == 93
        router.handle_sample(0, PROX, 0.0)
        router.stop_all()
        assert len(registry.values()) >= STOP_BURST + 2


class TestVelocity:
    """Tests for proximity samples in velocity mode."""

    def test_rising_edge(self):
        """A fast rise inside the band drives the motor (clamped)."""
        clock = FakeClock(0.0)
        device = make_device(
            use_velocity_control=True, outer_proximity=0.0,
            inner_proximity=0.7, velocity_scalar=20.0,
        )
        router, registry = _router([device], clock=clock)

        assert router.handle_sample(0, PROX, 0.2) == 0
        clock.advance(0.1)
        assert router.handle_sample(0, PROX, 0.3) == 255
        assert registry.values() == [0, 255]

    def test_slow_rise(self):
        """The time since the previous sample sets the velocity."""
        clock = FakeClock(0.0)
        device = make_device(use_velocity_control=True)
        router, _ = _router([device], clock=clock)

        router.handle_sample(0, PROX, 0.2)
        clock.advance(1.0)
        assert router.handle_sample(0, PROX, 0.21) == 3

    def test_hold_is_zero(self):
        """A steady sample gives no output."""
        clock = FakeClock(0.0)
        router, _ = _router([make_device(use_velocity_control=True)], clock=clock)
        router.handle_sample(0, PROX, 0.3)
        clock.advance(0.1)
        assert router.handle_sample(0, PROX, 0.3) == 0


class TestHandleMessage:
    """Tests for address matching."""

    def test_proximity_address(self):
        """The proximity address reaches handle_sample."""
        router, registry = _router()
        assert router.handle_message(PROX, 0.5) is True
        assert registry.values() == [93]

    def test_int_argument(self):
        """Int arguments count as numbers."""
        router, registry = _router()
        assert router.handle_message(PROX, 1) is True
        assert registry.values() == [168]

    def test_non_numeric_ignored(self):
        """String and bool arguments are ignored."""
        router, registry = _router()
        assert router.handle_message(PROX, "0.5") is False
        assert router.handle_message(PROX, True) is False
        assert registry.values() == []

    def test_unknown_address_ignored(self):
        """Addresses no device listens on are ignored."""
        router, registry = _router()
        assert router.handle_message("/avatar/parameters/other", 0.5) is False
        assert registry.values() == []
        assert 0 not in router._states

    def test_avatar_change_logged(self, caplog):
        """Avatar changes are logged and nothing is sent."""
        caplog.set_level(logging.INFO, logger="hrouter.router")
        router, registry = _router()
        assert router.handle_message("/avatar/change", "avtr_1234") is True
        assert "Avatar Changed: avtr_1234" in caplog.text
        assert registry.values() == []

    def test_shared_parameter(self):
        """One parameter can drive several devices."""
        devices = [make_device(host="10.0.0.2"), make_device(host="10.0.0.3")]
        router, registry = _router(devices)
        router.handle_message(PROX, 0.5)
        assert registry.values("10.0.0.2") == [93]
        assert registry.values("10.0.0.3") == [93]

    def test_devices_are_independent(self):
        """A sample for one device leaves the other's state alone."""
        devices = [
            make_device(host="10.0.0.2"),
            make_device(host="10.0.0.3",
                        proximity_parameter="/avatar/parameters/proximity_02"),
        ]
        router, registry = _router(devices)
        router.handle_message("/avatar/parameters/proximity_02", 0.0)

        assert router.worker(1).running is True
        assert router.worker(0).running is False
        assert registry.values("10.0.0.2") == []
        router.stop_all()

    def test_datagram(self):
        """handle_datagram decodes and dispatches."""
        router, registry = _router()
        assert router.handle_datagram(make_message(PROX, 0.5)) is True
        assert registry.values() == [93]

    def test_bad_datagram(self):
        """Undecodable datagrams are ignored."""
        router, registry = _router()
        assert router.handle_datagram(b"junk") is False
        assert registry.values() == []

    @pytest.mark.parametrize("value", [
        float("nan"), float("inf"), float("-inf"),
    ])
    def test_non_finite_sample_ignored(self, value):
        """NaN and infinite samples are dropped without touching state."""
        router, registry = _router()
        assert router.handle_message(PROX, value) is False
        assert registry.values() == []
        assert router.state(0).last_value == 0.0

    def test_nan_datagram_ignored(self):
        """A NaN float on the wire is ignored; later samples still work."""
        router, registry = _router()
        assert router.handle_datagram(make_message(PROX, float("nan"), "f")) is False
        assert router.handle_datagram(make_message(PROX, 0.5)) is True
        assert registry.values() == [93]

    def test_non_utf8_datagram_ignored(self):
        """A datagram with a non-UTF-8 address is ignored."""
        router, registry = _router()
        dgram = b"/\xff\xfe\x00,f\x00\x00" + struct.pack(">f", 0.5)
        assert router.handle_datagram(dgram) is False
        assert registry.values() == []


class TestMaxSpeed:
    """Tests for max-speed messages."""

    def test_override(self):
        """A max-speed message changes the device ceiling."""
        router, registry = _router()
        router.handle_message(MAX_SPEED, 0.5)

        assert router.device_config(0).max_speed == pytest.approx(0.5)
        # (0.4 * 1.0 + 0.1) * 0.66 * 255 = 84.15
        assert router.handle_sample(0, PROX, 1.0) == 84

    def test_floor(self):
        """Values below the floor are raised to minimum_max_speed."""
        router, _ = _router()
        assert router.set_max_speed(0, 0.01) == pytest.approx(0.05)

    def test_no_command_sent(self):
        """A max-speed message alone sends nothing."""
        router, registry = _router()
        router.handle_message(MAX_SPEED, 0.9)
        assert registry.values() == []

    def test_nan_max_speed_ignored(self):
        """A NaN max speed leaves the ceiling alone."""
        router, registry = _router()
        assert router.handle_message(MAX_SPEED, float("nan")) is False
        assert router.device_config(0).max_speed == pytest.approx(1.0)
        assert router.handle_sample(0, PROX, 0.5) == 93

    def test_infinite_max_speed_ignored(self):
        """An infinite max speed is not stored."""
        router, _ = _router()
        router.handle_message(MAX_SPEED, float("inf"))
        assert router.state(0).max_speed is None

    def test_speed_limit_logged(self, caplog):
        """The new limit is logged with its meter."""
        caplog.set_level(logging.INFO, logger="hrouter.router")
        router, _ = _router()
        router.handle_message(MAX_SPEED, 0.95)
        assert "Speed Limit: 95% !!! SO MUCH !!!" in caplog.text


class TestLifecycle:
    """Tests for watchdog startup and shutdown."""

    def test_watchdogs_exit_on_shutdown(self):
        """One watchdog per device, all ending on shutdown."""
        devices = [make_device(host="10.0.0.2"), make_device(host="10.0.0.3")]
        router, _ = _router(devices, clock=time.monotonic, tick=0.01)
        shutdown = threading.Event()

        threads = router.start_watchdogs(shutdown)
        assert len(threads) == 2
        shutdown.set()
        for t in threads:
            t.join(1.0)
            assert not t.is_alive()

    def test_watchdog_stops_silent_device(self):
        """The router's watchdog sends a zero after the timeout."""
        registry = FakeRegistry()
        router = Router(make_global(timeout=1), [make_device()], registry, tick=0.01)
        router.handle_sample(0, PROX, 0.5)
        router.state(0).touch(time.monotonic() - 5)
        shutdown = threading.Event()

        thread = router.start_watchdog(0, shutdown)
        assert _wait_for(lambda: registry.values()[-1:] == [0])
        shutdown.set()
        thread.join(1.0)

    def test_stop_all(self):
        """stop_all cancels workers and sends a final zero per device."""
        devices = [make_device(host="10.0.0.2"), make_device(host="10.0.0.3")]
        router, registry = _router(devices)
        router.handle_sample(0, PROX, 0.0)
        router.stop_all()

        assert router.worker(0).running is False
        assert registry.values("10.0.0.3") == [0]
