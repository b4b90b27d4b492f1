"""Router daemon -- receives avatar parameters and drives haptic devices.

Foreground loop driven by a TOML config file.  Listens for OSC on the
configured port, runs one timeout watchdog per device plus the
connection-registry sweep, and shuts down cleanly on SIGINT or SIGTERM
(stopping every device on the way out).

Example:
    Run from the command line::

        hrouter hrouter.toml -v
"""

import argparse
import logging
import signal
import sys
import threading

from hrouter.config import load_config
from hrouter.paths import DEFAULT_CONFIG, resolve_config
from hrouter.registry import ConnectionRegistry
from hrouter.router import Router
from hrouter.udp_receiver import UdpReceiver

log = logging.getLogger(__name__)

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


def run_listener(receiver, router, shutdown: threading.Event) -> int:
    """Run the receive loop until *shutdown* is set.

    Feeds every datagram to the router.  Returns the number of
    messages that matched a device.

    Example:
        >>> run_listener(receiver, router, ev)
        42
    """
    count = 0

    while not shutdown.is_set():
        # Use timeout so we check shutdown flag periodically
        data = receiver.recv_timeout(0.5)
        if data and router.handle_datagram(data):
            count += 1

    return count


def log_device_map(global_cfg, devices) -> None:
    """Log the configured devices and listening port at startup."""
    log.info("Device Maps")
    for i, device in enumerate(devices):
        log.info(
            "  Device %d: %s => %s:%d", i, device.name, device.host, device.port,
        )
        log.info(
            "    Startup TX: %d  Min Speed: %.0f%%  Max Speed: %.0f%%  "
            "Scale Factor: %.0f%%  Advanced Mode: %s",
            device.start_tx, device.min_speed * 100, device.max_speed * 100,
            device.speed_scale * 100, device.use_velocity_control,
        )
    log.info(
        "Listening for OSC on %s:%d, timeout %ds",
        global_cfg.host_rx, global_cfg.port_rx, global_cfg.timeout,
    )


def main() -> None:
    """CLI entry point -- parse args, load config, run the daemon.

    Example:
        From the shell::

            hrouter
            hrouter /etc/hrouter/hrouter.toml -v
    """
    _shutdown.clear()

    parser = argparse.ArgumentParser(description="hrouter haptic OSC router")
    parser.add_argument(
        "config", nargs="?", default=DEFAULT_CONFIG,
        help="path to TOML config file (default: %(default)s)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    try:
        global_cfg, devices = load_config(resolve_config(args.config))
    except (OSError, ValueError) as exc:
        log.error("config: %s", exc)
        sys.exit(1)

    log_device_map(global_cfg, devices)

    try:
        receiver = UdpReceiver(global_cfg.host_rx, global_cfg.port_rx)
    except OSError as exc:
        log.error("cannot listen on %s:%d: %s",
                  global_cfg.host_rx, global_cfg.port_rx, exc)
        sys.exit(1)

    registry = ConnectionRegistry()
    router = Router(global_cfg, devices, registry)
    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    router.start_watchdogs(_shutdown)
    registry.start_sweep(_shutdown)
    log.info("waiting for pats...")
    try:
        run_listener(receiver, router, _shutdown)
    finally:
        router.stop_all()
        receiver.close()
        registry.close()
        log.info("shutting down")


if __name__ == "__main__":
    main()
