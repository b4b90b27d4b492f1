"""Project-wide configuration constants and config-file loading.

Central place for tuneable parameters shared across modules.
Import individual names where needed.

Example:
    >>> from hrouter.config import load_config, MOTOR_SPEED_SCALE
    >>> global_cfg, devices = load_config("hrouter.toml")
    >>> devices[0].proximity_parameter
    '/avatar/parameters/proximity_01'
"""

from dataclasses import dataclass, field
import ipaddress
import tomllib

# Derating applied to every actuation value.  Going above 0.66
# over-volts the vibration motors and shortens their life.
MOTOR_SPEED_SCALE = 0.66

# Floor for max_speed, so a device never gets a zero output range.
MINIMUM_MAX_SPEED = 0.05

# Actuation values are sent as 0..255.
ACTUATION_MAX = 255

PARAMETER_PREFIX = "/avatar/parameters/"
MOTOR_ADDRESS = "/avatar/parameters/motor"
AVATAR_CHANGE_ADDRESS = "/avatar/change"

DEFAULT_PORT_RX = 9001
DEFAULT_HOST_RX = "127.0.0.1"
DEFAULT_TX_PORT = 8888

# Delivery timeouts in seconds.
CONNECT_TIMEOUT_S = 2.0
SEND_TIMEOUT_S = 1.0

# Connection registry housekeeping, in seconds.
SWEEP_INTERVAL_S = 60.0
IDLE_EVICT_S = 300.0

# Zero commands sent back-to-back when a device's signal drops to zero.
STOP_BURST = 5

# Period of the watchdog and stop-worker loops, in seconds.
TICK_S = 1.0


@dataclass(frozen=True)
class DeviceConfig:
    """Validated settings for one haptic device.

    Speeds and scale are fractions (0..1), already converted from the
    percentages used in the config file.
    """

    host: str
    proximity_parameter: str
    min_speed: float = 0.05
    max_speed: float = 0.25
    start_tx: int = 20
    speed_scale: float = 1.0
    max_speed_parameter: str = PARAMETER_PREFIX + "max_speed"
    use_velocity_control: bool = False
    outer_proximity: float = 0.0
    inner_proximity: float = 0.7
    velocity_scalar: float = 20.0
    port: int = DEFAULT_TX_PORT
    motor_addresses: tuple[str, ...] = (MOTOR_ADDRESS,)

    @property
    def endpoint(self) -> tuple[str, int]:
        """The ``(host, port)`` pair commands are sent to."""
        return (self.host, self.port)

    @property
    def name(self) -> str:
        """Short parameter name used in log lines."""
        return short_name(self.proximity_parameter)


@dataclass(frozen=True)
class GlobalConfig:
    """Validated ``[setup]`` section: receive socket, timeout, defaults."""

    port_rx: int = DEFAULT_PORT_RX
    host_rx: str = DEFAULT_HOST_RX
    timeout: int = 5
    minimum_max_speed: float = MINIMUM_MAX_SPEED
    default_min_speed: float = 0.05
    default_max_speed: float = 0.25
    default_speed_scale: float = 1.0
    default_start_tx: int = 20
    default_max_speed_parameter: str = PARAMETER_PREFIX + "max_speed"
    default_use_velocity_control: bool = False
    default_outer_proximity: float = 0.0
    default_inner_proximity: float = 0.7
    default_velocity_scalar: float = 20.0
    tx_port: int = DEFAULT_TX_PORT
    motor_addresses: tuple[str, ...] = field(default=(MOTOR_ADDRESS,))


def short_name(address: str) -> str:
    """Strip the avatar parameter prefix from an OSC address."""
    if address.startswith(PARAMETER_PREFIX):
        return address[len(PARAMETER_PREFIX):]
    return address


def parameter_address(name: str) -> str:
    """Expand a bare parameter name to its full OSC address.

    Names that already start with ``/`` are returned unchanged.

    Example:
        >>> parameter_address("proximity_01")
        '/avatar/parameters/proximity_01'
    """
    if name.startswith("/"):
        return name
    return PARAMETER_PREFIX + name


def load_config(path: str) -> tuple[GlobalConfig, list[DeviceConfig]]:
    """Read a TOML config file and validate it.

    The file has a ``[setup]`` table (every key optional) and a
    non-empty ``[[devices]]`` array.  Each device needs ``ip`` and
    ``proximity_parameter``; every other key falls back to the
    matching ``default_*`` key of ``[setup]``.

    Raises:
        ValueError: If any required key is missing or has the wrong type.

    Example:
        >>> global_cfg, devices = load_config("hrouter.toml")
        >>> global_cfg.port_rx
        9001
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    setup = raw.get("setup", {})
    if not isinstance(setup, dict):
        raise ValueError("[setup] must be a table")
    global_cfg = parse_setup(setup)

    if "devices" not in raw:
        raise ValueError("missing required key: devices")
    devices = raw["devices"]
    if not isinstance(devices, list) or len(devices) == 0:
        raise ValueError("devices must be a non-empty array of tables")

    result = []
    for i, dev in enumerate(devices):
        if not isinstance(dev, dict):
            raise ValueError("devices[%d] must be a table" % i)
        try:
            result.append(parse_device(dev, global_cfg))
        except ValueError as exc:
            raise ValueError("devices[%d]: %s" % (i, exc)) from exc

    return global_cfg, result


def parse_setup(setup: dict[str, object]) -> GlobalConfig:
    """Build a GlobalConfig from the ``[setup]`` table."""
    port_rx = setup.get("port_rx", DEFAULT_PORT_RX)
    if port_rx == "OSCQuery":
        raise ValueError("port_rx: OSCQuery discovery is not supported, "
                         "set a port number")
    _check_port("port_rx", port_rx)

    host_rx = _get_str(setup, "host_rx", DEFAULT_HOST_RX)
    timeout = _get_int(setup, "timeout", 5)
    if timeout < 1:
        raise ValueError("timeout must be >= 1, got %d" % timeout)

    min_speed = _get_percent(setup, "default_min_speed", 5)
    if min_speed < 0:
        raise ValueError("default_min_speed cannot be negative")
    max_speed = _get_percent(setup, "default_max_speed", 25)
    max_speed = max(max_speed, min_speed, MINIMUM_MAX_SPEED)

    outer = _get_float(setup, "default_outer_proximity", 0.0)
    inner = _get_float(setup, "default_inner_proximity", 0.7)
    _check_band("default_", outer, inner)

    tx_port = setup.get("tx_port", DEFAULT_TX_PORT)
    _check_port("tx_port", tx_port)

    return GlobalConfig(
        port_rx=port_rx,
        host_rx=host_rx,
        timeout=timeout,
        default_min_speed=min_speed,
        default_max_speed=max_speed,
        default_speed_scale=_get_percent(setup, "default_speed_scale", 100),
        default_start_tx=_get_int(setup, "default_start_tx", 20),
        default_max_speed_parameter=parameter_address(
            _get_str(setup, "default_max_speed_parameter", "max_speed")),
        default_use_velocity_control=_get_bool(
            setup, "default_use_velocity_control", False),
        default_outer_proximity=outer,
        default_inner_proximity=inner,
        default_velocity_scalar=_get_float(
            setup, "default_velocity_scalar", 20.0),
        tx_port=tx_port,
        motor_addresses=_get_addresses(
            setup, "motor_addresses", (MOTOR_ADDRESS,)),
    )


def parse_device(dev: dict[str, object], g: GlobalConfig) -> DeviceConfig:
    """Build a DeviceConfig from one ``[[devices]]`` table.

    Missing optional keys inherit from *g*.
    """
    _require_str(dev, "ip")
    try:
        ipaddress.ip_address(dev["ip"])
    except ValueError:
        raise ValueError("invalid IP address: %s" % dev["ip"]) from None
    _require_str(dev, "proximity_parameter")

    min_speed = _get_percent(dev, "min_speed", None)
    if min_speed is None:
        min_speed = g.default_min_speed
    if min_speed < 0:
        raise ValueError("min_speed cannot be negative")

    max_speed = _get_percent(dev, "max_speed", None)
    if max_speed is None:
        max_speed = g.default_max_speed
    max_speed = max(max_speed, min_speed, g.minimum_max_speed)

    speed_scale = _get_percent(dev, "speed_scale", None)
    if speed_scale is None:
        speed_scale = g.default_speed_scale

    if "max_speed_parameter" in dev:
        max_speed_parameter = parameter_address(
            _get_str(dev, "max_speed_parameter", ""))
    else:
        max_speed_parameter = g.default_max_speed_parameter

    outer = _get_float(dev, "outer_proximity", g.default_outer_proximity)
    inner = _get_float(dev, "inner_proximity", g.default_inner_proximity)
    _check_band("", outer, inner)

    port = dev.get("port", g.tx_port)
    _check_port("port", port)

    return DeviceConfig(
        host=dev["ip"],
        proximity_parameter=parameter_address(dev["proximity_parameter"]),
        min_speed=min_speed,
        max_speed=max_speed,
        start_tx=_get_int(dev, "start_tx", g.default_start_tx),
        speed_scale=speed_scale,
        max_speed_parameter=max_speed_parameter,
        use_velocity_control=_get_bool(
            dev, "use_velocity_control", g.default_use_velocity_control),
        outer_proximity=outer,
        inner_proximity=inner,
        velocity_scalar=_get_float(
            dev, "velocity_scalar", g.default_velocity_scalar),
        port=port,
        motor_addresses=_get_addresses(
            dev, "motor_addresses", g.motor_addresses),
    )


def _check_port(key: str, value: object) -> None:
    """Validate that *value* is an int UDP port."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError("%s must be int, got %s" % (key, type(value).__name__))
    if value < 1 or value > 65535:
        raise ValueError("%s must be 1-65535, got %d" % (key, value))


def _check_band(prefix: str, outer: float, inner: float) -> None:
    """Validate that the velocity band is not empty."""
    if outer >= inner:
        raise ValueError(
            "%souter_proximity (%s) must be below %sinner_proximity (%s)"
            % (prefix, outer, prefix, inner)
        )


def _get_percent(raw: dict[str, object], key: str, default):
    """Return *key* as a fraction (percent / 100), or *default* if absent."""
    if key not in raw:
        return default / 100.0 if default is not None else None
    return _get_float(raw, key, 0.0) / 100.0


def _get_float(raw: dict[str, object], key: str, default: float) -> float:
    """Return *key* as a float; ints are accepted."""
    if key not in raw:
        return default
    value = raw[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("%s must be a number, got %s" % (key, type(value).__name__))
    return float(value)


def _get_int(raw: dict[str, object], key: str, default: int) -> int:
    """Return *key* as an int, or *default* if absent."""
    if key not in raw:
        return default
    _require_int(raw, key)
    return raw[key]


def _get_str(raw: dict[str, object], key: str, default: str) -> str:
    """Return *key* as a str, or *default* if absent."""
    if key not in raw:
        return default
    _require_str(raw, key)
    return raw[key]


def _get_bool(raw: dict[str, object], key: str, default: bool) -> bool:
    """Return *key* as a bool, or *default* if absent."""
    if key not in raw:
        return default
    if not isinstance(raw[key], bool):
        raise ValueError("%s must be bool, got %s" % (key, type(raw[key]).__name__))
    return raw[key]


def _get_addresses(raw: dict[str, object], key: str,
                   default: tuple[str, ...]) -> tuple[str, ...]:
    """Return *key* as a non-empty tuple of OSC addresses."""
    if key not in raw:
        return default
    value = raw[key]
    if not isinstance(value, list) or len(value) == 0:
        raise ValueError("%s must be a non-empty list of str" % key)
    for i, v in enumerate(value):
        if not isinstance(v, str):
            raise ValueError("%s[%d] must be str, got %s" % (key, i, type(v).__name__))
    return tuple(parameter_address(v) for v in value)


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is a str."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], str):
        raise ValueError("%s must be str, got %s" % (key, type(raw[key]).__name__))


def _require_int(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is an int."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], int) or isinstance(raw[key], bool):
        raise ValueError("%s must be int, got %s" % (key, type(raw[key]).__name__))
