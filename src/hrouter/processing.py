"""Proximity-to-actuation mapping.

Pure functions turning a proximity sample (0..1) and a DeviceConfig
into an integer motor value (0..255).  Two modes:

- Direct: output follows proximity, scaled between min and max speed,
  with a startup kick on the first nonzero sample after idle.
- Velocity: output follows how fast proximity rises while inside the
  configured band; zero everywhere else.

Each computation logs one diagnostic line with an ASCII bar.

Example:
    >>> from hrouter.config import DeviceConfig
    >>> cfg = DeviceConfig("10.0.0.2", "/avatar/parameters/p",
    ...                    min_speed=0.1, max_speed=1.0, start_tx=30)
    >>> compute_direct(0.05, cfg, 0.0)
    30
"""

from datetime import timedelta
import logging
import math

from hrouter.config import ACTUATION_MAX, MOTOR_SPEED_SCALE, DeviceConfig, short_name

log = logging.getLogger(__name__)


def proximity_graph(sample: float) -> str:
    """Return an ASCII bar, one dash per tenth of *sample*, then ``>``.

    Example:
        >>> proximity_graph(0.35)
        '--->'
    """
    dashes = max(0, math.floor(sample * 10))
    return "-" * dashes + ">"


def clamp_actuation(raw: int) -> int:
    """Clamp *raw* into the 0..255 actuation range."""
    return max(0, min(ACTUATION_MAX, raw))


def round_half_up(value: float) -> int:
    """Round to the nearest int, halves away from zero (not banker's)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _scale(value: float, cfg: DeviceConfig) -> int:
    """Apply motor derating, device scale and the 0..255 range."""
    return round_half_up(value * MOTOR_SPEED_SCALE * cfg.speed_scale * 255)


def _report(parameter: str, sample: float, tx: int) -> None:
    log.info(
        "%s Prox: %-5s Motor Tx: %3d |%-11s|",
        short_name(parameter), "%.2f" % sample, tx, proximity_graph(sample),
    )


def compute_direct(sample: float, cfg: DeviceConfig, prev_sample: float) -> int:
    """Map a proximity sample straight to a motor value.

    ``raw = round(((max - min) * sample + min) * 0.66 * scale * 255)``.
    If the previous sample was zero (device idle) and *raw* is below
    ``cfg.start_tx``, the kick value is sent instead so the motor gets
    past static friction.

    Args:
        sample: Proximity value, nominally 0..1.
        cfg: Device settings.
        prev_sample: The sample received before this one (0 if none).

    Returns:
        int: Motor value in 0..255.

    Example:
        >>> compute_direct(1.0, cfg, 1.0)
        168
    """
    raw = _scale((cfg.max_speed - cfg.min_speed) * sample + cfg.min_speed, cfg)
    if prev_sample == 0 and sample > 0 and raw < cfg.start_tx:
        raw = cfg.start_tx
    tx = clamp_actuation(raw)
    _report(cfg.proximity_parameter, sample, tx)
    return tx


def compute_velocity(sample: float, prev_sample: float,
                     delta_time: timedelta, cfg: DeviceConfig) -> int:
    """Map the rising speed of proximity to a motor value.

    Only active on a rising edge inside the band
    ``outer_proximity < sample < inner_proximity`` with a nonzero
    previous sample; the output is 0 otherwise.

    ``velocity = max(0, (sample - prev) / dt * velocity_scalar)`` and
    ``raw = round((max - min) * velocity * min * 0.66 * scale * 255)``.
    Note that ``min_speed`` multiplies here where direct mode adds it.

    Values above 255 are clamped.  A zero or negative *delta_time*
    yields 0.
    """
    seconds = delta_time.total_seconds()
    velocity = 0.0
    if (cfg.outer_proximity < sample < cfg.inner_proximity
            and prev_sample > 0 and sample > prev_sample and seconds > 0):
        velocity = max(0.0, (sample - prev_sample) / seconds * cfg.velocity_scalar)

    raw = _scale((cfg.max_speed - cfg.min_speed) * velocity * cfg.min_speed, cfg)
    tx = clamp_actuation(raw)
    if raw != tx:
        log.debug("%s: velocity output %d clamped to %d", cfg.name, raw, tx)
    _report(cfg.proximity_parameter, sample, tx)
    return tx


def speed_limit_meter(max_speed: float) -> str:
    """Return the 'speed limit' line logged on max-speed changes.

    Example:
        >>> speed_limit_meter(0.95)
        'Speed Limit: 95% !!! SO MUCH !!!'
    """
    percent = round(max_speed * 100)
    if percent >= 91:
        meter = "!!! SO MUCH !!!"
    elif percent >= 76:
        meter = "!!"
    elif percent >= 51:
        meter = "!"
    else:
        meter = ""
    return ("Speed Limit: %d%% %s" % (percent, meter)).rstrip()
