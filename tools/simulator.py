#!/usr/bin/env python3
"""Avatar-side simulator for hrouter.

Sends a proximity ramp to a running router the way the avatar
platform would: rises from 0 to *peak*, falls back, then sends a zero
so the router stops the device.  Repeats *cycles* times.

Usage:
    python simulator.py <parameter> [--port 9001] [--peak 0.8]

Args:
    parameter: Proximity parameter name (e.g. proximity_01).

Example:
    python simulator.py proximity_01 --port 9001 --cycles 3
"""

import argparse
import sys
import time

from pythonosc.udp_client import SimpleUDPClient

# Add parent src to path so we can import hrouter
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1] / "src"))

from hrouter.config import parameter_address


def ramp(peak, steps):
    """Yield samples rising from 0 to *peak* and back, ending in 0.

    Args:
        peak: Highest proximity value (float, 0-1).
        steps: Samples per half ramp (int).
    """
    for i in range(1, steps + 1):
        yield peak * i / steps
    for i in range(steps - 1, -1, -1):
        yield peak * i / steps


def run(parameter, host, port, peak, steps, period, cycles):
    """Send *cycles* ramps to the router at *host*:*port*.

    Args:
        parameter: Full OSC address of the proximity parameter.
        host: Router address.
        port: Router UDP port.
        peak: Highest proximity value.
        steps: Samples per half ramp.
        period: Seconds between samples.
        cycles: Number of ramps.
    """
    client = SimpleUDPClient(host, port)
    print("simulator: sending {} to {}:{}".format(parameter, host, port),
          flush=True)

    for cycle in range(cycles):
        for sample in ramp(peak, steps):
            client.send_message(parameter, float(sample))
            time.sleep(period)
        print("simulator: cycle {} done".format(cycle + 1), flush=True)


def main():
    parser = argparse.ArgumentParser(description="hrouter avatar simulator")
    parser.add_argument("parameter", help="proximity parameter name")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=9001)
    parser.add_argument("--peak", type=float, default=0.8)
    parser.add_argument("--steps", type=int, default=10)
    parser.add_argument("--period", type=float, default=0.1)
    parser.add_argument("--cycles", type=int, default=1)
    args = parser.parse_args()

    try:
        run(parameter_address(args.parameter), args.host, args.port,
            args.peak, args.steps, args.period, args.cycles)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
