#!/usr/bin/env python3
"""
stream.py — Configure the 3DM-GX3-25 and print its samples.

Usage
-----
  python3 -m gx3.stream                        # auto-detect port, live view
  python3 -m gx3.stream /dev/ttyUSB0           # explicit port
  python3 -m gx3.stream -n 200                 # stop after 200 samples
  python3 -m gx3.stream --verify               # capture 500 & report
  python3 -m gx3.stream --raw                  # hex dump of each frame
  python3 -m gx3.stream --csv > imu.csv        # CSV output
  python3 -m gx3.stream --delay 0.004 --frame-id imu_link

Ctrl+C stops continuous output on the device and closes the port; press it
again if the device has gone silent.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading

from .config import DriverConfig
from .imu_driver import IMUDriver, SerialTransport, find_port
from .protocol import DecodedSample, HandshakeError, TransportError

CSV_HEADER = ("t,frame_id,ax,ay,az,gx,gy,gz,mx,my,mz,qw,qx,qy,qz,ticks")


def csv_row(s: DecodedSample) -> str:
    a, g, m, q = s.accel, s.gyro, s.mag, s.q
    return (f"{s.t:.6f},{s.frame_id},"
            f"{a[0]:.5f},{a[1]:.5f},{a[2]:.5f},"
            f"{g[0]:.5f},{g[1]:.5f},{g[2]:.5f},"
            f"{m[0]:.5f},{m[1]:.5f},{m[2]:.5f},"
            f"{q[0]:.6f},{q[1]:.6f},{q[2]:.6f},{q[3]:.6f},{s.ticks}")


def live_line(n: int, s: DecodedSample, hz: float) -> str:
    a, g, q = s.accel, s.gyro, s.q
    return (f"{n:6d}  {a[0]:+8.3f} {a[1]:+8.3f} {a[2]:+8.3f}  "
            f"{g[0]:+8.3f} {g[1]:+8.3f} {g[2]:+8.3f}  "
            f"{q[0]:+6.3f} {q[1]:+6.3f} {q[2]:+6.3f} {q[3]:+6.3f}  {hz:6.0f}")


def on_sigint(stop: threading.Event):
    """SIGINT handler: first Ctrl+C sets *stop*, the next raises KeyboardInterrupt."""
    def handler(signum, frame):
        stop.set()
        # a read stalled on a silent device only returns on the second Ctrl+C
        signal.signal(signal.SIGINT, signal.default_int_handler)
    return handler


def main() -> None:
    ap = argparse.ArgumentParser(description="3DM-GX3-25 stream viewer")
    DriverConfig.add_arguments(ap)
    ap.add_argument("-n", "--num", type=int, default=0,
                    help="Stop after N samples (0=forever)")
    ap.add_argument("--raw", action="store_true", help="Hex dump mode")
    ap.add_argument("--csv", action="store_true", help="CSV output")
    ap.add_argument("--verify", action="store_true",
                    help="Capture 500 samples & report")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    cfg = DriverConfig.from_args(args)
    cfg.port = cfg.port or find_port()
    if not cfg.port:
        sys.exit("ERROR: No serial port found. Is the IMU connected?")
    if args.verify and args.num == 0:
        args.num = 500

    stop = threading.Event()
    signal.signal(signal.SIGINT, on_sigint(stop))

    raw_frames: list[bytes] = []
    on_frame = raw_frames.append if args.raw else None

    transport = SerialTransport(cfg.port, cfg.baud)
    count = 0
    error: TransportError | None = None
    with IMUDriver(transport, cfg.delay, cfg.frame_id, stop) as drv:
        try:
            transport.open()
            drv.start()
        except (HandshakeError, TransportError) as e:
            sys.exit(f"ERROR: {e}")

        if args.csv:
            print(CSV_HEADER)
        elif not args.raw:
            print(f"\nStreaming {cfg.port} @ {cfg.baud} baud …\n")
            print(f"{'#':>6}  {'Ax':>8} {'Ay':>8} {'Az':>8}  "
                  f"{'Gx':>8} {'Gy':>8} {'Gz':>8}  "
                  f"{'qw':>6} {'qx':>6} {'qy':>6} {'qz':>6}  {'Hz':>6}")
            print("─" * 100)

        try:
            for sample in drv.samples(on_frame):
                count += 1
                if args.raw:
                    print(f"[{count:5d}] {raw_frames.pop().hex(' ')}")
                elif args.csv:
                    print(csv_row(sample))
                else:
                    sys.stdout.write(f"\r{live_line(count, sample, drv.loop.stats.rate())}")
                    sys.stdout.flush()
                    if count % 100 == 0:
                        sys.stdout.write("\n")

                if 0 < args.num <= count:
                    break
        except TransportError as e:
            error = e
        except KeyboardInterrupt:
            print("\nInterrupted while waiting for data.", file=sys.stderr)

    if not args.csv:
        print()
    if drv.loop is not None and (args.verify or not args.csv):
        print(drv.loop.stats.report())
    if error is not None:
        sys.exit(f"ERROR: {error}")


if __name__ == "__main__":
    main()
