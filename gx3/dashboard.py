#!/usr/bin/env python3
"""
dashboard.py — Real-time 3DM-GX3-25 dashboard with matplotlib.

Four-panel live visualization:
  ┌─────────────────┬─────────────────┐
  │  Acceleration   │  Angular rate   │
  │  (m/s²)         │  (rad/s)        │
  ├─────────────────┼─────────────────┤
  │  Magnetic field │  Orientation    │
  │  (gauss)        │  (quaternion)   │
  └─────────────────┴─────────────────┘

Usage
-----
  python3 -m gx3.dashboard                    # auto-detect port
  python3 -m gx3.dashboard /dev/ttyUSB0       # explicit port
  python3 -m gx3.dashboard --window 3.0       # 3 s rolling window
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading

import numpy as np
import matplotlib
import matplotlib.pyplot as plt
import matplotlib.gridspec as gridspec
from matplotlib.animation import FuncAnimation

from .config import DriverConfig
from .imu_driver import find_port, stream
from .protocol import DecodedSample, HandshakeError, TransportError

log = logging.getLogger(__name__)

SAMPLE_RATE_HZ = 100    # preset 0xCC default output rate

# ── Circular buffer for rolling plots ──────────────────────────────────────

class RingBuffer:
    """Rolling window of per-sample rows (one axis per column) for the plots."""
    def __init__(self, maxlen: int, ncols: int = 1):
        self.maxlen = maxlen
        self.ncols = ncols
        self.data = np.zeros((maxlen, ncols))
        self.idx = 0
        self.full = False

    def append(self, row: np.ndarray | list | tuple) -> None:
        self.data[self.idx] = row
        self.idx += 1
        if self.idx >= self.maxlen:
            self.idx = 0
            self.full = True

    def get(self) -> np.ndarray:
        if self.full:
            return np.roll(self.data, -self.idx, axis=0)
        return self.data[:self.idx]


# ── Shared state between IMU thread and plot thread ────────────────────────

class SharedState:
    def __init__(self, ring_len: int):
        self.lock = threading.Lock()
        self.accel = RingBuffer(ring_len, 3)    # ax, ay, az  (m/s²)
        self.gyro = RingBuffer(ring_len, 3)     # gx, gy, gz  (rad/s)
        self.mag = RingBuffer(ring_len, 3)      # mx, my, mz  (gauss)
        self.quat = RingBuffer(ring_len, 4)     # qw, qx, qy, qz
        self.time_buf = RingBuffer(ring_len, 1) # time since first sample (s)
        self.t_first: float | None = None
        self.count = 0
        self.hz = 0.0
        self.streaming = False
        self.error: str | None = None

    def push(self, s: DecodedSample) -> None:
        """Sink for the stream loop."""
        with self.lock:
            if self.t_first is None:
                self.t_first = s.t
            t_rel = s.t - self.t_first
            self.count += 1
            self.streaming = True
            self.time_buf.append([t_rel])
            self.accel.append(s.accel)
            self.gyro.append(s.gyro)
            self.mag.append(s.mag)
            self.quat.append(s.q)
            if t_rel > 0:
                self.hz = (self.count - 1) / t_rel


# ── IMU processing thread ──────────────────────────────────────────────────

def _imu_thread(shared: SharedState, cfg: DriverConfig,
                stop: threading.Event) -> None:
    try:
        for sample in stream(cfg, stop):
            shared.push(sample)
    except (HandshakeError, TransportError) as e:
        log.error("IMU stream ended: %s", e)
        with shared.lock:
            shared.error = str(e)


# ── Dashboard ──────────────────────────────────────────────────────────────

_XYZ = (("X", "#FF6B6B"), ("Y", "#51CF66"), ("Z", "#339AF0"))
_WXYZ = (("w", "#FCC419"),) + tuple(("q" + n.lower(), c) for n, c in _XYZ)


def _panel(fig, spec, title: str, ylabel: str, ylim: float, labels):
    ax = fig.add_subplot(spec)
    ax.set_title(title, fontsize=11, pad=8)
    ax.set_ylabel(ylabel)
    ax.set_xlabel("time (s)")
    ax.set_ylim(-ylim, ylim)
    lines = [ax.plot([], [], lw=1, color=c, label=n)[0] for n, c in labels]
    ax.legend(loc="upper right", fontsize=8)
    ax.grid(alpha=0.2)
    return ax, lines


def _build_dashboard(shared: SharedState, window_sec: float, title: str):
    plt.style.use("dark_background")
    fig = plt.figure(figsize=(14, 8))
    fig.canvas.manager.set_window_title(f"3DM-GX3-25 — {title}")

    gs = gridspec.GridSpec(2, 2, hspace=0.35, wspace=0.30,
                           left=0.08, right=0.96, top=0.92, bottom=0.08)

    panels = [
        (_panel(fig, gs[0, 0], "Linear Acceleration", "m/s²", 20, _XYZ), "accel", 5.0),
        (_panel(fig, gs[0, 1], "Angular Rate", "rad/s", 5, _XYZ), "gyro", 0.5),
        (_panel(fig, gs[1, 0], "Magnetic Field", "gauss", 1, _XYZ), "mag", 0.5),
        (_panel(fig, gs[1, 1], "Orientation", "quaternion", 1.1, _WXYZ), "quat", None),
    ]

    status_text = fig.text(0.5, 0.97, "Configuring device …", ha="center",
                           fontsize=12, color="#FCC419", fontweight="bold")

    # ── Animation update ──
    def _update(frame):
        with shared.lock:
            t = shared.time_buf.get().flatten()
            series = {name: getattr(shared, name).get()
                      for _, name, _ in panels}
            hz = shared.hz
            count = shared.count
            streaming = shared.streaming
            error = shared.error

        if error is not None:
            status_text.set_text(f"✖  {error}")
            status_text.set_color("#FF6B6B")
            return []
        if not streaming:
            return []

        # ── Time window ──
        if len(t) > 1:
            t_max = t[-1]
            t_min = max(0, t_max - window_sec)
        else:
            t_min, t_max = 0, window_sec

        for (ax, lines), name, floor in panels:
            data = series[name]
            if len(data) == 0:
                continue
            for i, line in enumerate(lines):
                line.set_data(t, data[:, i])
            ax.set_xlim(t_min, t_max)
            if floor is not None:
                y_max = max(np.abs(data).max() * 1.2, floor)
                ax.set_ylim(-y_max, y_max)

        status_text.set_text(f"{hz:.0f} Hz   │   Samples: {count}")
        status_text.set_color("#51CF66")
        return []

    ani = FuncAnimation(fig, _update, interval=50, blit=False, cache_frame_data=False)
    return fig, ani


# ── Main ────────────────────────────────────────────────────────────────────

def main() -> None:
    ap = argparse.ArgumentParser(description="3DM-GX3-25 live dashboard")
    DriverConfig.add_arguments(ap)
    ap.add_argument("--window", type=float, default=5.0,
                    help="Rolling plot window in seconds (default 5)")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO,
                        format="[%(levelname)s] %(name)s: %(message)s")

    cfg = DriverConfig.from_args(args)
    cfg.port = cfg.port or find_port()
    if not cfg.port:
        sys.exit("ERROR: No serial port found.")

    matplotlib.use("TkAgg")

    ring_len = int(args.window * SAMPLE_RATE_HZ * 1.5)
    shared = SharedState(ring_len)
    stop = threading.Event()

    # ── Start IMU thread ──
    t = threading.Thread(target=_imu_thread, args=(shared, cfg, stop),
                         daemon=True)
    t.start()

    print(f"\n  3DM-GX3-25 Dashboard — {cfg.port} @ {cfg.baud} baud\n")

    # ── Launch plot (blocks on main thread) ──
    fig, ani = _build_dashboard(shared, args.window, cfg.frame_id)
    try:
        plt.show()
    finally:
        stop.set()
        t.join(timeout=1.0)


if __name__ == "__main__":
    main()
