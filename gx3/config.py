"""Driver configuration."""
from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Optional

from .protocol import BAUD


@dataclass
class DriverConfig:
    port: Optional[str] = None   # None -> auto-detect
    baud: int = BAUD
    frame_id: str = "imu"        # label copied onto every sample
    delay: float = 0.0           # fixed latency subtracted from stamps (s)

    @classmethod
    def add_arguments(cls, ap: argparse.ArgumentParser) -> None:
        ap.add_argument("port", nargs="?", help="Serial port (auto-detect)")
        ap.add_argument("-b", "--baud", type=int, default=BAUD)
        ap.add_argument("--frame-id", default="imu",
                        help="Label attached to each sample (default imu)")
        ap.add_argument("--delay", type=float, default=0.0,
                        help="Transport delay subtracted from stamps, s")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "DriverConfig":
        return cls(port=args.port, baud=args.baud,
                   frame_id=args.frame_id, delay=args.delay)
