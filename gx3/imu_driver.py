#!/usr/bin/env python3
"""
imu_driver.py — Serial transport, frame stream loop and driver lifecycle
for the 3DM-GX3-25.

The device is configured once (see :mod:`gx3.handshake`) and then emits one
79-byte frame per sample.  Frames are read back-to-back with blocking,
exact-length reads; there is no header resync and no read timeout, so a
silent device stalls the loop until it is shut down.

Provides a generator that yields timestamped, scaled IMU samples.
"""

from __future__ import annotations

import glob
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generator, Iterator, Optional

import serial
import serial.tools.list_ports

from .codec import validate_checksum
from .config import DriverConfig
from .handshake import DeviceHandshake, HandshakeState
from .protocol import (
    BAUD, CMD_STOP, FRAME_LEN, SETTLE_S, DecodedSample, TransportError,
    decode_frame,
)

log = logging.getLogger(__name__)


def find_port() -> Optional[str]:
    """Auto-detect the IMU's USB-serial adapter."""
    for p in serial.tools.list_ports.comports():
        d = ((p.description or "") + (p.manufacturer or "")).lower()
        if any(k in d for k in ("microstrain", "3dm", "ftdi", "prolific",
                                "cp210", "usb-serial", "uart")):
            return p.device
    usbs = sorted(glob.glob("/dev/ttyUSB*") + glob.glob("/dev/ttyACM*"))
    return usbs[0] if usbs else None


# ── Transport ───────────────────────────────────────────────────────────────

class SerialTransport:
    """
    Blocking duplex byte channel over :class:`serial.Serial` (8N1, no flow
    control, no timeout).  Every pyserial failure surfaces as
    :class:`TransportError`.
    """

    def __init__(self, port: str, baud: int = BAUD):
        self.port = port
        self.baud = baud
        self._ser: Optional[serial.Serial] = None

    def open(self) -> None:
        try:
            self._ser = serial.Serial(
                self.port, self.baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                xonxoff=False, rtscts=False,
                timeout=None,
            )
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Failed to open port {self.port}: {e}") from e

    def reopen(self) -> None:
        self.close()
        self.open()

    def close(self) -> None:
        if self._ser is not None:
            try:
                self._ser.close()
            finally:
                self._ser = None

    @property
    def is_open(self) -> bool:
        return self._ser is not None and self._ser.is_open

    def write(self, data: bytes) -> None:
        ser = self._require()
        try:
            ser.write(data)
            ser.flush()
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"write failed: {e}") from e

    def read_exact(self, n: int) -> bytes:
        ser = self._require()
        try:
            data = ser.read(n)
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"read failed: {e}") from e
        if len(data) != n:
            raise TransportError(f"channel closed after {len(data)}/{n} bytes")
        return data

    def read_into(self, buf: bytearray) -> None:
        """Fill *buf* completely."""
        buf[:] = self.read_exact(len(buf))

    def _require(self) -> serial.Serial:
        if not self.is_open:
            raise TransportError(f"port {self.port} is not open")
        return self._ser


# ── Stream statistics ───────────────────────────────────────────────────────

@dataclass
class StreamStats:
    frames: int = 0       # frames read
    good: int = 0         # frames that passed the checksum
    dropped: int = 0      # frames discarded on checksum
    t0: Optional[float] = None
    tN: Optional[float] = None

    def rate(self) -> float:
        if self.t0 is not None and self.tN is not None and self.good > 1:
            dt = self.tN - self.t0
            return (self.good - 1) / dt if dt > 0 else 0.0
        return 0.0

    def report(self) -> str:
        ok = self.frames > 0 and self.dropped == 0
        verdict = ("ALL GOOD" if ok else
                   "ISSUES DETECTED" if self.frames > 0 else
                   "NO FRAMES — check cable & baud rate")
        return (
            f"\n{'='*56}\n"
            f"  STREAM VERIFICATION SUMMARY\n"
            f"{'='*56}\n"
            f"  Frames received   : {self.frames}\n"
            f"  Valid             : {self.good}\n"
            f"  Bad checksum      : {self.dropped}\n"
            f"  Frame rate        : {self.rate():.1f} Hz\n"
            f"{'='*56}\n"
            f"  {verdict}\n"
        )


# ── Stream loop ─────────────────────────────────────────────────────────────

class StreamLoop:
    """
    Read, validate and decode frames until *stop* is set or the transport
    fails.  One frame in, one sample out, in arrival order.
    """

    def __init__(self, transport, state: HandshakeState,
                 delay: float = 0.0, frame_id: str = "imu",
                 stop: Optional[threading.Event] = None,
                 on_frame: Optional[Callable[[bytes], None]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.transport = transport
        self.state = state
        self.delay = delay
        self.frame_id = frame_id
        self.stop = stop or threading.Event()
        self.on_frame = on_frame
        self.clock = clock
        self.stats = StreamStats()
        self._buf = bytearray(FRAME_LEN)

    def __iter__(self) -> Iterator[DecodedSample]:
        buf = self._buf
        st = self.stats
        while not self.stop.is_set():
            self.transport.read_into(buf)
            st.frames += 1

            if not validate_checksum(buf, FRAME_LEN):
                st.dropped += 1
                log.warning("Checksum failed on frame %d, dropped", st.frames)
                continue

            now = self.clock()
            if st.t0 is None:
                st.t0 = now
            st.tN = now
            st.good += 1

            if self.on_frame is not None:
                self.on_frame(bytes(buf))
            yield decode_frame(buf, self.state.time_origin,
                               self.delay, self.frame_id)

    def run(self, sink: Callable[[DecodedSample], None]) -> None:
        """Push every sample into *sink* until stopped."""
        for sample in self:
            sink(sample)


# ── Driver ──────────────────────────────────────────────────────────────────

class IMUDriver:
    """
    Owns the transport for its whole lifetime: handshake, streaming and
    shutdown.  *stop* is the cancellation token shared with whoever
    requests shutdown (e.g. a SIGINT handler).
    """

    def __init__(self, transport, delay: float = 0.0, frame_id: str = "imu",
                 stop: Optional[threading.Event] = None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], None] = time.sleep):
        self.transport = transport
        self.delay = delay
        self.frame_id = frame_id
        self.stop = stop or threading.Event()
        self.clock = clock
        self.sleep = sleep
        self.state: Optional[HandshakeState] = None
        self.loop: Optional[StreamLoop] = None

    def start(self) -> HandshakeState:
        self.state = DeviceHandshake(self.transport, self.clock, self.sleep).run()
        return self.state

    def samples(self, on_frame: Optional[Callable[[bytes], None]] = None
                ) -> Iterator[DecodedSample]:
        if self.state is None:
            raise RuntimeError("IMUDriver.start() must succeed before streaming")
        self.loop = StreamLoop(self.transport, self.state, self.delay,
                               self.frame_id, self.stop, on_frame)
        return iter(self.loop)

    def shutdown(self) -> None:
        """Stop continuous output (if the port is still open) and close."""
        self.stop.set()
        if not self.transport.is_open:
            return
        try:
            self.transport.write(CMD_STOP)
            log.warning("Stop imu streaming!")
            self.sleep(SETTLE_S)
        except TransportError as e:
            log.error("Could not send stop command: %s", e)
        finally:
            self.transport.close()
            log.info("Serial port closed!")

    def __enter__(self) -> "IMUDriver":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()


def stream(config: DriverConfig,
           stop: Optional[threading.Event] = None,
           on_frame: Optional[Callable[[bytes], None]] = None,
           ) -> Generator[DecodedSample, None, None]:
    """
    Open the configured port, run the handshake and yield one
    :class:`DecodedSample` per valid frame.  The device is stopped and the
    port closed when the generator finishes or is closed.
    """
    port = config.port or find_port()
    if port is None:
        raise RuntimeError("No serial port found.  Is the IMU connected?")

    transport = SerialTransport(port, config.baud)
    transport.open()
    log.info("Opened %s @ %d baud", port, config.baud)

    with IMUDriver(transport, config.delay, config.frame_id, stop) as drv:
        drv.start()
        yield from drv.samples(on_frame)
