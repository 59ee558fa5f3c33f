"""
handshake.py — One-shot start-up sequence for the 3DM-GX3-25.

  1. stop any continuous output           (no reply)
  2. query mode                           (4-byte reply, one re-open + retry)
  3. switch to active mode if needed      (4-byte reply)
  4. select preset 0xCC                   (4-byte reply)
  5. enable continuous output             (4-byte reply)
  6. reset timer to 0                     (7-byte reply, not checksummed)

The host clock is sampled right after step 6 and becomes the time-origin
for every streamed sample.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .codec import validate_checksum
from .protocol import (
    CMD_PRESET, CMD_SET_TIMER, CMD_STOP, MODE_ACTIVE, MODE_CONTINUOUS,
    MODE_QUERY, PRESET_ACC_ANG_MAG_ORIENT, REPLY_LEN, REPLY_MODE_INDEX,
    SETTLE_S, TIMER_REPLY_LEN, ChecksumError, HandshakeError, mode_command,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandshakeState:
    """Device configuration negotiated at start-up."""
    mode: int             # mode byte after negotiation
    preset: int           # continuous-output preset id
    streaming: bool       # continuous output enabled
    time_origin: float    # host time (s) at device tick 0


class DeviceHandshake:
    """
    Drive the start-up sequence over *transport*.

    *clock* supplies the host time-origin and *sleep* the settle pauses;
    both are injectable so the sequence can run against a scripted device.
    """

    def __init__(self, transport,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], None] = time.sleep):
        self.transport = transport
        self.clock = clock
        self.sleep = sleep

    # -- Public interface ------------------------------------------------------

    def run(self) -> HandshakeState:
        """Run all steps.  Closes the transport on any failure."""
        try:
            return self._run()
        except Exception:
            self.transport.close()
            raise

    # -- Steps -----------------------------------------------------------------

    def _run(self) -> HandshakeState:
        self.stop_streaming()

        reply = self.query_mode()
        mode = reply[REPLY_MODE_INDEX]
        if mode != MODE_ACTIVE:
            log.info("Device in mode 0x%02X, switching to active", mode)
            self._exchange(mode_command(MODE_ACTIVE), "set mode to active")
            mode = MODE_ACTIVE

        self._exchange(CMD_PRESET, "set continuous mode preset")
        self._exchange(mode_command(MODE_CONTINUOUS),
                       "set mode to continuous output")
        mode = MODE_CONTINUOUS

        time_origin = self.reset_timer()
        log.info("Streaming data (time origin %.6f)", time_origin)
        return HandshakeState(
            mode=mode,
            preset=PRESET_ACC_ANG_MAG_ORIENT,
            streaming=True,
            time_origin=time_origin,
        )

    def stop_streaming(self) -> None:
        self.transport.write(CMD_STOP)
        log.debug("Stop sent, waiting %.1fs", SETTLE_S)
        self.sleep(SETTLE_S)

    def query_mode(self) -> bytes:
        """Read the current mode; on a bad reply re-open the port and retry once."""
        try:
            return self._request(mode_command(MODE_QUERY))
        except ChecksumError as e:
            log.warning("Failed to get mode (reply %s), re-opening port",
                        e.data.hex(" "))
        self.transport.close()
        self.sleep(SETTLE_S)
        self.transport.reopen()
        return self._exchange(mode_command(MODE_QUERY), "get mode")

    def reset_timer(self) -> float:
        """Restart the device timer at 0 and return the matching host time."""
        self.transport.write(CMD_SET_TIMER)
        # Reply layout differs from the other acks and is not checksummed.
        self.transport.read_exact(TIMER_REPLY_LEN)
        return self.clock()

    # -- Helpers ---------------------------------------------------------------

    def _request(self, cmd: bytes) -> bytes:
        self.transport.write(cmd)
        reply = self.transport.read_exact(REPLY_LEN)
        if not validate_checksum(reply, REPLY_LEN):
            raise ChecksumError(f"bad reply to {cmd.hex(' ')}", reply)
        return reply

    def _exchange(self, cmd: bytes, step: str) -> bytes:
        """Send *cmd*; a bad reply is fatal."""
        try:
            return self._request(cmd)
        except ChecksumError as e:
            log.error("Failed to %s (reply %s)", step, e.data.hex(" "))
            raise HandshakeError(f"failed to {step}") from e
