"""
gx3 — Microstrain 3DM-GX3-25 host protocol engine

Modules
-------
codec          Big-endian field decoding + additive checksum
rotation       Rotation matrix <-> quaternion
protocol       Wire constants, exceptions, frame decoder
handshake      Device start-up sequence (mode, preset, timer reset)
imu_driver     Serial transport, stream loop, driver lifecycle
config         Driver configuration
stream         Console / CSV / hex-dump viewer
dashboard      Live matplotlib view
"""
