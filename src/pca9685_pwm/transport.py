"""
Register bus layer for the PCA9685 PWM controller.

Defines the three-method :class:`RegisterBus` interface the controller talks
to, plus :class:`SMBusTransport`, an adapter for Linux I²C character devices
via :mod:`smbus2`.  Knows nothing about what the registers mean — that's
:mod:`protocol`'s job.

Typical usage (via :class:`~pca9685_pwm.controller.PCA9685`)::

    transport = SMBusTransport(bus=1, address=0x40)
    transport.open()
    transport.write_reg(0x00, b"\\x30")
    mode1 = transport.read_reg(0x00, 1)
    transport.close()
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import smbus2

from .constants import DEFAULT_ADDRESS, DEFAULT_BUS
from .exceptions import BusError, ConnectionError

logger = logging.getLogger(__name__)


@runtime_checkable
class RegisterBus(Protocol):
    """Minimal byte-oriented register access.

    Each call is treated as one atomic register access.  Implementations may
    raise any exception on failure; the controller propagates it unchanged.
    """

    def write_reg(self, register: int, data: bytes) -> None: ...

    def read_reg(self, register: int, length: int) -> bytes: ...

    def close(self) -> None: ...


class SMBusTransport:
    """Manages an I²C connection to a PCA9685 through ``smbus2``.

    Args:
        bus: I²C bus number (``/dev/i2c-<bus>``).
        address: 7-bit device address (default ``0x40``).
        log: Logger for connection and TX/RX records (defaults to this module's).
    """

    def __init__(
        self,
        bus: int = DEFAULT_BUS,
        address: int = DEFAULT_ADDRESS,
        log: logging.Logger | None = None,
    ) -> None:
        self.bus = bus
        self.address = address
        self._log = log if log is not None else logger
        self._smbus: smbus2.SMBus | None = None

    # -- Context manager ----------------------------------------------------

    def __enter__(self) -> SMBusTransport:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- Lifecycle ----------------------------------------------------------

    def open(self) -> None:
        """Open the I²C bus.

        Raises:
            ConnectionError: If the bus device cannot be opened.
        """
        self._log.info("Opening I2C bus %d, device 0x%02X", self.bus, self.address)
        try:
            self._smbus = smbus2.SMBus(self.bus)
        except OSError as exc:
            raise ConnectionError(f"Cannot open I2C bus {self.bus}: {exc}") from exc

    def close(self) -> None:
        """Close the I²C bus (safe to call multiple times)."""
        if self._smbus is not None:
            self._smbus.close()
            self._smbus = None
            self._log.info("I2C bus %d closed", self.bus)

    @property
    def is_open(self) -> bool:
        """Return ``True`` if the bus is currently open."""
        return self._smbus is not None

    # -- I/O ----------------------------------------------------------------

    def write_reg(self, register: int, data: bytes) -> None:
        """Write *data* starting at *register*.

        Raises:
            ConnectionError: If the bus is not open.
            BusError: If the transfer fails.
        """
        smbus = self._require_open()
        self._log.debug("TX 0x%02X: %s", register, bytes(data).hex(" "))
        try:
            smbus.write_i2c_block_data(self.address, register, list(data))
        except OSError as exc:
            raise BusError(f"Write to register 0x{register:02X} failed: {exc}") from exc

    def read_reg(self, register: int, length: int) -> bytes:
        """Read *length* bytes starting at *register*.

        Raises:
            ConnectionError: If the bus is not open.
            BusError: If the transfer fails or returns a short read.
        """
        smbus = self._require_open()
        try:
            raw = smbus.read_i2c_block_data(self.address, register, length)
        except OSError as exc:
            raise BusError(f"Read from register 0x{register:02X} failed: {exc}") from exc

        data = bytes(raw)
        self._log.debug("RX 0x%02X: %s", register, data.hex(" "))
        if len(data) != length:
            raise BusError(
                f"Short read from register 0x{register:02X}: expected {length} bytes, "
                f"got {len(data)}"
            )
        return data

    # -- Internal -----------------------------------------------------------

    def _require_open(self) -> smbus2.SMBus:
        """Return the open bus or raise."""
        if self._smbus is None:
            raise ConnectionError("I2C bus not open — call open() first.")
        return self._smbus
