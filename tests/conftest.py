"""Shared pytest fixtures for PCA9685 tests."""

from __future__ import annotations

import threading
from unittest.mock import patch

import pytest

from pca9685_pwm import PCA9685, ControllerConfig
from pca9685_pwm.constants import REG_LED0
from pca9685_pwm.protocol import decode_pwm
from pca9685_pwm.transport import SMBusTransport


class FakeBus:
    """In-memory stand-in for a :class:`~pca9685_pwm.transport.RegisterBus`.

    Keeps a register file (``registers``) updated with auto-increment
    semantics and records every access in ``writes``/``reads`` so tests can
    assert on the exact wire traffic.

    Call :meth:`fail_on` to make the next write to a register raise
    ``OSError``; :meth:`fail_after` to make every write after the *n*-th
    raise.
    """

    def __init__(self) -> None:
        self.registers: dict[int, int] = {}
        self.writes: list[tuple[int, bytes]] = []
        self.reads: list[tuple[int, int]] = []
        self.closed = False
        self._fail_registers: set[int] = set()
        self._writes_left: int | None = None
        self._lock = threading.Lock()

    # -- Helpers for tests --------------------------------------------------

    def fail_on(self, register: int) -> None:
        """Make writes to *register* raise ``OSError`` until cleared."""
        self._fail_registers.add(register)

    def fail_after(self, count: int) -> None:
        """Allow *count* more writes, then raise ``OSError`` on every write."""
        self._writes_left = count

    def clear_failures(self) -> None:
        self._fail_registers.clear()
        self._writes_left = None

    def pwm(self, channel: int) -> tuple[int, int]:
        """Decode *channel*'s ON/OFF counts from the register file."""
        base = REG_LED0 + 4 * channel
        return decode_pwm(bytes(self.registers.get(base + i, 0) for i in range(4)))

    def writes_to(self, register: int) -> list[bytes]:
        return [data for reg, data in self.writes if reg == register]

    # -- RegisterBus interface ----------------------------------------------

    def write_reg(self, register: int, data: bytes) -> None:
        with self._lock:
            if register in self._fail_registers:
                raise OSError(f"simulated write failure at 0x{register:02X}")
            if self._writes_left is not None:
                if self._writes_left <= 0:
                    raise OSError("simulated bus failure")
                self._writes_left -= 1
            self.writes.append((register, bytes(data)))
            for offset, byte in enumerate(data):
                self.registers[register + offset] = byte

    def read_reg(self, register: int, length: int) -> bytes:
        with self._lock:
            self.reads.append((register, length))
            return bytes(self.registers.get(register + i, 0) for i in range(length))

    def close(self) -> None:
        self.closed = True


class FakeSMBus:
    """Lightweight stand-in for ``smbus2.SMBus``.

    Implements the subset used by :class:`~pca9685_pwm.transport.SMBusTransport`:
    ``write_i2c_block_data``, ``read_i2c_block_data`` and ``close``.
    Set :attr:`error` to make the next transfer raise it.
    """

    def __init__(self) -> None:
        self.written: list[tuple[int, int, list[int]]] = []
        self.responses: dict[int, list[int]] = {}
        self.error: OSError | None = None
        self.is_closed = False

    def _maybe_fail(self) -> None:
        if self.error is not None:
            err, self.error = self.error, None
            raise err

    def write_i2c_block_data(self, address: int, register: int, data: list[int]) -> None:
        self._maybe_fail()
        self.written.append((address, register, list(data)))

    def read_i2c_block_data(self, address: int, register: int, length: int) -> list[int]:
        self._maybe_fail()
        return self.responses.get(register, [0] * length)[:length]

    def close(self) -> None:
        self.is_closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_bus() -> FakeBus:
    """Return a fresh ``FakeBus`` instance."""
    return FakeBus()


@pytest.fixture()
def pca(fake_bus: FakeBus) -> PCA9685:
    """Return a ``PCA9685`` wired to a fake bus, with init traffic cleared."""
    controller = PCA9685(fake_bus, ControllerConfig())
    fake_bus.writes.clear()
    fake_bus.reads.clear()
    return controller


@pytest.fixture()
def fake_smbus() -> FakeSMBus:
    return FakeSMBus()


@pytest.fixture()
def transport(fake_smbus: FakeSMBus) -> SMBusTransport:
    """Return an open ``SMBusTransport`` wired to a fake ``SMBus``."""
    with patch("pca9685_pwm.transport.smbus2.SMBus", return_value=fake_smbus):
        tx = SMBusTransport(bus=1, address=0x40)
        tx.open()
        return tx
