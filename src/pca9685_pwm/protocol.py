"""
PCA9685 register protocol: validation, prescale math, and register encoding.

This module sits between the register bus (raw byte I/O) and the controller
(state, locking, user-facing API).  It knows how to:

* validate parameters before they become register writes,
* convert a PWM frequency into a prescale value,
* encode ON/OFF counts as little-endian register payloads,
* issue the MODE1/MODE2/PRESCALE/LEDn register accesses.

It does **not** own the bus (that belongs to whoever built it) and it holds
no channel state or locks.
"""

from __future__ import annotations

import logging
import math
import time

from .constants import (
    MAX_CHANNEL,
    MAX_FREQUENCY_HZ,
    MAX_PWM_VALUE,
    MIN_CHANNEL,
    MIN_FREQUENCY_HZ,
    MIN_PRESCALE,
    MODE1_ALLCALL,
    MODE1_AUTO_INC,
    MODE1_RESTART,
    MODE1_SLEEP,
    MODE2_INVRT,
    MODE2_OUTDRV,
    OSC_CLOCK_HZ,
    OSC_SETTLE_DELAY_S,
    PWM_RESOLUTION,
    REG_ALL_LED,
    REG_LED0,
    REG_MODE1,
    REG_MODE2,
    REG_PRESCALE,
)
from .exceptions import ValidationError
from .transport import RegisterBus

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _validate_channel(channel: int) -> None:
    if not isinstance(channel, int) or not (MIN_CHANNEL <= channel <= MAX_CHANNEL):
        raise ValidationError(f"Channel must be {MIN_CHANNEL}-{MAX_CHANNEL}, got {channel!r}")


def _validate_pwm_value(value: int, label: str = "value") -> None:
    if not isinstance(value, int) or not (0 <= value <= MAX_PWM_VALUE):
        raise ValidationError(f"{label} must be 0-{MAX_PWM_VALUE}, got {value!r}")


def _validate_frequency(hz: float) -> None:
    # NaN fails the chained comparison and is rejected here too
    if not (MIN_FREQUENCY_HZ <= hz <= MAX_FREQUENCY_HZ):
        raise ValidationError(
            f"Frequency must be {MIN_FREQUENCY_HZ}-{MAX_FREQUENCY_HZ} Hz, got {hz}"
        )


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero.

    Python's :func:`round` uses banker's rounding, which would make
    ``2.5 -> 2``; every scaling law in this package rounds ``2.5 -> 3``.
    """
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def compute_prescale(hz: float) -> int:
    """Return the PRESCALE register value for an output frequency of *hz*.

    ``round(25 MHz / (4096 * hz)) - 1``, never below the device minimum of 3.

    Raises:
        ValidationError: If *hz* is outside 24-1526 Hz.
    """
    _validate_frequency(hz)
    prescale = round_half_up(OSC_CLOCK_HZ / (PWM_RESOLUTION * hz)) - 1
    return max(prescale, MIN_PRESCALE)


def encode_pwm(on: int, off: int) -> bytes:
    """Encode an ON/OFF pair as ``[on_lo, on_hi, off_lo, off_hi]``."""
    return bytes((on & 0xFF, on >> 8, off & 0xFF, off >> 8))


def decode_pwm(data: bytes) -> tuple[int, int]:
    """Inverse of :func:`encode_pwm`."""
    if len(data) != 4:
        raise ValidationError(f"PWM payload must be 4 bytes, got {len(data)}")
    return data[0] | (data[1] << 8), data[2] | (data[3] << 8)


def mode2_byte(invert_logic: bool, open_drain: bool) -> int:
    """Build the MODE2 register value from the output configuration flags."""
    mode2 = 0
    if not open_drain:
        mode2 |= MODE2_OUTDRV
    if invert_logic:
        mode2 |= MODE2_INVRT
    return mode2


def channel_register(channel: int) -> int:
    """Return the LEDn_ON_L register address of *channel*."""
    return REG_LED0 + 4 * channel


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class RegisterProtocol:
    """Issues PCA9685 register accesses over a :class:`RegisterBus`.

    Every method is a thin, stateless wrapper: exceptions from the bus are
    propagated unchanged and nothing is retried.

    Args:
        bus: Any object implementing :class:`~pca9685_pwm.transport.RegisterBus`.
        log: Logger for register-level records (defaults to this module's).
    """

    def __init__(self, bus: RegisterBus, log: logging.Logger | None = None) -> None:
        self._bus = bus
        self._log = log if log is not None else logger

    # -- Mode registers -----------------------------------------------------

    def read_mode1(self) -> int:
        """Return the current MODE1 register value."""
        data = self._bus.read_reg(REG_MODE1, 1)
        mode1 = data[0]
        self._log.debug("MODE1 read: 0x%02X", mode1)
        return mode1

    def write_mode1(self, value: int) -> None:
        self._bus.write_reg(REG_MODE1, bytes((value & 0xFF,)))

    def write_mode2(self, value: int) -> None:
        self._bus.write_reg(REG_MODE2, bytes((value & 0xFF,)))

    def sleep(self) -> None:
        """Put the oscillator to sleep with register auto-increment enabled."""
        self.write_mode1(MODE1_SLEEP | MODE1_AUTO_INC)

    def enable_all_call(self) -> None:
        """Set the ALLCALL bit in MODE1, leaving the other bits untouched."""
        self.write_mode1(self.read_mode1() | MODE1_ALLCALL)

    # -- Frequency ----------------------------------------------------------

    def program_prescale(self, prescale: int) -> None:
        """Run the full sleep → prescale → restore → restart sequence.

        PRESCALE can only be written while the oscillator sleeps, so the
        sequence is:

            1. Read the current MODE1 value.
            2. Write it back with SLEEP set and RESTART cleared.
            3. Write PRESCALE.
            4. Restore the original MODE1 value with SLEEP cleared.
            5. Wait for the oscillator to settle (mandatory).
            6. Write MODE1 with RESTART and auto-increment set.

        A failure at any step propagates immediately; the device is not
        rolled back and may be left asleep.
        """
        old_mode = self.read_mode1()
        self.write_mode1((old_mode & 0x7F) | MODE1_SLEEP)
        self._bus.write_reg(REG_PRESCALE, bytes((prescale,)))
        awake = old_mode & ~MODE1_SLEEP & 0xFF
        self.write_mode1(awake)
        time.sleep(OSC_SETTLE_DELAY_S)
        self.write_mode1(awake | MODE1_RESTART | MODE1_AUTO_INC)
        self._log.debug("PRESCALE programmed: %d", prescale)

    # -- PWM ----------------------------------------------------------------

    def write_channel(self, channel: int, on: int, off: int) -> None:
        """Write ON/OFF counts to *channel*'s four registers in one transfer."""
        self._bus.write_reg(channel_register(channel), encode_pwm(on, off))

    def write_all(self, on: int, off: int) -> None:
        """Write ON/OFF counts to the ALL_LED broadcast registers."""
        self._bus.write_reg(REG_ALL_LED, encode_pwm(on, off))

    # -- Teardown -----------------------------------------------------------

    def close(self) -> None:
        self._bus.close()
