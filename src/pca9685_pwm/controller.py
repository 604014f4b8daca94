"""
PCA9685 16-channel PWM controller.

Clean Python API over the register protocol: owns the recorded frequency and
the 16-entry channel table, guards them for concurrent callers, and threads
a :class:`~pca9685_pwm.cancel.CancelToken` through every bus write.

Locking:
    - each channel has its own reader/writer lock, so writes to different
      channels never contend and introspection takes a shared lock;
    - frequency changes, resets and ALL_LED broadcasts take one
      controller-wide lock so they never interleave with each other.  They
      do *not* exclude single-channel writes on other threads; if the bus
      itself is not serialized those may interleave at the bus level.
    - no operation holds more than one channel lock at a time.

Use as a context manager to release the bus automatically::

    transport = SMBusTransport(bus=1, address=0x40)
    transport.open()
    with PCA9685(transport) as pca:
        pca.set_pwm(0, 0, 2048)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass

from .cancel import CancelToken
from .constants import (
    DEFAULT_ADDRESS,
    DEFAULT_BUS,
    DEFAULT_FREQUENCY_HZ,
    FADE_STEPS,
    NUM_CHANNELS,
)
from .exceptions import ChannelDisabledError, ConfigError, ValidationError
from .protocol import (
    RegisterProtocol,
    _validate_channel,
    _validate_frequency,
    _validate_pwm_value,
    compute_prescale,
    mode2_byte,
)
from .transport import RegisterBus, SMBusTransport

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration & data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ControllerConfig:
    """Settings applied when a :class:`PCA9685` is constructed.

    Attributes:
        initial_frequency: PWM frequency in Hz (24-1526).
        invert_logic: Invert the output polarity (MODE2 INVRT).
        open_drain: Use open-drain outputs instead of totem-pole.
        cancel: External cancel source; cancelling it cancels every
            operation on the controller.  ``None`` never fires.
        logger: Logger used by the controller.  Defaults to this module's.
    """

    initial_frequency: float = DEFAULT_FREQUENCY_HZ
    invert_logic: bool = False
    open_drain: bool = False
    cancel: CancelToken | None = None
    logger: logging.Logger | None = None

    def validate(self) -> None:
        """Raise :class:`ConfigError` if any field is nonsensical."""
        if not isinstance(self.initial_frequency, (int, float)) or isinstance(
            self.initial_frequency, bool
        ):
            raise ConfigError(
                f"initial_frequency must be a number, got {self.initial_frequency!r}"
            )
        try:
            _validate_frequency(self.initial_frequency)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc
        for name in ("invert_logic", "open_drain"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be a boolean, got {getattr(self, name)!r}")
        if self.cancel is not None and not isinstance(self.cancel, CancelToken):
            raise ConfigError(f"cancel must be a CancelToken, got {type(self.cancel).__name__}")


@dataclass(frozen=True)
class ChannelState:
    """Snapshot of one channel's recorded state."""

    enabled: bool
    on: int
    off: int


class RWLock:
    """Reader/writer lock: many concurrent readers or one writer.

    Writers are preferred: once a writer is waiting, new readers queue behind
    it, so steady polling cannot starve updates.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class _Channel:
    __slots__ = ("lock", "enabled", "on", "off")

    def __init__(self) -> None:
        self.lock = RWLock()
        self.enabled = True
        self.on = 0
        self.off = 0


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class PCA9685:
    """Interface for a PCA9685 16-channel, 12-bit PWM controller.

    Construction puts the device to sleep, programs MODE2 and then the
    initial frequency.  It is all-or-nothing from the caller's side: if any
    step fails the exception propagates and no controller is returned,
    although the device may be left part-way through the sequence.  The bus
    is only owned by the controller once construction succeeds.

    Args:
        bus: Any :class:`~pca9685_pwm.transport.RegisterBus`.
        config: Optional :class:`ControllerConfig` (defaults apply).

    Raises:
        ConfigError: If *config* is invalid (checked before any bus I/O).
    """

    def __init__(self, bus: RegisterBus, config: ControllerConfig | None = None) -> None:
        config = config if config is not None else ControllerConfig()
        config.validate()

        self._log = config.logger if config.logger is not None else logger
        self._p = RegisterProtocol(bus, self._log)
        self._lock = threading.Lock()
        self._channels = tuple(_Channel() for _ in range(NUM_CHANNELS))
        self._token = CancelToken(parent=config.cancel)
        self._frequency = 0.0
        self._closed = False

        self._log.info(
            "Initialising PCA9685 at %s Hz (invert=%s, open_drain=%s)",
            config.initial_frequency,
            config.invert_logic,
            config.open_drain,
        )
        try:
            self.reset()
            mode2 = mode2_byte(config.invert_logic, config.open_drain)
            self._p.write_mode2(mode2)
            self._log.debug("MODE2 set to 0x%02X", mode2)
            self.set_frequency(config.initial_frequency)
        except Exception as exc:
            self._log.error("PCA9685 initialisation failed: %s", exc)
            raise

    # -- Context manager ----------------------------------------------------

    def __enter__(self) -> PCA9685:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- Lifecycle ----------------------------------------------------------

    def close(self) -> None:
        """Cancel outstanding operations and close the bus (idempotent)."""
        if self._closed:
            return
        self._closed = True
        self._log.info("Closing PCA9685")
        self._token.cancel()
        self._p.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def frequency(self) -> float:
        """Last successfully programmed PWM frequency in Hz."""
        return self._frequency

    @property
    def num_channels(self) -> int:
        return len(self._channels)

    # -- Device-wide operations ---------------------------------------------

    def reset(self, cancel: CancelToken | None = None) -> None:
        """Put the device to sleep with register auto-increment enabled."""
        self._log.info("Resetting device")
        with self._lock:
            self._check(cancel)
            self._p.sleep()

    def enable_all_call(self, cancel: CancelToken | None = None) -> None:
        """Make the device respond to the I²C ALLCALL address."""
        self._log.debug("Enabling ALLCALL")
        with self._lock:
            self._check(cancel)
            self._p.enable_all_call()

    def set_frequency(self, hz: float, cancel: CancelToken | None = None) -> None:
        """Program the PWM output frequency.

        Cancellation is checked once before the register sequence starts;
        the sequence itself always runs to completion or to the first bus
        error.  The recorded :attr:`frequency` only changes on success.

        Raises:
            ValidationError: If *hz* is outside 24-1526 Hz.
        """
        prescale = compute_prescale(hz)
        self._log.info("Setting PWM frequency to %s Hz (prescale %d)", hz, prescale)
        with self._lock:
            self._check(cancel)
            try:
                self._p.program_prescale(prescale)
            except Exception as exc:
                self._log.error("Frequency change to %s Hz failed: %s", hz, exc)
                raise
            self._frequency = float(hz)

    # -- PWM ----------------------------------------------------------------

    def set_pwm(self, channel: int, on: int, off: int, cancel: CancelToken | None = None) -> None:
        """Set *channel*'s ON/OFF counts (each 0-4095).

        Raises:
            ValidationError: If any argument is out of range.
            ChannelDisabledError: If *channel* is disabled.
            CancelledError: If the token has fired.
        """
        _validate_channel(channel)
        _validate_pwm_value(on, "on")
        _validate_pwm_value(off, "off")

        ch = self._channels[channel]
        with ch.lock.write():
            if not ch.enabled:
                raise ChannelDisabledError(channel)
            self._check(cancel)
            self._p.write_channel(channel, on, off)
            ch.on = on
            ch.off = off
        self._log.debug("Channel %d set: on=%d off=%d", channel, on, off)

    def set_all_pwm(self, on: int, off: int, cancel: CancelToken | None = None) -> None:
        """Broadcast ON/OFF counts to every channel through ALL_LED.

        Only enabled channels have their recorded values updated.
        """
        _validate_pwm_value(on, "on")
        _validate_pwm_value(off, "off")

        self._log.info("Setting all channels: on=%d off=%d", on, off)
        with self._lock:
            self._check(cancel)
            self._p.write_all(on, off)
            for ch in self._channels:
                with ch.lock.write():
                    if ch.enabled:
                        ch.on = on
                        ch.off = off

    def set_multi_pwm(
        self,
        settings: Mapping[int, tuple[int, int]],
        cancel: CancelToken | None = None,
    ) -> None:
        """Set several channels, one :meth:`set_pwm` per entry in mapping order.

        Every key and value is validated before anything is written.  The
        batch is **not** atomic: the first failure (cancellation, disabled
        channel, bus error) stops it and is raised, and channels written
        before that keep their new values.
        """
        entries: list[tuple[int, int, int]] = []
        for channel, values in settings.items():
            _validate_channel(channel)
            try:
                on, off = values
            except (TypeError, ValueError) as exc:
                raise ValidationError(
                    f"Channel {channel}: expected an (on, off) pair, got {values!r}"
                ) from exc
            _validate_pwm_value(on, "on")
            _validate_pwm_value(off, "off")
            entries.append((channel, on, off))

        self._log.debug("Setting %d channels", len(entries))
        for done, (channel, on, off) in enumerate(entries):
            try:
                self._check(cancel)
                self.set_pwm(channel, on, off, cancel)
            except Exception as exc:
                self._log.warning(
                    "Multi-channel update stopped at channel %d (%d/%d written): %s",
                    channel,
                    done,
                    len(entries),
                    exc,
                )
                raise

    def fade(
        self,
        channel: int,
        start: int,
        end: int,
        duration: float,
        cancel: CancelToken | None = None,
    ) -> None:
        """Linearly ramp *channel*'s OFF count from *start* to *end*.

        Writes :data:`~pca9685_pwm.constants.FADE_STEPS` + 1 values (both
        endpoints included) spaced ``duration / FADE_STEPS`` seconds apart.
        Each step is a discrete register write.

        Raises:
            CancelledError: If the token fires before or between steps.
        """
        _validate_channel(channel)
        _validate_pwm_value(start, "start")
        _validate_pwm_value(end, "end")
        if duration < 0:
            raise ValidationError(f"Duration must be >= 0 s, got {duration}")

        self._log.info(
            "Fading channel %d from %d to %d over %.3f s", channel, start, end, duration
        )
        waiter = CancelToken.linked(self._token, cancel)
        step_s = duration / FADE_STEPS
        diff = end - start
        for i in range(FADE_STEPS + 1):
            value = start + int(diff * i / FADE_STEPS)
            self.set_pwm(channel, 0, value, cancel)
            if i < FADE_STEPS and waiter.wait(step_s):
                self._check(cancel)
        self._log.debug("Fade on channel %d finished", channel)

    # -- Enable / disable ---------------------------------------------------

    def enable(self, *channels: int) -> None:
        """Mark *channels* as enabled.  No bus I/O."""
        for channel in channels:
            _validate_channel(channel)
        self._log.info("Enabling channels %s", list(channels))
        for channel in channels:
            ch = self._channels[channel]
            with ch.lock.write():
                ch.enabled = True

    def disable(self, *channels: int) -> None:
        """Disable *channels* and silence each with an ON=0/OFF=0 write.

        The channel counts as disabled even if its silencing write fails; the
        failure is raised and the remaining channels are left untouched.  The
        previously recorded ON/OFF values are kept for introspection.
        """
        for channel in channels:
            _validate_channel(channel)
        self._log.info("Disabling channels %s", list(channels))
        for channel in channels:
            ch = self._channels[channel]
            with ch.lock.write():
                ch.enabled = False
                try:
                    self._check(None)
                    self._p.write_channel(channel, 0, 0)
                except Exception as exc:
                    self._log.error("Could not silence channel %d: %s", channel, exc)
                    raise

    # -- Introspection ------------------------------------------------------

    def get_channel_state(self, channel: int) -> ChannelState:
        """Return a snapshot of *channel*'s recorded state."""
        _validate_channel(channel)
        ch = self._channels[channel]
        with ch.lock.read():
            return ChannelState(ch.enabled, ch.on, ch.off)

    def dump_state(self) -> str:
        """Return a human-readable summary of the frequency and all channels."""
        with self._lock:
            lines = [f"PCA9685 state: frequency {self._frequency:g} Hz"]
            for index, ch in enumerate(self._channels):
                with ch.lock.read():
                    lines.append(
                        f"Channel {index:2d}: enabled={ch.enabled}, on={ch.on}, off={ch.off}"
                    )
        state = "\n".join(lines)
        self._log.debug("%s", state)
        return state

    # -- Internal -----------------------------------------------------------

    def _check(self, cancel: CancelToken | None) -> None:
        """Raise if the controller or the per-call token has been cancelled."""
        self._token.check()
        if cancel is not None:
            cancel.check()


# ---------------------------------------------------------------------------
# Convenience factory
# ---------------------------------------------------------------------------


def get_controller(
    bus: int = DEFAULT_BUS,
    address: int = DEFAULT_ADDRESS,
    config: ControllerConfig | None = None,
) -> PCA9685:
    """Open an I²C bus and return a controller on it (use as a context manager).

    Example::

        with get_controller(1, 0x40) as pca:
            pca.set_pwm(0, 0, 2048)
    """
    transport = SMBusTransport(bus, address, config.logger if config is not None else None)
    transport.open()
    try:
        return PCA9685(transport, config)
    except Exception:
        transport.close()
        raise
