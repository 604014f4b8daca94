"""
Device facades built on top of :class:`~pca9685_pwm.controller.PCA9685`.

* :class:`RGBLed` maps 8-bit color levels onto three calibrated channels.
* :class:`Pump` maps a 0-100 % speed onto one channel's duty-cycle range,
  and maps the recorded duty cycle back to a percentage.

Both only use the controller's public API and hold no bus state of their own.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .cancel import CancelToken
from .constants import MAX_COLOR_VALUE, MAX_PWM_VALUE
from .controller import PCA9685
from .exceptions import ValidationError
from .protocol import _validate_channel, round_half_up

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _validate_duty(value: int, label: str) -> None:
    if not isinstance(value, int) or not (0 <= value <= MAX_PWM_VALUE):
        raise ValidationError(f"{label} must be 0-{MAX_PWM_VALUE}, got {value!r}")


def _validate_color(value: int, label: str) -> None:
    if not isinstance(value, int) or not (0 <= value <= MAX_COLOR_VALUE):
        raise ValidationError(f"{label} must be 0-{MAX_COLOR_VALUE}, got {value!r}")


# ---------------------------------------------------------------------------
# RGB LED
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RGBCalibration:
    """Usable ``(min, max)`` duty-cycle range of each color channel.

    Each bound must be 0-4095.  ``min`` is *not* required to be below
    ``max``; a reversed range pins the channel at ``max``.
    """

    red: tuple[int, int] = (0, MAX_PWM_VALUE)
    green: tuple[int, int] = (0, MAX_PWM_VALUE)
    blue: tuple[int, int] = (0, MAX_PWM_VALUE)

    def __post_init__(self) -> None:
        for name in ("red", "green", "blue"):
            bounds = getattr(self, name)
            if not isinstance(bounds, tuple) or len(bounds) != 2:
                raise ValidationError(f"{name} calibration must be a (min, max) pair")
            _validate_duty(bounds[0], f"{name} min")
            _validate_duty(bounds[1], f"{name} max")


def scale_color(value: int, brightness: float, lo: int, hi: int) -> int:
    """Map an 8-bit *value* onto the duty range ``lo..hi`` at *brightness*.

    ``round(value * brightness * (hi - lo) / 255 + lo)``, clamped to *hi*.
    """
    duty = round_half_up(value * brightness * (hi - lo) / MAX_COLOR_VALUE + lo)
    return min(duty, hi)


def parse_hex_color(text: str) -> tuple[int, int, int]:
    """Parse ``#rrggbb`` or ``#rgb`` (leading ``#`` optional)."""
    digits = text.strip().removeprefix("#")
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    if len(digits) != 6:
        raise ValidationError(f"Expected a #rrggbb or #rgb color, got {text!r}")
    try:
        return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)
    except ValueError as exc:
        raise ValidationError(f"Invalid hex color {text!r}") from exc


class RGBLed:
    """An RGB LED driven by three channels of a :class:`PCA9685`.

    The three channels share phase (ON=0) and are updated with a single
    :meth:`~PCA9685.set_multi_pwm` call, so a color change is batched but not
    atomic.

    Args:
        controller: The owning controller.
        red, green, blue: Channel indices (0-15, distinct).
        brightness: Initial brightness, 0.0-1.0.
        calibration: Per-channel duty ranges (full range by default).
    """

    def __init__(
        self,
        controller: PCA9685,
        red: int,
        green: int,
        blue: int,
        brightness: float = 1.0,
        calibration: RGBCalibration | None = None,
    ) -> None:
        for channel in (red, green, blue):
            _validate_channel(channel)
        if len({red, green, blue}) != 3:
            raise ValidationError(f"RGB channels must be distinct, got {(red, green, blue)}")

        self._pca = controller
        self._channels = (red, green, blue)
        self._lock = threading.Lock()
        self._brightness = 1.0
        self._calibration = calibration if calibration is not None else RGBCalibration()
        self.set_brightness(brightness)

        controller.enable(red, green, blue)
        logger.info("RGB LED on channels %d, %d, %d", red, green, blue)

    @property
    def channels(self) -> tuple[int, int, int]:
        return self._channels

    # -- Settings -----------------------------------------------------------

    @property
    def brightness(self) -> float:
        with self._lock:
            return self._brightness

    def set_brightness(self, brightness: float) -> None:
        """Set brightness for subsequent :meth:`set_color` calls (0.0-1.0).

        Output that is already programmed is not changed.
        """
        if not (0.0 <= brightness <= 1.0):
            raise ValidationError(f"Brightness must be 0-1, got {brightness}")
        with self._lock:
            self._brightness = float(brightness)

    @property
    def calibration(self) -> RGBCalibration:
        with self._lock:
            return self._calibration

    def set_calibration(self, calibration: RGBCalibration) -> None:
        logger.debug("Calibration for %s: %s", self._channels, calibration)
        with self._lock:
            self._calibration = calibration

    # -- Output -------------------------------------------------------------

    def set_color(self, r: int, g: int, b: int, cancel: CancelToken | None = None) -> None:
        """Show the 8-bit color ``(r, g, b)``."""
        _validate_color(r, "red")
        _validate_color(g, "green")
        _validate_color(b, "blue")

        with self._lock:
            brightness = self._brightness
            cal = self._calibration

        red_ch, green_ch, blue_ch = self._channels
        values = {
            red_ch: (0, scale_color(r, brightness, *cal.red)),
            green_ch: (0, scale_color(g, brightness, *cal.green)),
            blue_ch: (0, scale_color(b, brightness, *cal.blue)),
        }
        logger.debug("Color (%d, %d, %d) -> %s", r, g, b, values)
        self._pca.set_multi_pwm(values, cancel)

    def set_color_hex(self, color: str, cancel: CancelToken | None = None) -> None:
        """Show a color given as ``#rrggbb`` or ``#rgb``."""
        self.set_color(*parse_hex_color(color), cancel=cancel)

    def on(self, cancel: CancelToken | None = None) -> None:
        """Full white at the current brightness."""
        self.set_color(MAX_COLOR_VALUE, MAX_COLOR_VALUE, MAX_COLOR_VALUE, cancel)

    def off(self, cancel: CancelToken | None = None) -> None:
        self.set_color(0, 0, 0, cancel)


# ---------------------------------------------------------------------------
# Pump
# ---------------------------------------------------------------------------


def _normalise_speed_limits(min_speed: int, max_speed: int) -> tuple[int, int]:
    """Swap reversed limits and clamp both to the 12-bit range."""
    if not isinstance(min_speed, int) or min_speed < 0:
        raise ValidationError(f"min_speed must be a non-negative integer, got {min_speed!r}")
    if not isinstance(max_speed, int) or max_speed < 0:
        raise ValidationError(f"max_speed must be a non-negative integer, got {max_speed!r}")
    if min_speed > max_speed:
        min_speed, max_speed = max_speed, min_speed
    max_speed = min(max_speed, MAX_PWM_VALUE)
    return min(min_speed, max_speed), max_speed


class Pump:
    """A pump (or any open-loop actuator) on one channel of a :class:`PCA9685`.

    Speed is a percentage mapped linearly onto ``min_speed..max_speed``.

    Args:
        controller: The owning controller.
        channel: Channel index (0-15).
        speed_limits: Optional ``(min_speed, max_speed)`` duty counts.
            Reversed values are swapped and ``max_speed`` is clamped to 4095.
    """

    def __init__(
        self,
        controller: PCA9685,
        channel: int,
        speed_limits: tuple[int, int] | None = None,
    ) -> None:
        _validate_channel(channel)
        self._pca = controller
        self._channel = channel
        self._lock = threading.Lock()
        self._min_speed, self._max_speed = 0, MAX_PWM_VALUE
        if speed_limits is not None:
            self._min_speed, self._max_speed = _normalise_speed_limits(*speed_limits)

        controller.enable(channel)
        logger.info(
            "Pump on channel %d, limits %d-%d", channel, self._min_speed, self._max_speed
        )

    @property
    def channel(self) -> int:
        return self._channel

    @property
    def speed_limits(self) -> tuple[int, int]:
        with self._lock:
            return self._min_speed, self._max_speed

    def set_speed_limits(self, min_speed: int, max_speed: int) -> None:
        """Replace the duty-cycle limits used by every later conversion.

        Speeds read before the change are not re-interpreted.

        Raises:
            ValidationError: If ``min_speed > max_speed`` or ``max_speed > 4095``.
        """
        if not isinstance(min_speed, int) or not isinstance(max_speed, int) or min_speed < 0:
            raise ValidationError(f"Invalid speed limits ({min_speed!r}, {max_speed!r})")
        if min_speed > max_speed:
            raise ValidationError(
                f"min_speed ({min_speed}) cannot be greater than max_speed ({max_speed})"
            )
        if max_speed > MAX_PWM_VALUE:
            raise ValidationError(f"max_speed cannot exceed {MAX_PWM_VALUE}, got {max_speed}")
        with self._lock:
            self._min_speed, self._max_speed = min_speed, max_speed
        logger.debug("Pump %d limits now %d-%d", self._channel, min_speed, max_speed)

    # -- Output -------------------------------------------------------------

    def set_speed(self, percent: float, cancel: CancelToken | None = None) -> None:
        """Run at *percent* (0-100) of the configured range."""
        if not (0.0 <= percent <= 100.0):
            raise ValidationError(f"Speed must be 0-100 %, got {percent}")
        with self._lock:
            lo, hi = self._min_speed, self._max_speed
        duty = round_half_up(percent * (hi - lo) / 100.0) + lo
        logger.debug("Pump %d: %s %% -> duty %d", self._channel, percent, duty)
        self._pca.set_pwm(self._channel, 0, duty, cancel)

    def stop(self, cancel: CancelToken | None = None) -> None:
        self.set_speed(0, cancel)

    def get_current_speed(self) -> float:
        """Return the recorded duty cycle as a percentage of the range."""
        off = self._pca.get_channel_state(self._channel).off
        with self._lock:
            lo, hi = self._min_speed, self._max_speed
        if off <= lo:
            return 0.0
        if off >= hi:
            return 100.0
        return float(round_half_up((off - lo) * 100.0 / (hi - lo)))

