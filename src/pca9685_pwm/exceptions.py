"""
Exception hierarchy for the PCA9685 PWM controller.

All exceptions inherit from :class:`PWMError` so callers can catch
broadly (``except PWMError``) or narrowly (``except ChannelDisabledError``).

Exceptions raised by a caller-supplied register bus are *not* wrapped: they
propagate through the controller unchanged.  Only the bundled
:class:`~pca9685_pwm.transport.SMBusTransport` maps its failures onto
:class:`BusError` and :class:`ConnectionError`.
"""


class PWMError(Exception):
    """Base exception for all PCA9685 controller errors."""


class ValidationError(PWMError):
    """Raised when an argument fails validation, before any bus I/O."""


class ConfigError(ValidationError):
    """Raised when a controller or board configuration is nonsensical."""


class ChannelDisabledError(PWMError):
    """Raised when a write targets a channel that is currently disabled."""

    def __init__(self, channel: int) -> None:
        super().__init__(f"Channel {channel} is disabled")
        self.channel = channel


class CancelledError(PWMError):
    """Raised at a check point when the operation's cancel token has fired."""


class DeadlineExceeded(CancelledError):
    """Raised when the cancel token's deadline has passed."""


class BusError(PWMError):
    """Raised by :class:`~pca9685_pwm.transport.SMBusTransport` on I/O failure."""


class ConnectionError(PWMError):  # noqa: A001 – intentional shadow of builtin
    """Raised when the bus is unavailable or fails to open."""
