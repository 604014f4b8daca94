"""PCA9685 16-channel PWM controller Python interface"""

from .cancel import CancelToken
from .constants import (
    MAX_FREQUENCY_HZ,
    MAX_PWM_VALUE,
    MIN_FREQUENCY_HZ,
    NUM_CHANNELS,
)
from .controller import PCA9685, ChannelState, ControllerConfig, get_controller
from .devices import Pump, RGBCalibration, RGBLed
from .exceptions import (
    BusError,
    CancelledError,
    ChannelDisabledError,
    ConfigError,
    ConnectionError,
    DeadlineExceeded,
    PWMError,
    ValidationError,
)
from .transport import RegisterBus, SMBusTransport

__all__ = [
    "BusError",
    "CancelToken",
    "CancelledError",
    "ChannelDisabledError",
    "ChannelState",
    "ConfigError",
    "ConnectionError",
    "ControllerConfig",
    "DeadlineExceeded",
    "MAX_FREQUENCY_HZ",
    "MAX_PWM_VALUE",
    "MIN_FREQUENCY_HZ",
    "NUM_CHANNELS",
    "PCA9685",
    "PWMError",
    "Pump",
    "RGBCalibration",
    "RGBLed",
    "RegisterBus",
    "SMBusTransport",
    "ValidationError",
    "get_controller",
]
__version__ = "0.1.0"
