"""
Board configuration — describe a PCA9685 and the devices wired to it in a
YAML file, then build the controller and device facades from it.

This module provides the building blocks that both scripts and system
integration code can import directly::

    from pca9685_pwm.config import load_config, open_board

    board = load_config("config/board.yaml")
    pca, devices = open_board(board)
    with pca:
        devices.rgb_leds["status"].set_color(255, 128, 0)
        devices.pumps["coolant"].set_speed(40)

Example file::

    bus: 1
    address: 0x40
    frequency: 1000
    invert_logic: false
    open_drain: false
    rgb_leds:
      status:
        red: 0
        green: 1
        blue: 2
        brightness: 0.5
        calibration:
          green: [0, 3800]
    pumps:
      coolant:
        channel: 4
        min_speed: 1000
        max_speed: 3500
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .constants import (
    DEFAULT_ADDRESS,
    DEFAULT_BUS,
    DEFAULT_FREQUENCY_HZ,
    MAX_CHANNEL,
    MAX_PWM_VALUE,
    MIN_CHANNEL,
)
from .controller import ControllerConfig, PCA9685
from .devices import Pump, RGBCalibration, RGBLed
from .exceptions import ConfigError, ValidationError
from .transport import SMBusTransport

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RGBLedConfig:
    """Validated configuration for one RGB LED."""

    name: str
    red: int
    green: int
    blue: int
    brightness: float = 1.0
    calibration: RGBCalibration = field(default_factory=RGBCalibration)


@dataclass(frozen=True)
class PumpConfig:
    """Validated configuration for one pump.

    Limits are stored as written; reversed limits are swapped when the
    :class:`~pca9685_pwm.devices.Pump` is built.
    """

    name: str
    channel: int
    min_speed: int = 0
    max_speed: int = MAX_PWM_VALUE


@dataclass(frozen=True)
class BoardConfig:
    """Top-level configuration loaded from a YAML file."""

    bus: int = DEFAULT_BUS
    address: int = DEFAULT_ADDRESS
    frequency: float = DEFAULT_FREQUENCY_HZ
    invert_logic: bool = False
    open_drain: bool = False
    rgb_leds: list[RGBLedConfig] = field(default_factory=list)
    pumps: list[PumpConfig] = field(default_factory=list)

    def controller_config(self, **overrides) -> ControllerConfig:
        """Return the :class:`ControllerConfig` described by this board.

        Keyword arguments (``cancel``, ``logger``) are passed through.
        """
        return ControllerConfig(
            initial_frequency=self.frequency,
            invert_logic=self.invert_logic,
            open_drain=self.open_drain,
            **overrides,
        )


@dataclass
class Devices:
    """Device facades built from a :class:`BoardConfig`, keyed by name."""

    rgb_leds: dict[str, RGBLed] = field(default_factory=dict)
    pumps: dict[str, Pump] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Config loading & validation
# ---------------------------------------------------------------------------


def load_config(path: str | Path) -> BoardConfig:
    """Load and validate a board configuration from a YAML file.

    Args:
        path: Path to the YAML config file.

    Returns:
        A validated :class:`BoardConfig`.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ConfigError: If the config is malformed or contains invalid values.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    return parse_config(raw)


def parse_config(raw: object) -> BoardConfig:
    """Validate an already-parsed YAML document."""
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    # -- Top-level fields ---------------------------------------------------
    bus = raw.get("bus", DEFAULT_BUS)
    if not isinstance(bus, int) or isinstance(bus, bool) or bus < 0:
        raise ConfigError(f"'bus' must be a non-negative integer, got {bus!r}")

    address = raw.get("address", DEFAULT_ADDRESS)
    if not isinstance(address, int) or isinstance(address, bool) or not (0x03 <= address <= 0x77):
        raise ConfigError(f"'address' must be a 7-bit I2C address, got {address!r}")

    frequency = raw.get("frequency", DEFAULT_FREQUENCY_HZ)
    if not isinstance(frequency, (int, float)) or isinstance(frequency, bool):
        raise ConfigError(f"'frequency' must be a number, got {frequency!r}")

    invert_logic = _require_bool(raw, "invert_logic")
    open_drain = _require_bool(raw, "open_drain")

    # -- Devices ------------------------------------------------------------
    rgb_leds = [
        _parse_rgb_led(name, data) for name, data in _require_section(raw, "rgb_leds").items()
    ]
    pumps = [_parse_pump(name, data) for name, data in _require_section(raw, "pumps").items()]
    _check_channel_overlap(rgb_leds, pumps)

    board = BoardConfig(
        bus=bus,
        address=address,
        frequency=float(frequency),
        invert_logic=invert_logic,
        open_drain=open_drain,
        rgb_leds=rgb_leds,
        pumps=pumps,
    )
    board.controller_config().validate()
    return board


def _require_bool(raw: dict, key: str) -> bool:
    val = raw.get(key, False)
    if not isinstance(val, bool):
        raise ConfigError(f"'{key}' must be a boolean, got {type(val).__name__}")
    return val


def _require_section(raw: dict, key: str) -> dict:
    section = raw.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' must be a mapping of name -> settings")
    return section


def _require_channel(data: dict, key: str, label: str) -> int:
    val = data.get(key)
    if not isinstance(val, int) or isinstance(val, bool) or not (MIN_CHANNEL <= val <= MAX_CHANNEL):
        raise ConfigError(
            f"{label}: '{key}' must be a channel {MIN_CHANNEL}-{MAX_CHANNEL}, got {val!r}"
        )
    return val


def _require_duty(data: dict, key: str, label: str, default: int) -> int:
    val = data.get(key, default)
    if not isinstance(val, int) or isinstance(val, bool) or not (0 <= val <= MAX_PWM_VALUE):
        raise ConfigError(f"{label}: '{key}' must be 0-{MAX_PWM_VALUE}, got {val!r}")
    return val


def _parse_rgb_led(name: object, data: object) -> RGBLedConfig:
    """Parse and validate a single ``rgb_leds`` entry."""
    label = f"RGB LED {name!r}"
    if not isinstance(data, dict):
        raise ConfigError(f"{label} config must be a mapping")

    red = _require_channel(data, "red", label)
    green = _require_channel(data, "green", label)
    blue = _require_channel(data, "blue", label)
    if len({red, green, blue}) != 3:
        raise ConfigError(f"{label}: channels must be distinct, got {(red, green, blue)}")

    brightness = data.get("brightness", 1.0)
    if (
        not isinstance(brightness, (int, float))
        or isinstance(brightness, bool)
        or not (0.0 <= brightness <= 1.0)
    ):
        raise ConfigError(f"{label}: 'brightness' must be 0-1, got {brightness!r}")

    raw_cal = data.get("calibration") or {}
    if not isinstance(raw_cal, dict):
        raise ConfigError(f"{label}: 'calibration' must be a mapping")
    bounds: dict[str, tuple[int, int]] = {}
    for color, pair in raw_cal.items():
        if color not in ("red", "green", "blue"):
            raise ConfigError(f"{label}: unknown calibration channel {color!r}")
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise ConfigError(f"{label}: calibration '{color}' must be [min, max]")
        bounds[color] = (pair[0], pair[1])
    try:
        calibration = RGBCalibration(**bounds)
    except ValidationError as exc:
        raise ConfigError(f"{label}: {exc}") from exc

    return RGBLedConfig(
        name=str(name),
        red=red,
        green=green,
        blue=blue,
        brightness=float(brightness),
        calibration=calibration,
    )


def _parse_pump(name: object, data: object) -> PumpConfig:
    """Parse and validate a single ``pumps`` entry."""
    label = f"Pump {name!r}"
    if not isinstance(data, dict):
        raise ConfigError(f"{label} config must be a mapping")

    channel = _require_channel(data, "channel", label)
    min_speed = _require_duty(data, "min_speed", label, 0)
    max_speed = _require_duty(data, "max_speed", label, MAX_PWM_VALUE)

    return PumpConfig(name=str(name), channel=channel, min_speed=min_speed, max_speed=max_speed)


def _check_channel_overlap(rgb_leds: list[RGBLedConfig], pumps: list[PumpConfig]) -> None:
    owners: dict[int, str] = {}
    claims = [(led.name, ch) for led in rgb_leds for ch in (led.red, led.green, led.blue)]
    claims += [(pump.name, pump.channel) for pump in pumps]
    for name, channel in claims:
        if channel in owners:
            raise ConfigError(
                f"Channel {channel} is used by both {owners[channel]!r} and {name!r}"
            )
        owners[channel] = name


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def build_devices(controller: PCA9685, board: BoardConfig) -> Devices:
    """Create the RGB LEDs and pumps described by *board* on *controller*."""
    devices = Devices()
    for led in board.rgb_leds:
        devices.rgb_leds[led.name] = RGBLed(
            controller,
            led.red,
            led.green,
            led.blue,
            brightness=led.brightness,
            calibration=led.calibration,
        )
    for pump in board.pumps:
        devices.pumps[pump.name] = Pump(
            controller, pump.channel, speed_limits=(pump.min_speed, pump.max_speed)
        )
    logger.info(
        "Built %d RGB LED(s) and %d pump(s)", len(devices.rgb_leds), len(devices.pumps)
    )
    return devices


def open_board(board: BoardConfig | str | Path, **overrides) -> tuple[PCA9685, Devices]:
    """Open the board's I²C bus and return ``(controller, devices)``.

    *board* may be a :class:`BoardConfig` or a path to a YAML file.  Keyword
    arguments are passed to :meth:`BoardConfig.controller_config`.  The
    transport is closed again if the controller or any device fails to build.
    """
    if not isinstance(board, BoardConfig):
        board = load_config(board)

    transport = SMBusTransport(board.bus, board.address, overrides.get("logger"))
    transport.open()
    try:
        controller = PCA9685(transport, board.controller_config(**overrides))
    except Exception:
        transport.close()
        raise
    try:
        devices = build_devices(controller, board)
    except Exception:
        controller.close()
        raise
    return controller, devices
