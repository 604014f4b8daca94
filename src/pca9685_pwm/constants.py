"""Shared runtime constants for the PCA9685 PWM controller.

This is the canonical source of truth for the register map, bit masks,
numeric limits and controller defaults.  Other modules should import from
here rather than defining their own copies.
"""

# ---------------------------------------------------------------------------
# Register map
# ---------------------------------------------------------------------------

REG_MODE1 = 0x00
REG_MODE2 = 0x01
REG_LED0 = 0x06  # channel 0 ON_L; each channel occupies 4 consecutive registers
REG_ALL_LED = 0xFA  # ALL_LED_ON_L broadcast
REG_PRESCALE = 0xFE

# MODE1 bits
MODE1_ALLCALL = 0x01
MODE1_SLEEP = 0x10
MODE1_AUTO_INC = 0x20
MODE1_RESTART = 0x80

# MODE2 bits
MODE2_OUTNE = 0x01
MODE2_OUTDRV = 0x04  # totem-pole (push-pull) outputs
MODE2_INVRT = 0x10

# ---------------------------------------------------------------------------
# Numeric domain
# ---------------------------------------------------------------------------

NUM_CHANNELS = 16
MIN_CHANNEL = 0
MAX_CHANNEL = NUM_CHANNELS - 1

PWM_RESOLUTION = 4096
MAX_PWM_VALUE = PWM_RESOLUTION - 1

MIN_FREQUENCY_HZ = 24
MAX_FREQUENCY_HZ = 1526
OSC_CLOCK_HZ = 25_000_000
MIN_PRESCALE = 3

OSC_SETTLE_DELAY_S = 0.0005  # oscillator start-up after leaving sleep

FADE_STEPS = 20

MAX_COLOR_VALUE = 255

# ---------------------------------------------------------------------------
# Controller / runtime defaults
# ---------------------------------------------------------------------------

DEFAULT_BUS = 1
DEFAULT_ADDRESS = 0x40
DEFAULT_FREQUENCY_HZ = 1000.0
