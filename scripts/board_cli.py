#!/usr/bin/env python3
"""
Board CLI — Bring up a PCA9685 board from a YAML config and drive its devices.

Reads a board file (see :mod:`pca9685_pwm.config`), initialises the
controller, builds the named RGB LEDs and pumps, and either applies the
requested settings or prints the channel table.

Usage:
    python scripts/board_cli.py                                  # show config + state
    python scripts/board_cli.py --config path/to/board.yaml      # custom config
    python scripts/board_cli.py --color status=#ff8000           # set an RGB LED
    python scripts/board_cli.py --pump coolant=40                # set a pump speed
    python scripts/board_cli.py --test                           # cycle every device once
    python scripts/board_cli.py -v                               # debug logging
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from contextlib import suppress
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from pca9685_pwm import PCA9685, PWMError
from pca9685_pwm.config import BoardConfig, Devices, load_config, open_board

# ---------------------------------------------------------------------------
# Default config location (relative to this script)
# ---------------------------------------------------------------------------

DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "config" / "board.yaml"

# ---------------------------------------------------------------------------
# Terminal helpers
# ---------------------------------------------------------------------------


class C:
    """ANSI color codes (no-op on non-TTY)."""

    if sys.stdout.isatty():
        BOLD = "\033[1m"
        DIM = "\033[2m"
        GREEN = "\033[32m"
        RED = "\033[31m"
        RESET = "\033[0m"
    else:
        BOLD = DIM = GREEN = RED = RESET = ""


def ok(text: str) -> None:
    print(f"  {C.GREEN}✓{C.RESET} {text}")


def fail(text: str) -> None:
    print(f"  {C.RED}✗{C.RESET} {text}")


def info(text: str) -> None:
    print(f"  {C.DIM}{text}{C.RESET}")


def banner(text: str) -> None:
    print(f"\n{C.BOLD}{'═' * 60}")
    print(f"  {text}")
    print(f"{'═' * 60}{C.RESET}")


def print_config_summary(board: BoardConfig) -> None:
    """Print a summary of the loaded board."""
    print(f"  Bus:       /dev/i2c-{board.bus}, address 0x{board.address:02X}")
    print(f"  Frequency: {board.frequency:g} Hz")
    print(f"  Outputs:   {'inverted' if board.invert_logic else 'normal'}, "
          f"{'open-drain' if board.open_drain else 'totem-pole'}")
    for led in board.rgb_leds:
        print(
            f"    LED  {led.name:10s} R{led.red:<2d} G{led.green:<2d} B{led.blue:<2d} "
            f"brightness {led.brightness:.2f}"
        )
    for pump in board.pumps:
        print(f"    PUMP {pump.name:10s} CH{pump.channel:<2d} "
              f"duty {pump.min_speed}-{pump.max_speed}")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _split_assignment(text: str) -> tuple[str, str]:
    name, sep, value = text.partition("=")
    if not sep or not name or not value:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    return name, value


def apply_settings(devices: Devices, colors: list[str], pumps: list[str]) -> int:
    """Apply ``--color``/``--pump`` assignments.  Returns the number of failures."""
    failures = 0
    for name, color in map(_split_assignment, colors):
        led = devices.rgb_leds.get(name)
        if led is None:
            fail(f"No RGB LED named {name!r}")
            failures += 1
            continue
        try:
            led.set_color_hex(color)
            ok(f"{name} -> {color}")
        except PWMError as exc:
            fail(f"{name}: {exc}")
            failures += 1

    for name, speed in map(_split_assignment, pumps):
        pump = devices.pumps.get(name)
        if pump is None:
            fail(f"No pump named {name!r}")
            failures += 1
            continue
        try:
            pump.set_speed(float(speed))
            ok(f"{name} -> {pump.get_current_speed():.0f}%")
        except (PWMError, ValueError) as exc:
            fail(f"{name}: {exc}")
            failures += 1
    return failures


def run_test(devices: Devices) -> None:
    """Cycle each device through a short pattern, then switch it off."""
    for name, led in devices.rgb_leds.items():
        info(f"LED {name}")
        for color in ("#ff0000", "#00ff00", "#0000ff", "#ffffff"):
            led.set_color_hex(color)
            time.sleep(0.5)
        led.off()
    for name, pump in devices.pumps.items():
        info(f"Pump {name}")
        for speed in (25, 50, 100):
            pump.set_speed(speed)
            time.sleep(1.0)
        pump.stop()


def shutdown(pca: PCA9685, devices: Devices) -> None:
    """Switch every device off and release the bus."""
    for led in devices.rgb_leds.values():
        with suppress(PWMError):
            led.off()
    for pump in devices.pumps.values():
        with suppress(PWMError):
            pump.stop()
    pca.close()
    info("Bus closed.")


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Drive the RGB LEDs and pumps of a PCA9685 board from a YAML config.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Path to YAML board file (default: {DEFAULT_CONFIG.name})",
    )
    parser.add_argument(
        "--color",
        action="append",
        default=[],
        metavar="LED=#RRGGBB",
        help="Set an RGB LED's color (repeatable)",
    )
    parser.add_argument(
        "--pump",
        action="append",
        default=[],
        metavar="PUMP=PERCENT",
        help="Set a pump's speed (repeatable)",
    )
    parser.add_argument(
        "--test",
        action="store_true",
        help="Cycle every device once and switch it off",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    # Load config
    try:
        board = load_config(args.config)
    except (FileNotFoundError, PWMError) as exc:
        print(f"{C.RED}✗{C.RESET} Config error: {exc}", file=sys.stderr)
        return 1

    banner("PCA9685 Board")
    print_config_summary(board)

    print()
    try:
        pca, devices = open_board(board)
        ok(f"Controller ready at {pca.frequency:g} Hz")
    except (PWMError, OSError) as exc:
        fail(f"Cannot initialise board: {exc}")
        return 1

    exit_code = 0
    try:
        if args.test:
            banner("Device test")
            run_test(devices)
        elif args.color or args.pump:
            banner("Applying settings")
            try:
                if apply_settings(devices, args.color, args.pump):
                    exit_code = 1
            except argparse.ArgumentTypeError as exc:
                fail(str(exc))
                exit_code = 2
        banner("Channel state")
        print(pca.dump_state())
    except KeyboardInterrupt:
        print("\n\n  Interrupted!")
    finally:
        if args.test:
            shutdown(pca, devices)
        else:
            pca.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
