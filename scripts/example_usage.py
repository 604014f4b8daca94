#!/usr/bin/env python3
"""
Example usage of the PCA9685 PWM controller module

This script demonstrates:
- Opening the I2C bus and initialising the controller
- Driving single channels and fading
- An RGB LED and a pump on the same board
- Cancelling a long fade with a deadline
- Proper cleanup
"""

import logging
import sys
import time

# Add src to path so we can import pca9685_pwm
sys.path.insert(0, "src")

from pca9685_pwm import CancelledError, CancelToken, Pump, RGBLed, get_controller


def main():
    """Run example PWM sequence"""

    if "-v" in sys.argv:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s: %(message)s")

    print("PCA9685 PWM Controller - Example Usage")
    print("=" * 60)

    # Use context manager so the bus is released on exit
    with get_controller(bus=1, address=0x40) as pca:
        print(f"\nInitialised at {pca.frequency:g} Hz, {pca.num_channels} channels")

        # Example 1: Half duty cycle on channel 0
        print("\n" + "=" * 60)
        print("Example 1: Channel 0 at 50% duty")
        pca.set_pwm(0, 0, 2048)
        print("✓ Channel 0 set")

        time.sleep(2)

        # Example 2: Fade channel 0 up and down
        print("\n" + "=" * 60)
        print("Example 2: Fade channel 0")
        pca.fade(0, 0, 4095, 1.0)
        pca.fade(0, 4095, 0, 1.0)
        print("✓ Fade complete")

        # Example 3: RGB LED on channels 1-3
        print("\n" + "=" * 60)
        print("Example 3: RGB LED")
        led = RGBLed(pca, 1, 2, 3, brightness=0.5)
        for color in ("#ff0000", "#00ff00", "#0000ff"):
            led.set_color_hex(color)
            print(f"  {color}")
            time.sleep(1)
        led.off()

        # Example 4: Pump on channel 4
        print("\n" + "=" * 60)
        print("Example 4: Pump at 40%")
        pump = Pump(pca, 4, speed_limits=(1000, 3500))
        pump.set_speed(40)
        print(f"  Current speed: {pump.get_current_speed():.0f}%")
        time.sleep(2)
        pump.stop()

        # Example 5: Deadline on a slow fade
        print("\n" + "=" * 60)
        print("Example 5: 10 s fade cut short by a 1 s deadline")
        try:
            pca.fade(0, 0, 4095, 10.0, cancel=CancelToken(timeout=1.0))
        except CancelledError as exc:
            print(f"  Stopped: {exc}")

        print("\n" + "=" * 60)
        print(pca.dump_state())

        pca.set_all_pwm(0, 0)
        print("\nExample complete!")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
    except Exception as e:
        print(f"\nError: {e}")
        sys.exit(1)
