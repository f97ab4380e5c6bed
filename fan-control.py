#!/usr/bin/env python3
"""
Temperature Driven Fan Control for IPMI Managed Servers
=======================================================

Samples CPU core temperatures (lm-sensors) and drives all chassis fans to a
duty cycle taken from a temperature -> speed table (speeds.yaml).

Fan ownership is arbitrated between the host and the BMC:
- Below or at max_manual_temp the host takes manual control and applies the
  table, sending a new duty cycle only when the target changes.
- Above it the BMC's automatic control is restored and the controller waits
  out a cool-down period before trying again.
- On any error or signal automatic control is restored before exiting.

Motivation:
-----------

Homelab not sounding like a jet engine

Usage:
    sudo ./fan-control.py                     # run the control loop
    ./fan-control.py status                   # one-shot sensor readout
    ./fan-control.py --config ./speeds.yaml --verbose
"""

import sys

from chassis_fan_control.cli import main

if __name__ == "__main__":
    sys.exit(main())
