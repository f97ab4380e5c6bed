"""IPMI command plumbing and the fan actuator

Fan control on the chassis is done with OEM raw commands (netfn 0x30,
command 0x30):

    0x01 0x00       hand fan control to the host (manual)
    0x01 0x01       hand fan control back to the BMC (automatic)
    0x02 0xff <dd>  set every fan to <dd> percent of max speed (0x00-0x64)
"""

import logging
import os
import shutil
import subprocess
from enum import Enum
from typing import List, Type

from .errors import (
    ActuatorCommandError,
    FanControlError,
    StartupConfigurationError,
)

DEFAULT_COMMAND_TIMEOUT = 10.0  # seconds, ipmitool is slow

FAN_CONTROL_RAW = ("raw", "0x30", "0x30")
SET_DUTY_CYCLE_ALL_FANS = ("0x02", "0xff")


class FanMode(Enum):
    """Owner of the fan duty cycle"""

    AUTOMATIC = "0x01"
    MANUAL = "0x00"


class CommandRunner:
    """Runs one external tool, optionally through sudo

    The tool is resolved once at construction so that a missing binary is a
    startup failure rather than a failure inside the control loop.
    """

    def __init__(
        self,
        tool: str,
        use_sudo: bool = False,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.tool = tool
        self.timeout = timeout

        path = shutil.which(tool)
        if path is None:
            raise StartupConfigurationError(f"{tool} command not found")
        self.path = path

        self.prefix: List[str] = []
        if use_sudo and os.geteuid() != 0:
            sudo = shutil.which("sudo")
            if sudo is None:
                raise StartupConfigurationError(
                    f"sudo command not found (needed to run {tool})"
                )
            self.prefix = [sudo, "-n"]

    def run(self, *args: str, error: Type[FanControlError] = FanControlError) -> str:
        """Run the tool and return its stdout

        Args:
            args: Arguments passed to the tool
            error: Exception class raised on any failure

        Raises:
            error: Non-zero exit status, missing binary or timeout
        """
        cmd = self.prefix + [self.path, *args]
        self.logger.debug("Running: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise error(f"{self.tool} timed out after {self.timeout:g}s") from e
        except OSError as e:
            raise error(f"{self.tool} could not be started: {e}") from e
        except UnicodeDecodeError as e:
            raise error(f"{self.tool} produced undecodable output: {e}") from e

        if result.returncode != 0:
            raise error(
                f"{self.tool} {' '.join(args)} failed "
                f"(exit {result.returncode}): {result.stderr.strip()}"
            )

        return result.stdout


class IPMIFanActuator:
    """Issues fan mode and duty cycle commands via ipmitool"""

    def __init__(self, runner: CommandRunner):
        self.runner = runner
        self.logger = logging.getLogger(self.__class__.__name__)

    def set_duty_cycle(self, percent: int):
        """Set all fans to the given percentage of max speed

        Args:
            percent: Duty cycle 0-100, sent as a two digit hex byte
        """
        if isinstance(percent, bool) or not isinstance(percent, int):
            raise ValueError(f"Duty cycle must be an integer, got {percent!r}")
        if not 0 <= percent <= 100:
            raise ValueError(f"Duty cycle out of range 0-100: {percent}")

        duty_hex = f"0x{percent:02X}"
        self.runner.run(
            *FAN_CONTROL_RAW,
            *SET_DUTY_CYCLE_ALL_FANS,
            duty_hex,
            error=ActuatorCommandError,
        )

    def set_mode(self, mode: FanMode):
        """Switch fan control between host (manual) and BMC (automatic)"""
        self.runner.run(*FAN_CONTROL_RAW, "0x01", mode.value, error=ActuatorCommandError)


def ipmitool_runner(
    use_sudo: bool = True, timeout: float = DEFAULT_COMMAND_TIMEOUT
) -> CommandRunner:
    """Runner for ipmitool, which needs elevated privilege on most hosts"""
    return CommandRunner("ipmitool", use_sudo=use_sudo, timeout=timeout)
