"""Process entry point: startup checks, logging, signals"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from .config import ControllerConfig, load_config
from .controller import FanController
from .errors import FanControlError, StartupConfigurationError
from .ipmi import CommandRunner, IPMIFanActuator, ipmitool_runner
from .sensors import SensorGateway

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_LOOP_FAILURE = 1
EXIT_STARTUP_FAILURE = 2

logger = logging.getLogger("chassis_fan_control")


def setup_logging(verbose: bool = False, log_file: Optional[str] = None):
    """Configure logging system"""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Temperature driven chassis fan control over IPMI"
    )
    p.add_argument(
        "command",
        nargs="?",
        choices=["run", "status"],
        default="run",
        help="run the control loop (default) or print one sensor readout",
    )
    p.add_argument("--config", default=None, help="speeds.yaml to use")
    p.add_argument("--log-file", default=None, help="also log to this file")
    p.add_argument("--verbose", action="store_true", help="debug logging")
    return p.parse_args(argv)


def _terminate(signum, frame):
    """Turn SIGTERM into SystemExit so the loop's fail-safe runs"""
    logger.info("Received signal %s, shutting down", signum)
    raise SystemExit(128 + signum)


def show_status(config: ControllerConfig, sensors: SensorGateway) -> int:
    """Print current readings and the speed the table would pick"""
    cores = sensors.read_core_temperature()
    ambient = sensors.read_ambient()
    fans = sensors.read_fan_speeds()

    if cores.has_reading:
        print(f"CPU cores:  {cores.min:.1f} - {cores.max:.1f} °C")
        if cores.max > config.max_manual_temp:
            print(f"Target:     automatic (above {config.max_manual_temp:g} °C)")
        else:
            print(f"Target:     {config.policy.resolve(cores.max)} %")
    else:
        print("CPU cores:  no reading")
    print(
        f"Ambient:    {ambient.current} °C "
        f"(warn {ambient.warn}, crit {ambient.crit}, status {ambient.status})"
    )
    print(f"Fans:       {fans.min} - {fans.max} RPM")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point"""
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        config = load_config(args.config)
        sensors_cmd = CommandRunner("sensors", timeout=config.command_timeout)
        ipmitool = ipmitool_runner(config.use_sudo, config.command_timeout)
    except StartupConfigurationError as e:
        logger.error("Startup failed: %s", e)
        return EXIT_STARTUP_FAILURE

    sensors = SensorGateway(sensors_cmd, ipmitool)

    try:
        if args.command == "status":
            return show_status(config, sensors)

        # Single controller instance for the whole process
        controller = FanController(config, sensors, IPMIFanActuator(ipmitool))
        signal.signal(signal.SIGTERM, _terminate)
        controller.run()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Fan control stopped")
        return EXIT_OK
    except FanControlError as e:
        logger.error("Fan control stopped: %s", e)
        return EXIT_LOOP_FAILURE

    return EXIT_OK
