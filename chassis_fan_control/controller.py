"""Closed-loop fan controller

Every tick the hottest CPU core decides who owns the fans:

    above max_manual_temp  -> hand fans to the BMC (automatic), cool down
    otherwise              -> take fans (manual) and apply the speed table

A duty cycle is only sent when it differs from the last one sent. Any error
that escapes a tick ends the loop, but not before fan control has been handed
back to the BMC.
"""

import logging
import signal
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from .config import ControllerConfig
from .errors import SensorReadError
from .ipmi import FanMode, IPMIFanActuator
from .sensors import SensorGateway


@contextmanager
def _signals_ignored():
    """Hold off SIGINT/SIGTERM so a second signal cannot abort the hand-back"""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {
        signum: signal.signal(signum, signal.SIG_IGN)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


@dataclass
class ControllerState:
    """Mutable controller state, owned by the control loop alone

    `last_commanded_percent` is None until a duty cycle has been sent while in
    manual mode. `last_observed_max_temp` is None before the first reading.
    """

    mode: FanMode = FanMode.AUTOMATIC
    last_commanded_percent: Optional[int] = None
    last_observed_max_temp: Optional[float] = None


class FanController:
    """Drives the fans from CPU temperature on a fixed cadence"""

    def __init__(
        self,
        config: ControllerConfig,
        sensors: SensorGateway,
        actuator: IPMIFanActuator,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.policy = config.policy
        self.sensors = sensors
        self.actuator = actuator
        self._sleep = sleep
        self.state = ControllerState()
        self.logger = logging.getLogger(self.__class__.__name__)

    def _event(self, level: int, event: str, msg: str, *args):
        self.logger.log(level, msg, *args, extra={"event": event})

    def _switch_mode(self, mode: FanMode):
        self.actuator.set_mode(mode)
        self.state.mode = mode
        if mode is FanMode.MANUAL:
            # The BMC may have moved the fans while it owned them
            self.state.last_commanded_percent = None
            self._event(logging.INFO, "mode_switch", "Manual fan control active")
        else:
            self._event(logging.INFO, "mode_switch", "Automatic fan control restored")

    def _log_observations(self):
        ambient = self.sensors.read_ambient()
        fans = self.sensors.read_fan_speeds()
        self.logger.debug(
            "Ambient %s°C (warn %s, crit %s, status %s), fans %s-%s RPM",
            ambient.current,
            ambient.warn,
            ambient.crit,
            ambient.status,
            fans.min,
            fans.max,
        )

    def tick(self) -> float:
        """Run one control step

        Returns:
            Seconds to wait before the next tick
        """
        sample = self.sensors.read_core_temperature()
        if not sample.has_reading:
            raise SensorReadError("No CPU core temperature found in sensors output")
        cur_temp = sample.max

        if cur_temp > self.config.max_manual_temp:
            self.logger.warning(
                "CPU temp %.1f°C higher than %g°C -> switching to automatic",
                cur_temp,
                self.config.max_manual_temp,
            )
            self._switch_mode(FanMode.AUTOMATIC)
            self._event(
                logging.WARNING,
                "cool_down",
                "Cool down period started (%gs)",
                self.config.cool_down_time,
            )
            return self.config.cool_down_time

        if self.state.mode is not FanMode.MANUAL:
            self._switch_mode(FanMode.MANUAL)

        target = self.policy.resolve(cur_temp)
        if target != self.state.last_commanded_percent:
            self.actuator.set_duty_cycle(target)
            self.state.last_commanded_percent = target
            self._event(
                logging.INFO,
                "speed_change",
                "Fan speed set to %d%% -> CPU temp: %.1f°C",
                target,
                cur_temp,
            )

        if cur_temp != self.state.last_observed_max_temp:
            self._event(
                logging.INFO, "temperature_change", "CPU temp: %.1f°C", cur_temp
            )
        self.state.last_observed_max_temp = cur_temp

        if self.config.observe_ambient:
            self._log_observations()

        return self.config.interval

    def fail_safe(self, reason: BaseException) -> bool:
        """Best-effort hand-back of fan control to the BMC, never retried

        Returns:
            True if automatic mode was restored
        """
        if isinstance(reason, Exception):
            self._event(
                logging.ERROR,
                "fail_safe",
                "%s: %s - switching back to automatic fan control",
                type(reason).__name__,
                reason,
            )
        else:
            self._event(
                logging.INFO,
                "fail_safe",
                "Interrupted - switching back to automatic fan control",
            )

        try:
            with _signals_ignored():
                self._switch_mode(FanMode.AUTOMATIC)
        except Exception:
            self.logger.exception("Could not restore automatic fan control")
            return False
        return True

    def run(self):
        """Control loop; only returns by raising

        Whatever ends the loop (sensor, actuator or policy error, interrupt,
        SystemExit from a signal handler) is re-raised after the fail-safe.
        """
        self._event(
            logging.INFO,
            "loop_start",
            "Starting fan control loop (interval %gs, max manual temp %g°C)",
            self.config.interval,
            self.config.max_manual_temp,
        )
        try:
            while True:
                self._sleep(self.tick())
        except BaseException as e:
            self.fail_safe(e)
            raise

    def status(self) -> dict:
        """Read-only snapshot of the controller state"""
        return {
            "mode": self.state.mode.name.lower(),
            "last_commanded_percent": self.state.last_commanded_percent,
            "last_observed_max_temp": self.state.last_observed_max_temp,
        }
