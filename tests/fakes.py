from chassis_fan_control.ipmi import FanMode
from chassis_fan_control.sensors import (
    AmbientReading,
    FanSpeedReading,
    TemperatureSample,
)

SPEED_STEPS = [[[0, 50], 20], [[50, 70], 50], [[70, 81], 80]]


class StopLoop(Exception):
    """Raised by the fake sleep to end an otherwise endless loop"""


class FakeSensors:
    """Returns queued max core temperatures; exceptions in the queue are raised"""

    def __init__(self, temps):
        self.temps = list(temps)
        self.reads = 0
        self.ambient_reads = 0

    def read_core_temperature(self):
        self.reads += 1
        value = self.temps.pop(0)
        if isinstance(value, BaseException):
            raise value
        if value is None:
            return TemperatureSample(min=None, max=None)
        return TemperatureSample(min=value - 5.0, max=value)

    def read_ambient(self):
        self.ambient_reads += 1
        return AmbientReading(current=24, warn=42, crit=47, status="ok")

    def read_fan_speeds(self):
        return FanSpeedReading(min=3600, max=3840)


class FakeActuator:
    """Records every command; `fail` maps a command name to an exception"""

    def __init__(self, fail=None):
        self.calls = []
        self.fail = dict(fail or {})

    def _maybe_fail(self, name):
        if name in self.fail:
            raise self.fail.pop(name)

    def set_mode(self, mode):
        self._maybe_fail("mode")
        self.calls.append(("mode", mode))

    def set_duty_cycle(self, percent):
        self._maybe_fail("duty")
        self.calls.append(("duty", percent))

    @property
    def duty_calls(self):
        return [c for c in self.calls if c[0] == "duty"]

    @property
    def mode_calls(self):
        return [c for c in self.calls if c[0] == "mode"]


class FakeSleep:
    """Records requested waits and stops the loop after `limit` of them"""

    def __init__(self, limit):
        self.limit = limit
        self.waits = []

    def __call__(self, seconds):
        self.waits.append(seconds)
        if len(self.waits) >= self.limit:
            raise StopLoop()


MANUAL = ("mode", FanMode.MANUAL)
AUTOMATIC = ("mode", FanMode.AUTOMATIC)
