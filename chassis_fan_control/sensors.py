"""Sensor gateway: CPU core temperatures, ambient sensor and fan RPM

Readings are scraped from the text output of lm-sensors (`sensors`) and
ipmitool (`ipmitool sdr ...`). The parsers are plain functions so they can be
exercised without either tool installed.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from .errors import SensorReadError
from .ipmi import CommandRunner

AMBIENT_SENSOR_NAME = "Ambient Temp"

# "Core 0:        +45.0°C  (high = +84.0°C, crit = +100.0°C)"
CORE_TEMP_RE = re.compile(r"^Core.*\+(\d+\.\d+)°C\s+\(")
FAN_RPM_RE = re.compile(r"(\d+)\s+RPM$")

AMBIENT_FIELDS = {
    "current": re.compile(r"Sensor Reading\s+:\s+(\d+)"),
    "crit": re.compile(r"Upper critical\s+:\s+(\d+)"),
    "warn": re.compile(r"Upper non-critical\s+:\s+(\d+)"),
    "status": re.compile(r"Status\s+:\s+(\w+)"),
}


@dataclass(frozen=True)
class TemperatureSample:
    """Min/max CPU core temperature [°C] for one sampling instant

    Both fields are None when no core line could be parsed, which keeps a
    failed scrape distinguishable from a genuinely cold reading.
    """

    min: Optional[float]
    max: Optional[float]

    @property
    def has_reading(self) -> bool:
        return self.max is not None


@dataclass(frozen=True)
class AmbientReading:
    """BMC ambient sensor; any field missing from the output stays None"""

    current: Optional[int] = None
    warn: Optional[int] = None
    crit: Optional[int] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class FanSpeedReading:
    """Min/max RPM across all fans, None when no fan row was found"""

    min: Optional[int]
    max: Optional[int]


def _min_max(values: Iterable[float], dtype) -> tuple:
    arr = np.fromiter(values, dtype=dtype)
    if arr.size == 0:
        return None, None
    return arr.min().item(), arr.max().item()


def parse_core_temperatures(output: str) -> TemperatureSample:
    """Extract min/max over all `Core N: +XX.X°C (...)` lines"""
    temps = (
        float(m.group(1))
        for m in (CORE_TEMP_RE.search(line) for line in output.splitlines())
        if m
    )
    low, high = _min_max(temps, float)
    return TemperatureSample(min=low, max=high)


def parse_ambient(output: str) -> AmbientReading:
    """Parse `ipmitool sdr get "Ambient Temp"` output

    Each line fills at most one field; a partial result is valid.
    """
    fields = {}
    for line in output.splitlines():
        for name, pattern in AMBIENT_FIELDS.items():
            m = pattern.search(line)
            if m:
                value = m.group(1)
                fields[name] = value if name == "status" else int(value)
                break
    return AmbientReading(**fields)


def parse_fan_speeds(output: str) -> FanSpeedReading:
    """Extract min/max over all rows ending in `<rpm> RPM`"""
    rpms = (
        int(m.group(1))
        for m in (FAN_RPM_RE.search(line.rstrip()) for line in output.splitlines())
        if m
    )
    low, high = _min_max(rpms, np.int64)
    return FanSpeedReading(min=low, max=high)


class SensorGateway:
    """Reads the platform sensors the controller consumes"""

    def __init__(self, sensors: CommandRunner, ipmitool: CommandRunner):
        self.sensors = sensors
        self.ipmitool = ipmitool
        self.logger = logging.getLogger(self.__class__.__name__)

    def read_core_temperature(self) -> TemperatureSample:
        output = self.sensors.run(error=SensorReadError)
        sample = parse_core_temperatures(output)
        self.logger.debug("Core temperatures: %s", sample)
        return sample

    def read_ambient(self) -> AmbientReading:
        output = self.ipmitool.run(
            "sdr", "get", AMBIENT_SENSOR_NAME, error=SensorReadError
        )
        return parse_ambient(output)

    def read_fan_speeds(self) -> FanSpeedReading:
        output = self.ipmitool.run("sdr", "type", "Fan", error=SensorReadError)
        return parse_fan_speeds(output)
