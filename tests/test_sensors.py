from unittest.mock import Mock

import pytest

from chassis_fan_control.errors import SensorReadError
from chassis_fan_control.sensors import (
    AmbientReading,
    FanSpeedReading,
    SensorGateway,
    TemperatureSample,
    parse_ambient,
    parse_core_temperatures,
    parse_fan_speeds,
)

SENSORS_OUTPUT = """\
coretemp-isa-0000
Adapter: ISA adapter
Core 0:       +38.0°C  (high = +69.0°C, crit = +79.0°C)
Core 1:       +41.0°C  (high = +69.0°C, crit = +79.0°C)
Core 2:       +36.0°C  (high = +69.0°C, crit = +79.0°C)

coretemp-isa-0001
Adapter: ISA adapter
Core 0:       +44.5°C  (high = +69.0°C, crit = +79.0°C)
Core 8:       +39.0°C  (high = +69.0°C, crit = +79.0°C)

power_meter-acpi-0
Adapter: ACPI interface
power1:        4.29 MW (interval =   1.00 s)
"""

AMBIENT_OUTPUT = """\
Sensor ID              : Ambient Temp (0xe)
 Entity ID             : 7.1 (System Board)
 Sensor Type (Threshold)  : Temperature (0x01)
 Sensor Reading        : 24 (+/- 1) degrees C
 Status                : ok
 Lower critical        : 3.000
 Lower non-critical    : 8.000
 Upper non-critical    : 42.000
 Upper critical        : 47.000
"""

FAN_OUTPUT = """\
FAN 1 RPM        | 30h | ok  |  7.1 | 3600 RPM
FAN 2 RPM        | 31h | ok  |  7.1 | 3840 RPM
FAN 3 RPM        | 32h | ok  |  7.1 | 3720 RPM
Fan Redundancy   | 75h | ok  |  7.1 | Fully Redundant
"""


def test_core_temperatures():
    assert parse_core_temperatures(SENSORS_OUTPUT) == TemperatureSample(36.0, 44.5)


def test_core_temperatures_without_core_lines():
    sample = parse_core_temperatures("acpitz-acpi-0\ntemp1:        +27.8°C\n")
    assert sample == TemperatureSample(min=None, max=None)
    assert not sample.has_reading


def test_core_temperatures_empty_output():
    assert not parse_core_temperatures("").has_reading


def test_ambient():
    assert parse_ambient(AMBIENT_OUTPUT) == AmbientReading(
        current=24, warn=42, crit=47, status="ok"
    )


def test_ambient_partial():
    reading = parse_ambient(" Sensor Reading        : 19 (+/- 1) degrees C\n")
    assert reading == AmbientReading(current=19)
    assert reading.status is None


def test_fan_speeds():
    assert parse_fan_speeds(FAN_OUTPUT) == FanSpeedReading(min=3600, max=3840)


def test_fan_speeds_trailing_whitespace():
    assert parse_fan_speeds("FAN 1 RPM | 30h | ok | 7.1 | 2160 RPM  \n").max == 2160


def test_fan_speeds_none_found():
    assert parse_fan_speeds("Fan Redundancy | 75h | ok | 7.1 | Fully Redundant\n") == (
        FanSpeedReading(min=None, max=None)
    )


@pytest.fixture
def gateway():
    return SensorGateway(sensors=Mock(), ipmitool=Mock())


def test_gateway_reads_core_temperature(gateway):
    gateway.sensors.run.return_value = SENSORS_OUTPUT

    assert gateway.read_core_temperature().max == 44.5
    gateway.sensors.run.assert_called_once_with(error=SensorReadError)


def test_gateway_reads_ambient(gateway):
    gateway.ipmitool.run.return_value = AMBIENT_OUTPUT

    assert gateway.read_ambient().current == 24
    gateway.ipmitool.run.assert_called_once_with(
        "sdr", "get", "Ambient Temp", error=SensorReadError
    )


def test_gateway_reads_fan_speeds(gateway):
    gateway.ipmitool.run.return_value = FAN_OUTPUT

    assert gateway.read_fan_speeds().min == 3600
    gateway.ipmitool.run.assert_called_once_with(
        "sdr", "type", "Fan", error=SensorReadError
    )


def test_gateway_propagates_errors(gateway):
    gateway.sensors.run.side_effect = SensorReadError("sensors timed out")

    with pytest.raises(SensorReadError):
        gateway.read_core_temperature()
