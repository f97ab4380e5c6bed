"""Configuration discovery and loading

Example speeds.yaml:

    speed_steps:
      - [[0, 50], 20]
      - [[50, 70], 50]
      - [[70, 81], 80]
    # optional overrides
    interval: 5
    max_manual_temp: 81
    cool_down_time: 120
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import yaml

from .errors import StartupConfigurationError
from .ipmi import DEFAULT_COMMAND_TIMEOUT
from .policy import SpeedPolicy, SpeedStep

CONFIG_LOCATIONS = ["/etc/custom-fan-control/speeds.yaml", "speeds.yaml"]

DEFAULT_INTERVAL = 5.0  # seconds between control loop ticks
DEFAULT_MAX_MANUAL_TEMP = 81.0  # °C, above this the BMC takes over again
DEFAULT_COOL_DOWN_TIME = 120.0  # seconds to wait after handing back to the BMC

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControllerConfig:
    """Everything the controller needs, fixed for the process lifetime"""

    policy: SpeedPolicy
    interval: float = DEFAULT_INTERVAL
    max_manual_temp: float = DEFAULT_MAX_MANUAL_TEMP
    cool_down_time: float = DEFAULT_COOL_DOWN_TIME
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    use_sudo: bool = True
    observe_ambient: bool = False
    source: Optional[str] = None


def find_config(locations: Optional[Sequence[str]] = None) -> str:
    """Return the first candidate path that exists"""
    if locations is None:
        locations = CONFIG_LOCATIONS
    for path in locations:
        if os.path.isfile(path):
            return path
    raise StartupConfigurationError(
        f"Did not find config file (looked in: {', '.join(locations)})"
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_speed_steps(raw: Any) -> List[SpeedStep]:
    """Convert `[[low, high], percent]` entries to SpeedSteps"""
    if not isinstance(raw, list):
        raise StartupConfigurationError("speed_steps must be a list")

    steps = []
    for i, entry in enumerate(raw):
        try:
            (low, high), percent = entry
        except (TypeError, ValueError):
            raise StartupConfigurationError(
                f"speed_steps[{i}] must look like [[low, high], percent], got {entry!r}"
            ) from None
        if not (_is_number(low) and _is_number(high)):
            raise StartupConfigurationError(
                f"speed_steps[{i}] range bounds must be numbers, got {low!r}..{high!r}"
            )
        steps.append(SpeedStep(low=float(low), high=float(high), percent=percent))
    return steps


def _number(data: dict, key: str, default: float) -> float:
    value = data.get(key, default)
    if not _is_number(value) or value <= 0:
        raise StartupConfigurationError(f"{key} must be a positive number, got {value!r}")
    return float(value)


def _flag(data: dict, key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise StartupConfigurationError(f"{key} must be true or false, got {value!r}")
    return value


def build_config(data: Any, source: Optional[str] = None) -> ControllerConfig:
    """Validate a parsed YAML document and build the controller config"""
    if not isinstance(data, dict):
        raise StartupConfigurationError("Configuration must be a mapping")
    if "speed_steps" not in data:
        raise StartupConfigurationError("Configuration has no speed_steps")

    try:
        policy = SpeedPolicy(parse_speed_steps(data["speed_steps"]))
    except ValueError as e:
        raise StartupConfigurationError(f"Invalid speed_steps: {e}") from e

    max_manual_temp = _number(data, "max_manual_temp", DEFAULT_MAX_MANUAL_TEMP)
    if policy.upper_bound < max_manual_temp:
        raise StartupConfigurationError(
            f"speed_steps end at {policy.upper_bound:g}°C but manual control "
            f"continues up to {max_manual_temp:g}°C"
        )

    return ControllerConfig(
        policy=policy,
        interval=_number(data, "interval", DEFAULT_INTERVAL),
        max_manual_temp=max_manual_temp,
        cool_down_time=_number(data, "cool_down_time", DEFAULT_COOL_DOWN_TIME),
        command_timeout=_number(data, "command_timeout", DEFAULT_COMMAND_TIMEOUT),
        use_sudo=_flag(data, "use_sudo", True),
        observe_ambient=_flag(data, "observe_ambient", False),
        source=source,
    )


def load_config(path: Optional[str] = None) -> ControllerConfig:
    """Load the configuration from `path` or the first existing candidate

    Raises:
        StartupConfigurationError: No file found, unreadable, or invalid
    """
    if path is None:
        path = find_config()
    elif not os.path.isfile(path):
        raise StartupConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise StartupConfigurationError(f"Could not read {path}: {e}") from e

    config = build_config(data, source=path)
    logger.info(
        "Loaded %d speed steps from %s (%g..%g°C)",
        len(config.policy),
        path,
        config.policy.lower_bound,
        config.policy.upper_bound,
    )
    return config
