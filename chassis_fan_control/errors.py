"""Error hierarchy shared by the gateways, policy and control loop"""


class FanControlError(Exception):
    """Base class for all fan control failures"""


class StartupConfigurationError(FanControlError):
    """Missing external tool or unusable configuration file"""


class SensorReadError(FanControlError):
    """Sensor acquisition failed or returned unparseable output"""


class ActuatorCommandError(FanControlError):
    """A hardware command was rejected or could not be issued"""


class PolicyResolutionError(FanControlError):
    """No configured speed step covers the observed temperature"""
