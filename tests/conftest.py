import pytest

from chassis_fan_control.config import build_config
from tests.fakes import SPEED_STEPS


@pytest.fixture
def config():
    return build_config({"speed_steps": SPEED_STEPS})
