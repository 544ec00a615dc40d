import pytest

from region_balancer.interface import BalancerConfig


@pytest.fixture
def fast_config() -> BalancerConfig:
    """
    Balancer settings for tests: a bounded number of steps and a time budget
    generous enough that the step budget is what ends a run.
    """
    return BalancerConfig(max_steps=5000, max_running_time="PT60S")
