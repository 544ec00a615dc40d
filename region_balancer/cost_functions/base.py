import math
from typing import Optional
from typing import Sequence

import numpy as np

from region_balancer.actions import BalanceAction
from region_balancer.cluster_state import BalancerClusterState
from region_balancer.interface import BalancerConfig

# Costs closer than this to their floor are treated as no signal at all
COST_EPSILON = 0.0001


def scale(min_value: float, max_value: float, value: float) -> float:
    """Normalize value into [0, 1] between its best and worst case"""
    if (
        max_value <= min_value
        or value <= min_value
        or abs(max_value - min_value) <= COST_EPSILON
    ):
        return 0.0
    return max(0.0, min(1.0, (value - min_value) / (max_value - min_value)))


def _min_skew(total: float, count: int) -> float:
    """Square root of the smallest possible sum of squared deviations.

    This is the skew of the most even distribution of total over count bins,
    with some bins carrying one more unit than the others.
    """
    if count == 0:
        return 0.0
    mean = total / count
    if count > total:
        # Not enough to go around: some bins get one, the rest get nothing
        min_sq = (count - total) * mean * mean + (1 - mean) * (1 - mean) * total
    else:
        num_high = int(total - math.floor(mean) * count)
        num_low = count - num_high
        min_sq = num_high * (math.ceil(mean) - mean) ** 2 + num_low * (
            mean - math.floor(mean)
        ) ** 2
    return math.sqrt(max(0.0, min_sq))


def _max_skew(total: float, count: int) -> float:
    """Skew of everything piled into a single bin"""
    if count == 0:
        return 0.0
    mean = total / count
    return math.sqrt((total - mean) ** 2 + (count - 1) * mean * mean)


def array_cost(stats: Sequence[float]) -> float:
    """Normalized skew of a per server (or per rack) statistic.

    0 when stats is as even as its total allows, 1 when a single entry holds
    all of it.
    """
    values = np.asarray(stats, dtype=np.float64)
    count = len(values)
    if count == 0:
        return 0.0
    total = float(values.sum())
    deviation = math.sqrt(float(np.square(values - total / count).sum()))
    return scale(_min_skew(total, count), _max_skew(total, count), deviation)


class CostFunction:
    """A pluggable scorer of one dimension of cluster imbalance.

    Lifecycle:
        prepare(cluster) seeds internal accumulators with a full scan
        cost() returns the current normalized value in [0, 1]
        post_action(action) is called after the snapshot applied action and
            updates the accumulators for just the regions that moved

    After any sequence of post_action calls, cost() must equal (within
    floating point tolerance) what a fresh prepare() on the same snapshot
    would produce. Implementations read current counters from the snapshot
    rather than assuming what they were before the action.
    """

    name = "cost_function"

    def __init__(self, multiplier: float = 1.0):
        self.multiplier = multiplier
        self.cluster: Optional[BalancerClusterState] = None
        self._cost = 0.0

    @classmethod
    def from_config(cls, config: BalancerConfig) -> "CostFunction":
        return cls(multiplier=config.multiplier(cls.name))

    def is_needed(self) -> bool:
        """If this function has anything to measure on the prepared cluster"""
        return True

    def prepare(self, cluster: BalancerClusterState) -> None:
        self.cluster = cluster
        self.init_accumulators(cluster)
        self._cost = self._clamped()

    def cost(self) -> float:
        return self._cost

    def post_action(self, action: BalanceAction) -> None:
        for region, old_server, new_server in action.region_moves():
            self.region_moved(region, old_server, new_server)
        self._cost = self._clamped()

    def init_accumulators(self, cluster: BalancerClusterState) -> None:
        """Full scan of cluster, called by prepare"""

    def region_moved(self, region: int, old_server: int, new_server: int) -> None:
        """Account for region having moved, the snapshot already reflects it"""

    def compute_cost(self) -> float:
        """Cost from the accumulators, no full scan"""
        return 0.0

    def _clamped(self) -> float:
        return min(1.0, max(0.0, self.compute_cost()))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(multiplier={self.multiplier})"
