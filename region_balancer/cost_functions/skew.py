from typing import List

import numpy as np

from region_balancer.cluster_state import BalancerClusterState
from region_balancer.cost_functions.base import array_cost
from region_balancer.cost_functions.base import CostFunction
from region_balancer.cost_functions.base import scale
from region_balancer.interface import BalancerConfig


class RegionCountSkewCostFunction(CostFunction):
    """How far the number of regions per server is from an even spread"""

    name = "region_count_skew"

    def init_accumulators(self, cluster: BalancerClusterState) -> None:
        self._stats = cluster.region_count_per_server.astype(np.float64)

    def region_moved(self, region: int, old_server: int, new_server: int) -> None:
        counts = self.cluster.region_count_per_server
        self._stats[old_server] = counts[old_server]
        self._stats[new_server] = counts[new_server]

    def compute_cost(self) -> float:
        return array_cost(self._stats)


class PrimaryRegionCountSkewCostFunction(CostFunction):
    """Primaries (replica 0) should be spread as evenly as regions are"""

    name = "primary_region_count_skew"

    def is_needed(self) -> bool:
        return self.cluster is not None and self.cluster.has_region_replicas

    def init_accumulators(self, cluster: BalancerClusterState) -> None:
        self._stats = cluster.primary_count_per_server.astype(np.float64)

    def region_moved(self, region: int, old_server: int, new_server: int) -> None:
        counts = self.cluster.primary_count_per_server
        self._stats[old_server] = counts[old_server]
        self._stats[new_server] = counts[new_server]

    def compute_cost(self) -> float:
        return array_cost(self._stats)


class TableSkewCostFunction(CostFunction):
    """Average over tables of each table's regions per server skew.

    A move only changes the skew of the moved region's table, so only that
    table's cost is recomputed.
    """

    name = "table_skew"

    def init_accumulators(self, cluster: BalancerClusterState) -> None:
        self._table_costs: List[float] = [
            array_cost(cluster.num_regions_per_server_per_table[t])
            for t in range(cluster.num_tables)
        ]

    def region_moved(self, region: int, old_server: int, new_server: int) -> None:
        table = self.cluster.region_index_to_table_index[region]
        self._table_costs[table] = array_cost(
            self.cluster.num_regions_per_server_per_table[table]
        )

    def compute_cost(self) -> float:
        if not self._table_costs:
            return 0.0
        return sum(self._table_costs) / len(self._table_costs)


class MoveCostFunction(CostFunction):
    """Penalize plans that move many regions away from where they started.

    Scaled by the larger of max_move_percent of the regions and max_moves
    (never more than every region), anything beyond that is the worst cost.
    """

    name = "move"

    def __init__(
        self, multiplier: float = 1.0, max_move_percent: float = 0.25, max_moves=600
    ):
        super().__init__(multiplier=multiplier)
        self.max_move_percent = max_move_percent
        self.max_moves = max_moves

    @classmethod
    def from_config(cls, config: BalancerConfig) -> "MoveCostFunction":
        return cls(
            multiplier=config.multiplier(cls.name),
            max_move_percent=config.max_move_percent,
            max_moves=config.max_moves,
        )

    def init_accumulators(self, cluster: BalancerClusterState) -> None:
        self._moved = (
            cluster.region_index_to_server_index
            != cluster.initial_region_index_to_server_index
        )
        self._num_moved = int(self._moved.sum())

    def region_moved(self, region: int, old_server: int, new_server: int) -> None:
        cluster = self.cluster
        moved = bool(
            cluster.region_index_to_server_index[region]
            != cluster.initial_region_index_to_server_index[region]
        )
        if moved != self._moved[region]:
            self._num_moved += 1 if moved else -1
            self._moved[region] = moved

    def compute_cost(self) -> float:
        num_regions = self.cluster.num_regions
        max_moves = max(int(num_regions * self.max_move_percent), self.max_moves)
        if self._num_moved > max_moves:
            return 1.0
        return scale(0, min(num_regions, max_moves), self._num_moved)
