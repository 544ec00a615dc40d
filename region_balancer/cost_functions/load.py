"""
Cost functions fed by the optional per region load and locality hints.

They report no signal (and are not needed) when the snapshot was built
without the corresponding hints.
"""

import numpy as np

from region_balancer.cluster_state import BalancerClusterState
from region_balancer.cost_functions.base import array_cost
from region_balancer.cost_functions.base import CostFunction


class RegionLoadCostFunction(CostFunction):
    """Skew of one RegionLoad field summed per server"""

    name = "region_load"
    load_field = ""

    def is_needed(self) -> bool:
        return self.cluster is not None and self.cluster.has_region_loads

    def _load(self, region: int) -> float:
        load = self.cluster.region_loads[region]
        if load is None:
            return 0.0
        return float(getattr(load, self.load_field))

    def init_accumulators(self, cluster: BalancerClusterState) -> None:
        self._server_loads = np.zeros(cluster.num_servers, dtype=np.float64)
        for r in range(cluster.num_regions):
            self._server_loads[cluster.server_of_region(r)] += self._load(r)

    def region_moved(self, region: int, old_server: int, new_server: int) -> None:
        load = self._load(region)
        self._server_loads[old_server] -= load
        self._server_loads[new_server] += load
        # Keep float drift from producing slightly negative loads
        self._server_loads[old_server] = max(0.0, self._server_loads[old_server])

    def compute_cost(self) -> float:
        return array_cost(self._server_loads)


class ReadRequestCostFunction(RegionLoadCostFunction):
    name = "read_request"
    load_field = "read_requests_per_second"


class WriteRequestCostFunction(RegionLoadCostFunction):
    name = "write_request"
    load_field = "write_requests_per_second"


class CPRequestCostFunction(RegionLoadCostFunction):
    name = "cp_request"
    load_field = "cp_requests_per_second"


class MemStoreSizeCostFunction(RegionLoadCostFunction):
    name = "memstore_size"
    load_field = "memstore_size_mb"


class StoreFileCostFunction(RegionLoadCostFunction):
    name = "storefile_size"
    load_field = "storefile_size_mb"


class LocalityCostFunction(CostFunction):
    """1 - (locality achieved / best locality achievable), per server.

    Each region contributes the fraction of its data stored on the host it
    is assigned to. The best case puts every region on its most local host.
    """

    name = "locality"

    def is_needed(self) -> bool:
        return self.cluster is not None and self.cluster.has_locality

    def _region_locality(self, region: int) -> float:
        return self.cluster.locality_of_region(
            region, self.cluster.server_of_region(region)
        )

    def _best_locality(self, region: int) -> float:
        return self.cluster.best_locality_of_region(region)

    def init_accumulators(self, cluster: BalancerClusterState) -> None:
        self._contribution = np.array(
            [self._region_locality(r) for r in range(cluster.num_regions)],
            dtype=np.float64,
        )
        self._locality = float(self._contribution.sum())
        self._best = sum(self._best_locality(r) for r in range(cluster.num_regions))

    def region_moved(self, region: int, old_server: int, new_server: int) -> None:
        locality = self._region_locality(region)
        self._locality += locality - self._contribution[region]
        self._contribution[region] = locality

    def compute_cost(self) -> float:
        if self._best <= 0:
            return 0.0
        return 1.0 - self._locality / self._best


class RackLocalityCostFunction(LocalityCostFunction):
    """Same as LocalityCostFunction but any host in the rack counts"""

    name = "rack_locality"

    def is_needed(self) -> bool:
        return super().is_needed() and self.cluster.num_racks > 1

    def _region_locality(self, region: int) -> float:
        cluster = self.cluster
        rack = cluster.rack_of_server(cluster.server_of_region(region))
        return cluster.rack_locality_of_region(region, rack)

    def _best_locality(self, region: int) -> float:
        return self.cluster.best_rack_locality_of_region(region)
