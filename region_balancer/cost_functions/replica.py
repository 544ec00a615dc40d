"""
Costs of replicas of the same region sharing a failure domain.

For every replica group and every server (or rack) holding c > 0 of its
members we add (c - 1)^2. Squaring makes piling more replicas together
strictly worse than splitting them into pairs: 3 members on one server cost
4, two pairs on two servers cost 2, no co-location costs 0.

The cost is scaled between two bounds per group:
    worst: every member on one server, (size - 1)^2
    floor: members spread as evenly as the number of servers allows.
           Only non zero when a group has more members than there are
           servers (or racks), in which case that much co-location cannot
           be avoided by any sequence of moves and is not reported.
"""

from collections import Counter
from typing import Dict
from typing import List
from typing import Tuple

from region_balancer.cluster_state import BalancerClusterState
from region_balancer.cost_functions.base import CostFunction
from region_balancer.cost_functions.base import scale


def colocation_penalty(count: int) -> int:
    return (count - 1) * (count - 1) if count > 1 else 0


def min_colocation_penalty(group_size: int, num_bins: int) -> int:
    """Penalty of group_size members spread as evenly as possible"""
    if num_bins <= 0:
        return colocation_penalty(group_size)
    per_bin, remainder = divmod(group_size, num_bins)
    return remainder * colocation_penalty(per_bin + 1) + (
        num_bins - remainder
    ) * colocation_penalty(per_bin)


class RegionReplicaHostCostFunction(CostFunction):
    """Penalize replicas of one region hosted on the same server"""

    name = "region_replica_host"

    def is_needed(self) -> bool:
        return self.cluster is not None and self.cluster.has_region_replicas

    def _num_bins(self, cluster: BalancerClusterState) -> int:
        return cluster.num_servers

    def _bin_of_server(self, server: int) -> int:
        return server

    def _counters(self) -> List[Counter]:
        return self.cluster.groups_per_server

    def init_accumulators(self, cluster: BalancerClusterState) -> None:
        num_bins = self._num_bins(cluster)
        self._max_cost = 0
        self._min_cost = 0
        for size in cluster.replica_group_size:
            self._max_cost += colocation_penalty(int(size))
            self._min_cost += min_colocation_penalty(int(size), num_bins)

        # (bin, group) -> penalty currently accounted for in _total
        self._penalties: Dict[Tuple[int, int], int] = {}
        self._total = 0
        for b, counter in enumerate(self._counters()):
            for group, count in counter.items():
                penalty = colocation_penalty(count)
                if penalty:
                    self._penalties[(b, group)] = penalty
                    self._total += penalty

    def region_moved(self, region: int, old_server: int, new_server: int) -> None:
        group = int(self.cluster.region_index_to_group_index[region])
        old_bin = self._bin_of_server(old_server)
        new_bin = self._bin_of_server(new_server)
        if old_bin == new_bin:
            return
        self._refresh(old_bin, group)
        self._refresh(new_bin, group)

    def _refresh(self, b: int, group: int) -> None:
        # Reads the current count so applying it twice (swaps) is harmless
        penalty = colocation_penalty(self._counters()[b].get(group, 0))
        previous = self._penalties.pop((b, group), 0)
        if penalty:
            self._penalties[(b, group)] = penalty
        self._total += penalty - previous

    def compute_cost(self) -> float:
        return scale(self._min_cost, self._max_cost, self._total)

    def colocated_penalty(self) -> int:
        """Raw, unscaled co-location penalty"""
        return self._total

    def has_avoidable_colocation(self) -> bool:
        """If some group shares a server (or rack) more than it has to.

        Each group's penalty is at least its even spread floor, so any
        excess over the summed floors belongs to at least one group. Unlike
        cost() this does not fade as the number of groups grows.
        """
        return self._total > self._min_cost


class RegionReplicaRackCostFunction(RegionReplicaHostCostFunction):
    """Penalize replicas of one region placed in the same rack.

    Has no signal with fewer than two racks (including when no rack lookup
    was supplied), since spreading across racks cannot be measured.
    """

    name = "region_replica_rack"

    def is_needed(self) -> bool:
        return super().is_needed() and self.cluster.num_racks > 1

    def _num_bins(self, cluster: BalancerClusterState) -> int:
        return cluster.num_racks

    def _bin_of_server(self, server: int) -> int:
        return self.cluster.rack_of_server(server)

    def _counters(self) -> List[Counter]:
        return self.cluster.groups_per_rack

    def init_accumulators(self, cluster: BalancerClusterState) -> None:
        if cluster.num_racks <= 1:
            self._max_cost = self._min_cost = self._total = 0
            self._penalties = {}
            return
        super().init_accumulators(cluster)

    def region_moved(self, region: int, old_server: int, new_server: int) -> None:
        if self.cluster.num_racks <= 1:
            return
        super().region_moved(region, old_server, new_server)
