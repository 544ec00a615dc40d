"""
Strategies proposing a single action for the search loop to evaluate.

Generators are stateless: everything they need comes from the snapshot and
the random generator passed in, so one instance can serve any number of
concurrent balancing runs.
"""

from typing import Dict
from typing import List

import numpy as np

from region_balancer.actions import BalanceAction
from region_balancer.actions import MoveRegionAction
from region_balancer.actions import NULL_ACTION
from region_balancer.actions import SwapRegionsAction
from region_balancer.cluster_state import BalancerClusterState


class CandidateGenerator:
    name = "candidate"

    def generate(
        self, cluster: BalancerClusterState, rng: np.random.Generator
    ) -> BalanceAction:
        # quiet pylint
        (_, _) = (cluster, rng)
        return NULL_ACTION

    @staticmethod
    def pick_random_server(
        cluster: BalancerClusterState, rng: np.random.Generator
    ) -> int:
        if cluster.num_servers < 1:
            return -1
        return int(rng.integers(cluster.num_servers))

    @staticmethod
    def pick_other_random_server(
        cluster: BalancerClusterState, server: int, rng: np.random.Generator
    ) -> int:
        if cluster.num_servers < 2:
            return -1
        # Draw from every server but one and skip over the excluded one
        other = int(rng.integers(cluster.num_servers - 1))
        return other + 1 if other >= server else other

    @staticmethod
    def get_action(
        from_server: int, from_region: int, to_server: int, to_region: int
    ) -> BalanceAction:
        if from_server < 0 or to_server < 0 or from_server == to_server:
            return NULL_ACTION
        if from_region >= 0 and to_region >= 0:
            return SwapRegionsAction(
                from_server=from_server,
                from_region=from_region,
                to_server=to_server,
                to_region=to_region,
            )
        if from_region >= 0:
            return MoveRegionAction(
                region=from_region, from_server=from_server, to_server=to_server
            )
        if to_region >= 0:
            return MoveRegionAction(
                region=to_region, from_server=to_server, to_server=from_server
            )
        return NULL_ACTION

    def pick_random_regions(
        self,
        cluster: BalancerClusterState,
        this_server: int,
        other_server: int,
        rng: np.random.Generator,
    ) -> BalanceAction:
        """Move or swap between two servers.

        The server with more regions always gives one up, the other one only
        half of the time (the rest of the time the action is a plain move).
        """
        this_count = cluster.region_count_per_server[this_server]
        other_count = cluster.region_count_per_server[other_server]
        this_chance = 0.0 if this_count > other_count else 0.5
        other_chance = 0.0 if this_count <= other_count else 0.5
        this_region = cluster.pick_random_region(this_server, rng, this_chance)
        other_region = cluster.pick_random_region(other_server, rng, other_chance)
        return self.get_action(this_server, this_region, other_server, other_region)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class RandomCandidateGenerator(CandidateGenerator):
    """Move or swap random regions between two random servers"""

    name = "random"

    def generate(
        self, cluster: BalancerClusterState, rng: np.random.Generator
    ) -> BalanceAction:
        this_server = self.pick_random_server(cluster, rng)
        other_server = self.pick_other_random_server(cluster, this_server, rng)
        if this_server < 0 or other_server < 0:
            return NULL_ACTION
        return self.pick_random_regions(cluster, this_server, other_server, rng)


class LoadCandidateGenerator(CandidateGenerator):
    """Move a random region from the most loaded to the least loaded server"""

    name = "load"

    def generate(
        self, cluster: BalancerClusterState, rng: np.random.Generator
    ) -> BalanceAction:
        most = cluster.most_loaded_server()
        least = cluster.least_loaded_server()
        counts = cluster.region_count_per_server
        if most == least or counts[most] - counts[least] < 2:
            return NULL_ACTION
        region = cluster.pick_random_region(most, rng)
        return self.get_action(most, region, least, -1)


class LocalityCandidateGenerator(CandidateGenerator):
    """Move a random region to the server holding most of its data"""

    name = "locality"

    def generate(
        self, cluster: BalancerClusterState, rng: np.random.Generator
    ) -> BalanceAction:
        if not cluster.has_locality or cluster.num_regions == 0:
            return NULL_ACTION
        region = int(rng.integers(cluster.num_regions))
        current = cluster.server_of_region(region)
        current_locality = cluster.locality_of_region(region, current)
        for server in cluster.servers_by_locality(region):
            if server == current:
                continue
            if cluster.locality_of_region(region, server) <= current_locality:
                break
            return self.get_action(current, region, server, -1)
        return NULL_ACTION


class RegionReplicaHostCandidateGenerator(CandidateGenerator):
    """Split up replicas of one region that share a server.

    Picks a random server, and if some replica group has more than one
    member there, moves one of them to a server hosting no member of that
    group. Falls back to a random action when the server has no co-location.
    """

    name = "region_replica_host"

    def __init__(self):
        self._fallback = RandomCandidateGenerator()

    def generate(
        self, cluster: BalancerClusterState, rng: np.random.Generator
    ) -> BalanceAction:
        server = self.pick_random_server(cluster, rng)
        if server < 0 or not cluster.has_region_replicas:
            return self._fallback.generate(cluster, rng)
        groups = cluster.colocated_groups_on_server(server)
        if not groups:
            return self._fallback.generate(cluster, rng)

        group = groups[int(rng.integers(len(groups)))]
        members = [
            r
            for r in cluster.regions_of_group[group]
            if cluster.server_of_region(r) == server
        ]
        region = members[int(rng.integers(len(members)))]

        occupied = set(cluster.servers_of_group(group))
        free = [s for s in range(cluster.num_servers) if s not in occupied]
        if free:
            target = free[int(rng.integers(len(free)))]
        else:
            target = self.pick_other_random_server(cluster, server, rng)
        return self.get_action(server, region, target, -1)


class RegionReplicaRackCandidateGenerator(RegionReplicaHostCandidateGenerator):
    """Split up replicas of one region that share a rack"""

    name = "region_replica_rack"

    def generate(
        self, cluster: BalancerClusterState, rng: np.random.Generator
    ) -> BalanceAction:
        if cluster.num_racks < 2 or not cluster.has_region_replicas:
            return self._fallback.generate(cluster, rng)
        rack = int(rng.integers(cluster.num_racks))
        groups = cluster.colocated_groups_on_rack(rack)
        if not groups:
            return self._fallback.generate(cluster, rng)

        group = groups[int(rng.integers(len(groups)))]
        members = [
            r
            for r in cluster.regions_of_group[group]
            if cluster.rack_of_server(cluster.server_of_region(r)) == rack
        ]
        region = members[int(rng.integers(len(members)))]
        server = cluster.server_of_region(region)

        occupied = {cluster.rack_of_server(s) for s in cluster.servers_of_group(group)}
        racks: List[int] = [k for k in range(cluster.num_racks) if k not in occupied]
        if not racks:
            racks = [k for k in range(cluster.num_racks) if k != rack]
        target_rack = racks[int(rng.integers(len(racks)))]
        servers = cluster.servers_per_rack[target_rack]
        target = servers[int(rng.integers(len(servers)))]
        return self.get_action(server, region, target, -1)


def candidate_generator_types() -> Dict[str, type]:
    return {
        cls.name: cls
        for cls in (
            RandomCandidateGenerator,
            LoadCandidateGenerator,
            LocalityCandidateGenerator,
            RegionReplicaHostCandidateGenerator,
            RegionReplicaRackCandidateGenerator,
        )
    }


def default_candidate_generators() -> List[CandidateGenerator]:
    return [cls() for cls in candidate_generator_types().values()]
