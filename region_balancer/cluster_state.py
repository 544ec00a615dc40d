"""
In memory snapshot of a cluster used by one balancing run.

Servers, racks, tables, regions and replica groups are all turned into dense
integer indices when the snapshot is built. Cost functions and candidate
generators only ever look at those indices and at the counters kept here, so
a region move is a handful of O(1) updates rather than a rebuild.

A snapshot is owned by exactly one balancing run. It is mutated in place by
accepted (and rolled back) actions and thrown away when the run ends.
"""

import logging
from collections import Counter
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Sequence
from typing import Tuple

import numpy as np

from region_balancer.actions import BalanceAction
from region_balancer.actions import RegionMove
from region_balancer.errors import InvalidActionError
from region_balancer.errors import InvalidClusterStateError
from region_balancer.interface import RegionInfo
from region_balancer.interface import RegionLoad
from region_balancer.interface import RegionPlan
from region_balancer.interface import ServerName
from region_balancer.topology import RackLookup
from region_balancer.topology import single_rack

logger = logging.getLogger(__name__)

# region -> {hostname: fraction of the region's data stored on that host}
RegionLocality = Mapping[RegionInfo, Mapping[str, float]]


# pylint: disable=too-many-instance-attributes
class BalancerClusterState:
    """Normalized view of server -> regions with derived indices.

    Args:
        server_to_regions: Regions hosted by each server. Lists may be empty,
            a region may only appear once across the whole mapping.
        region_loads: Optional load hint per region.
        region_locality: Optional per region, per host data locality hint.
        rack_lookup: Maps a server to its rack. When absent every server is
            placed on one implicit rack and rack aware costs have no signal.
    """

    def __init__(
        self,
        server_to_regions: Mapping[ServerName, Sequence[RegionInfo]],
        region_loads: Optional[Mapping[RegionInfo, RegionLoad]] = None,
        region_locality: Optional[RegionLocality] = None,
        rack_lookup: Optional[RackLookup] = None,
    ):
        rack_lookup = rack_lookup or single_rack

        self.servers: List[ServerName] = sorted(server_to_regions)
        self.num_servers = len(self.servers)
        self.server_index: Dict[ServerName, int] = {
            s: i for i, s in enumerate(self.servers)
        }

        # Racks, resolved once per server
        self.racks: List[str] = []
        rack_index: Dict[str, int] = {}
        self.server_index_to_rack_index = np.zeros(self.num_servers, dtype=np.int64)
        for s, server in enumerate(self.servers):
            rack = rack_lookup(server)
            if rack not in rack_index:
                rack_index[rack] = len(self.racks)
                self.racks.append(rack)
            self.server_index_to_rack_index[s] = rack_index[rack]
        self.num_racks = len(self.racks)
        self.servers_per_rack: List[List[int]] = [[] for _ in self.racks]
        for s in range(self.num_servers):
            self.servers_per_rack[self.server_index_to_rack_index[s]].append(s)

        # Regions, tables and replica groups
        self.regions: List[RegionInfo] = []
        self.region_index: Dict[RegionInfo, int] = {}
        self.tables: List[str] = []
        table_index: Dict[str, int] = {}
        group_index: Dict[Tuple[str, str, str, int], int] = {}
        initial_servers: List[int] = []
        region_tables: List[int] = []
        region_groups: List[int] = []
        for s, server in enumerate(self.servers):
            for region in server_to_regions[server]:
                if region in self.region_index:
                    other = initial_servers[self.region_index[region]]
                    raise InvalidClusterStateError(
                        f"Region {region} is listed on both "
                        f"{self.servers[other]} and {server}"
                    )
                self.region_index[region] = len(self.regions)
                self.regions.append(region)
                initial_servers.append(s)
                if region.table not in table_index:
                    table_index[region.table] = len(self.tables)
                    self.tables.append(region.table)
                region_tables.append(table_index[region.table])
                if region.group_key not in group_index:
                    group_index[region.group_key] = len(group_index)
                region_groups.append(group_index[region.group_key])

        self.num_regions = len(self.regions)
        self.num_tables = len(self.tables)
        self.num_groups = len(group_index)

        self.region_index_to_server_index = np.array(initial_servers, dtype=np.int64)
        self.initial_region_index_to_server_index = (
            self.region_index_to_server_index.copy()
        )
        self.region_index_to_table_index = np.array(region_tables, dtype=np.int64)
        self.region_index_to_group_index = np.array(region_groups, dtype=np.int64)
        self.region_is_primary = np.array(
            [r.is_primary for r in self.regions], dtype=bool
        )

        self.regions_of_group: List[List[int]] = [[] for _ in range(self.num_groups)]
        for r, g in enumerate(region_groups):
            self.regions_of_group[g].append(r)
        self.replica_group_size = np.array(
            [len(members) for members in self.regions_of_group], dtype=np.int64
        )
        self.has_region_replicas = bool(
            self.num_groups and self.replica_group_size.max() > 1
        )

        # Everything below is derived from region_index_to_server_index and is
        # kept current by _apply_move
        self.regions_per_server: List[List[int]] = [[] for _ in self.servers]
        self._region_slot = np.zeros(self.num_regions, dtype=np.int64)
        self.region_count_per_server = np.zeros(self.num_servers, dtype=np.int64)
        self.region_count_per_rack = np.zeros(self.num_racks, dtype=np.int64)
        self.primary_count_per_server = np.zeros(self.num_servers, dtype=np.int64)
        self.num_regions_per_server_per_table = np.zeros(
            (self.num_tables, self.num_servers), dtype=np.int64
        )
        # group index -> number of that group's members on the server / rack
        self.groups_per_server: List[Counter] = [Counter() for _ in self.servers]
        self.groups_per_rack: List[Counter] = [Counter() for _ in self.racks]
        for r in range(self.num_regions):
            self._add_to_server(r, int(self.region_index_to_server_index[r]))

        self._load_hints(region_loads)
        self._locality_hints(region_locality)

        logger.debug(
            "Built cluster state with %d servers, %d racks, %d tables, "
            "%d regions in %d replica groups",
            self.num_servers,
            self.num_racks,
            self.num_tables,
            self.num_regions,
            self.num_groups,
        )

    def _load_hints(self, region_loads: Optional[Mapping[RegionInfo, RegionLoad]]):
        self.region_loads: List[Optional[RegionLoad]] = [None] * self.num_regions
        self.has_region_loads = False
        if not region_loads:
            return
        for region, load in region_loads.items():
            r = self.region_index.get(region)
            if r is None:
                logger.debug("Ignoring load of region %s that has no server", region)
                continue
            self.region_loads[r] = load
            self.has_region_loads = True

    def _locality_hints(self, region_locality: Optional[RegionLocality]):
        self._server_locality: List[Dict[int, float]] = [
            {} for _ in range(self.num_regions)
        ]
        self._rack_locality: List[Dict[int, float]] = [
            {} for _ in range(self.num_regions)
        ]
        self.has_locality = False
        if not region_locality:
            return

        servers_by_host: Dict[str, List[int]] = {}
        for s, server in enumerate(self.servers):
            servers_by_host.setdefault(server.host, []).append(s)

        for region, by_host in region_locality.items():
            r = self.region_index.get(region)
            if r is None:
                continue
            for host, fraction in by_host.items():
                fraction = min(1.0, max(0.0, float(fraction)))
                for s in servers_by_host.get(host, ()):
                    self._server_locality[r][s] = fraction
                    k = int(self.server_index_to_rack_index[s])
                    self._rack_locality[r][k] = max(
                        self._rack_locality[r].get(k, 0.0), fraction
                    )
                    self.has_locality = True

    ###########################################################################
    #                               Lookups                                   #
    ###########################################################################

    def server_of_region(self, region: int) -> int:
        return int(self.region_index_to_server_index[region])

    def rack_of_server(self, server: int) -> int:
        return int(self.server_index_to_rack_index[server])

    def locality_of_region(self, region: int, server: int) -> float:
        return self._server_locality[region].get(server, 0.0)

    def rack_locality_of_region(self, region: int, rack: int) -> float:
        return self._rack_locality[region].get(rack, 0.0)

    def best_locality_of_region(self, region: int) -> float:
        return max(self._server_locality[region].values(), default=0.0)

    def best_rack_locality_of_region(self, region: int) -> float:
        return max(self._rack_locality[region].values(), default=0.0)

    def servers_by_locality(self, region: int) -> List[int]:
        """Servers holding some of the region's data, most local first"""
        by_locality = self._server_locality[region]
        return sorted(by_locality, key=lambda s: (-by_locality[s], s))

    def colocated_groups_on_server(self, server: int) -> List[int]:
        return sorted(g for g, c in self.groups_per_server[server].items() if c > 1)

    def colocated_groups_on_rack(self, rack: int) -> List[int]:
        return sorted(g for g, c in self.groups_per_rack[rack].items() if c > 1)

    def servers_of_group(self, group: int) -> List[int]:
        return [self.server_of_region(r) for r in self.regions_of_group[group]]

    def most_loaded_server(self) -> int:
        return int(np.argmax(self.region_count_per_server))

    def least_loaded_server(self) -> int:
        return int(np.argmin(self.region_count_per_server))

    def pick_random_region(
        self, server: int, rng: np.random.Generator, chance_of_no_swap: float = 0.0
    ) -> int:
        """Random region on server, or -1 if it has none (or we chose none)"""
        regions = self.regions_per_server[server]
        if not regions:
            return -1
        if chance_of_no_swap > 0 and rng.random() < chance_of_no_swap:
            return -1
        return regions[int(rng.integers(len(regions)))]

    ###########################################################################
    #                              Mutation                                   #
    ###########################################################################

    def move_region(self, region: int, from_server: int, to_server: int) -> None:
        """Move region between servers, updating every derived index.

        Raises InvalidActionError (leaving the snapshot untouched) if region
        is not currently hosted on from_server.
        """
        self._check_move((region, from_server, to_server))
        self._apply_move(region, from_server, to_server)

    def do_action(self, action: BalanceAction) -> None:
        """Apply every region move of action, or none of them"""
        moves = list(action.region_moves())
        if len(moves) == 2:
            (a, a_from, a_to), (b, b_from, b_to) = moves
            if a == b or a_from != b_to or a_to != b_from:
                raise InvalidActionError(f"Malformed swap {action}")
        for move in moves:
            self._check_move(move)
        for region, from_server, to_server in moves:
            self._apply_move(region, from_server, to_server)

    def _check_move(self, move: RegionMove) -> None:
        region, from_server, to_server = move
        if not 0 <= region < self.num_regions:
            raise InvalidActionError(f"Unknown region index {region}")
        for server in (from_server, to_server):
            if not 0 <= server < self.num_servers:
                raise InvalidActionError(f"Unknown server index {server}")
        current = self.region_index_to_server_index[region]
        if current != from_server:
            raise InvalidActionError(
                f"Region {self.regions[region]} is on {self.servers[current]}, "
                f"not on {self.servers[from_server]}"
            )

    def _apply_move(self, region: int, from_server: int, to_server: int) -> None:
        if from_server == to_server:
            return
        self._remove_from_server(region, from_server)
        self.region_index_to_server_index[region] = to_server
        self._add_to_server(region, to_server)

    def _add_to_server(self, region: int, server: int) -> None:
        hosted = self.regions_per_server[server]
        self._region_slot[region] = len(hosted)
        hosted.append(region)

        rack = self.server_index_to_rack_index[server]
        table = self.region_index_to_table_index[region]
        group = int(self.region_index_to_group_index[region])
        self.region_count_per_server[server] += 1
        self.region_count_per_rack[rack] += 1
        self.num_regions_per_server_per_table[table, server] += 1
        if self.region_is_primary[region]:
            self.primary_count_per_server[server] += 1
        self.groups_per_server[server][group] += 1
        self.groups_per_rack[rack][group] += 1

    def _remove_from_server(self, region: int, server: int) -> None:
        # Swap with the last hosted region so removal stays O(1)
        hosted = self.regions_per_server[server]
        slot = self._region_slot[region]
        last = hosted.pop()
        if last != region:
            hosted[slot] = last
            self._region_slot[last] = slot

        rack = self.server_index_to_rack_index[server]
        table = self.region_index_to_table_index[region]
        group = int(self.region_index_to_group_index[region])
        self.region_count_per_server[server] -= 1
        self.region_count_per_rack[rack] -= 1
        self.num_regions_per_server_per_table[table, server] -= 1
        if self.region_is_primary[region]:
            self.primary_count_per_server[server] -= 1
        _decrement(self.groups_per_server[server], group)
        _decrement(self.groups_per_rack[rack], group)

    ###########################################################################
    #                               Output                                    #
    ###########################################################################

    def assignment(self) -> Dict[ServerName, List[RegionInfo]]:
        return {
            server: [self.regions[r] for r in sorted(self.regions_per_server[s])]
            for s, server in enumerate(self.servers)
        }

    def region_plans(self) -> List[RegionPlan]:
        moved = np.nonzero(
            self.region_index_to_server_index
            != self.initial_region_index_to_server_index
        )[0]
        return [
            RegionPlan(
                region=self.regions[r],
                source=self.servers[self.initial_region_index_to_server_index[r]],
                destination=self.servers[self.region_index_to_server_index[r]],
            )
            for r in moved
        ]

    def __str__(self) -> str:
        return ", ".join(
            f"{server}={self.region_count_per_server[s]}"
            for s, server in enumerate(self.servers)
        )


def _decrement(counter: Counter, key: int) -> None:
    counter[key] -= 1
    if counter[key] == 0:
        del counter[key]
