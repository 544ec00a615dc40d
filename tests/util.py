from collections import Counter
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence

import numpy as np

from region_balancer.cluster_state import BalancerClusterState
from region_balancer.interface import RegionInfo
from region_balancer.interface import RegionLoad
from region_balancer.interface import ServerName
from region_balancer.topology import RackLookup

# Regions per server of small clusters, from empty to badly skewed
CLUSTER_STATE_MOCKS: List[List[int]] = [
    [0],
    [1],
    [10],
    [0, 0],
    [0, 1],
    [1, 1],
    [0, 0, 0, 20],
    [0, 0, 0, 100],
    [2, 2, 2],
    [3, 3, 3],
    [1, 2, 3, 4, 5],
    [10, 1],
    [50, 1],
    [1, 1, 1, 1, 1, 1, 1, 1, 1, 1],
    [10, 1, 1, 1, 1, 1, 1, 1, 1, 1],
    [0, 1, 2, 3, 4, 5, 6, 7, 8, 9],
    [13, 14, 6, 10, 10, 10, 8, 10],
    [130, 14, 60, 10, 100, 10, 80, 10],
    [1, 1, 1, 1, 1, 1, 1, 1, 1, 0, 0, 0, 0, 0, 0, 0],
]


def server(index: int, host_suffix: str = "") -> ServerName:
    return ServerName(host=f"srv{index:03d}{host_suffix}", port=1000, start_code=11111)


def region(index: int, table: str = "table0", replica_id: int = 0) -> RegionInfo:
    return RegionInfo(
        table=table,
        start_key=f"{index:08d}",
        end_key=f"{index + 1:08d}",
        region_id=index,
        replica_id=replica_id,
    )


def random_regions(
    count: int, start: int = 0, table: str = "table0"
) -> List[RegionInfo]:
    return [region(start + i, table=table) for i in range(count)]


def mock_cluster_servers(
    regions_per_server: Sequence[int], num_tables: int = 1
) -> Dict[ServerName, List[RegionInfo]]:
    """Servers named in index order, regions numbered across servers"""
    result: Dict[ServerName, List[RegionInfo]] = {}
    next_region = 0
    for i, count in enumerate(regions_per_server):
        regions = []
        for _ in range(count):
            regions.append(region(next_region, table=f"table{next_region % num_tables}"))
            next_region += 1
        result[server(i)] = regions
    return result


def mock_cluster(
    regions_per_server: Sequence[int], rack_lookup: Optional[RackLookup] = None
) -> BalancerClusterState:
    return BalancerClusterState(
        mock_cluster_servers(regions_per_server), rack_lookup=rack_lookup
    )


def first_server(mapping: Dict[ServerName, List[RegionInfo]]) -> ServerName:
    return min(mapping)


def last_server(mapping: Dict[ServerName, List[RegionInfo]]) -> ServerName:
    return max(mapping)


def mock_replicated_servers(  # pylint: disable=too-many-positional-arguments
    num_servers: int,
    num_regions: int,
    replication: int,
    num_tables: int = 1,
    seed: int = 42,
) -> Dict[ServerName, List[RegionInfo]]:
    """Every replica of every region on a uniformly random server.

    Replicas of a region may well land together, which is the point.
    """
    rng = np.random.default_rng(seed)
    result: Dict[ServerName, List[RegionInfo]] = {
        server(i): [] for i in range(num_servers)
    }
    servers = sorted(result)
    for i in range(num_regions):
        for replica_id in range(replication):
            target = servers[int(rng.integers(num_servers))]
            result[target].append(
                region(i, table=f"table{i % num_tables}", replica_id=replica_id)
            )
    return result


def mock_region_loads(
    mapping: Dict[ServerName, List[RegionInfo]], seed: int = 7
) -> Dict[RegionInfo, RegionLoad]:
    rng = np.random.default_rng(seed)
    return {
        r: RegionLoad(
            read_requests_per_second=float(rng.uniform(0, 1000)),
            write_requests_per_second=float(rng.uniform(0, 100)),
            cp_requests_per_second=float(rng.uniform(0, 10)),
            memstore_size_mb=float(rng.uniform(0, 256)),
            storefile_size_mb=float(rng.uniform(0, 10240)),
        )
        for regions in mapping.values()
        for r in regions
    }


def mock_region_locality(
    mapping: Dict[ServerName, List[RegionInfo]], seed: int = 11
) -> Dict[RegionInfo, Dict[str, float]]:
    rng = np.random.default_rng(seed)
    hosts = sorted(s.host for s in mapping)
    locality = {}
    for regions in mapping.values():
        for r in regions:
            chosen = rng.choice(len(hosts), size=min(3, len(hosts)), replace=False)
            locality[r] = {hosts[int(h)]: float(rng.uniform(0, 1)) for h in chosen}
    return locality


def two_rack_lookup(server_name: ServerName) -> str:
    return "rack1" if server_name.host.endswith("1") else "rack2"


def modulo_rack_lookup(num_racks: int) -> RackLookup:
    def lookup(server_name: ServerName) -> str:
        return f"rack{int(server_name.host[3:6]) % num_racks}"

    return lookup


def assert_consistent(cluster: BalancerClusterState) -> None:
    """Every derived index agrees with region_index_to_server_index"""
    assignment = cluster.region_index_to_server_index
    hosted = sorted(r for regions in cluster.regions_per_server for r in regions)
    assert hosted == list(range(cluster.num_regions))

    for s in range(cluster.num_servers):
        on_server = [r for r in range(cluster.num_regions) if assignment[r] == s]
        assert sorted(cluster.regions_per_server[s]) == on_server
        assert cluster.region_count_per_server[s] == len(on_server)
        assert cluster.primary_count_per_server[s] == sum(
            1 for r in on_server if cluster.regions[r].is_primary
        )
        groups = Counter(int(cluster.region_index_to_group_index[r]) for r in on_server)
        assert cluster.groups_per_server[s] == groups
        for t in range(cluster.num_tables):
            assert cluster.num_regions_per_server_per_table[t, s] == sum(
                1 for r in on_server if cluster.region_index_to_table_index[r] == t
            )

    for k in range(cluster.num_racks):
        in_rack = [
            r
            for r in range(cluster.num_regions)
            if cluster.server_index_to_rack_index[assignment[r]] == k
        ]
        assert cluster.region_count_per_rack[k] == len(in_rack)
        groups = Counter(int(cluster.region_index_to_group_index[r]) for r in in_rack)
        assert cluster.groups_per_rack[k] == groups


def colocated_replica_groups(mapping: Dict[ServerName, List[RegionInfo]]) -> int:
    """Number of (server, replica group) pairs with more than one member"""
    total = 0
    for regions in mapping.values():
        counts = Counter(r.group_key for r in regions)
        total += sum(1 for c in counts.values() if c > 1)
    return total
