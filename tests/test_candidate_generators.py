import numpy as np
import pytest

from region_balancer.actions import ActionType
from region_balancer.actions import MoveRegionAction
from region_balancer.actions import NULL_ACTION
from region_balancer.candidate_generators import candidate_generator_types
from region_balancer.candidate_generators import CandidateGenerator
from region_balancer.candidate_generators import default_candidate_generators
from region_balancer.candidate_generators import LoadCandidateGenerator
from region_balancer.candidate_generators import LocalityCandidateGenerator
from region_balancer.candidate_generators import RandomCandidateGenerator
from region_balancer.candidate_generators import RegionReplicaHostCandidateGenerator
from region_balancer.candidate_generators import RegionReplicaRackCandidateGenerator
from region_balancer.cluster_state import BalancerClusterState
from region_balancer.interface import BalancerConfig
from tests.util import assert_consistent
from tests.util import mock_cluster
from tests.util import mock_cluster_servers
from tests.util import mock_region_locality
from tests.util import mock_replicated_servers
from tests.util import modulo_rack_lookup
from tests.util import region
from tests.util import server


def test_every_generator_is_registered():
    assert set(candidate_generator_types()) == set(BalancerConfig().generator_weights)
    assert len(default_candidate_generators()) == 5


@pytest.mark.parametrize("generator", default_candidate_generators(), ids=repr)
def test_generated_actions_always_apply(generator):
    mapping = mock_replicated_servers(7, 30, 3, num_tables=2, seed=3)
    cluster = BalancerClusterState(
        mapping,
        region_locality=mock_region_locality(mapping),
        rack_lookup=modulo_rack_lookup(3),
    )
    rng = np.random.default_rng(5)
    for _ in range(300):
        action = generator.generate(cluster, rng)
        cluster.do_action(action)
    assert_consistent(cluster)


@pytest.mark.parametrize("generator", default_candidate_generators(), ids=repr)
def test_single_server_yields_null(generator):
    cluster = mock_cluster([5])
    rng = np.random.default_rng(0)
    for _ in range(20):
        assert generator.generate(cluster, rng) == NULL_ACTION


def test_base_generator_does_nothing():
    assert CandidateGenerator().generate(mock_cluster([1, 1]), None) == NULL_ACTION


def test_get_action():
    assert CandidateGenerator.get_action(0, 1, 0, 2) == NULL_ACTION
    assert CandidateGenerator.get_action(-1, 1, 0, 2) == NULL_ACTION
    assert CandidateGenerator.get_action(0, -1, 1, -1) == NULL_ACTION
    assert CandidateGenerator.get_action(0, 3, 1, -1) == MoveRegionAction(
        region=3, from_server=0, to_server=1
    )
    assert CandidateGenerator.get_action(0, -1, 1, 4) == MoveRegionAction(
        region=4, from_server=1, to_server=0
    )
    swap = CandidateGenerator.get_action(0, 3, 1, 4)
    assert swap.action_type == ActionType.swap_regions


def test_pick_other_random_server_never_returns_itself():
    cluster = mock_cluster([1, 1, 1, 1])
    rng = np.random.default_rng(2)
    for s in range(cluster.num_servers):
        picked = {
            CandidateGenerator.pick_other_random_server(cluster, s, rng)
            for _ in range(100)
        }
        assert s not in picked
        assert picked == set(range(cluster.num_servers)) - {s}


def test_random_generator_moves_between_servers():
    cluster = mock_cluster([4, 0])
    rng = np.random.default_rng(0)
    generator = RandomCandidateGenerator()
    actions = [generator.generate(cluster, rng) for _ in range(50)]
    moves = [a for a in actions if a != NULL_ACTION]
    assert moves
    # An empty server can only receive
    for action in moves:
        assert action.action_type == ActionType.move_region
        assert (action.from_server, action.to_server) == (0, 1)


def test_load_generator():
    generator = LoadCandidateGenerator()
    rng = np.random.default_rng(0)

    action = generator.generate(mock_cluster([1, 6, 0]), rng)
    assert action.action_type == ActionType.move_region
    assert action.from_server == 1
    assert action.to_server == 2

    # Within one region of each other, moving would not help
    assert generator.generate(mock_cluster([2, 1, 2]), rng) == NULL_ACTION


def test_locality_generator_moves_towards_data():
    mapping = mock_cluster_servers([2, 0])
    locality = {region(0): {"srv001": 0.9}, region(1): {"srv000": 0.9}}
    cluster = BalancerClusterState(mapping, region_locality=locality)
    rng = np.random.default_rng(0)
    generator = LocalityCandidateGenerator()

    actions = {generator.generate(cluster, rng) for _ in range(50)}
    assert actions == {
        MoveRegionAction(region=0, from_server=0, to_server=1),
        NULL_ACTION,
    }
    assert generator.generate(mock_cluster([2, 0]), rng) == NULL_ACTION


def test_replica_host_generator_moves_to_free_server():
    primary = region(0)
    mapping = {
        server(0): [primary, primary.replica(1)],
        server(1): [primary.replica(2)],
        server(2): [],
    }
    cluster = BalancerClusterState(mapping)
    generator = RegionReplicaHostCandidateGenerator()
    # Only look at what the generator itself proposes
    generator._fallback = CandidateGenerator()  # pylint: disable=protected-access
    rng = np.random.default_rng(0)

    actions = [generator.generate(cluster, rng) for _ in range(50)]
    moves = [a for a in actions if a != NULL_ACTION]
    assert moves
    for action in moves:
        assert action.action_type == ActionType.move_region
        assert action.region in (0, 1)
        assert (action.from_server, action.to_server) == (0, 2)


def test_replica_rack_generator_moves_to_other_rack():
    primary = region(0)
    # srv000 and srv002 are in rack0, srv001 in rack1
    mapping = {
        server(0): [primary],
        server(2): [primary.replica(1)],
        server(1): [],
    }
    cluster = BalancerClusterState(mapping, rack_lookup=modulo_rack_lookup(2))
    generator = RegionReplicaRackCandidateGenerator()
    generator._fallback = CandidateGenerator()  # pylint: disable=protected-access
    rng = np.random.default_rng(0)

    actions = [generator.generate(cluster, rng) for _ in range(50)]
    moves = [a for a in actions if a != NULL_ACTION]
    assert moves
    for action in moves:
        assert action.action_type == ActionType.move_region
        assert action.from_server in (0, 2)
        assert action.to_server == 1
