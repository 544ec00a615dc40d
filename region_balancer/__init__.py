from region_balancer.balancer import BalanceResult
from region_balancer.balancer import StochasticBalancer
from region_balancer.cluster_state import BalancerClusterState
from region_balancer.errors import BalancerError
from region_balancer.errors import InvalidActionError
from region_balancer.errors import InvalidClusterStateError
from region_balancer.interface import BalancerConfig
from region_balancer.interface import ENSEMBLE_TABLE_NAME
from region_balancer.interface import RegionInfo
from region_balancer.interface import RegionLoad
from region_balancer.interface import RegionPlan
from region_balancer.interface import ServerName

__all__ = [
    "BalanceResult",
    "BalancerClusterState",
    "BalancerConfig",
    "BalancerError",
    "ENSEMBLE_TABLE_NAME",
    "InvalidActionError",
    "InvalidClusterStateError",
    "RegionInfo",
    "RegionLoad",
    "RegionPlan",
    "ServerName",
    "StochasticBalancer",
]
