from typing import Dict
from typing import List
from typing import Optional
from typing import Type

from region_balancer.cost_functions.base import array_cost
from region_balancer.cost_functions.base import COST_EPSILON
from region_balancer.cost_functions.base import CostFunction
from region_balancer.cost_functions.base import scale
from region_balancer.cost_functions.load import CPRequestCostFunction
from region_balancer.cost_functions.load import LocalityCostFunction
from region_balancer.cost_functions.load import MemStoreSizeCostFunction
from region_balancer.cost_functions.load import RackLocalityCostFunction
from region_balancer.cost_functions.load import ReadRequestCostFunction
from region_balancer.cost_functions.load import StoreFileCostFunction
from region_balancer.cost_functions.load import WriteRequestCostFunction
from region_balancer.cost_functions.replica import RegionReplicaHostCostFunction
from region_balancer.cost_functions.replica import RegionReplicaRackCostFunction
from region_balancer.cost_functions.skew import MoveCostFunction
from region_balancer.cost_functions.skew import PrimaryRegionCountSkewCostFunction
from region_balancer.cost_functions.skew import RegionCountSkewCostFunction
from region_balancer.cost_functions.skew import TableSkewCostFunction
from region_balancer.interface import BalancerConfig

__all__ = [
    "array_cost",
    "scale",
    "COST_EPSILON",
    "CostFunction",
    "CPRequestCostFunction",
    "LocalityCostFunction",
    "MemStoreSizeCostFunction",
    "MoveCostFunction",
    "PrimaryRegionCountSkewCostFunction",
    "RackLocalityCostFunction",
    "ReadRequestCostFunction",
    "RegionCountSkewCostFunction",
    "RegionReplicaHostCostFunction",
    "RegionReplicaRackCostFunction",
    "StoreFileCostFunction",
    "TableSkewCostFunction",
    "WriteRequestCostFunction",
    "cost_function_types",
    "default_cost_functions",
]


def cost_function_types() -> Dict[str, Type[CostFunction]]:
    return {
        cls.name: cls
        for cls in (
            RegionCountSkewCostFunction,
            PrimaryRegionCountSkewCostFunction,
            MoveCostFunction,
            RackLocalityCostFunction,
            LocalityCostFunction,
            TableSkewCostFunction,
            RegionReplicaHostCostFunction,
            RegionReplicaRackCostFunction,
            ReadRequestCostFunction,
            CPRequestCostFunction,
            WriteRequestCostFunction,
            MemStoreSizeCostFunction,
            StoreFileCostFunction,
        )
    }


def default_cost_functions(
    config: Optional[BalancerConfig] = None,
) -> List[CostFunction]:
    """One instance of every known cost function, weighted from config"""
    config = config or BalancerConfig()
    return [cls.from_config(config) for cls in cost_function_types().values()]
