# -*- coding: utf-8 -*-
"""
Stochastic (simulated annealing) region balancer.

The balancer scores a snapshot with a weighted sum of cost functions and
walks the assignment space one action at a time:

    1. pick a candidate generator (by configured weight) and ask it for an
       action
    2. apply the action to the snapshot and let every cost function account
       for it incrementally
    3. keep the action if the weighted cost went down, or with probability
       exp(-delta / T) if it went up, otherwise roll it back

The temperature T decays geometrically with every step so the walk turns
greedy towards the end of its budget. Because the walk may end somewhere
worse than the best assignment it visited, every action taken since the best
one is undone before returning.
"""
import logging
import math
import time
from dataclasses import dataclass
from dataclasses import field
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Sequence

import numpy as np

from region_balancer.actions import ActionType
from region_balancer.actions import BalanceAction
from region_balancer.candidate_generators import CandidateGenerator
from region_balancer.candidate_generators import default_candidate_generators
from region_balancer.cluster_state import BalancerClusterState
from region_balancer.cluster_state import RegionLocality
from region_balancer.cost_functions import CostFunction
from region_balancer.cost_functions import default_cost_functions
from region_balancer.cost_functions import RegionReplicaHostCostFunction
from region_balancer.cost_functions import RegionReplicaRackCostFunction
from region_balancer.interface import BalancerConfig
from region_balancer.interface import ENSEMBLE_TABLE_NAME
from region_balancer.interface import RegionInfo
from region_balancer.interface import RegionLoad
from region_balancer.interface import RegionPlan
from region_balancer.interface import ServerName
from region_balancer.topology import RackLookup

logger = logging.getLogger(__name__)

# Nothing to balance with fewer servers than this
MIN_SERVER_BALANCE = 2


@dataclass(frozen=True)
class BalanceResult:  # pylint: disable=too-many-instance-attributes
    """Output of a balancing run.

    Attributes:
        plans: Moves taking the input assignment to the proposed one
        assignment: Proposed server -> regions mapping
        initial_cost: Weighted cost of the input assignment
        final_cost: Weighted cost of the proposed assignment, never higher
            than initial_cost
        balanced: True if the input was judged balanced and not searched
    """

    plans: List[RegionPlan]
    assignment: Dict[ServerName, List[RegionInfo]]
    initial_cost: float
    final_cost: float
    steps: int = 0
    accepted_steps: int = 0
    elapsed_seconds: float = 0.0
    balanced: bool = False
    table: str = ENSEMBLE_TABLE_NAME
    cost_breakdown: Dict[str, float] = field(default_factory=dict)


class StochasticBalancer:
    """Decision engine combining cost functions and candidate generators.

    One balancer may be reused for any number of runs. Each run owns the
    snapshot it is given until it returns; the balancer keeps a reference to
    the snapshot its cost functions were last prepared on.
    """

    def __init__(
        self,
        config: Optional[BalancerConfig] = None,
        cost_functions: Optional[Sequence[CostFunction]] = None,
        generators: Optional[Sequence[CandidateGenerator]] = None,
    ):
        self.config = config or BalancerConfig()
        if cost_functions is None:
            cost_functions = default_cost_functions(self.config)
        if generators is None:
            generators = default_candidate_generators()
        self.cost_functions: List[CostFunction] = list(cost_functions)
        self.generators: List[CandidateGenerator] = list(generators)
        if not self.generators:
            raise ValueError("At least one candidate generator is required")

        weights = np.array(
            [self.config.generator_weights.get(g.name, 1.0) for g in self.generators],
            dtype=np.float64,
        )
        if weights.sum() <= 0:
            raise ValueError(
                "Generator weights for "
                f"{[g.name for g in self.generators]} are all zero"
            )
        self._generator_probabilities = weights / weights.sum()

        # The fast path always looks at replica co-location, even if the
        # caller left those functions out of the weighted sum
        self._replica_host = self._find_or_create(RegionReplicaHostCostFunction)
        self._replica_rack = self._find_or_create(RegionReplicaRackCostFunction)
        self._all_functions = list(self.cost_functions)
        for fn in (self._replica_host, self._replica_rack):
            if fn not in self._all_functions:
                self._all_functions.append(fn)

        self._cluster: Optional[BalancerClusterState] = None
        self._active: List[CostFunction] = []

    def _find_or_create(self, cls):
        for fn in self.cost_functions:
            if isinstance(fn, cls):
                return fn
        return cls.from_config(self.config)

    def init_costs(self, cluster: BalancerClusterState) -> None:
        """Prepare every cost function on cluster (a full scan each)"""
        for fn in self._all_functions:
            fn.prepare(cluster)
        self._cluster = cluster
        self._active = [
            fn for fn in self.cost_functions if fn.multiplier > 0 and fn.is_needed()
        ]
        logger.debug(
            "Active cost functions: %s",
            ", ".join(f"{fn.name}={fn.cost():.4f}" for fn in self._active),
        )

    def compute_cost(self, previous_cost: float = math.inf) -> float:
        """Weighted sum of the active cost functions.

        Stops adding once the sum exceeds previous_cost, the caller only
        needs to know it is worse.
        """
        total = 0.0
        for fn in self._active:
            total += fn.multiplier * fn.cost()
            if total > previous_cost:
                break
        return total

    def weighted_average_cost(self) -> float:
        sum_multiplier = sum(fn.multiplier for fn in self._active)
        if sum_multiplier <= 0:
            return 0.0
        return self.compute_cost() / sum_multiplier

    def cost_breakdown(self) -> Dict[str, float]:
        return {fn.name: fn.cost() for fn in self._active}

    def _post_action(self, action: BalanceAction) -> None:
        for fn in self._all_functions:
            fn.post_action(action)

    def _colocated(self, fn: RegionReplicaHostCostFunction) -> bool:
        # Decided on the raw penalty, the normalized cost of a single shared
        # pair vanishes in a cluster with many replica groups
        return fn.multiplier > 0 and fn.is_needed() and fn.has_avoidable_colocation()

    def needs_balance(self, table: str, cluster: BalancerClusterState) -> bool:
        """Cheap check of whether searching could improve cluster.

        Replica co-location that some sequence of moves could remove always
        needs balancing, however many other groups are well spread.
        Co-location that cannot be avoided (more replicas than servers or
        racks) never triggers a run on its own.

        Every cost function is prepared from scratch on cluster, so moves
        applied to it since an earlier call are always taken into account.
        """
        self.init_costs(cluster)
        return self._needs_balance(table, cluster)

    def _needs_balance(self, table: str, cluster: BalancerClusterState) -> bool:
        reason = self._balance_reason(cluster)
        if reason is None:
            logger.info(
                "Skipping balance of %s: weighted average cost %.4f is below "
                "%.4f (%s)",
                table,
                self.weighted_average_cost(),
                self.config.min_cost_need_balance,
                cluster,
            )
            return False
        logger.info("Balancing %s: %s", table, reason)
        return True

    def _balance_reason(self, cluster: BalancerClusterState) -> Optional[str]:
        if cluster.num_servers < MIN_SERVER_BALANCE:
            return None
        if self._colocated(self._replica_host):
            return "replicas of a region share a server"
        if self._colocated(self._replica_rack):
            return "replicas of a region share a rack"

        counts = cluster.region_count_per_server
        if cluster.num_regions > 0:
            if counts.min() == 0 and counts.max() > 1:
                return "a server is idle while others host several regions"
            average = cluster.num_regions / cluster.num_servers
            floor = math.floor(average * (1 - self.config.region_slop))
            ceiling = math.ceil(average * (1 + self.config.region_slop))
            if counts.min() < floor or counts.max() > ceiling:
                return (
                    f"region counts [{counts.min()}, {counts.max()}] are outside "
                    f"[{floor}, {ceiling}]"
                )

        average_cost = self.weighted_average_cost()
        if average_cost >= self.config.min_cost_need_balance:
            return (
                f"weighted average cost {average_cost:.4f} is at least "
                f"{self.config.min_cost_need_balance:.4f}"
            )
        return None

    def _max_steps(self, cluster: BalancerClusterState) -> int:
        if self.config.run_max_steps:
            return self.config.max_steps
        return min(
            self.config.max_steps,
            self.config.steps_per_region * cluster.num_regions * cluster.num_servers,
        )

    def balance_cluster(
        self, cluster: BalancerClusterState, table: str = ENSEMBLE_TABLE_NAME
    ) -> BalanceResult:
        """Improve the assignment of cluster in place.

        Returns when the step budget or the time budget is spent, or as soon
        as the cost is (near) zero. Running out of budget is the normal way
        for this to end. cluster is left holding the best assignment seen.
        """
        start = time.monotonic()
        self.init_costs(cluster)
        initial_cost = self.compute_cost()

        if not self._needs_balance(table, cluster):
            return BalanceResult(
                plans=[],
                assignment=cluster.assignment(),
                initial_cost=initial_cost,
                final_cost=initial_cost,
                elapsed_seconds=time.monotonic() - start,
                balanced=True,
                table=table,
                cost_breakdown=self.cost_breakdown(),
            )

        config = self.config
        rng = np.random.default_rng(config.seed)
        max_steps = self._max_steps(cluster)
        max_seconds = config.max_running_time_seconds
        temperature = config.initial_temperature

        current_cost = best_cost = initial_cost
        # Accepted actions since best_cost was reached, undone at the end
        since_best: List[BalanceAction] = []
        steps = accepted = 0

        while steps < max_steps and best_cost > config.min_cost_early_stop:
            steps += 1
            generator = self.generators[
                int(rng.choice(len(self.generators), p=self._generator_probabilities))
            ]
            action = generator.generate(cluster, rng)

            if action.action_type != ActionType.null:
                cluster.do_action(action)
                self._post_action(action)
                new_cost = self.compute_cost()

                if new_cost < current_cost or self._accept_worse(
                    new_cost - current_cost, temperature, rng
                ):
                    current_cost = new_cost
                    accepted += 1
                    since_best.append(action)
                    if current_cost < best_cost:
                        best_cost = current_cost
                        since_best.clear()
                else:
                    undo = action.undo()
                    cluster.do_action(undo)
                    self._post_action(undo)

            temperature *= config.cooldown_rate
            if time.monotonic() - start > max_seconds:
                logger.info(
                    "Stopping balance of %s after %d of %d steps: exceeded %s",
                    table,
                    steps,
                    max_steps,
                    config.max_running_time,
                )
                break

        for action in reversed(since_best):
            undo = action.undo()
            cluster.do_action(undo)
            self._post_action(undo)

        final_cost = self.compute_cost()
        plans = cluster.region_plans()
        elapsed = time.monotonic() - start
        logger.info(
            "Finished balance of %s in %.3fs: %d steps, %d accepted, cost "
            "%.4f -> %.4f, %d region moves",
            table,
            elapsed,
            steps,
            accepted,
            initial_cost,
            final_cost,
            len(plans),
        )
        return BalanceResult(
            plans=plans,
            assignment=cluster.assignment(),
            initial_cost=initial_cost,
            final_cost=final_cost,
            steps=steps,
            accepted_steps=accepted,
            elapsed_seconds=elapsed,
            balanced=False,
            table=table,
            cost_breakdown=self.cost_breakdown(),
        )

    @staticmethod
    def _accept_worse(
        delta: float, temperature: float, rng: np.random.Generator
    ) -> bool:
        if delta <= 0 or temperature <= 0:
            return False
        return rng.random() < math.exp(-delta / temperature)

    def balance(  # pylint: disable=too-many-positional-arguments
        self,
        server_to_regions: Mapping[ServerName, Sequence[RegionInfo]],
        region_loads: Optional[Mapping[RegionInfo, RegionLoad]] = None,
        region_locality: Optional[RegionLocality] = None,
        rack_lookup: Optional[RackLookup] = None,
        table: str = ENSEMBLE_TABLE_NAME,
    ) -> BalanceResult:
        """Build a snapshot from server_to_regions and balance it"""
        cluster = BalancerClusterState(
            server_to_regions,
            region_loads=region_loads,
            region_locality=region_locality,
            rack_lookup=rack_lookup,
        )
        return self.balance_cluster(cluster, table=table)

    def balance_by_table(
        self,
        server_to_regions: Mapping[ServerName, Sequence[RegionInfo]],
        region_loads: Optional[Mapping[RegionInfo, RegionLoad]] = None,
        region_locality: Optional[RegionLocality] = None,
        rack_lookup: Optional[RackLookup] = None,
    ) -> Dict[str, BalanceResult]:
        """Balance every table on its own snapshot.

        Every table sees every server, including servers that host none of
        its regions, so tables can spread onto them.
        """
        return {
            table: self.balance(
                per_table,
                region_loads=region_loads,
                region_locality=region_locality,
                rack_lookup=rack_lookup,
                table=table,
            )
            for table, per_table in split_by_table(server_to_regions).items()
        }


def split_by_table(
    server_to_regions: Mapping[ServerName, Sequence[RegionInfo]],
) -> Dict[str, Dict[ServerName, List[RegionInfo]]]:
    tables = sorted(
        {r.table for regions in server_to_regions.values() for r in regions}
    )
    return {
        table: {
            server: [r for r in regions if r.table == table]
            for server, regions in server_to_regions.items()
        }
        for table in tables
    }
