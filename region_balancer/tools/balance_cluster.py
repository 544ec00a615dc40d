"""Propose region moves for a cluster described in a JSON file.

Input format:

    {
      "servers": {
        "host1,16020,1": [{"table": "t1", "region_id": 1}, ...],
        "host2,16020,1": []
      },
      "racks": {"host1": "rack1", "host2": "rack2"},
      "hints": [
        {
          "region": {"table": "t1", "region_id": 1},
          "load": {"read_requests_per_second": 100},
          "locality": {"host1": 0.9}
        }
      ]
    }

The plan is printed to stdout as JSON, nothing is moved.
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence

from pydantic import BaseModel
from pydantic import field_validator
from pydantic import ValidationError

from region_balancer.balancer import BalanceResult
from region_balancer.balancer import StochasticBalancer
from region_balancer.interface import BalancerConfig
from region_balancer.interface import RegionInfo
from region_balancer.interface import RegionLoad
from region_balancer.interface import ServerName
from region_balancer.topology import rack_from_mapping


class RegionHint(BaseModel):
    region: RegionInfo
    load: Optional[RegionLoad] = None
    locality: Dict[str, float] = {}


class ClusterDescription(BaseModel):
    servers: Dict[str, List[RegionInfo]]
    racks: Dict[str, str] = {}
    hints: List[RegionHint] = []

    @field_validator("servers")
    @classmethod
    def _check_server_names(cls, value: Dict[str, List[RegionInfo]]):
        for name in value:
            try:
                ServerName.parse(name)
            except ValueError as e:
                raise ValueError(
                    f"Server {name!r} is not in host[,port[,start_code]] form"
                ) from e
        return value


def load_cluster(path: Path) -> ClusterDescription:
    with open(path, "rt", encoding="utf-8") as fd:
        return ClusterDescription.model_validate_json(fd.read())


def result_to_json(result: BalanceResult) -> Dict[str, Any]:
    return {
        "balanced": result.balanced,
        "initial_cost": result.initial_cost,
        "final_cost": result.final_cost,
        "steps": result.steps,
        "accepted_steps": result.accepted_steps,
        "elapsed_seconds": round(result.elapsed_seconds, 3),
        "cost_breakdown": result.cost_breakdown,
        "plans": [
            {
                "region": str(plan.region),
                "source": str(plan.source),
                "destination": str(plan.destination),
            }
            for plan in result.plans
        ],
    }


def run(description: ClusterDescription, config: BalancerConfig, by_table: bool):
    server_to_regions = {
        ServerName.parse(name): regions
        for name, regions in description.servers.items()
    }
    region_loads = {h.region: h.load for h in description.hints if h.load is not None}
    region_locality = {h.region: h.locality for h in description.hints if h.locality}
    rack_lookup = rack_from_mapping(description.racks) if description.racks else None

    balancer = StochasticBalancer(config=config)
    if by_table:
        results = balancer.balance_by_table(
            server_to_regions,
            region_loads=region_loads,
            region_locality=region_locality,
            rack_lookup=rack_lookup,
        )
    else:
        result = balancer.balance(
            server_to_regions,
            region_loads=region_loads,
            region_locality=region_locality,
            rack_lookup=rack_lookup,
        )
        results = {result.table: result}
    return {table: result_to_json(result) for table, result in results.items()}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="balance-cluster",
        description="Propose region moves that balance a cluster description",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("cluster", type=Path, help="JSON cluster description")
    parser.add_argument(
        "--by-table", action="store_true", help="Balance every table on its own"
    )
    parser.add_argument("--max-steps", type=int, default=100_000)
    parser.add_argument(
        "--max-running-time",
        default="PT30S",
        help="ISO 8601 duration the search may run for, e.g. PT10S",
    )
    parser.add_argument("--seed", type=int, default=0xCAFE)
    parser.add_argument("--debug", action="store_true", help="Show verbose output")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        stream=sys.stderr,
    )
    config = BalancerConfig(
        max_steps=args.max_steps,
        max_running_time=args.max_running_time,
        seed=args.seed,
    )
    try:
        description = load_cluster(args.cluster)
    except (OSError, ValidationError) as e:
        parser.error(f"Cannot read cluster description {args.cluster}: {e}")
    output = run(description, config, args.by_table)
    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
