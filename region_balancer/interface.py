from __future__ import annotations

from typing import Any
from typing import Dict
from typing import Mapping
from typing import Tuple

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from region_balancer.iso_date_math import iso_to_seconds

# Name used when a snapshot covers every table of the cluster at once
ENSEMBLE_TABLE_NAME = "hbase:ensemble"


###############################################################################
#              Models (structs) for servers and regions                       #
###############################################################################


class ServerName(BaseModel):
    """Identity of a region server: host, port and start time.

    Two processes started on the same host and port at different times are
    different servers.
    """

    host: str
    port: int = 16020
    start_code: int = 0
    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls, value: str) -> ServerName:
        """Parse the "host,port,start_code" form"""
        parts = value.split(",")
        if len(parts) == 1:
            return cls(host=parts[0])
        if len(parts) == 2:
            return cls(host=parts[0], port=int(parts[1]))
        if len(parts) == 3:
            return cls(host=parts[0], port=int(parts[1]), start_code=int(parts[2]))
        raise ValueError(f"Cannot parse server name from {value!r}")

    def _key(self) -> Tuple[str, int, int]:
        return (self.host, self.port, self.start_code)

    def __lt__(self, other: ServerName) -> bool:
        return self._key() < other._key()

    def __str__(self) -> str:
        return f"{self.host},{self.port},{self.start_code}"


class RegionInfo(BaseModel):
    """A contiguous keyspace partition of a table.

    Regions with the same table, keys and region_id but a different
    replica_id are replicas of one logical region (a replica group).
    replica_id 0 is the primary.
    """

    table: str
    start_key: str = ""
    end_key: str = ""
    region_id: int = 0
    replica_id: int = Field(default=0, ge=0)
    model_config = ConfigDict(frozen=True)

    @property
    def group_key(self) -> Tuple[str, str, str, int]:
        return (self.table, self.start_key, self.end_key, self.region_id)

    @property
    def is_primary(self) -> bool:
        return self.replica_id == 0

    def replica(self, replica_id: int) -> RegionInfo:
        return self.model_copy(update={"replica_id": replica_id})

    def primary(self) -> RegionInfo:
        return self.replica(0)

    @property
    def region_name(self) -> str:
        name = f"{self.table},{self.start_key},{self.region_id}"
        if self.replica_id:
            name += f"_{self.replica_id:04d}"
        return name

    def _key(self) -> Tuple[str, str, str, int, int]:
        return self.group_key + (self.replica_id,)

    def __lt__(self, other: RegionInfo) -> bool:
        return self._key() < other._key()

    def __str__(self) -> str:
        return self.region_name


class RegionLoad(BaseModel):
    """Point in time load of a single region, as reported by its server"""

    read_requests_per_second: float = Field(default=0, ge=0)
    write_requests_per_second: float = Field(default=0, ge=0)
    cp_requests_per_second: float = Field(default=0, ge=0)
    memstore_size_mb: float = Field(default=0, ge=0)
    storefile_size_mb: float = Field(default=0, ge=0)


class RegionPlan(BaseModel):
    """Move region from source to destination"""

    region: RegionInfo
    source: ServerName
    destination: ServerName
    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.region}: {self.source} -> {self.destination}"


###############################################################################
#              Models (structs) for how we configure the balancer             #
###############################################################################


# In practice keeping replicas apart matters far more than anything else,
# then even region counts, then everything related to load and locality.
DEFAULT_COST_MULTIPLIERS: Dict[str, float] = {
    "region_count_skew": 500,
    "primary_region_count_skew": 500,
    "move": 7,
    "table_skew": 35,
    "locality": 25,
    "rack_locality": 15,
    "region_replica_host": 100000,
    "region_replica_rack": 10000,
    "read_request": 5,
    "write_request": 5,
    "cp_request": 5,
    "memstore_size": 5,
    "storefile_size": 5,
}

DEFAULT_GENERATOR_WEIGHTS: Dict[str, float] = {
    "random": 1.0,
    "load": 1.0,
    "locality": 1.0,
    "region_replica_host": 1.0,
    "region_replica_rack": 1.0,
}


def _merge_weights(
    name: str, value: Any, defaults: Dict[str, float]
) -> Dict[str, float]:
    if value is None:
        return dict(defaults)
    if not isinstance(value, Mapping):
        raise ValueError(f"{name} must be a mapping of name to weight")
    unknown = sorted(set(value) - set(defaults))
    if unknown:
        raise ValueError(
            f"Unknown {name} {unknown}, expected one of {sorted(defaults)}"
        )
    merged = dict(defaults)
    for key, raw in value.items():
        try:
            weight = float(raw)
        except (TypeError, ValueError) as e:
            raise ValueError(f"{name}[{key}] must be a number, got {raw!r}") from e
        # Also rejects NaN
        if not weight >= 0:
            raise ValueError(f"{name}[{key}] must be >= 0, got {weight}")
        merged[key] = weight
    return merged


class BalancerConfig(BaseModel):
    """Every tunable of the stochastic balancer.

    Read once when the balancer is constructed. Partial multiplier or
    generator weight mappings are merged over the defaults, a multiplier
    of zero disables that cost function.
    """

    cost_multipliers: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_COST_MULTIPLIERS)
    )
    generator_weights: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_GENERATOR_WEIGHTS)
    )

    # Weighted average cost above which the cluster is worth balancing
    min_cost_need_balance: float = Field(default=0.025, ge=0)
    # Servers may carry this fraction more (or less) than the average
    region_slop: float = Field(default=0.2, ge=0)

    max_steps: int = Field(default=1_000_000, ge=0)
    steps_per_region: int = Field(default=800, ge=0)
    run_max_steps: bool = False
    # ISO 8601 duration, e.g. PT30S or PT0.5S
    max_running_time: str = "PT30S"
    min_cost_early_stop: float = Field(default=1e-9, ge=0)

    # Simulated annealing: T(step) = initial_temperature * cooldown_rate^step
    initial_temperature: float = Field(default=1.0, ge=0)
    cooldown_rate: float = Field(default=0.999, gt=0, le=1)

    max_move_percent: float = Field(default=0.25, gt=0, le=1)
    max_moves: int = Field(default=600, ge=1)

    seed: int = 0xCAFE
    model_config = ConfigDict(frozen=True)

    @field_validator("cost_multipliers", mode="before")
    @classmethod
    def _merge_cost_multipliers(cls, value):
        return _merge_weights("cost_multipliers", value, DEFAULT_COST_MULTIPLIERS)

    @field_validator("generator_weights", mode="before")
    @classmethod
    def _merge_generator_weights(cls, value):
        merged = _merge_weights(
            "generator_weights", value, DEFAULT_GENERATOR_WEIGHTS
        )
        if sum(merged.values()) <= 0:
            raise ValueError("At least one generator weight must be positive")
        return merged

    @field_validator("max_running_time")
    @classmethod
    def _check_max_running_time(cls, value: str) -> str:
        # Raises on anything isodate cannot parse
        iso_to_seconds(value)
        return value

    @property
    def max_running_time_seconds(self) -> float:
        return iso_to_seconds(self.max_running_time)

    def multiplier(self, name: str) -> float:
        return self.cost_multipliers.get(name, 0.0)
