from typing import Callable
from typing import Mapping

from region_balancer.interface import ServerName

UNKNOWN_RACK = "Default-Rack"

# Maps a server to the name of the rack it lives in. Must be pure, it is
# called once per server while building a snapshot.
RackLookup = Callable[[ServerName], str]


def single_rack(server: ServerName) -> str:
    # quiet pylint
    _ = server
    return UNKNOWN_RACK


def rack_from_mapping(
    racks_by_host: Mapping[str, str], default: str = UNKNOWN_RACK
) -> RackLookup:
    """Rack lookup backed by a static hostname -> rack table"""
    racks = dict(racks_by_host)

    def lookup(server: ServerName) -> str:
        return racks.get(server.host, default)

    return lookup
