"""
Actions the search loop applies to a snapshot.

Actions reference regions and servers by their snapshot index. Every action
knows its own inverse so a rejected step is rolled back by applying undo()
through the same code path as the step itself.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator
from typing import Tuple


class ActionType(str, Enum):
    def __str__(self):
        return str(self.value)

    null = "null"
    move_region = "move_region"
    swap_regions = "swap_regions"


# (region, old_server, new_server)
RegionMove = Tuple[int, int, int]


@dataclass(frozen=True)
class BalanceAction:
    action_type: ActionType = ActionType.null

    def undo(self) -> "BalanceAction":
        return self

    def region_moves(self) -> Iterator[RegionMove]:
        return iter(())


NULL_ACTION = BalanceAction()


@dataclass(frozen=True)
class MoveRegionAction(BalanceAction):
    region: int = -1
    from_server: int = -1
    to_server: int = -1
    action_type: ActionType = ActionType.move_region

    def undo(self) -> "MoveRegionAction":
        return MoveRegionAction(
            region=self.region, from_server=self.to_server, to_server=self.from_server
        )

    def region_moves(self) -> Iterator[RegionMove]:
        yield (self.region, self.from_server, self.to_server)


@dataclass(frozen=True)
class SwapRegionsAction(BalanceAction):
    from_server: int = -1
    from_region: int = -1
    to_server: int = -1
    to_region: int = -1
    action_type: ActionType = ActionType.swap_regions

    def undo(self) -> "SwapRegionsAction":
        return SwapRegionsAction(
            from_server=self.from_server,
            from_region=self.to_region,
            to_server=self.to_server,
            to_region=self.from_region,
        )

    def region_moves(self) -> Iterator[RegionMove]:
        yield (self.from_region, self.from_server, self.to_server)
        yield (self.to_region, self.to_server, self.from_server)
