class BalancerError(Exception):
    """Base class for every error raised by the balancer"""


class InvalidClusterStateError(BalancerError, ValueError):
    """The server to region mapping cannot be turned into a snapshot.

    For example a region listed under two servers.
    """


class InvalidActionError(BalancerError, AssertionError):
    """An action does not match the snapshot it is applied to.

    The search loop owns its snapshot exclusively, so this is always a
    programming error and is never retried.
    """
