"""
Error taxonomy.

Callers react to the class, not the message:
ValidationError is raised before any mutation and is safe to retry.
InsufficientResourceError is raised before any spare is claimed.
InconsistentTopologyError aborts with no partial mutation assumed safe.
PartialFailureError is raised after the point of no return and carries the
exact per-target state reached.
"""


class ShardKeeperError(Exception):
    """Base class for all orchestration errors."""


class ValidationError(ShardKeeperError):
    """A precondition was violated. Nothing was mutated."""


class NotAReplicaError(ValidationError):
    """The node proposed for promotion does not replicate from the demoted master."""


class NotPromotableError(ValidationError):
    """The node is excluded from promotion by replication-health policy."""


class NotFoundError(ShardKeeperError):
    """A node, pool or shard could not be resolved."""


class InsufficientResourceError(ShardKeeperError):
    """Not enough matching spares. No spare was claimed."""

    def __init__(self, message: str, requested: int = 0, available: int = 0):
        super().__init__(message)
        self.requested = requested
        self.available = available


class InconsistentTopologyError(ShardKeeperError):
    """Discovered state disagrees with the recorded topology."""


class PartialFailureError(ShardKeeperError):
    """
    A fan-out step partially succeeded.

    outcomes maps every target (node address or shard name) to "ok" or to the
    error text for that target. There is no automatic rollback; the operator
    resumes at target granularity.
    """

    def __init__(self, operation: str, outcomes: dict[str, str], message: str = ""):
        self.operation = operation
        self.outcomes = dict(outcomes)
        summary = message or (
            f"{operation} incomplete: {len(self.failed)} of "
            f"{len(self.outcomes)} targets failed"
        )
        super().__init__(summary)

    @property
    def failed(self) -> dict[str, str]:
        """Targets that did not reach the expected state."""
        return {k: v for k, v in self.outcomes.items() if v != "ok"}

    @property
    def succeeded(self) -> list[str]:
        """Targets that completed."""
        return [k for k, v in self.outcomes.items() if v == "ok"]


class NodeActionError(ShardKeeperError):
    """A per-node transport primitive failed."""

    def __init__(self, address: str, action: str, detail: str = ""):
        self.address = address
        self.action = action
        message = f"{action} failed on {address}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CallbackAbort(Exception):
    """
    Raised by a callback handler to stop the chain.

    Caught entirely inside the dispatcher and never seen by callers of the
    intercepted operation.
    """
