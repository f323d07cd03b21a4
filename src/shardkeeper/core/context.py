"""Per-call execution context threaded through protocol and pipeline calls."""

from dataclasses import dataclass, replace

from .config import Settings, get_settings


@dataclass(frozen=True)
class ExecutionContext:
    """
    Execution options for one orchestration call.

    verify_replication:
        Compare live replication state with the recorded topology and apply
        replication-health policy before irreversible steps. Strict by default.

    max_replication_lag:
        Highest replication lag (seconds) a replica may have to be promoted.

    concurrency:
        Worker limit for fan-out steps.

    standbys_per_pool:
        Standby replicas claimed for every pool created by split or cutover.
    """

    verify_replication: bool = True
    max_replication_lag: float = 30.0
    concurrency: int = 10
    standbys_per_pool: int = 2

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ExecutionContext":
        """Build the default context from settings."""
        settings = settings or get_settings()
        return cls(
            max_replication_lag=settings.max_promotion_lag_seconds,
            concurrency=settings.max_concurrency,
            standbys_per_pool=settings.standbys_per_pool,
        )

    def override(self, **changes) -> "ExecutionContext":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
