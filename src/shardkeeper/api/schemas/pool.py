"""Pool and node API schemas."""

from pydantic import BaseModel, Field


class NodeResponse(BaseModel):
    """Node information."""

    address: str
    role: str
    weight: int = 0
    version: str = ""
    hardware_class: str = ""
    datacenter: str = ""
    pool: str | None = None
    master: str | None = None


class PoolResponse(BaseModel):
    """Pool response."""

    name: str
    master: NodeResponse | None
    replicas: list[NodeResponse]
    active_weight_total: int


class PoolListResponse(BaseModel):
    """Pool list response."""

    pools: list[PoolResponse]
    total: int


class PromoteRequest(BaseModel):
    """Request to promote a replica in place of the pool master."""

    promoted: str | None = None  # If None, list candidates only
    demoted_role: str = Field(..., pattern=r"^(retire|standby)$")
    replicas: list[str] | None = None  # Required when the master is unreachable
    verify_replication: bool = True


class PromoteResponse(BaseModel):
    """Promotion response."""

    pool: str
    demoted: str
    promoted: str | None
    demoted_role: str | None
    candidates: list[str]
    lags: dict[str, float | None]
    outcomes: dict[str, str]


class ActivateRequest(BaseModel):
    """Request to put a standby replica into read rotation."""

    weight: int | None = Field(default=None, gt=0)


class SpareListResponse(BaseModel):
    """Unclaimed spares."""

    spares: list[NodeResponse]
    total: int
