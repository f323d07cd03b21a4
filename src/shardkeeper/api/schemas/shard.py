"""Shard API schemas."""

from pydantic import BaseModel, Field

from .pool import NodeResponse


class ShardResponse(BaseModel):
    """Shard response."""

    name: str
    min_id: int
    max_id: int | None
    state: str
    master: NodeResponse | None
    replicas: list[NodeResponse]
    parent: str | None = None
    children: list[str] = Field(default_factory=list)


class ShardListResponse(BaseModel):
    """Shard list response."""

    shards: list[ShardResponse]
    total: int


class ShardStateRequest(BaseModel):
    """Operational state toggle."""

    state: str = Field(..., pattern=r"^(read_only|offline|online)$")


class SplitRequest(BaseModel):
    """Request to start (or resume) a split."""

    child_count: int | None = Field(default=None, ge=2)
    ranges: list[tuple[int, int]] | None = None
    resume: bool = False


class SplitResponse(BaseModel):
    """Split phase 1 response."""

    parent: str
    children: list[str]
    failed: dict[str, str]
    complete: bool


class CleanupResponse(BaseModel):
    """Split cleanup response."""

    parent: str
    pruned: dict[str, int]


class CutoverRequest(BaseModel):
    """Request to cap the last shard."""

    cutover_id: int = Field(..., gt=0)
