"""Shard API routes."""

from fastapi import APIRouter, HTTPException, status

from ..errors import http_error
from ..schemas.shard import (
    CleanupResponse,
    CutoverRequest,
    ShardListResponse,
    ShardResponse,
    ShardStateRequest,
    SplitRequest,
    SplitResponse,
)
from ...core.errors import ShardKeeperError
from ...topology import Shard, ShardState, get_topology
from .pools import node_to_response

router = APIRouter(prefix="/shards", tags=["shards"])


def parse_max_id(value: str) -> int | None:
    """Path form of a shard's upper bound; "infinity" means unbounded."""
    if value == "infinity":
        return None
    try:
        return int(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"max_id must be an integer or 'infinity', got {value!r}",
        ) from None


def shard_to_response(shard: Shard) -> ShardResponse:
    """Convert Shard to ShardResponse."""
    return ShardResponse(
        name=shard.name,
        min_id=shard.min_id,
        max_id=shard.max_id,
        state=shard.state.value,
        master=node_to_response(shard.master) if shard.master else None,
        replicas=[node_to_response(n) for n in shard.replicas],
        parent=shard.parent.name if shard.parent else None,
        children=[c.name for c in sorted(shard.children, key=lambda c: c.min_id)],
    )


def cancelled(operation: str, shard: Shard) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"{operation} of {shard.name} was cancelled by a callback",
    )


@router.get("", response_model=ShardListResponse)
async def list_shards(state: str | None = None):
    """List top-level shards ordered by range."""
    topology = await get_topology()

    state_filter = None
    if state is not None:
        try:
            state_filter = ShardState(state)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown shard state {state}",
            ) from None

    shards = topology.shards(state_filter)
    return ShardListResponse(
        shards=[shard_to_response(s) for s in shards],
        total=len(shards),
    )


@router.get("/pending", response_model=ShardResponse)
async def pending_split():
    """The single shard with a split in progress."""
    topology = await get_topology()
    try:
        shard = topology.shard_pending_split()
    except ShardKeeperError as e:
        raise http_error(e) from e

    return shard_to_response(shard)


@router.post("/cutover", response_model=ShardResponse, status_code=status.HTTP_201_CREATED)
async def cutover(request: CutoverRequest):
    """Cap the last shard and open a new unbounded shard at cutover_id."""
    topology = await get_topology()
    try:
        last = topology.last_shard()
        new = await topology.shard_cutover(request.cutover_id)
    except ShardKeeperError as e:
        raise http_error(e) from e

    if new is None:
        raise cancelled("Cutover", last)
    return shard_to_response(new)


@router.post("/{min_id}/{max_id}/state", response_model=ShardResponse)
async def set_state(min_id: int, max_id: str, request: ShardStateRequest):
    """Toggle a shard between ready (online), read_only and offline."""
    topology = await get_topology()
    try:
        shard = topology.shard(min_id, parse_max_id(max_id))
        if request.state == "read_only":
            await shard.mark_read_only()
        elif request.state == "offline":
            await shard.mark_offline()
        else:
            await shard.mark_online()
    except ShardKeeperError as e:
        raise http_error(e) from e

    return shard_to_response(shard)


@router.post("/{min_id}/{max_id}/split", response_model=SplitResponse)
async def split(min_id: int, max_id: str, request: SplitRequest):
    """Split phase 1: claim spares, clone, register children."""
    topology = await get_topology()
    try:
        shard = topology.shard(min_id, parse_max_id(max_id))
        if request.resume:
            result = await shard.resume_split()
        else:
            result = await shard.split(child_count=request.child_count, ranges=request.ranges)
    except ShardKeeperError as e:
        raise http_error(e) from e

    if result is None:
        raise cancelled("Split", shard)
    return SplitResponse(
        parent=result.parent,
        children=result.children,
        failed=result.failed,
        complete=result.complete,
    )


@router.post("/{min_id}/{max_id}/reads", response_model=ShardResponse)
async def move_reads(min_id: int, max_id: str):
    """Split phase 2: children serve reads."""
    topology = await get_topology()
    try:
        shard = topology.shard_pending_split(min_id, parse_max_id(max_id))
        await shard.move_reads_to_children()
    except ShardKeeperError as e:
        raise http_error(e) from e

    return shard_to_response(shard)


@router.post("/{min_id}/{max_id}/writes", response_model=ShardResponse)
async def move_writes(min_id: int, max_id: str):
    """Split phase 3: children serve writes."""
    topology = await get_topology()
    try:
        shard = topology.shard_pending_split(min_id, parse_max_id(max_id))
        await shard.move_writes_to_children()
    except ShardKeeperError as e:
        raise http_error(e) from e

    return shard_to_response(shard)


@router.post("/{min_id}/{max_id}/cleanup", response_model=CleanupResponse)
async def cleanup(min_id: int, max_id: str):
    """Split phase 4: prune children and recycle the parent."""
    topology = await get_topology()
    try:
        shard = topology.shard_pending_split(min_id, parse_max_id(max_id))
        pruned = await shard.cleanup()
    except ShardKeeperError as e:
        raise http_error(e) from e

    if pruned is None:
        raise cancelled("Cleanup", shard)
    return CleanupResponse(parent=shard.name, pruned=pruned)
