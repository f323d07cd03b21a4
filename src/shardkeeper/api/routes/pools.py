"""Pool API routes."""

from fastapi import APIRouter, HTTPException, status

from ..errors import http_error
from ..schemas.pool import (
    ActivateRequest,
    NodeResponse,
    PoolListResponse,
    PoolResponse,
    PromoteRequest,
    PromoteResponse,
)
from ...core.errors import ShardKeeperError
from ...topology import Node, Pool, get_topology
from ...workflows.promotion import DemotionPolicy

router = APIRouter(prefix="/pools", tags=["pools"])


def node_to_response(node: Node) -> NodeResponse:
    """Convert Node to NodeResponse."""
    pool = node.pool
    return NodeResponse(
        address=node.address,
        role=node.role.value,
        weight=node.weight,
        version=node.version,
        hardware_class=node.hardware.hardware_class,
        datacenter=node.hardware.datacenter,
        pool=pool.name if pool is not None else None,
        master=node.master.address if node.master else None,
    )


def pool_to_response(pool: Pool) -> PoolResponse:
    """Convert Pool to PoolResponse."""
    return PoolResponse(
        name=pool.name,
        master=node_to_response(pool.master) if pool.master else None,
        replicas=[node_to_response(n) for n in pool.replicas],
        active_weight_total=sum(n.weight for n in pool.active_replicas),
    )


@router.get("", response_model=PoolListResponse)
async def list_pools():
    """List pools that are not shards."""
    topology = await get_topology()
    pools = topology.pools()

    return PoolListResponse(
        pools=[pool_to_response(p) for p in pools],
        total=len(pools),
    )


@router.get("/{name}", response_model=PoolResponse)
async def get_pool(name: str):
    """Get a pool (or shard) by name."""
    topology = await get_topology()
    try:
        pool = topology.pool(name)
    except ShardKeeperError as e:
        raise http_error(e) from e

    return pool_to_response(pool)


@router.post("/{name}/promote", response_model=PromoteResponse)
async def promote(name: str, request: PromoteRequest):
    """
    Promote a replica to master.

    Without `promoted`, nothing changes and the eligible candidates are
    returned, lowest replication lag first.
    """
    topology = await get_topology()
    try:
        pool = topology.pool(name)
        promoted = topology.node(request.promoted) if request.promoted else None
        replicas = (
            [topology.node(a) for a in request.replicas] if request.replicas is not None else None
        )
        context = topology.context.override(verify_replication=request.verify_replication)

        result = await pool.promote(
            promoted,
            demoted_role=DemotionPolicy(request.demoted_role),
            replicas=replicas,
            context=context,
        )
    except ShardKeeperError as e:
        raise http_error(e) from e

    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Promotion of {name} was cancelled by a callback",
        )

    return PromoteResponse(
        pool=result.pool,
        demoted=result.demoted,
        promoted=result.promoted,
        demoted_role=result.demoted_role,
        candidates=result.candidates,
        lags=result.lags,
        outcomes=result.outcomes,
    )


@router.post("/{name}/replicas/{address}/activate", response_model=PoolResponse)
async def activate_replica(name: str, address: str, request: ActivateRequest):
    """Put a standby replica into read rotation."""
    topology = await get_topology()
    try:
        pool = topology.pool(name)
        await pool.mark_replica_active(topology.node(address), weight=request.weight)
    except ShardKeeperError as e:
        raise http_error(e) from e

    return pool_to_response(pool)


@router.post("/{name}/replicas/{address}/standby", response_model=PoolResponse)
async def standby_replica(name: str, address: str):
    """Take an active replica out of read rotation."""
    topology = await get_topology()
    try:
        pool = topology.pool(name)
        await pool.mark_replica_standby(topology.node(address))
    except ShardKeeperError as e:
        raise http_error(e) from e

    return pool_to_response(pool)


@router.delete("/{name}/replicas/{address}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_replica(name: str, address: str):
    """Sever and remove a standby or backup replica."""
    topology = await get_topology()
    try:
        pool = topology.pool(name)
        await pool.remove_replica(topology.node(address))
    except ShardKeeperError as e:
        raise http_error(e) from e
