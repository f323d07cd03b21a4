"""Spare API routes."""

from fastapi import APIRouter, HTTPException, status

from ..schemas.pool import SpareListResponse
from ...topology import NodeRole, get_topology
from .pools import node_to_response

router = APIRouter(prefix="/spares", tags=["spares"])


@router.get("", response_model=SpareListResponse)
async def list_spares(role: str | None = None):
    """List unclaimed spares, optionally those eligible for a role."""
    topology = await get_topology()

    role_filter = None
    if role is not None:
        try:
            role_filter = NodeRole(role)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown role {role}",
            ) from None

    spares = [
        n for n in topology.allocator.all()
        if role_filter is None or n.spare_role in (None, role_filter)
    ]
    return SpareListResponse(
        spares=[node_to_response(n) for n in spares],
        total=len(spares),
    )
