"""Mapping of orchestration errors to HTTP errors."""

from fastapi import HTTPException, status

from ..core.errors import (
    InconsistentTopologyError,
    InsufficientResourceError,
    NotFoundError,
    PartialFailureError,
    ShardKeeperError,
    ValidationError,
)


def http_error(exc: ShardKeeperError) -> HTTPException:
    """Convert an orchestration error into an HTTPException."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (InsufficientResourceError, InconsistentTopologyError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PartialFailureError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": str(exc),
                "operation": exc.operation,
                "outcomes": exc.outcomes,
            },
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
