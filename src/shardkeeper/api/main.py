"""FastAPI application entry point."""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core.config import get_settings
from ..core.errors import InconsistentTopologyError
from ..core.logging_config import setup_logging
from ..topology import get_topology
from .routes import pools_router, shards_router, spares_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    topology = await get_topology()
    await topology.write_config()

    yield


app = FastAPI(
    title="ShardKeeper API",
    description="""
    ShardKeeper - Pool and Shard Topology Orchestration API

    Operator commands for a replicated database fleet:
    - **Pools**: Replica activation, weighting and removal, master promotion
    - **Shards**: Read-only/offline toggles, four-phase split, range cutover
    - **Spares**: Unassigned nodes available for new pools
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(pools_router, prefix="/api/v1")
app.include_router(shards_router, prefix="/api/v1")
app.include_router(spares_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "ShardKeeper API",
        "version": __version__,
        "description": "Pool and shard topology orchestration",
    }


@app.get("/health")
async def health():
    """Health check endpoint; reports whether shard ranges are consistent."""
    topology = await get_topology()

    problem = None
    try:
        topology.validate_shard_ranges()
    except InconsistentTopologyError as e:
        problem = str(e)

    return {
        "status": "healthy" if problem is None else "degraded",
        "problem": problem,
        **topology.summary(),
    }


def run():
    """Run the API server."""
    settings = get_settings()
    setup_logging("api", settings.log_level, settings.log_file)
    uvicorn.run(
        "shardkeeper.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
