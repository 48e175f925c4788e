"""
Main FastAPI application for the VKG Query Agent

This module creates and configures the FastAPI application with:
- Service context lifecycle (cache, Trino clients, SPARQL, LLM)
- CORS middleware for frontend integration
- API routes (federated query, ontology, Trino catalogs)
- Health check endpoint
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from vkg_agent import __version__
from vkg_agent.agents.vkg import VKGQueryAgent
from vkg_agent.api.models import HealthResponse
from vkg_agent.api.routes import catalogs, query
from vkg_agent.config.settings import settings
from vkg_agent.infra.context import ServiceContext
from vkg_agent.utils.logger import setup_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events

    - Startup: configure logging, create the service context and the agent
    - Shutdown: close every client the service context owns
    """
    setup_logger()
    logger.info("🚀 VKG Query Agent starting...")

    # Tests may pre-populate app.state with fakes
    services = getattr(app.state, "services", None)
    owns_services = services is None
    if owns_services:
        services = await ServiceContext.create(settings)
        app.state.services = services
    if getattr(app.state, "agent", None) is None:
        app.state.agent = VKGQueryAgent.from_services(services)

    logger.info("📚 API docs available at http://localhost:8000/docs")

    yield

    logger.info("🛑 VKG Query Agent shutting down...")
    if owns_services:
        try:
            await services.aclose()
        except Exception as e:
            logger.warning(f"Error closing services: {e}")


app = FastAPI(
    title="VKG Query Agent API",
    description="""
    Natural-language questions over a virtual knowledge graph.

    An ontology maps business entities onto tables in databases registered
    as Trino catalogs. Questions are planned against the ontology, compiled
    to federated SQL, validated, executed on Trino and answered with an
    evidence graph and reasoning trace.

    ## Example

    ```bash
    curl -X POST http://localhost:8000/api/vkg/query \\
         -H "Content-Type: application/json" \\
         -H "X-Tenant-Id: acme" \\
         -d '{"question": "Show me all customers with transactions over $10,000", "workspaceId": "ws-1"}'
    ```
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(query.router)
app.include_router(catalogs.router)


@app.get("/", tags=["root"])
async def root():
    """
    Root endpoint - API information
    """
    return {
        "service": "VKG Query Agent API",
        "version": __version__,
        "status": "running",
        "docs": "/docs",
        "endpoints": {
            "health": "/health",
            "query": "/api/vkg/query",
            "catalogs": "/api/trino/catalogs",
        },
    }


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """
    Health check endpoint

    Returns service status, name, and version.
    """
    return HealthResponse(status="healthy", service="vkg-query-agent", version=__version__)
