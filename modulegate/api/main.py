from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modulegate import __version__
from modulegate.api.routers import access, admin, capabilities
from modulegate.common.logger import configure_logging
from modulegate.core.config import get_settings
from modulegate.core.rbac import CapabilityRegistry
from modulegate.db.session import SessionLocal

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = configure_logging(settings)

    registry = CapabilityRegistry(settings.modules_path, cache_ttl=settings.capability_cache_ttl)
    app.state.registry = registry

    if settings.discovery_on_startup:
        # Best effort; failures are logged and the persisted store is served
        registry.initialize(SessionLocal)
    else:
        logger.info("Capability discovery on startup disabled")

    yield


app = FastAPI(
    title=settings.app_name,
    description="Capability-based access control for multi-tenant applications",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(capabilities.router, prefix="/api")
app.include_router(access.router, prefix="/api")
app.include_router(admin.router, prefix="/api")


@app.get("/health")
async def health_check():
    registry = getattr(app.state, "registry", None)
    return {
        "status": "healthy",
        "version": __version__,
        "discovery_complete": registry.discovery_complete if registry else False,
    }


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
