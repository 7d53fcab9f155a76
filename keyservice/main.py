from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from keyservice import __version__
from keyservice.base_service import BaseService
from keyservice.config import Settings
from keyservice.auth.registry import CredentialRegistry, create_registry
from keyservice.auth.service import AuthService
from keyservice.rpc.router import router as rpc_router
from keyservice.server.stats import StatsProvider

base_service = BaseService("keyservice")

service_router = APIRouter()


@service_router.get("/", tags=["root"])
async def root():
    """Root endpoint returning API information."""
    return {
        "name": "keyservice",
        "version": __version__,
        "services": ["auth", "server"],
    }


@service_router.get("/health", tags=["health"])
async def health_check(request: Request):
    """Service health with the number of live credentials."""
    registry: CredentialRegistry = request.app.state.registry
    return {
        "status": "ok",
        "backend": request.app.state.settings.registry_backend,
        "credentials": await registry.count(),
    }


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[CredentialRegistry] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Service settings, read from the environment when omitted
        registry: Credential registry, built from settings when omitted

    Returns:
        FastAPI app with the RPC endpoint mounted at settings.rpc_path
    """
    settings = settings or Settings.from_env()
    registry = registry or create_registry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await registry.init()
        except Exception as e:
            base_service.log_error(e, context="Registry startup")
            raise
        base_service.log_event("service.startup", {
            "backend": settings.registry_backend,
            "rpc_path": settings.rpc_path,
        })
        yield
        await registry.close()
        base_service.log_event("service.shutdown", {"backend": settings.registry_backend})

    app = FastAPI(
        title="keyservice",
        description="Access key issuing and rotation over JSON RPC",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.auth_service = AuthService(registry)
    app.state.stats_provider = StatsProvider()

    app.include_router(service_router)
    app.include_router(rpc_router, prefix=settings.rpc_path)
    return app
