"""Sample Application

FastAPI app wiring the bind engine together: structured logging, the error
envelope, request correlation, and bind components merged into
/openapi.json at startup.

Run:
    uvicorn webfram.app:create_app --factory
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from webfram import __version__
from webfram.api import users
from webfram.bind import build_components, registered_models
from webfram.config import Settings, get_settings
from webfram.errors import register_error_handlers
from webfram.logging import configure_logging, get_logger
from webfram.middleware import RequestLoggingMiddleware

log = get_logger(__name__)


def _install_openapi(app: FastAPI) -> None:
    """Merge the bind components into the generated OpenAPI document."""

    def openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        registry = getattr(app.state, "components", None)
        if registry is not None:
            schemas = schema.setdefault("components", {}).setdefault("schemas", {})
            schemas.update(registry.to_openapi()["schemas"])
        app.openapi_schema = schema
        return schema

    app.openapi = openapi


def create_app(settings: Settings | None = None, *, configure_logs: bool = True) -> FastAPI:
    """Build the sample app.

    Args:
        settings: Settings to use (get_settings() by default)
        configure_logs: Install the structlog configuration; tests pass False
            so log capture keeps working
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("startup", message="webfram sample app starting up")
        if settings.OPENAPI_COMPONENTS:
            models = registered_models()
            app.state.components = build_components(models, eager_check=settings.BIND_EAGER_RULE_CHECK)
            log.info("components_built", models=len(models), components=len(app.state.components))
        yield
        log.info("shutdown", message="webfram sample app shutting down")

    app = FastAPI(
        title="webfram",
        description="Declarative request binding, validation and schema generation",
        version=__version__,
        lifespan=lifespan,
    )

    register_error_handlers(app)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(users.router, tags=["users"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    _install_openapi(app)
    return app
