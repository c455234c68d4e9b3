from contextlib import asynccontextmanager
from typing import List

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route

from userbackend.config import get_config
from userbackend.core.instrumentation import InstrumentationMiddleware
from userbackend.core.logging import get_logger
from userbackend.data import get_database_adapter, initialize_database, set_database_adapter
from userbackend.web.parameter_binder import ParameterBinder
from userbackend.web.route_builder import RouteBuilder

logger = get_logger(__name__)


class UserBackendASGIApp:
    """
    ASGI application built from an ApplicationContext.

    Startup initializes the database, shutdown disconnects it.
    """

    def __init__(self, context):
        self.context = context
        self.config = getattr(context, "config", None) or get_config()
        self.debug_mode = self.config.get_bool("server.debug")

        self.route_builder = RouteBuilder(
            context.controllers,
            ParameterBinder(),
            ignore_trailing_slash=self.config.get_bool(
                "server.ignore_trailing_slash", True
            ),
            debug_mode=self.debug_mode,
        )
        self.routes: List[Route] = self.route_builder.build_routes()
        self.app = Starlette(
            debug=self.debug_mode,
            routes=self.routes,
            middleware=self._build_middleware(),
            lifespan=self._lifespan,
        )

    def _build_middleware(self) -> List[Middleware]:
        middleware = []

        allowed_origins = self.config.get("server.cors.allowed_origins") or []
        if allowed_origins:
            middleware.append(
                Middleware(
                    CORSMiddleware,
                    allow_origins=list(allowed_origins),
                    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
                    allow_headers=["*"],
                    expose_headers=["Location"],
                )
            )

        registry = getattr(self.context, "instrumentation", None)
        if registry is not None and registry.enabled:
            middleware.append(
                Middleware(InstrumentationMiddleware, registry=registry, routes=self.routes)
            )

        return middleware

    @asynccontextmanager
    async def _lifespan(self, app):
        try:
            await initialize_database(self.config)
            logger.info("Application startup complete")
            yield
        finally:
            try:
                adapter = get_database_adapter()
            except RuntimeError:
                logger.debug("No database to disconnect")
            else:
                await adapter.disconnect()
                set_database_adapter(None)
                logger.info("Database disconnected")

    async def __call__(self, scope, receive, send):
        await self.app(scope, receive, send)


APP_FACTORY = "userbackend.application:create_app"


def start_uvicorn(
    server, host: str, port: int, log_level: str, access_log: bool, reload: bool = False
):
    """
    Run ``server`` with uvicorn, passing the keep-alive timeout when configured.

    With ``reload`` the app is re-created from APP_FACTORY in the reloader
    process, so ``server`` is ignored.
    """
    config = get_config()
    options = {
        "host": host,
        "port": port,
        "log_level": log_level.lower(),
        "access_log": access_log,
        # Logging is configured by the application
        "log_config": None,
    }

    timeout = config.get("server.timeout")
    if timeout is not None:
        options["timeout_keep_alive"] = int(timeout)

    if reload:
        uvicorn.run(APP_FACTORY, factory=True, reload=True, **options)
    else:
        uvicorn.run(server, **options)
