import logging
from typing import List, Optional

from userbackend.config import ConfigurationProperties, log_config_sources, reload_config
from userbackend.controllers import UserController
from userbackend.core.instrumentation import InstrumentationRegistry, instrument_component
from userbackend.core.logging import configure_logging, get_logger
from userbackend.core.metrics import create_metrics_controller
from userbackend.core.metrics_core import MetricsStorage
from userbackend.core.server import UserBackendASGIApp
from userbackend.repositories import UserRepository
from userbackend.services import UserService
from userbackend.version import get_version

logger = get_logger(__name__)


class ApplicationContext:
    """
    Loads configuration, sets up logging and wires the components.

    UserRepository -> UserService -> UserController, plus the metrics
    controller when ``metrics.enabled`` is set.
    """

    def __init__(
        self,
        profile: Optional[str] = None,
        config: Optional[ConfigurationProperties] = None,
        configure_logs: bool = True,
        log_formatter: Optional[logging.Formatter] = None,
        log_handlers: Optional[List[logging.Handler]] = None,
    ):
        self.config = config or reload_config(profile)
        self.profile = self.config.profile

        if configure_logs:
            configure_logging(
                level=self.config.get("logging.level", "INFO"),
                fmt=self.config.get("logging.format"),
                colored=self.config.get_bool("logging.colored", True),
                custom_formatter=log_formatter,
                custom_handlers=log_handlers,
            )

        logger.info(f"Starting userbackend v{get_version()}")
        logger.info(f"Active profile: {self.profile}")
        log_config_sources(self.config, logger)

        self.metrics_storage = MetricsStorage()
        self.instrumentation = InstrumentationRegistry(self.metrics_storage)
        if self.config.get_bool("metrics.enabled"):
            self.instrumentation.enable()

        self.user_repository = UserRepository()
        if self.instrumentation.enabled:
            instrument_component(self.user_repository, self.instrumentation)

        self.user_service = UserService(self.user_repository)
        self.controllers: List[object] = [UserController(self.user_service)]

        metrics_controller = create_metrics_controller(self.config, self.instrumentation)
        if metrics_controller is not None:
            self.controllers.append(metrics_controller)


def create_app(
    profile: Optional[str] = None, config: Optional[ConfigurationProperties] = None
) -> UserBackendASGIApp:
    """Build the ASGI app. Used by the CLI and as uvicorn's factory."""
    context = ApplicationContext(profile=profile, config=config)
    app = UserBackendASGIApp(context)

    for route in app.routes:
        if route.path.endswith("/") and len(route.path) > 1:
            continue
        methods = ",".join(sorted(route.methods - {"HEAD"}))
        logger.info(f"Mapped {methods:<6} {route.path}")

    return app
