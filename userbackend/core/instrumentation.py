import functools
import inspect
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

import psutil
from starlette.routing import BaseRoute, Match

from userbackend.core.logging import get_logger
from userbackend.core.metrics_core import MetricsStorage

logger = get_logger(__name__)

UNMATCHED_ROUTE = "<unmatched>"


class InstrumentationRegistry:
    """
    Records HTTP, repository and process metrics into a MetricsStorage.

    Process metrics come from psutil and are sampled when metrics are read,
    so no background task is needed.
    """

    def __init__(self, metrics_storage: MetricsStorage):
        self.enabled: bool = False
        self.start_time: datetime = datetime.now(timezone.utc)
        self._core = metrics_storage
        self.process = psutil.Process()

    @property
    def storage(self) -> MetricsStorage:
        return self._core

    def enable(self):
        self.enabled = True
        self._core.enable()

        self._core.counter("http_requests_total", "Total HTTP requests")
        self._core.histogram("http_request_duration_seconds", "HTTP request duration")
        self._core.counter("repository_calls_total", "Total repository calls")
        self._core.histogram(
            "repository_call_duration_seconds", "Repository call duration"
        )
        self._core.gauge("system_memory_bytes", "Process memory usage in bytes")
        self._core.gauge("system_cpu_percent", "Process CPU usage percent")

        # First cpu_percent() call only primes the counter
        self.process.cpu_percent(interval=None)

    def disable(self):
        self.enabled = False
        self._core.disable()

    def sample_system_metrics(self):
        if not self.enabled:
            return

        try:
            memory = self.process.memory_info()
            cpu_percent = self.process.cpu_percent(interval=None)
        except psutil.Error as e:
            logger.warning(f"Could not sample process metrics: {e}")
            return

        self._core.gauge("system_memory_bytes").set(memory.rss, {"type": "rss"})
        self._core.gauge("system_memory_bytes").set(memory.vms, {"type": "vms"})
        self._core.gauge("system_cpu_percent").set(cpu_percent)

    def uptime_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.start_time).total_seconds()

    def record_http_request(
        self, method: str, path: str, status_code: int, duration_sec: float
    ):
        if not self.enabled:
            return

        self._core.counter("http_requests_total").inc(
            {"method": method, "path": path, "status": str(status_code)}
        )
        self._core.histogram("http_request_duration_seconds").observe(
            duration_sec, {"method": method, "path": path}
        )

    def record_repository_call(
        self, repository: str, method: str, duration_sec: float, error: bool = False
    ):
        if not self.enabled:
            return

        status = "failure" if error else "success"
        self._core.counter("repository_calls_total").inc(
            {"repository": repository, "method": method, "status": status}
        )
        self._core.histogram("repository_call_duration_seconds").observe(
            duration_sec, {"repository": repository, "method": method}
        )


def instrument_component(
    instance, registry: InstrumentationRegistry, name: Optional[str] = None
):
    """
    Time every public async method of ``instance``.

    Wrappers are installed on the instance itself, so other instances of the
    same class are unaffected. Returns the instance.
    """
    component_name = name or type(instance).__name__

    for attr_name in dir(instance):
        if attr_name.startswith("_"):
            continue
        method = getattr(instance, attr_name)
        if not inspect.iscoroutinefunction(method):
            continue
        setattr(
            instance,
            attr_name,
            _instrument_method(component_name, attr_name, method, registry),
        )

    return instance


def _instrument_method(component_name, method_name, method, registry):
    @functools.wraps(method)
    async def wrapper(*args, **kwargs):
        if not registry.enabled:
            return await method(*args, **kwargs)

        start_time = time.perf_counter()
        error_occurred = False
        try:
            return await method(*args, **kwargs)
        except Exception:
            error_occurred = True
            raise
        finally:
            registry.record_repository_call(
                component_name,
                method_name,
                time.perf_counter() - start_time,
                error_occurred,
            )

    return wrapper


class InstrumentationMiddleware:
    """
    ASGI middleware that times HTTP requests.

    Requests are labelled with the matching route template rather than the
    raw path, so ``/api/users/1`` and ``/api/users/2`` share one series.
    """

    def __init__(
        self, app, registry: InstrumentationRegistry, routes: Iterable[BaseRoute] = ()
    ):
        self.app = app
        self.registry = registry
        self.routes = list(routes)

    def _route_template(self, scope) -> str:
        partial = None
        for route in self.routes:
            match, _ = route.matches(scope)
            if match == Match.FULL:
                return route.path
            if match == Match.PARTIAL and partial is None:
                partial = route.path
        return partial or UNMATCHED_ROUTE

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or not self.registry.enabled:
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "UNKNOWN")
        path = self._route_template(scope)
        start_time = time.perf_counter()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            self.registry.record_http_request(
                method, path, status_code, time.perf_counter() - start_time
            )
