import ipaddress

from starlette.requests import Request
from starlette.responses import PlainTextResponse

from userbackend.core.instrumentation import InstrumentationRegistry
from userbackend.core.logging import get_logger
from userbackend.core.metrics_formatters import format_json, format_prometheus
from userbackend.web.controllers import RestController
from userbackend.web.mappings import GetMapping
from userbackend.web.response import ResponseEntity

logger = get_logger(__name__)


def is_ip_allowed(client_ip: str, allowed_ips) -> bool:
    """
    Check ``client_ip`` against a list of addresses and CIDR networks.

    An empty list allows everyone. Behind a reverse proxy the client is the
    proxy, so allowlist with that in mind.
    """
    if not allowed_ips:
        return True

    try:
        client_addr = ipaddress.ip_address(client_ip)
    except ValueError:
        return False

    for allowed in allowed_ips:
        allowed = str(allowed)
        try:
            if "/" in allowed:
                if client_addr in ipaddress.ip_network(allowed, strict=False):
                    return True
            elif client_addr == ipaddress.ip_address(allowed):
                return True
        except ValueError:
            logger.warning(f"Ignoring invalid metrics.allowed_ips entry: {allowed}")

    return False


def create_metrics_controller(config, registry: InstrumentationRegistry):
    """
    Build the metrics controller, or None when metrics are disabled.

    Exposes:
    - {metrics.path} - nested JSON
    - {metrics.path}/prometheus - Prometheus text
    """
    if not config.get_bool("metrics.enabled"):
        return None

    metrics_path = "/" + str(config.get("metrics.path", "/metrics")).strip("/")
    allowed_ips = config.get("metrics.allowed_ips") or []

    @RestController(metrics_path)
    class MetricsController:
        def __init__(self, registry: InstrumentationRegistry):
            self.registry = registry

        def _denied(self, request: Request):
            client_ip = request.client.host if request.client else ""
            if is_ip_allowed(client_ip, allowed_ips):
                return None
            logger.warning(f"Metrics access denied for IP: {client_ip}")
            return ResponseEntity.not_found({"error": "Not found"})

        @GetMapping("")
        async def get_metrics(self, request: Request):
            denied = self._denied(request)
            if denied:
                return denied

            self.registry.sample_system_metrics()
            metrics = format_json(self.registry.storage)
            if metrics["enabled"]:
                metrics["uptime_seconds"] = round(self.registry.uptime_seconds(), 2)
            return metrics

        @GetMapping("/prometheus")
        async def get_prometheus_metrics(self, request: Request):
            denied = self._denied(request)
            if denied:
                return denied

            self.registry.sample_system_metrics()
            content = format_prometheus(self.registry.storage)
            return PlainTextResponse(content, media_type="text/plain; version=0.0.4")

    return MetricsController(registry)
