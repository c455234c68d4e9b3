from unittest.mock import Mock

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.testclient import TestClient

from userbackend.core.instrumentation import InstrumentationRegistry
from userbackend.core.metrics import create_metrics_controller, is_ip_allowed
from userbackend.core.metrics_core import MetricsStorage
from userbackend.web import ParameterBinder, ResponseEntity, RouteBuilder


def _config(enabled=True, path="/metrics", allowed_ips=None):
    config = Mock()
    config.get_bool.return_value = enabled
    config.get.side_effect = lambda key, default=None: {
        "metrics.path": path,
        "metrics.allowed_ips": allowed_ips or [],
    }.get(key, default)
    return config


def _registry() -> InstrumentationRegistry:
    registry = InstrumentationRegistry(MetricsStorage())
    registry.enable()
    return registry


def _request(host: str):
    request = Mock(spec=Request)
    request.client.host = host
    return request


class TestIsIpAllowed:
    def test_empty_list_allows_everyone(self):
        assert is_ip_allowed("203.0.113.9", [])
        assert is_ip_allowed("203.0.113.9", None)

    def test_exact_match(self):
        assert is_ip_allowed("127.0.0.1", ["127.0.0.1", "10.0.0.1"])
        assert not is_ip_allowed("127.0.0.2", ["127.0.0.1"])

    def test_cidr(self):
        assert is_ip_allowed("172.20.0.5", ["172.16.0.0/12"])
        assert not is_ip_allowed("192.168.1.1", ["172.16.0.0/12"])

    def test_ipv6(self):
        assert is_ip_allowed("::1", ["::1"])
        assert is_ip_allowed("fd00::5", ["fd00::/8"])

    def test_unparseable_client_denied(self):
        assert not is_ip_allowed("testclient", ["127.0.0.1"])

    def test_invalid_entry_skipped(self):
        assert is_ip_allowed("10.0.0.1", ["not-an-ip", "10.0.0.1"])
        assert not is_ip_allowed("10.0.0.1", ["not-an-ip"])


class TestMetricsEndpoint:
    """Test metrics controller creation and access control."""

    def test_create_metrics_controller_disabled(self):
        assert create_metrics_controller(_config(enabled=False), _registry()) is None

    def test_create_metrics_controller_enabled(self):
        controller = create_metrics_controller(_config(), _registry())

        assert controller is not None
        assert type(controller).__userbackend_base_path__ == "/metrics"
        assert hasattr(controller, "get_metrics")
        assert hasattr(controller, "get_prometheus_metrics")

    def test_metrics_controller_custom_path(self):
        controller = create_metrics_controller(_config(path="custom/metrics/"), _registry())

        assert type(controller).__userbackend_base_path__ == "/custom/metrics"

    @pytest.mark.asyncio
    async def test_get_metrics_allowed_no_restrictions(self):
        controller = create_metrics_controller(_config(), _registry())

        result = await controller.get_metrics(_request("192.168.1.100"))

        assert isinstance(result, dict)
        assert result["enabled"] is True
        assert "uptime_seconds" in result
        assert result["system"]["memory"]["rss_bytes"] > 0

    @pytest.mark.asyncio
    async def test_get_prometheus_metrics_allowed(self):
        controller = create_metrics_controller(_config(), _registry())

        result = await controller.get_prometheus_metrics(_request("192.168.1.100"))

        assert isinstance(result, PlainTextResponse)
        assert b"# TYPE http_requests_total counter" in result.body

    @pytest.mark.asyncio
    async def test_get_metrics_denied_wrong_ip(self):
        controller = create_metrics_controller(_config(allowed_ips=["127.0.0.1"]), _registry())

        result = await controller.get_metrics(_request("192.168.1.100"))

        assert isinstance(result, ResponseEntity)
        assert result.status == 404

    @pytest.mark.asyncio
    async def test_get_prometheus_metrics_denied_wrong_ip(self):
        controller = create_metrics_controller(_config(allowed_ips=["127.0.0.1"]), _registry())

        result = await controller.get_prometheus_metrics(_request("192.168.1.100"))

        assert isinstance(result, ResponseEntity)
        assert result.status == 404

    @pytest.mark.asyncio
    async def test_ip_allowlist_cidr_match(self):
        controller = create_metrics_controller(
            _config(allowed_ips=["172.16.0.0/12"]), _registry()
        )

        assert isinstance(await controller.get_metrics(_request("172.20.0.5")), dict)


class TestMetricsOverHttp:
    def _client(self, config, registry):
        controller = create_metrics_controller(config, registry)
        routes = RouteBuilder([controller], ParameterBinder()).build_routes()
        return TestClient(Starlette(routes=routes))

    def test_json(self):
        registry = _registry()
        registry.record_http_request("GET", "/api/users", 200, 0.01)

        response = self._client(_config(), registry).get("/metrics")

        assert response.status_code == 200
        assert response.json()["http"]["total_requests"] == 1

    def test_prometheus_content_type(self):
        response = self._client(_config(), _registry()).get("/metrics/prometheus")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain; version=0.0.4")

    def test_denied_looks_like_missing_route(self):
        response = self._client(_config(allowed_ips=["127.0.0.1"]), _registry()).get("/metrics")

        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}
