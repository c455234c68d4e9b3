import inspect
from typing import Callable, Iterable, List

from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from userbackend.core.logging import get_logger
from userbackend.exceptions import (
    DataIntegrityViolationException,
    EntityNotFoundException,
    QueryException,
    RequestValidationException,
)
from userbackend.web.controllers import is_controller
from userbackend.web.mappings import RouteMetadata
from userbackend.web.parameter_binder import ParameterBinder, ParamSpec
from userbackend.web.response import ResponseEntity
from userbackend.web.serialization import serialize_json

logger = get_logger(__name__)

JSON = "application/json"


class RouteBuilder:
    """Handles building routes from controller instances."""

    def __init__(
        self,
        controllers: Iterable[object],
        parameter_binder: ParameterBinder,
        ignore_trailing_slash: bool = True,
        debug_mode: bool = False,
    ):
        self.controllers = list(controllers)
        self.parameter_binder = parameter_binder
        self.ignore_trailing_slash = ignore_trailing_slash
        self.debug_mode = debug_mode

    def build_routes(self) -> List[Route]:
        routes = []

        for controller in self.controllers:
            if not is_controller(controller):
                raise TypeError(
                    f"{type(controller).__name__} is not a @RestController"
                )
            base_path = type(controller).__userbackend_base_path__

            for _, method in inspect.getmembers(controller, predicate=inspect.ismethod):
                route_meta = getattr(method, "__userbackend_route__", None)
                if route_meta is None:
                    continue

                full_path = self._combine_paths(base_path, route_meta.path)
                param_specs = self.parameter_binder.extract_param_metadata(
                    method, full_path
                )
                endpoint = self._create_endpoint(method, param_specs, route_meta)

                routes.append(
                    Route(path=full_path, endpoint=endpoint, methods=[route_meta.method])
                )

                # Register /path/ alongside /path
                if (
                    self.ignore_trailing_slash
                    and len(full_path) > 1
                    and not full_path.endswith("/")
                ):
                    routes.append(
                        Route(
                            path=full_path + "/",
                            endpoint=endpoint,
                            methods=[route_meta.method],
                        )
                    )

        # Specific paths before parameterized paths
        routes.sort(key=self._route_priority)
        return routes

    def _create_endpoint(
        self, handler: Callable, param_specs: List[ParamSpec], route_meta: RouteMetadata
    ):
        """
        Wrap a controller method as a Starlette endpoint.

        Binds arguments, awaits the handler, renders the result and maps
        exceptions to error responses.
        """

        async def endpoint(request: Request):
            try:
                if param_specs:
                    handler_args = await self.parameter_binder.bind_parameters(
                        request, param_specs
                    )
                    result = await handler(**handler_args)
                else:
                    result = await handler()

                return self._render(result)

            except EntityNotFoundException as e:
                return self._error(404, str(e))
            except DataIntegrityViolationException as e:
                logger.warning(
                    f"{route_meta.method} {request.url.path} violated a constraint: {e}"
                )
                return self._error(409, "Request conflicts with existing data")
            except (ValueError, RequestValidationException, QueryException) as e:
                return self._error(400, str(e))
            except Exception as e:
                logger.exception(f"Error handling {route_meta.method} {request.url.path}")
                if self.debug_mode:
                    return self._error(500, f"{type(e).__name__}: {e}")
                return self._error(500, "Internal server error")

        endpoint.__name__ = handler.__name__
        return endpoint

    def _render(self, result) -> Response:
        if isinstance(result, Response):
            return result

        if not isinstance(result, ResponseEntity):
            return Response(
                content=serialize_json(result),
                status_code=200,
                headers={"content-type": JSON},
            )

        headers = dict(result.headers)
        body = result.body

        if result.status == 204 or body is None:
            return Response(content=b"", status_code=result.status, headers=headers)

        has_content_type = any(k.lower() == "content-type" for k in headers)
        if isinstance(body, bytes):
            content = body
            if not has_content_type:
                headers["content-type"] = "application/octet-stream"
        elif isinstance(body, str):
            content = body.encode("utf-8")
            if not has_content_type:
                headers["content-type"] = "text/plain; charset=utf-8"
        else:
            content = serialize_json(body)
            if not has_content_type:
                headers["content-type"] = JSON

        return Response(content=content, status_code=result.status, headers=headers)

    @staticmethod
    def _error(status: int, message: str) -> Response:
        return Response(
            content=serialize_json({"error": message}),
            status_code=status,
            headers={"content-type": JSON},
        )

    def _combine_paths(self, base: str, route: str) -> str:
        base = base.rstrip("/")
        route = route.rstrip("/")

        if route and not route.startswith("/"):
            route = "/" + route
        if not route:
            return base or "/"
        if not base:
            return route
        return f"{base}{route}"

    def _route_priority(self, route: Route):
        segments = [s for s in route.path.split("/") if s]
        param_count = sum(1 for s in segments if s.startswith("{"))
        return (param_count, -len(segments), route.path)
