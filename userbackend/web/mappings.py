from dataclasses import dataclass
from typing import Callable

from userbackend.core.enums import HttpMethod


@dataclass(frozen=True)
class RouteMetadata:
    method: str
    path: str


def _mapping(method: HttpMethod):
    def factory(path: str = "") -> Callable:
        def decorator(func: Callable) -> Callable:
            func.__userbackend_route__ = RouteMetadata(method=method.value, path=path)
            return func

        return decorator

    factory.__name__ = f"{method.value.capitalize()}Mapping"
    factory.__doc__ = f"Map a controller method to HTTP {method.value} on ``path``."
    return factory


GetMapping = _mapping(HttpMethod.GET)
PostMapping = _mapping(HttpMethod.POST)
PutMapping = _mapping(HttpMethod.PUT)
DeleteMapping = _mapping(HttpMethod.DELETE)
