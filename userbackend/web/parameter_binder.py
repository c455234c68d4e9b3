import dataclasses
import inspect
import json
import re
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List

from starlette.requests import Request

from userbackend.data.entity import unwrap_optional
from userbackend.exceptions import RequestValidationException

_PATH_PARAM = re.compile(r"\{(\w+)(?::\w+)?\}")

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class ParamSource(str, Enum):
    REQUEST = "request"
    PATH = "path"
    BODY = "body"
    QUERY = "query"


@dataclass(frozen=True)
class ParamSpec:
    name: str
    source: ParamSource
    annotation: Any = inspect.Parameter.empty
    default: Any = inspect.Parameter.empty

    @property
    def required(self) -> bool:
        return self.default is inspect.Parameter.empty


def path_param_names(path: str) -> List[str]:
    return _PATH_PARAM.findall(path)


class ParameterBinder:
    """
    Binds handler arguments from a request, based on the handler signature.

    - a parameter typed ``Request`` receives the request
    - a parameter named like a ``{placeholder}`` in the path is a path variable
    - a dataclass-typed parameter is built from the JSON body
    - anything else is a query parameter (list-typed ones collect repeats)
    """

    def extract_param_metadata(self, handler: Callable, path: str) -> List[ParamSpec]:
        try:
            hints = typing.get_type_hints(handler)
        except (NameError, TypeError):
            hints = {}

        path_names = set(path_param_names(path))
        specs = []
        for param in inspect.signature(handler).parameters.values():
            if param.name == "self" or param.kind in (
                inspect.Parameter.VAR_POSITIONAL,
                inspect.Parameter.VAR_KEYWORD,
            ):
                continue

            annotation = hints.get(param.name, param.annotation)
            inner, _ = unwrap_optional(annotation)

            if inner is Request:
                source = ParamSource.REQUEST
            elif param.name in path_names:
                source = ParamSource.PATH
            elif dataclasses.is_dataclass(inner):
                source = ParamSource.BODY
            else:
                source = ParamSource.QUERY

            specs.append(ParamSpec(param.name, source, annotation, param.default))
        return specs

    async def bind_parameters(
        self, request: Request, specs: List[ParamSpec]
    ) -> Dict[str, Any]:
        arguments: Dict[str, Any] = {}

        for spec in specs:
            if spec.source == ParamSource.REQUEST:
                arguments[spec.name] = request
            elif spec.source == ParamSource.PATH:
                arguments[spec.name] = self._convert(
                    spec, request.path_params[spec.name]
                )
            elif spec.source == ParamSource.BODY:
                arguments[spec.name] = await self._bind_body(request, spec)
            else:
                arguments[spec.name] = self._bind_query(request, spec)

        return arguments

    def _bind_query(self, request: Request, spec: ParamSpec) -> Any:
        inner, _ = unwrap_optional(spec.annotation)

        if typing.get_origin(inner) in (list, List):
            raw_values = request.query_params.getlist(spec.name)
            if not raw_values:
                return [] if spec.required else spec.default
            (item_type,) = typing.get_args(inner) or (str,)
            return [self._convert_raw(spec.name, value, item_type) for value in raw_values]

        raw = request.query_params.get(spec.name)
        if raw is None or raw == "":
            if spec.required:
                raise RequestValidationException(
                    f"Missing required query parameter '{spec.name}'"
                )
            return spec.default
        return self._convert(spec, raw)

    async def _bind_body(self, request: Request, spec: ParamSpec) -> Any:
        body_type, _ = unwrap_optional(spec.annotation)

        raw_body = await request.body()
        if not raw_body:
            if not spec.required:
                return spec.default
            raise RequestValidationException("Request body is required")

        try:
            data = json.loads(raw_body)
        except ValueError:
            raise RequestValidationException("Request body must be valid JSON") from None

        if not isinstance(data, dict):
            raise RequestValidationException("Request body must be a JSON object")

        return build_dataclass(body_type, data)

    def _convert(self, spec: ParamSpec, raw: str) -> Any:
        inner, _ = unwrap_optional(spec.annotation)
        return self._convert_raw(spec.name, raw, inner)

    @staticmethod
    def _convert_raw(name: str, raw: str, target: Any) -> Any:
        if target in (inspect.Parameter.empty, Any, str):
            return raw
        try:
            if target is bool:
                lowered = raw.strip().lower()
                if lowered in _TRUE_VALUES:
                    return True
                if lowered in _FALSE_VALUES:
                    return False
                raise ValueError(raw)
            return target(raw)
        except (TypeError, ValueError):
            type_name = getattr(target, "__name__", str(target))
            raise RequestValidationException(
                f"Parameter '{name}' must be of type {type_name}, got '{raw}'"
            ) from None


_JSON_TYPES = {
    str: (str,),
    int: (int,),
    float: (int, float),
    bool: (bool,),
}


def build_dataclass(cls, data: Dict[str, Any]):
    """
    Build a dataclass instance from a JSON object.

    Unknown keys are ignored; a missing required field or a scalar of the
    wrong JSON type raises RequestValidationException.
    """
    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError):
        hints = {}

    kwargs = {}
    for field in dataclasses.fields(cls):
        if not field.init:
            continue

        if field.name not in data:
            if (
                field.default is dataclasses.MISSING
                and field.default_factory is dataclasses.MISSING
            ):
                raise RequestValidationException(f"Missing required field '{field.name}'")
            continue

        value = data[field.name]
        field_type, optional = unwrap_optional(hints.get(field.name, field.type))
        if value is None:
            if not optional:
                raise RequestValidationException(f"Field '{field.name}' must not be null")
        elif field_type in _JSON_TYPES:
            allowed = _JSON_TYPES[field_type]
            wrong_bool = isinstance(value, bool) and field_type is not bool
            if wrong_bool or not isinstance(value, allowed):
                raise RequestValidationException(
                    f"Field '{field.name}' must be of type {field_type.__name__}"
                )

        kwargs[field.name] = value

    return cls(**kwargs)
