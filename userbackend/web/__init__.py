from userbackend.web.controllers import RestController, is_controller
from userbackend.web.mappings import DeleteMapping, GetMapping, PostMapping, PutMapping
from userbackend.web.parameter_binder import ParameterBinder
from userbackend.web.response import ResponseEntity
from userbackend.web.route_builder import RouteBuilder
from userbackend.web.serialization import serialize_json

__all__ = [
    "RestController",
    "is_controller",
    "GetMapping",
    "PostMapping",
    "PutMapping",
    "DeleteMapping",
    "ParameterBinder",
    "ResponseEntity",
    "RouteBuilder",
    "serialize_json",
]
