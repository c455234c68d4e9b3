"""
Tests for RouteBuilder and ParameterBinder: routing, argument binding,
response rendering and error mapping.
"""

from dataclasses import dataclass
from typing import List, Optional

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.testclient import TestClient

from userbackend.exceptions import (
    DataIntegrityViolationException,
    EntityNotFoundException,
    QueryException,
    RequestValidationException,
)
from userbackend.web import (
    DeleteMapping,
    GetMapping,
    ParameterBinder,
    PostMapping,
    PutMapping,
    ResponseEntity,
    RestController,
    RouteBuilder,
)
from userbackend.web.parameter_binder import ParamSource, build_dataclass


@dataclass
class ItemRequest:
    name: str
    price: float = 0.0
    note: Optional[str] = None


@RestController("/api/items")
class ItemController:
    @GetMapping("")
    async def list_items(self, tag: Optional[List[str]] = None, limit: int = 10):
        return {"tags": tag or [], "limit": limit}

    @GetMapping("/special")
    async def special(self):
        return {"special": True}

    @GetMapping("/{item_id}")
    async def get_item(self, item_id: int, verbose: bool = False):
        return {"id": item_id, "verbose": verbose}

    @PostMapping("")
    async def create_item(self, body: ItemRequest):
        return ResponseEntity.created(body, headers={"Location": "/api/items/1"})

    @PutMapping("/{item_id}")
    async def replace_item(self, item_id: int, body: ItemRequest, request: Request):
        return {"id": item_id, "name": body.name, "method": request.method}

    @DeleteMapping("/{item_id}")
    async def delete_item(self, item_id: int):
        return ResponseEntity.no_content()

    @GetMapping("/required/search")
    async def search(self, q: str):
        return [q]

    @GetMapping("/text/plain")
    async def text(self):
        return ResponseEntity.ok("hello")

    @GetMapping("/raw/response")
    async def raw(self):
        return PlainTextResponse("raw", status_code=202)

    @GetMapping("/errors/{kind}")
    async def fail(self, kind: str):
        if kind == "value":
            raise ValueError("bad value")
        if kind == "validation":
            raise RequestValidationException("bad input")
        if kind == "query":
            raise QueryException("bad sort")
        if kind == "missing":
            raise EntityNotFoundException("Item", 9)
        if kind == "conflict":
            raise DataIntegrityViolationException("UNIQUE constraint failed")
        raise RuntimeError("kaboom")

    def helper(self):
        """Not a route."""
        return None


def _client(debug: bool = False, ignore_trailing_slash: bool = True) -> TestClient:
    builder = RouteBuilder(
        [ItemController()],
        ParameterBinder(),
        ignore_trailing_slash=ignore_trailing_slash,
        debug_mode=debug,
    )
    return TestClient(Starlette(routes=builder.build_routes()))


@pytest.fixture
def client():
    return _client()


class TestRouteBuilding:
    def test_routes_registered(self):
        builder = RouteBuilder([ItemController()], ParameterBinder(), ignore_trailing_slash=False)
        paths = {(r.path, tuple(sorted(r.methods))) for r in builder.build_routes()}

        assert ("/api/items", ("GET", "HEAD")) in paths
        assert ("/api/items", ("POST",)) in paths
        assert ("/api/items/{item_id}", ("PUT",)) in paths
        assert ("/api/items/{item_id}", ("DELETE",)) in paths
        assert len(paths) == 10

    def test_literal_paths_sort_before_parameterized(self):
        builder = RouteBuilder([ItemController()], ParameterBinder())
        paths = [r.path for r in builder.build_routes()]

        assert paths.index("/api/items/special") < paths.index("/api/items/{item_id}")

    def test_literal_path_wins(self, client):
        assert client.get("/api/items/special").json() == {"special": True}

    def test_trailing_slash_registered(self, client):
        assert client.get("/api/items/5/").json() == {"id": 5, "verbose": False}

    def test_trailing_slash_disabled(self):
        client = _client(ignore_trailing_slash=False)

        response = client.get("/api/items/5/", follow_redirects=False)
        assert response.status_code in (307, 404)

    def test_non_controller_rejected(self):
        class Plain:
            pass

        with pytest.raises(TypeError, match="not a @RestController"):
            RouteBuilder([Plain()], ParameterBinder()).build_routes()

    @pytest.mark.parametrize(
        "base,route,expected",
        [
            ("/api/items", "", "/api/items"),
            ("/api/items/", "/x", "/api/items/x"),
            ("", "/x", "/x"),
            ("", "", "/"),
            ("/api", "x", "/api/x"),
        ],
    )
    def test_combine_paths(self, base, route, expected):
        builder = RouteBuilder([], ParameterBinder())
        assert builder._combine_paths(base, route) == expected


class TestParameterBinding:
    def test_path_variable_converted(self, client):
        assert client.get("/api/items/42").json() == {"id": 42, "verbose": False}

    def test_path_variable_wrong_type(self, client):
        response = client.get("/api/items/abc")

        assert response.status_code == 400
        assert "item_id" in response.json()["error"]

    def test_bool_query_param(self, client):
        assert client.get("/api/items/1?verbose=true").json()["verbose"] is True
        assert client.get("/api/items/1?verbose=0").json()["verbose"] is False

    def test_invalid_bool_query_param(self, client):
        assert client.get("/api/items/1?verbose=maybe").status_code == 400

    def test_list_query_param_collects_repeats(self, client):
        response = client.get("/api/items?tag=a&tag=b&limit=3")

        assert response.json() == {"tags": ["a", "b"], "limit": 3}

    def test_query_defaults(self, client):
        assert client.get("/api/items").json() == {"tags": [], "limit": 10}

    def test_missing_required_query_param(self, client):
        response = client.get("/api/items/required/search")

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required query parameter 'q'"}

    def test_body_bound_to_dataclass(self, client):
        response = client.post("/api/items", json={"name": "Pen", "price": 2, "extra": 1})

        assert response.status_code == 201
        assert response.headers["location"] == "/api/items/1"
        assert response.json() == {"name": "Pen", "price": 2, "note": None}

    def test_body_missing_required_field(self, client):
        response = client.post("/api/items", json={"price": 2})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required field 'name'"}

    def test_body_wrong_type(self, client):
        response = client.post("/api/items", json={"name": 5})

        assert response.status_code == 400
        assert response.json() == {"error": "Field 'name' must be of type str"}

    def test_body_invalid_json(self, client):
        response = client.post(
            "/api/items", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Request body must be valid JSON"}

    def test_body_not_an_object(self, client):
        response = client.post("/api/items", json=["Pen"])

        assert response.status_code == 400

    def test_body_missing(self, client):
        response = client.post("/api/items")

        assert response.status_code == 400
        assert response.json() == {"error": "Request body is required"}

    def test_request_injection(self, client):
        response = client.put("/api/items/3", json={"name": "Cup"})

        assert response.json() == {"id": 3, "name": "Cup", "method": "PUT"}

    def test_extract_param_metadata(self):
        specs = ParameterBinder().extract_param_metadata(
            ItemController().replace_item, "/api/items/{item_id}"
        )

        assert [(s.name, s.source) for s in specs] == [
            ("item_id", ParamSource.PATH),
            ("body", ParamSource.BODY),
            ("request", ParamSource.REQUEST),
        ]
        assert all(s.required for s in specs)


class TestBuildDataclass:
    def test_null_for_optional(self):
        item = build_dataclass(ItemRequest, {"name": "x", "note": None})
        assert item.note is None

    def test_null_for_required(self):
        with pytest.raises(RequestValidationException, match="must not be null"):
            build_dataclass(ItemRequest, {"name": None})

    def test_bool_is_not_a_number(self):
        with pytest.raises(RequestValidationException, match="float"):
            build_dataclass(ItemRequest, {"name": "x", "price": True})


class TestResponseRendering:
    def test_plain_value_is_json(self, client):
        response = client.get("/api/items/special")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"

    def test_no_content(self, client):
        response = client.delete("/api/items/1")

        assert response.status_code == 204
        assert response.content == b""

    def test_string_body(self, client):
        response = client.get("/api/items/text/plain")

        assert response.text == "hello"
        assert response.headers["content-type"].startswith("text/plain")

    def test_starlette_response_passthrough(self, client):
        response = client.get("/api/items/raw/response")

        assert response.status_code == 202
        assert response.text == "raw"


class TestErrorMapping:
    @pytest.mark.parametrize(
        "kind,status,message",
        [
            ("value", 400, "bad value"),
            ("validation", 400, "bad input"),
            ("query", 400, "bad sort"),
            ("missing", 404, "Item with id 9 not found"),
            ("conflict", 409, "Request conflicts with existing data"),
            ("other", 500, "Internal server error"),
        ],
    )
    def test_status_codes(self, client, kind, status, message):
        response = client.get(f"/api/items/errors/{kind}")

        assert response.status_code == status
        assert response.json() == {"error": message}

    def test_debug_mode_shows_exception(self):
        response = _client(debug=True).get("/api/items/errors/other")

        assert response.status_code == 500
        assert response.json() == {"error": "RuntimeError: kaboom"}
