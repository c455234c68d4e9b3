from typing import Any, Dict, Optional


class ResponseEntity:
    """
    HTTP response with status, headers and a body to serialize.

        return ResponseEntity.created(user, headers={"Location": f"/api/users/{user.id}"})
        return ResponseEntity.status(503).header("Retry-After", "30").body({...})
    """

    def __init__(
        self,
        body: Any = None,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.body = body
        self.status = status
        self.headers: Dict[str, str] = dict(headers or {})

    def header(self, name: str, value: str) -> "ResponseEntity":
        self.headers[name] = value
        return self

    @classmethod
    def ok(cls, body: Any = None, headers: Optional[Dict[str, str]] = None):
        return cls(body, 200, headers)

    @classmethod
    def created(cls, body: Any = None, headers: Optional[Dict[str, str]] = None):
        return cls(body, 201, headers)

    @classmethod
    def no_content(cls, headers: Optional[Dict[str, str]] = None):
        return cls(None, 204, headers)

    @classmethod
    def bad_request(cls, body: Any = None, headers: Optional[Dict[str, str]] = None):
        return cls(body, 400, headers)

    @classmethod
    def not_found(cls, body: Any = None, headers: Optional[Dict[str, str]] = None):
        return cls(body, 404, headers)

    @classmethod
    def conflict(cls, body: Any = None, headers: Optional[Dict[str, str]] = None):
        return cls(body, 409, headers)

    @classmethod
    def internal_server_error(
        cls, body: Any = None, headers: Optional[Dict[str, str]] = None
    ):
        return cls(body, 500, headers)

    @classmethod
    def status(cls, status: int) -> "ResponseBuilder":
        return ResponseBuilder(status)

    def __repr__(self) -> str:
        return f"ResponseEntity(status={self.status}, body={self.body!r})"


class ResponseBuilder:
    """Builder returned by ResponseEntity.status()."""

    def __init__(self, status: int):
        self._status = status
        self._headers: Dict[str, str] = {}

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def body(self, body: Any) -> ResponseEntity:
        return ResponseEntity(body, self._status, self._headers)

    def build(self) -> ResponseEntity:
        return ResponseEntity(None, self._status, self._headers)
