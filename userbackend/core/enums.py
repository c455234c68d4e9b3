from enum import Enum


class DatabaseAdapter(str, Enum):
    """Supported database adapter backends."""

    SQLALCHEMY = "sqlalchemy"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
