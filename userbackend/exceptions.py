class UserBackendException(Exception):
    """Base exception for all UserBackend errors."""

    pass


class ConfigurationException(UserBackendException):
    """Raised when a configuration file cannot be read or parsed."""

    pass


class EntityException(UserBackendException):
    """Raised when an entity declaration is invalid."""

    pass


class QueryException(UserBackendException):
    """Raised for invalid derived queries or sort properties."""

    pass


class DataAccessException(UserBackendException):
    """Raised when a database operation fails."""

    pass


class DataIntegrityViolationException(DataAccessException):
    """Raised when a write violates a database constraint."""

    pass


class EntityNotFoundException(DataAccessException):
    """Raised when an entity that must exist is missing."""

    def __init__(self, entity_name: str, entity_id):
        self.entity_name = entity_name
        self.entity_id = entity_id
        super().__init__(f"{entity_name} with id {entity_id} not found")


class RequestValidationException(UserBackendException):
    """Raised when request input fails validation."""

    pass
