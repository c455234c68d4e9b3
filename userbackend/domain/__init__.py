from userbackend.domain.user import User

__all__ = ["User"]
