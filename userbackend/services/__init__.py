from userbackend.services.user_service import UserService

__all__ = ["UserService"]
