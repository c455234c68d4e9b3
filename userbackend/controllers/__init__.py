from userbackend.controllers.user_controller import UserController

__all__ = ["UserController"]
