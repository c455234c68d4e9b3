def RestController(path: str = ""):
    """
    Mark a class as a REST controller mounted at ``path``.

        @RestController("/api/users")
        class UserController:
            @GetMapping("/{id}")
            async def get_user(self, id: int): ...
    """

    def decorator(cls):
        cls.__userbackend_controller__ = True
        cls.__userbackend_base_path__ = path
        return cls

    return decorator


def is_controller(obj) -> bool:
    cls = obj if isinstance(obj, type) else type(obj)
    return bool(getattr(cls, "__userbackend_controller__", False))
