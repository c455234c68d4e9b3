from userbackend.data import CrudRepository
from userbackend.domain import User


@CrudRepository(entity=User)
class UserRepository:
    """Repository for User entities. All operations come from @CrudRepository."""

    pass
