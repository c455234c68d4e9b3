from userbackend.data.adapters.base import DatabaseAdapter
from userbackend.data.adapters.sqlalchemy import SQLAlchemyAdapter

__all__ = ["DatabaseAdapter", "SQLAlchemyAdapter"]
