from dataclasses import dataclass
from datetime import datetime

from userbackend.data import Column, Entity, Field, Id


@Entity()
@dataclass
class User:
    id: int = Id()
    name: str = Column(nullable=False, default="")
    email: str = Column(nullable=False, default="")
    created_at: datetime = Field(update_on_create=True)
    updated_at: datetime = Field(update_on_save=True)
