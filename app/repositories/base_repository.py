from typing import Generic, TypeVar
from uuid import UUID

from sqlmodel import Session, SQLModel

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """Base repository with common CRUD operations"""

    def __init__(self, model_class: type[ModelType], db: Session):
        """Initialize repository with model class and database session"""
        self.model = model_class
        self.db = db

    def create(self, obj: ModelType) -> ModelType:
        """Create a new record."""
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def get(self, id: UUID) -> ModelType | None:
        """Get a single record by ID."""
        return self.db.get(self.model, id)
