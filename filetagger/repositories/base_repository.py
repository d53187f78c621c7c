"""Base repository with common CRUD operations."""
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from filetagger.core.database import Base
from filetagger.core.errors import RecordConflict

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Generic base repository for common database operations."""

    def __init__(self, model: Type[ModelType], session: Session):
        """Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Database session of one store instance
        """
        self.model = model
        self.session = session

    def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get model by primary key ID.

        Args:
            id: Primary key value

        Returns:
            Model instance or None if not found
        """
        return self.session.get(self.model, id)

    def list_all(self) -> List[ModelType]:
        """Get all models.

        Returns:
            List of all model instances
        """
        result = self.session.execute(select(self.model).order_by(self.model.id))
        return list(result.scalars().all())

    def create(self, obj: ModelType) -> ModelType:
        """Create new model instance.

        Args:
            obj: Model instance to create

        Returns:
            Created model instance with ID populated

        Raises:
            RecordConflict: A uniqueness constraint rejected the insert
        """
        self.session.add(obj)
        self.flush()
        return obj

    def delete(self, obj: ModelType) -> None:
        """Delete model instance.

        Args:
            obj: Model instance to delete
        """
        self.session.delete(obj)
        self.flush()

    def flush(self) -> None:
        """Flush pending changes, reporting constraint violations as RecordConflict."""
        try:
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise RecordConflict(f"{self.model.__tablename__}: {e.orig}") from e
