"""Base repository interface."""
from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar

from sqlalchemy.engine import Engine

from notura.models.db_models import get_session_factory

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Abstract repository bound to an explicitly passed engine.

    The engine is never looked up from module state, so each test (or each
    application instance) can work against its own database.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = get_session_factory(engine)

    @abstractmethod
    def get(self, id: str) -> Optional[T]:
        """Get an entity by ID, or None if it does not exist."""

    @abstractmethod
    def get_all(self) -> List[T]:
        """Get all entities in their canonical order."""

    @abstractmethod
    def delete(self, id: str) -> None:
        """Delete an entity by ID."""
