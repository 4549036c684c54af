"""Repository for the collection tree and its sibling ordering."""
import logging
from typing import Any, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notura.exceptions import (
    CollectionHasChildrenError,
    CollectionNotFoundError,
    ConstraintError,
    ErrorCode,
    StorageError,
    ValidationError,
)
from notura.models.db_models import DBCollection, DBNote, begin_immediate
from notura.models.schema import (
    Collection,
    ensure_timezone_aware,
    generate_id,
    utc_now,
)
from notura.storage.base import Repository

logger = logging.getLogger(__name__)

# Marks an update argument that was not passed
UNSET: Any = object()


def next_sort_order(session: Session, parent_id: Optional[str]) -> int:
    """Next sibling position under parent_id (None means root level).

    Returns max(sort_order) + 1 among the siblings, or 1 when there are none.
    Call inside the transaction that inserts the collection.
    """
    query = select(func.max(DBCollection.sort_order))
    if parent_id is None:
        query = query.where(DBCollection.parent_id.is_(None))
    else:
        query = query.where(DBCollection.parent_id == parent_id)
    max_order = session.execute(query).scalar()
    return (max_order or 0) + 1


class CollectionRepository(Repository[Collection]):
    """Repository for collections.

    Collections form a tree through parent_id. Sibling order is kept in
    sort_order and assigned under the SQLite write lock, so two concurrent
    creations under the same parent never get the same position.
    """

    def __init__(self, engine: Engine):
        super().__init__(engine)
        logger.info("CollectionRepository initialized")

    def create(
        self,
        name: str,
        description: Optional[str] = None,
        parent_id: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Collection:
        """Create a collection at the end of its siblings.

        Raises:
            ValidationError: If the name is blank.
            CollectionNotFoundError: If parent_id does not exist.
        """
        self._validate_name(name)
        collection_id = generate_id()
        now = utc_now()

        try:
            with self.session_factory() as session:
                begin_immediate(session)
                if parent_id is not None:
                    self._check_parent(session, collection_id, parent_id)
                db_collection = DBCollection(
                    id=collection_id,
                    name=name,
                    description=description,
                    parent_id=parent_id,
                    color=color,
                    icon=icon,
                    sort_order=next_sort_order(session, parent_id),
                    created_at=now,
                    updated_at=now,
                )
                session.add(db_collection)
                session.commit()
                collection = self._db_to_model(db_collection)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to create collection: {e}",
                operation="create_collection",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        logger.info(
            f"Created collection {collection.id} under "
            f"{parent_id or 'root'} at position {collection.sort_order}"
        )
        return collection

    def update(
        self,
        id: str,
        name: str,
        description: Optional[str] = None,
        parent_id: Any = UNSET,
        color: Any = UNSET,
        icon: Any = UNSET,
    ) -> Collection:
        """Rename a collection and replace its description.

        parent_id, color and icon are only touched when passed (None clears
        them). A new parent puts the collection at the end of its new
        siblings.

        Raises:
            ValidationError: If the name is blank.
            CollectionNotFoundError: If the collection or new parent is missing.
            ConstraintError: If the new parent would create a cycle.
        """
        self._validate_name(name)

        def apply(session: Session, db_collection: DBCollection) -> None:
            db_collection.name = name
            db_collection.description = description
            if color is not UNSET:
                db_collection.color = color
            if icon is not UNSET:
                db_collection.icon = icon
            if parent_id is UNSET or parent_id == db_collection.parent_id:
                return
            if parent_id is not None:
                self._check_parent(session, id, parent_id)
            db_collection.sort_order = next_sort_order(session, parent_id)
            db_collection.parent_id = parent_id

        return self._mutate(id, apply, operation="update_collection")

    def delete(self, id: str) -> None:
        """Delete a childless collection.

        Notes in the collection are moved to "no collection" first, in the
        same transaction.

        Raises:
            CollectionNotFoundError: If the collection does not exist.
            CollectionHasChildrenError: If any collection has it as parent.
        """
        try:
            with self.session_factory() as session:
                begin_immediate(session)
                child_count = session.execute(
                    select(func.count())
                    .select_from(DBCollection)
                    .where(DBCollection.parent_id == id)
                ).scalar()
                if child_count:
                    raise CollectionHasChildrenError(id, child_count)

                db_collection = session.get(DBCollection, id)
                if db_collection is None:
                    raise CollectionNotFoundError(id)

                moved = session.execute(
                    update(DBNote)
                    .where(DBNote.collection_id == id)
                    .values(collection_id=None)
                ).rowcount
                session.delete(db_collection)
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to delete collection: {e}",
                operation="delete_collection",
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e

        logger.info(f"Deleted collection {id} ({moved} notes moved to no collection)")

    def get(self, id: str) -> Optional[Collection]:
        """Get a collection by ID."""
        with self.session_factory() as session:
            db_collection = session.get(DBCollection, id)
            if db_collection is None:
                return None
            return self._db_to_model(db_collection)

    def get_all(self) -> List[Collection]:
        """Get all collections ordered by (parent_id, sort_order).

        Order within one parent is deterministic. Where root-level rows land
        relative to nested groups follows SQLite's NULL collation (first).
        """
        with self.session_factory() as session:
            result = session.execute(
                select(DBCollection).order_by(
                    DBCollection.parent_id, DBCollection.sort_order
                )
            )
            return [self._db_to_model(db) for db in result.scalars().all()]

    def get_children(self, parent_id: Optional[str]) -> List[Collection]:
        """Get the direct children of a collection (root level for None)."""
        with self.session_factory() as session:
            query = select(DBCollection)
            if parent_id is None:
                query = query.where(DBCollection.parent_id.is_(None))
            else:
                query = query.where(DBCollection.parent_id == parent_id)
            result = session.execute(query.order_by(DBCollection.sort_order))
            return [self._db_to_model(db) for db in result.scalars().all()]

    def count(self) -> int:
        """Count all collections."""
        with self.session_factory() as session:
            return session.execute(
                select(func.count()).select_from(DBCollection)
            ).scalar() or 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_name(name: str) -> None:
        if not name or not name.strip():
            raise ValidationError("Collection name cannot be empty", field="name")

    @staticmethod
    def _check_parent(session: Session, collection_id: str, parent_id: str) -> None:
        """Validate that parent_id exists and is not collection_id or below it."""
        if parent_id == collection_id:
            raise ConstraintError(
                f"Collection {collection_id} cannot be its own parent",
                code=ErrorCode.COLLECTION_CYCLE,
                details={"collection_id": collection_id},
            )
        parent = session.get(DBCollection, parent_id)
        if parent is None:
            raise CollectionNotFoundError(parent_id)

        # Walk up the ancestor chain; meeting collection_id means a cycle
        visited = {parent_id}
        current = parent
        while current is not None and current.parent_id:
            if current.parent_id == collection_id or current.parent_id in visited:
                raise ConstraintError(
                    f"Setting parent to {parent_id} would create a circular reference",
                    code=ErrorCode.COLLECTION_CYCLE,
                    details={"collection_id": collection_id, "parent_id": parent_id},
                )
            visited.add(current.parent_id)
            current = session.get(DBCollection, current.parent_id)

    def _mutate(self, id: str, apply, operation: str) -> Collection:
        try:
            with self.session_factory() as session:
                begin_immediate(session)
                db_collection = session.get(DBCollection, id)
                if db_collection is None:
                    raise CollectionNotFoundError(id)
                apply(session, db_collection)
                db_collection.updated_at = utc_now()
                session.commit()
                collection = self._db_to_model(db_collection)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to {operation.replace('_', ' ')}: {e}",
                operation=operation,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"{operation} {id}")
        return collection

    @staticmethod
    def _db_to_model(db_collection: DBCollection) -> Collection:
        return Collection(
            id=db_collection.id,
            name=db_collection.name,
            description=db_collection.description,
            parent_id=db_collection.parent_id,
            color=db_collection.color,
            icon=db_collection.icon,
            sort_order=db_collection.sort_order,
            created_at=ensure_timezone_aware(db_collection.created_at),
            updated_at=ensure_timezone_aware(db_collection.updated_at),
        )
