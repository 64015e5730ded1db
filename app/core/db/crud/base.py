from typing import (
    Any,
    TypeVar,
    Generic,
    Type,
    Sequence,
    Callable,
)
from uuid import UUID

from sqlalchemy import (
    SQLColumnExpression,
    and_,
    func,
    update as sa_update,
    delete as sa_delete,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import Delete, Select, Update

from app.core.exceptions.types import DatabaseException

T = TypeVar("T")


class BaseDB(Generic[T]):
    """
    Generic async CRUD helpers shared by every model repository.

    Every method wraps `SQLAlchemyError` in `DatabaseException` so callers
    never see driver errors. Writes take a `commit_self` flag: True commits
    immediately, False only flushes so the caller's transaction decides.
    """

    def __init__(self, model: Type[T]):
        self.model = model

    async def _finish(self, session: AsyncSession, commit_self: bool) -> None:
        if commit_self:
            await session.commit()
        else:
            await session.flush()

    async def get_by_id(
        self,
        session: AsyncSession,
        id: UUID,
        options: list[Any] = [],
        populate_existing: bool = False,
    ) -> T | None:
        """
        Asynchronously retrieves an instance of the model by its primary key.

        Args:
            session (AsyncSession): The asynchronous database session to use for the query.
            id (UUID): The primary key value of the model instance to retrieve.
            options (list[Any], optional): SQLAlchemy loader options. Defaults to an empty list.
            populate_existing (bool, optional): Overwrite an instance already in the
                session with the freshly loaded row. Defaults to False.

        Returns:
            T | None: The model instance if found, otherwise None.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt: Select = (
                select(self.model)
                .options(*options)
                .where(getattr(self.model, "id") == id)
            )
            if populate_existing:
                stmt = stmt.execution_options(populate_existing=True)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving {self.model.__name__} with ID {id}: {str(e)}"
            ) from e

    async def get_all(
        self,
        session: AsyncSession,
        filters: list[Any] | None = None,
        order_by: list[Any] | None = None,
        limit: int | None = None,
    ) -> Sequence[T]:
        """
        Retrieve filtered, ordered results.

        Args:
            session: Async SQLAlchemy session.
            filters: SQLAlchemy expressions combined with AND.
            order_by: Columns or expressions to order by.
            limit: Max number of records to return.

        Returns:
            A sequence of model instances.
        """
        try:
            stmt = select(self.model)
            if filters:
                stmt = stmt.filter(*filters)
            if order_by:
                stmt = stmt.order_by(*order_by)
            if limit:
                stmt = stmt.limit(limit)

            result = await session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving all {self.model.__name__} records: {str(e)}"
            ) from e

    async def get_one_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
        options: list[Any] = [],
    ) -> T | None:
        """
        Asynchronously retrieves a single record of the model that matches the given conditions.

        Args:
            session (AsyncSession): The asynchronous database session to use for the query.
            conditions (list[SQLColumnExpression]): SQLAlchemy expressions to filter the query.
            options (list[Any], optional): SQLAlchemy loader options. Defaults to empty list.

        Returns:
            T | None: An instance of the model if found, otherwise None.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt = select(self.model).options(*options).where(and_(*conditions))
            result = await session.execute(stmt)
            return result.scalars().first()
        except (SQLAlchemyError, ValueError) as e:
            raise DatabaseException(
                f"Error retrieving one {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e

    async def count_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
    ) -> int:
        """
        Count records matching the given conditions.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt = (
                select(func.count())
                .select_from(self.model)
                .where(and_(*conditions))
            )
            result = await session.execute(stmt)
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error counting {self.model.__name__} records: {str(e)}"
            ) from e

    async def create(
        self,
        session: AsyncSession,
        data: dict,
        validate: Callable[[dict], dict] | None = None,
        commit_self: bool = True,
    ) -> T:
        """
        Asynchronously creates and persists a new instance of the model.

        Args:
            session (AsyncSession): The SQLAlchemy asynchronous session to use.
            data (dict): Fields and values to initialize the model instance.
            validate (Callable[[dict], dict] | None, optional): Transforms or validates the input data first.
            commit_self (bool, optional): Commit when True, only flush when False. Defaults to True.

        Returns:
            T: The newly created and persisted model instance.

        Raises:
            DatabaseException: If an error occurs while creating the instance.
        """
        try:
            if validate:
                data = validate(data)

            obj = self.model(**data)
            session.add(obj)
            await self._finish(session, commit_self)
            await session.refresh(obj)
            return obj
        except (SQLAlchemyError, ValueError) as e:
            raise DatabaseException(
                f"Error creating {self.model.__name__}: {str(e)}"
            ) from e

    async def update_by_conditions(
        self,
        session: AsyncSession,
        conditions: list[SQLColumnExpression],
        updates: dict,
        commit_self: bool = True,
    ) -> int:
        """
        Update every record matching the conditions in a single statement.

        The conditions are evaluated by the database inside the UPDATE, so a
        guard such as `attempts < max_attempts` holds even under concurrency.

        Args:
            session (AsyncSession): The SQLAlchemy asynchronous session to use.
            conditions (list[SQLColumnExpression]): Expressions selecting the records to update.
            updates (dict): Column values to set.
            commit_self (bool, optional): Commit when True, only flush when False. Defaults to True.

        Returns:
            int: The number of records updated.

        Raises:
            DatabaseException: If an error occurs while updating the records.
        """
        try:
            stmt: Update = (
                sa_update(self.model)
                .where(and_(*conditions))
                .values(**updates)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await self._finish(session, commit_self)
            return result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error updating {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e

    async def delete_by_conditions(
        self,
        session: AsyncSession,
        conditions: list[SQLColumnExpression],
        commit_self: bool = True,
    ) -> int:
        """
        Permanently delete every record matching the conditions.

        Returns:
            int: The number of records deleted.

        Raises:
            DatabaseException: If an error occurs while deleting the records.
        """
        try:
            stmt: Delete = (
                sa_delete(self.model)
                .where(and_(*conditions))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await self._finish(session, commit_self)
            return result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error deleting {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e
