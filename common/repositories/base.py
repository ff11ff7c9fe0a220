from contextlib import asynccontextmanager
from typing import AsyncGenerator, Generic, List, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.db.session import session_scope

EntityType = TypeVar("EntityType")
DomainModelType = TypeVar("DomainModelType")


class BaseRepository(Generic[EntityType, DomainModelType]):
    """
    Base repository acquiring one session per operation.

    Sessions are released as soon as the operation finishes, so no connection
    is held while callers wait on embedding backends.
    """

    def __init__(
        self,
        entity_class: Type[EntityType],
        domain_class: Type[DomainModelType],
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.entity_class = entity_class
        self.domain_class = domain_class
        self._session_factory = session_factory

    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with session_scope(self._session_factory) as session:
            yield session

    def _entity_to_domain(self, entity: EntityType) -> DomainModelType:
        """Convert database entity to domain model."""
        return self.domain_class.model_validate(entity)

    def _entities_to_domain(self, entities: List[EntityType]) -> List[DomainModelType]:
        """Convert list of database entities to domain models."""
        return [self._entity_to_domain(entity) for entity in entities]
